"""devui: run workspace watch tasks side by side in a terminal dashboard."""

__version__ = "0.1.0"
