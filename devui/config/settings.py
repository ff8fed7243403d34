"""Runtime settings for devui.

Values come from the environment, after loading ``.env`` from the working
directory. Command-line flags override them in ``devui.main``.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_LOG_FILE = Path(tempfile.gettempdir()) / "devui" / "devui_log.json"
DEFAULT_TICK_MS = 80
DEFAULT_INTERRUPT_WINDOW_SECONDS = 2.0
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Settings:
    nx_bin: str = "nx"
    cwd: Path = Path(".")
    log_file: Path = DEFAULT_LOG_FILE
    log_level: int = logging.INFO
    tick_interval: float = DEFAULT_TICK_MS / 1000
    interrupt_window: float = DEFAULT_INTERRUPT_WINDOW_SECONDS
    chunk_size: int = DEFAULT_CHUNK_SIZE


def _env_float(name: str, default: float, minimum: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return max(minimum, float(raw))
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _log_level(raw: str) -> int:
    level = logging.getLevelName(raw.strip().upper() or "INFO")
    if not isinstance(level, int):
        raise ValueError(f"DEVUI_LOG_LEVEL must be a logging level name, got {raw!r}")
    return level


def load_settings(cwd: Path | None = None, env_file: Path | None = None) -> Settings:
    """Build settings from the environment and an optional ``.env`` file.

    Args:
        cwd: Workspace root. Defaults to the current directory.
        env_file: Explicit ``.env`` path. Defaults to ``<cwd>/.env``.

    Returns:
        Frozen Settings instance.
    """
    root = Path(cwd or Path.cwd()).resolve()
    load_dotenv(env_file or root / ".env")

    log_file = os.getenv("DEVUI_LOG_FILE", "").strip()
    return Settings(
        nx_bin=os.getenv("DEVUI_NX_BIN", "nx").strip() or "nx",
        cwd=root,
        log_file=Path(log_file).expanduser() if log_file else DEFAULT_LOG_FILE,
        log_level=_log_level(os.getenv("DEVUI_LOG_LEVEL", "INFO")),
        tick_interval=_env_float("DEVUI_TICK_MS", DEFAULT_TICK_MS, 10) / 1000,
        interrupt_window=_env_float("DEVUI_INTERRUPT_WINDOW_SECONDS", DEFAULT_INTERRUPT_WINDOW_SECONDS, 0.1),
        chunk_size=int(_env_float("DEVUI_CHUNK_SIZE", DEFAULT_CHUNK_SIZE, 1)),
    )
