"""Row glyphs for task status."""

from rich.text import Text

from devui.status.matcher import StatusValue

SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")

STATUS_GLYPHS = {
    StatusValue.SUCCESS: ("✓", "green"),
    StatusValue.ERROR: ("✗", "red"),
    StatusValue.WARNING: ("!", "yellow"),
}


def status_glyph(status: StatusValue, frame: int) -> Text:
    if status == StatusValue.LOADING:
        return Text(SPINNER_FRAMES[frame % len(SPINNER_FRAMES)], style="cyan")
    glyph, style = STATUS_GLYPHS[status]
    return Text(glyph, style=style)


def render_row(status: StatusValue, display_name: str, frame: int) -> Text:
    return Text.assemble(status_glyph(status, frame), " ", display_name)
