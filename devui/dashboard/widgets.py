"""Widgets for the task list and the log pane."""

from typing import Optional

from rich.ansi import AnsiDecoder
from rich.text import Text
from textual.app import ComposeResult
from textual.widgets import Label, ListItem, RichLog, Static

from devui.dashboard.glyphs import render_row
from devui.state.store import TaskState


class TaskRow(ListItem):
    """One list row: status glyph followed by the task's display name."""

    def __init__(self, state: TaskState, **kwargs):
        super().__init__(**kwargs)
        self.state = state
        self.rendered = render_row(state.status, state.display_name, 0)
        self._label = Label(self.rendered)

    def compose(self) -> ComposeResult:
        yield self._label

    def show(self, frame: int) -> None:
        self.rendered = render_row(self.state.status, self.state.display_name, frame)
        self._label.update(self.rendered)


class LogTail(Static):
    """Unterminated last line of the selected task's output, shown live."""

    def __init__(self, **kwargs):
        super().__init__("", markup=False, **kwargs)
        self.line = Text()
        self.display = False

    def show(self, line: Text) -> None:
        self.line = line
        self.update(line)
        self.display = bool(line.plain)


class LogPane(RichLog):
    """Tailing view of one task's raw output.

    Complete lines are rendered through Rich's ANSI decoder. A trailing
    partial line is previewed in ``tail`` and written to the log once its
    newline arrives, or on ``flush`` when the task exits.
    """

    def __init__(self, tail: Optional[LogTail] = None, **kwargs):
        super().__init__(highlight=False, markup=False, wrap=True, auto_scroll=True, **kwargs)
        self.tail = tail
        self.content = ""
        self._partial = ""
        self._decoder = AnsiDecoder()

    def load(self, raw_log: str, complete: bool = False) -> None:
        """Replace the pane with ``raw_log`` and scroll to its end."""
        self.clear()
        self.content = ""
        self._partial = ""
        self._decoder = AnsiDecoder()
        self.append(raw_log)
        if complete:
            self.flush()
        self.scroll_end(animate=False)

    def append(self, text: str) -> None:
        self.content += text
        lines = (self._partial + text).split("\n")
        self._partial = lines.pop()
        for line in lines:
            self._write_line(line)
        self._show_partial()

    def flush(self) -> None:
        if self._partial:
            self._write_line(self._partial)
            self._partial = ""
        self._show_partial()

    def _show_partial(self) -> None:
        if self.tail is None:
            return
        # Decode on a copy so the line is styled the same way once it is complete.
        preview = AnsiDecoder()
        preview.style = self._decoder.style
        self.tail.show(preview.decode_line(self._partial.rstrip("\r")) if self._partial else Text())

    def _write_line(self, line: str) -> None:
        if line.endswith("\r"):
            line = line[:-1]
        rendered: Text = self._decoder.decode_line(line)
        self.write(rendered, scroll_end=True)
