"""Interactive dashboard: task list on the left, selected task's log on the right.

Rows are redrawn by a timer, independently of data arrival. Output for the
selected task is appended to the log pane as it arrives. Output for other
tasks only shows up through their row glyph on the next tick.
"""

import time
from typing import Callable, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import ListView

from devui.config.settings import DEFAULT_INTERRUPT_WINDOW_SECONDS, DEFAULT_TICK_MS
from devui.dashboard.glyphs import SPINNER_FRAMES
from devui.dashboard.widgets import LogPane, LogTail, TaskRow
from devui.state.store import TaskStateStore
from devui.utils.logger import ExtraAdapter, get_logger

logger = ExtraAdapter(get_logger(__name__), {"module": "DASHBOARD"})


class Dashboard(App[int]):
    CSS = """
    #tasks {
        width: 30%;
        height: 100%;
        border: round #f0f0f0;
    }
    #tasks:focus {
        border: round green;
    }
    #tasks > TaskRow.-highlight {
        background: white;
        color: black;
        text-style: bold;
    }
    #log-column {
        width: 70%;
        height: 100%;
        border: round #f0f0f0;
    }
    #log-column:focus-within {
        border: round green;
    }
    #log {
        height: 1fr;
        scrollbar-color: yellow;
    }
    #log-tail {
        height: auto;
    }
    """

    BINDINGS = [
        Binding("tab", "cycle_focus", "Next pane", show=False, priority=True),
        Binding("shift+tab", "cycle_focus(True)", "Previous pane", show=False, priority=True),
        Binding("ctrl+c", "interrupt", "Interrupt", show=False, priority=True),
    ]

    def __init__(
        self,
        store: TaskStateStore,
        on_ready: Optional[Callable[[], None]] = None,
        on_interrupt: Optional[Callable[[], None]] = None,
        tick_interval: float = DEFAULT_TICK_MS / 1000,
        interrupt_window: float = DEFAULT_INTERRUPT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.store = store
        self.on_ready = on_ready
        self.on_interrupt = on_interrupt
        self.tick_interval = tick_interval
        self.interrupt_window = interrupt_window
        self.clock = clock
        self.selected_index = 0
        self.frame = 0
        self.forced_exit = False
        self._last_interrupt: Optional[float] = None
        self._rows = [TaskRow(state) for state in store]
        self._pane: Optional[LogPane] = None

    def compose(self) -> ComposeResult:
        with Horizontal():
            yield ListView(*self._rows, initial_index=0, id="tasks")
            with Vertical(id="log-column"):
                tail = LogTail(id="log-tail")
                yield LogPane(tail=tail, id="log")
                yield tail

    def on_mount(self) -> None:
        self._pane = self.query_one("#log", LogPane)
        self.query_one("#tasks", ListView).border_title = "Tasks"
        self._load_selected()
        self.query_one("#tasks", ListView).focus()
        self.set_interval(self.tick_interval, self._tick)
        logger.info("Dashboard mounted", task_count=len(self.store))
        if self.on_ready is not None:
            self.on_ready()

    @property
    def rows(self) -> list[TaskRow]:
        return list(self._rows)

    @property
    def pane(self) -> Optional[LogPane]:
        return self._pane

    def _tick(self) -> None:
        self.frame = (self.frame + 1) % len(SPINNER_FRAMES)
        self.refresh_rows()

    def refresh_rows(self) -> None:
        for row in self._rows:
            row.show(self.frame)

    def select(self, index: int) -> None:
        if not 0 <= index < len(self.store) or index == self.selected_index:
            return
        self.selected_index = index
        self._load_selected()

    def _load_selected(self) -> None:
        if self._pane is None or not len(self.store):
            return
        state = self.store[self.selected_index]
        self.query_one("#log-column", Vertical).border_title = state.display_name
        self._pane.load(state.raw_log, complete=state.exited)

    def append_output(self, index: int, text: str) -> None:
        if index == self.selected_index and self._pane is not None:
            self._pane.append(text)

    def task_exited(self, index: int) -> None:
        if index == self.selected_index and self._pane is not None:
            self._pane.flush()

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        if event.list_view.index is not None:
            self.select(event.list_view.index)

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if event.list_view.index is not None:
            self.select(event.list_view.index)

    def action_cycle_focus(self, backwards: bool = False) -> None:
        if backwards:
            self.screen.focus_previous()
        else:
            self.screen.focus_next()

    def action_interrupt(self) -> None:
        """Interrupt every task; a second press within the window exits at once."""
        now = self.clock()
        if self.on_interrupt is not None:
            self.on_interrupt()
        if self._last_interrupt is not None and now - self._last_interrupt <= self.interrupt_window:
            logger.warning("Forced exit on repeated interrupt")
            self.forced_exit = True
            self.exit(0)
            return
        logger.info("Interrupt requested")
        self._last_interrupt = now
