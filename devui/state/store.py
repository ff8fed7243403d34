"""Per-task session state shared by the supervisor wiring and the dashboard.

All mutation happens on the event loop, one handler at a time.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional

from devui.graph.refs import TaskRef
from devui.status.ansi import AnsiStripper
from devui.status.matcher import StatusMatcher, StatusValue, compute_status
from devui.utils.logger import ExtraAdapter, get_logger

logger = ExtraAdapter(get_logger(__name__), {"module": "STATE"})


@dataclass
class TaskState:
    ref: TaskRef
    display_name: str
    matchers: List[StatusMatcher] = field(default_factory=list)
    status: StatusValue = StatusValue.LOADING
    raw_log: str = ""
    plain_log: str = ""
    process: Optional[Any] = None
    exited: bool = False
    _stripper: AnsiStripper = field(default_factory=AnsiStripper, repr=False)

    @classmethod
    def for_ref(cls, ref: TaskRef, matchers: Optional[List[StatusMatcher]] = None) -> "TaskState":
        return cls(ref=ref, display_name=str(ref), matchers=list(matchers or []))

    def append(self, text: str) -> None:
        """Append a chunk of output and recompute the status."""
        self.raw_log += text
        self.plain_log += self._stripper.feed(text)
        self._recompute()

    def finish(self) -> None:
        """Flush formatting held back at the end of the stream."""
        tail = self._stripper.flush()
        if tail:
            self.plain_log += tail
            self._recompute()

    def _recompute(self) -> None:
        status = compute_status(self.plain_log, self.matchers)
        if status is not None:
            self.status = status


class TaskStateStore:
    """Ordered arena of TaskState records addressed by index or TaskRef."""

    def __init__(self, states: List[TaskState], on_all_exited: Optional[Callable[[], None]] = None):
        self._states = list(states)
        self._index = {state.ref: i for i, state in enumerate(self._states)}
        if len(self._index) != len(self._states):
            raise ValueError("Duplicate task in state store")
        self._on_all_exited = on_all_exited
        self._all_exited_fired = False

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[TaskState]:
        return iter(self._states)

    def __getitem__(self, index: int) -> TaskState:
        return self._states[index]

    def index_of(self, ref: TaskRef) -> int:
        return self._index[ref]

    def set_on_all_exited(self, callback: Optional[Callable[[], None]]) -> None:
        self._on_all_exited = callback

    def all_exited(self) -> bool:
        return all(state.exited for state in self._states)

    def append_output(self, index: int, text: str) -> bool:
        """Append output for a live task. Returns False if it already exited."""
        state = self._states[index]
        if state.exited:
            logger.warning("Dropping output for exited task", task=state.display_name)
            return False
        previous = state.status
        state.append(text)
        if state.status != previous:
            logger.info(
                "Task status changed",
                task=state.display_name,
                from_status=previous.value,
                to_status=state.status.value,
            )
        return True

    def mark_exited(self, index: int, status: StatusValue = StatusValue.ERROR) -> bool:
        """Mark a task exited exactly once. Returns False on a repeat call."""
        state = self._states[index]
        if state.exited:
            logger.warning("Task already exited", task=state.display_name)
            return False
        state.finish()
        state.status = status
        state.exited = True
        state.process = None
        remaining = sum(1 for s in self._states if not s.exited)
        logger.info("Task exited", task=state.display_name, status=status.value, remaining=remaining)

        if remaining == 0 and not self._all_exited_fired:
            self._all_exited_fired = True
            if self._on_all_exited is not None:
                self._on_all_exited()
        return True
