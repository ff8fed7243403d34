"""Events delivered by the process supervisor, per task, in arrival order."""

import signal
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ProcessData:
    text: str


@dataclass(frozen=True)
class ProcessExited:
    returncode: int

    @property
    def signal(self) -> Optional[signal.Signals]:
        if self.returncode >= 0:
            return None
        try:
            return signal.Signals(-self.returncode)
        except ValueError:
            return None


@dataclass(frozen=True)
class ProcessSpawnFailed:
    error: BaseException


ProcessEvent = Union[ProcessData, ProcessExited, ProcessSpawnFailed]
TERMINAL_EVENTS = (ProcessExited, ProcessSpawnFailed)
