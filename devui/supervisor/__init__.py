from .events import ProcessData, ProcessExited, ProcessSpawnFailed
from .launcher import AsyncioProcessLauncher, NxCommandBuilder
from .supervisor import ManagedProcess, ProcessSupervisor
from .batch import run_prerequisite_batches

__all__ = [
    "AsyncioProcessLauncher",
    "ManagedProcess",
    "NxCommandBuilder",
    "ProcessData",
    "ProcessExited",
    "ProcessSpawnFailed",
    "ProcessSupervisor",
    "run_prerequisite_batches",
]
