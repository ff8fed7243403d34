"""Supervision of the long-running watch task processes.

One asyncio task per watch task spawns the process, closes its stdin, reads
its merged output in chunks and reports events to the subscribers of that
task. Exactly one terminal event (exit or spawn failure) is reported, after
all output. A subscriber that raises is logged and does not stop delivery.
"""

import asyncio
import codecs
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from devui.config.settings import DEFAULT_CHUNK_SIZE
from devui.graph.refs import TaskRef
from devui.supervisor.events import ProcessData, ProcessEvent, ProcessExited, ProcessSpawnFailed
from devui.utils.logger import ExtraAdapter, get_logger

logger = ExtraAdapter(get_logger(__name__), {"module": "SUPERVISOR"})

EventHandler = Callable[[ProcessEvent], None]


@dataclass
class ManagedProcess:
    ref: TaskRef
    argv: List[str]
    process: Optional[asyncio.subprocess.Process] = None
    pump: Optional[asyncio.Task] = None
    finished: bool = False
    handlers: List[EventHandler] = field(default_factory=list)

    @property
    def is_live(self) -> bool:
        return self.process is not None and not self.finished and self.process.returncode is None


class ProcessSupervisor:
    def __init__(self, launcher, command_builder, cwd: str | Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.launcher = launcher
        self.command_builder = command_builder
        self.cwd = str(cwd)
        self.chunk_size = max(1, int(chunk_size))
        self._handlers: Dict[TaskRef, List[EventHandler]] = {}
        self._managed: Dict[TaskRef, ManagedProcess] = {}

    def subscribe(self, ref: TaskRef, handler: EventHandler) -> None:
        self._handlers.setdefault(ref, []).append(handler)
        if ref in self._managed:
            self._managed[ref].handlers.append(handler)

    def get(self, ref: TaskRef) -> Optional[ManagedProcess]:
        return self._managed.get(ref)

    def launch(self, ref: TaskRef) -> ManagedProcess:
        """Start supervising ``ref``. Must be called from the running event loop."""
        if ref in self._managed:
            raise ValueError(f"Task '{ref}' is already launched")
        managed = ManagedProcess(
            ref=ref,
            argv=self.command_builder.watch_command(ref),
            handlers=list(self._handlers.get(ref, [])),
        )
        self._managed[ref] = managed
        managed.pump = asyncio.get_running_loop().create_task(self._pump(managed), name=f"devui:{ref}")
        managed.pump.add_done_callback(lambda task: self._on_pump_done(managed, task))
        return managed

    def terminate(self, ref: TaskRef, sig: int = signal.SIGINT) -> bool:
        """Forward ``sig`` to a live process. No-op once it has exited."""
        managed = self._managed.get(ref)
        if managed is None or not managed.is_live:
            return False
        try:
            managed.process.send_signal(sig)
        except ProcessLookupError:
            logger.debug("Process already gone", task=str(ref))
            return False
        logger.info("Sent signal", task=str(ref), signal=signal.Signals(sig).name, pid=managed.process.pid)
        return True

    def terminate_all(self, sig: int = signal.SIGINT) -> int:
        return sum(1 for ref in list(self._managed) if self.terminate(ref, sig))

    def cancel(self) -> None:
        """Stop reading from every process still being pumped."""
        for managed in self._managed.values():
            if managed.pump is not None and not managed.pump.done():
                managed.pump.cancel()

    async def wait(self) -> None:
        pumps = [m.pump for m in self._managed.values() if m.pump is not None]
        if pumps:
            await asyncio.gather(*pumps, return_exceptions=True)

    def _dispatch(self, managed: ManagedProcess, event: ProcessEvent) -> None:
        if managed.finished:
            return
        if isinstance(event, (ProcessExited, ProcessSpawnFailed)):
            managed.finished = True
        for handler in list(managed.handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    task=str(managed.ref),
                    event=type(event).__name__,
                    error=f"{type(e).__name__}: {e}",
                    exc_info=e,
                )

    async def _pump(self, managed: ManagedProcess) -> None:
        logger.info("Spawning task", task=str(managed.ref), command=managed.argv, cwd=self.cwd)
        try:
            process = await self.launcher.spawn(managed.argv, self.cwd)
        except OSError as e:
            logger.error("Task failed to spawn", task=str(managed.ref), error=str(e))
            self._dispatch(managed, ProcessSpawnFailed(e))
            return

        managed.process = process
        if process.stdin is not None:
            process.stdin.close()
        logger.info("Task spawned", task=str(managed.ref), pid=process.pid)

        streams = [s for s in (process.stdout, getattr(process, "stderr", None)) if s is not None]
        await asyncio.gather(*(self._read_stream(managed, stream) for stream in streams))
        returncode = await process.wait()

        logger.info("Task process exited", task=str(managed.ref), returncode=returncode)
        self._dispatch(managed, ProcessExited(returncode))

    async def _read_stream(self, managed: ManagedProcess, stream: asyncio.StreamReader) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(self.chunk_size)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                self._dispatch(managed, ProcessData(text))
        tail = decoder.decode(b"", final=True)
        if tail:
            self._dispatch(managed, ProcessData(tail))

    def _on_pump_done(self, managed: ManagedProcess, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Supervisor pump crashed",
                task=str(managed.ref),
                error=f"{type(error).__name__}: {error}",
                exc_info=error,
            )
