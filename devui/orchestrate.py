"""Run a devui session end to end.

Steps:
  1. select the watch tasks from the options
  2. resolve their prerequisites from the project graph
  3. run the prerequisite batches to completion, aborting on any failure
  4. start the dashboard, then launch every watch task once it is mounted
  5. wait until every task has exited or the user forces an exit
"""

import asyncio
import signal
import subprocess
from functools import partial
from typing import Callable, Iterable, Optional

from devui.config.options import select_tasks
from devui.config.settings import Settings
from devui.dashboard.app import Dashboard
from devui.errors import NoTasksSelectedError
from devui.graph.resolver import resolve_prerequisites
from devui.state.store import TaskStateStore
from devui.status.matcher import StatusValue
from devui.supervisor.batch import run_prerequisite_batches
from devui.supervisor.events import ProcessData, ProcessEvent, ProcessExited, ProcessSpawnFailed
from devui.supervisor.launcher import AsyncioProcessLauncher, NxCommandBuilder
from devui.supervisor.supervisor import ProcessSupervisor
from devui.utils.logger import ExtraAdapter, get_logger, log_context

logger = ExtraAdapter(get_logger(__name__), {"module": "ORCHESTRATOR"})


class EventRouter:
    """Apply supervisor events to the state store and the dashboard.

    Any exit, including a clean one, marks the task as failed: a watch task
    is expected to run until it is interrupted.
    """

    def __init__(self, store: TaskStateStore, dashboard: Dashboard):
        self.store = store
        self.dashboard = dashboard

    def handle_event(self, index: int, event: ProcessEvent) -> None:
        if isinstance(event, ProcessData):
            if self.store.append_output(index, event.text):
                self.dashboard.append_output(index, event.text)
        elif isinstance(event, (ProcessExited, ProcessSpawnFailed)):
            self.dashboard.task_exited(index)
            self.store.mark_exited(index, StatusValue.ERROR)


class Orchestrator:
    """Runs one devui session.

    ``auto_pilot`` is handed to Textual's ``run_async`` and drives the
    dashboard once it is ready, the same way ``run_test`` pilots do.
    """

    def __init__(
        self,
        graph,
        options: dict,
        settings: Optional[Settings] = None,
        launcher=None,
        command_builder=None,
        exclude_projects: Iterable[str] = (),
        batch_runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        headless: bool = False,
        auto_pilot=None,
    ):
        self.graph = graph
        self.options = options
        self.settings = settings or Settings()
        self.launcher = launcher or AsyncioProcessLauncher()
        self.command_builder = command_builder or NxCommandBuilder(self.settings.nx_bin)
        self.exclude_projects = list(exclude_projects)
        self.batch_runner = batch_runner
        self.headless = headless
        self.auto_pilot = auto_pilot
        self.store: Optional[TaskStateStore] = None
        self.supervisor: Optional[ProcessSupervisor] = None
        self.dashboard: Optional[Dashboard] = None
        self._router: Optional[EventRouter] = None

    def build_store(self) -> TaskStateStore:
        states = select_tasks(self.graph, self.options, exclude_projects=self.exclude_projects)
        if not states:
            raise NoTasksSelectedError("No tasks in the workspace match the configured targets")
        return TaskStateStore(states)

    def run(self) -> int:
        """Run the whole session and return the process exit code."""
        self.store = self.build_store()

        with log_context(logger, "Prerequisites"):
            prerequisites = resolve_prerequisites([state.ref for state in self.store], self.graph)
            run_prerequisite_batches(prerequisites, self.command_builder, self.settings.cwd, run=self.batch_runner)

        return asyncio.run(self.run_session(self.store))

    async def run_session(self, store: TaskStateStore) -> int:
        loop = asyncio.get_running_loop()
        session_over = loop.create_future()

        def finish_session() -> None:
            if not session_over.done():
                session_over.set_result(True)

        store.set_on_all_exited(finish_session)
        self.store = store
        self.supervisor = ProcessSupervisor(
            self.launcher,
            self.command_builder,
            self.settings.cwd,
            chunk_size=self.settings.chunk_size,
        )
        self.dashboard = Dashboard(
            store,
            on_ready=self._launch_all,
            on_interrupt=partial(self.supervisor.terminate_all, signal.SIGINT),
            tick_interval=self.settings.tick_interval,
            interrupt_window=self.settings.interrupt_window,
        )
        self._router = EventRouter(store, self.dashboard)

        app_task = asyncio.create_task(
            self.dashboard.run_async(headless=self.headless, auto_pilot=self.auto_pilot)
        )
        await asyncio.wait({session_over, app_task}, return_when=asyncio.FIRST_COMPLETED)

        if session_over.done():
            logger.info("All tasks exited, closing dashboard")
            if not app_task.done():
                self.dashboard.exit(0)
        else:
            logger.warning("Dashboard closed with tasks still running")
            session_over.cancel()

        try:
            await app_task
        finally:
            self.supervisor.cancel()

        code = self.dashboard.return_code or 0
        if code:
            logger.error("Dashboard exited with an error", return_code=code)
            self.supervisor.terminate_all(signal.SIGINT)
        return code

    def _launch_all(self) -> None:
        for index, state in enumerate(self.store):
            self.supervisor.subscribe(state.ref, partial(self._router.handle_event, index))
            managed = self.supervisor.launch(state.ref)
            if not state.exited:
                state.process = managed
        logger.info("Launched watch tasks", task_count=len(self.store))
