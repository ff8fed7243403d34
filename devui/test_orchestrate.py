"""End-to-end tests for a devui session with stand-in Nx commands."""

import asyncio
import json
import logging
import subprocess
import sys

import pytest

from devui.config.options import validate_options
from devui.config.settings import Settings
from devui.errors import NoTasksSelectedError, PrerequisiteBatchFailed
from devui.graph.project_graph import ProjectGraph
from devui.main import main
from devui.orchestrate import Orchestrator
from devui.status.matcher import StatusValue
from devui.supervisor.launcher import NxCommandBuilder

SCRIPTS = {
    "app:serve": "print('starting dev server')",
    "lib:watch": "print('\\x1b[32mcompiled successfully\\x1b[0m')",
    "docs:serve": "import sys; sys.stdout.write('no trailing newline')",
}


class PythonNx(NxCommandBuilder):
    """Nx command builder whose watch tasks are short Python scripts."""

    def watch_command(self, ref):
        return [sys.executable, "-u", "-c", SCRIPTS[str(ref)]]


class RecordingRun:
    def __init__(self, returncode=0):
        self.calls = []
        self.returncode = returncode

    def __call__(self, argv, **kwargs):
        self.calls.append(argv)
        return subprocess.CompletedProcess(argv, self.returncode)


def _graph():
    return ProjectGraph(
        targets={
            "app": {"build": [], "serve": ["^build"]},
            "lib": {"build": [], "watch": ["build"]},
        },
        dependencies={"app": ["lib"], "lib": []},
    )


OPTIONS = {
    "targets": {
        "serve": True,
        "lib:watch": {"statusMatchers": {"compiled successfully": "success"}},
    }
}


def _orchestrator(tmp_path, run, options=OPTIONS, graph=None):
    return Orchestrator(
        graph or _graph(),
        validate_options(options),
        settings=Settings(cwd=tmp_path, tick_interval=0.05),
        command_builder=PythonNx("nx"),
        batch_runner=run,
        headless=True,
    )


def test_session_runs_until_every_task_exits(tmp_path):
    run = RecordingRun()
    orchestrator = _orchestrator(tmp_path, run)

    assert orchestrator.run() == 0

    assert run.calls == [["nx", "run-many", "-t", "build", "-p", "app,lib", "--output-style=stream"]]

    store = orchestrator.store
    assert [s.display_name for s in store] == ["app:serve", "lib:watch"]
    assert all(s.exited and s.status == StatusValue.ERROR for s in store)
    assert all(s.process is None for s in store)
    assert store[0].raw_log.strip() == "starting dev server"
    assert "compiled successfully" in store[1].plain_log
    assert "\x1b[32m" in store[1].raw_log
    print("✓ session passed")


def test_partial_last_line_kept(tmp_path):
    graph = ProjectGraph(targets={"docs": {"serve": []}})
    orchestrator = _orchestrator(tmp_path, RecordingRun(), options={"targets": {"serve": True}}, graph=graph)

    assert orchestrator.run() == 0
    assert orchestrator.store[0].raw_log == "no trailing newline"


def test_nothing_selected(tmp_path):
    run = RecordingRun()
    orchestrator = _orchestrator(tmp_path, run, options={"targets": {"deploy": True}})

    with pytest.raises(NoTasksSelectedError):
        orchestrator.run()
    assert run.calls == []


def test_failed_prerequisite_stops_before_dashboard(tmp_path):
    orchestrator = _orchestrator(tmp_path, RecordingRun(returncode=2))

    with pytest.raises(PrerequisiteBatchFailed):
        orchestrator.run()
    assert orchestrator.dashboard is None
    assert orchestrator.supervisor is None


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_main_reports_errors(tmp_path, capsys, restore_logging):
    graph_path = tmp_path / "graph.json"
    graph_path.write_text(json.dumps({"nodes": {}, "dependencies": {}}), encoding="utf-8")
    log_file = tmp_path / "devui.json"

    code = main(["--cwd", str(tmp_path), "--graph", str(graph_path), "-t", "serve", "--log-file", str(log_file)])

    assert code == 1
    assert "devui: No tasks" in capsys.readouterr().err
    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert any(r["level"] == "ERROR" and r["message"].startswith("NoTasksSelectedError") for r in records)


def test_main_rejects_bad_options(tmp_path, capsys, restore_logging):
    code = main(["--cwd", str(tmp_path), "--graph", str(tmp_path / "g.json"), "--log-file", str(tmp_path / "l.json")])

    assert code == 1
    assert "Invalid options" in capsys.readouterr().err


def test_main_runs_session(tmp_path, monkeypatch, restore_logging):
    graph_path = tmp_path / "graph.json"
    graph_path.write_text(
        json.dumps({"nodes": {"app": {"data": {"targets": {"serve": {}}}}}, "dependencies": {"app": []}}),
        encoding="utf-8",
    )
    seen = {}

    def fake_run(self):
        seen["builder"] = self.command_builder.executable
        seen["selected"] = [s.display_name for s in self.build_store()]
        return 0

    monkeypatch.setattr(Orchestrator, "run", fake_run)

    code = main(
        [
            "--cwd", str(tmp_path),
            "--graph", str(graph_path),
            "-t", "serve",
            "--nx", "/opt/nx",
            "--log-file", str(tmp_path / "l.json"),
        ]
    )

    assert code == 0
    assert seen == {"builder": "/opt/nx", "selected": ["app:serve"]}


async def _until(condition, timeout=30.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise TimeoutError("condition not reached")
        await asyncio.sleep(0.05)


class LongRunningNx(NxCommandBuilder):
    """Watch tasks that announce themselves and then wait to be interrupted."""

    def watch_command(self, ref):
        return [sys.executable, "-u", "-c", f"import time; print('{ref} up'); time.sleep(30)"]


def test_single_interrupt_reaches_live_tasks(tmp_path):
    orchestrator = None

    async def press_ctrl_c_once_running(pilot):
        store = orchestrator.store
        await _until(lambda: all(" up" in s.raw_log for s in store))
        await pilot.press("ctrl+c")

    orchestrator = Orchestrator(
        _graph(),
        validate_options(OPTIONS),
        settings=Settings(cwd=tmp_path, tick_interval=0.05),
        command_builder=LongRunningNx("nx"),
        batch_runner=RecordingRun(),
        headless=True,
        auto_pilot=press_ctrl_c_once_running,
    )

    assert orchestrator.run() == 0

    assert orchestrator.dashboard.forced_exit is False
    for state in orchestrator.store:
        assert state.exited
        assert state.status == StatusValue.ERROR
        assert "KeyboardInterrupt" in state.raw_log
    print("✓ interrupt passed")


class OneMissingNx(PythonNx):
    """``lib:watch`` points at an executable that does not exist."""

    def __init__(self, missing):
        super().__init__("nx")
        self.missing = missing

    def watch_command(self, ref):
        if str(ref) == "lib:watch":
            return [str(self.missing), "run", str(ref)]
        return [sys.executable, "-u", "-c", "import time; time.sleep(0.5); print('still serving')"]


def test_spawn_failure_fails_only_that_task(tmp_path):
    orchestrator = _orchestrator(tmp_path, RecordingRun())
    orchestrator.command_builder = OneMissingNx(tmp_path / "no-such-nx")

    assert orchestrator.run() == 0

    app_state, lib_state = orchestrator.store
    assert lib_state.exited and lib_state.status == StatusValue.ERROR
    assert lib_state.raw_log == ""
    assert lib_state.process is None
    assert app_state.exited
    assert app_state.raw_log.strip() == "still serving"


class BrokenNx(PythonNx):
    def watch_command(self, ref):
        raise RuntimeError("cannot build command")


def test_dashboard_crash_sets_exit_code(tmp_path):
    orchestrator = _orchestrator(tmp_path, RecordingRun())
    orchestrator.command_builder = BrokenNx("nx")

    assert orchestrator.run() == 1
    assert not any(state.exited for state in orchestrator.store)


def test_main_reports_unwritable_log_file(tmp_path, capsys, restore_logging):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    code = main(["--cwd", str(tmp_path), "-t", "serve", "--log-file", str(blocker / "devui.json")])

    assert code == 1
    assert "devui: cannot open log file" in capsys.readouterr().err


def test_main_reports_interrupt(tmp_path, capsys, monkeypatch, restore_logging):
    graph_path = tmp_path / "graph.json"
    graph_path.write_text(
        json.dumps({"nodes": {"app": {"data": {"targets": {"serve": {}}}}}, "dependencies": {"app": []}}),
        encoding="utf-8",
    )

    def interrupted(self):
        raise KeyboardInterrupt

    monkeypatch.setattr(Orchestrator, "run", interrupted)

    code = main(["--cwd", str(tmp_path), "--graph", str(graph_path), "-t", "serve", "--log-file", str(tmp_path / "l.json")])

    assert code == 1
    assert "devui: interrupted" in capsys.readouterr().err
