"""Tests for ProcessSupervisor against real child processes."""

import asyncio
import signal
import sys

from devui.graph.refs import TaskRef
from devui.supervisor.events import ProcessData, ProcessExited, ProcessSpawnFailed
from devui.supervisor.launcher import AsyncioProcessLauncher
from devui.supervisor.supervisor import ProcessSupervisor

APP = TaskRef("app", "serve")
LIB = TaskRef("lib", "watch")


class PythonCommands:
    """Runs a Python snippet per task instead of ``nx run``."""

    def __init__(self, scripts):
        self.scripts = scripts

    def watch_command(self, ref):
        script = self.scripts[str(ref)]
        if isinstance(script, list):
            return script
        return [sys.executable, "-u", "-c", script]


def _supervisor(scripts, tmp_path, chunk_size=65536):
    return ProcessSupervisor(AsyncioProcessLauncher(), PythonCommands(scripts), tmp_path, chunk_size=chunk_size)


def _text(events):
    return "".join(e.text for e in events if isinstance(e, ProcessData))


def test_output_then_single_exit_event(tmp_path):
    scripts = {
        "app:serve": "import sys; print('hello'); print('oops', file=sys.stderr); sys.exit(3)",
    }

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path)
        events = []
        supervisor.subscribe(APP, events.append)
        supervisor.launch(APP)
        await supervisor.wait()
        return events

    events = asyncio.run(scenario())

    assert isinstance(events[-1], ProcessExited)
    assert events[-1].returncode == 3
    assert events[-1].signal is None
    assert all(isinstance(e, ProcessData) for e in events[:-1])
    assert "hello" in _text(events)
    assert "oops" in _text(events)
    print("✓ merged output and exit passed")


def test_events_stay_per_task(tmp_path):
    scripts = {
        "app:serve": "print('from app')",
        "lib:watch": "print('from lib')",
    }

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path)
        seen = {APP: [], LIB: []}
        for ref, events in seen.items():
            supervisor.subscribe(ref, events.append)
            supervisor.launch(ref)
        await supervisor.wait()
        return seen

    seen = asyncio.run(scenario())

    assert _text(seen[APP]).strip() == "from app"
    assert _text(seen[LIB]).strip() == "from lib"
    assert isinstance(seen[APP][-1], ProcessExited)
    assert isinstance(seen[LIB][-1], ProcessExited)


def test_stdin_is_closed(tmp_path):
    scripts = {"app:serve": "import sys; print(repr(sys.stdin.read()))"}

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path)
        events = []
        supervisor.subscribe(APP, events.append)
        supervisor.launch(APP)
        await asyncio.wait_for(supervisor.wait(), timeout=30)
        return events

    events = asyncio.run(scenario())

    assert _text(events).strip() == "''"
    assert events[-1] == ProcessExited(0)


def test_multibyte_characters_survive_tiny_chunks(tmp_path):
    scripts = {"app:serve": "import sys; sys.stdout.buffer.write('héllo ✓ done\\n'.encode('utf-8'))"}

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path, chunk_size=1)
        events = []
        supervisor.subscribe(APP, events.append)
        supervisor.launch(APP)
        await supervisor.wait()
        return events

    assert _text(asyncio.run(scenario())) == "héllo ✓ done\n"


def test_spawn_failure_is_the_only_event(tmp_path):
    scripts = {"app:serve": [str(tmp_path / "no-such-nx"), "run", "app:serve"]}

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path)
        events = []
        supervisor.subscribe(APP, events.append)
        managed = supervisor.launch(APP)
        await supervisor.wait()
        return events, managed

    events, managed = asyncio.run(scenario())

    assert len(events) == 1
    assert isinstance(events[0], ProcessSpawnFailed)
    assert isinstance(events[0].error, OSError)
    assert managed.finished
    assert not managed.is_live


def test_terminate_forwards_signal_until_exit(tmp_path):
    scripts = {"app:serve": "import time; print('ready', flush=True); time.sleep(60)"}

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path)
        ready = asyncio.Event()
        events = []

        def handler(event):
            events.append(event)
            if isinstance(event, ProcessData) and "ready" in event.text:
                ready.set()

        supervisor.subscribe(APP, handler)
        supervisor.launch(APP)
        await asyncio.wait_for(ready.wait(), timeout=30)

        sent = supervisor.terminate(APP, signal.SIGTERM)
        await asyncio.wait_for(supervisor.wait(), timeout=30)
        return sent, supervisor.terminate(APP), supervisor.terminate_all(), events

    sent, sent_after_exit, sent_all, events = asyncio.run(scenario())

    assert sent is True
    assert sent_after_exit is False
    assert sent_all == 0
    assert events[-1].signal == signal.SIGTERM
    assert sum(isinstance(e, ProcessExited) for e in events) == 1


def test_launch_twice_rejected(tmp_path):
    scripts = {"app:serve": "pass"}

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path)
        supervisor.launch(APP)
        try:
            supervisor.launch(APP)
        except ValueError:
            rejected = True
        else:
            rejected = False
        await supervisor.wait()
        return rejected

    assert asyncio.run(scenario())


def test_unknown_task_cannot_be_terminated(tmp_path):
    supervisor = _supervisor({}, tmp_path)

    assert supervisor.terminate(APP) is False
    assert supervisor.get(APP) is None


def test_failing_handler_does_not_stop_delivery(tmp_path):
    scripts = {"app:serve": "print('a'); print('b')"}

    async def scenario():
        supervisor = _supervisor(scripts, tmp_path, chunk_size=1)
        events = []

        def broken(event):
            if isinstance(event, ProcessData):
                raise RuntimeError("handler bug")

        supervisor.subscribe(APP, broken)
        supervisor.subscribe(APP, events.append)
        managed = supervisor.launch(APP)
        await asyncio.wait_for(supervisor.wait(), timeout=30)
        return events, managed

    events, managed = asyncio.run(scenario())

    assert _text(events) == "a\nb\n"
    assert events[-1] == ProcessExited(0)
    assert managed.finished
    assert managed.process.returncode == 0
