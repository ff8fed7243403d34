"""Process launching and Nx command construction."""

import asyncio
from typing import Iterable, Protocol, Sequence

from devui.graph.refs import TaskRef


class ProcessLauncher(Protocol):
    async def spawn(self, argv: Sequence[str], cwd: str) -> asyncio.subprocess.Process: ...


class AsyncioProcessLauncher:
    """Spawn a child with stdout and stderr merged into one pipe.

    stdin is a pipe so the supervisor can close it right after spawning.
    """

    async def spawn(self, argv: Sequence[str], cwd: str) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )


class NxCommandBuilder:
    """Argument vectors for the Nx invocations devui makes."""

    def __init__(self, executable: str = "nx"):
        self.executable = executable

    def watch_command(self, ref: TaskRef) -> list[str]:
        return [
            self.executable,
            "run",
            str(ref),
            "--output-style=stream-without-prefixes",
            "--excludeTaskDependencies",
            "--skipNxCache",
        ]

    def batch_command(self, task_name: str, projects: Iterable[str]) -> list[str]:
        return [
            self.executable,
            "run-many",
            "-t",
            task_name,
            "-p",
            ",".join(projects),
            "--output-style=stream",
        ]

    def graph_command(self, output_path: str) -> list[str]:
        return [self.executable, "graph", f"--file={output_path}"]
