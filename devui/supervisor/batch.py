"""Batched prerequisite runs.

Prerequisites are grouped by task name and each group runs as one
``run-many`` invocation, in sequence. Output goes straight to the terminal.
The first failure aborts the whole run.
"""

import subprocess
from pathlib import Path
from typing import Callable, Iterable

from devui.errors import PrerequisiteBatchFailed
from devui.graph.refs import TaskRef
from devui.graph.resolver import group_by_task_name
from devui.utils.logger import ExtraAdapter, get_logger

logger = ExtraAdapter(get_logger(__name__), {"module": "BATCH"})


def run_prerequisite_batches(
    prerequisites: Iterable[TaskRef],
    command_builder,
    cwd: str | Path,
    run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> list[str]:
    """Run every prerequisite group to completion.

    Args:
        prerequisites: Resolved prerequisite tasks.
        command_builder: Object with ``batch_command(task_name, projects)``.
        cwd: Workspace root.
        run: ``subprocess.run`` compatible callable.

    Returns:
        The task names that ran, in order.

    Raises:
        PrerequisiteBatchFailed: On a spawn failure or non-zero exit
    """
    groups = group_by_task_name(prerequisites)
    for task_name, projects in groups.items():
        argv = command_builder.batch_command(task_name, projects)
        logger.info("Running prerequisite batch", task_name=task_name, projects=projects, command=argv)
        try:
            result = run(argv, cwd=str(cwd), stdin=subprocess.DEVNULL, check=False)
        except OSError as e:
            logger.error("Prerequisite batch failed to start", task_name=task_name, error=str(e))
            raise PrerequisiteBatchFailed(task_name, projects, error=e) from e

        if result.returncode != 0:
            logger.error("Prerequisite batch failed", task_name=task_name, returncode=result.returncode)
            raise PrerequisiteBatchFailed(task_name, projects, returncode=result.returncode)

        logger.info("Prerequisite batch finished", task_name=task_name)
    return list(groups)
