"""Prerequisite resolution for the selected watch tasks.

Every prerequisite a watch task declares is collected once, so the whole set
can run in batches before any watch task starts. A ``^name`` declaration
reaches one hop into the project's direct dependencies and no further.
"""

from collections import defaultdict
from typing import Iterable

from devui.errors import UnknownTaskError, UnsupportedDependencyKind
from devui.graph.refs import TaskRef
from devui.utils.logger import ExtraAdapter, get_logger

logger = ExtraAdapter(get_logger(__name__), {"module": "RESOLVER"})

UPSTREAM_PREFIX = "^"


def resolve_prerequisites(requested: Iterable[TaskRef], graph) -> set[TaskRef]:
    """Collect the one-shot tasks the requested tasks depend on.

    Args:
        requested: Watch tasks; each must exist in ``graph``.
        graph: A TaskGraphProvider.

    Returns:
        Set of prerequisite TaskRefs that exist in the graph.

    Raises:
        UnknownTaskError: If a requested task is not in the graph
        UnsupportedDependencyKind: If a declaration is not a plain string
    """
    requested = list(requested)
    resolved: set[TaskRef] = set()

    def add_if_exists(ref: TaskRef) -> None:
        if graph.has_task(ref):
            resolved.add(ref)
        else:
            logger.debug("Skipping missing prerequisite", task=str(ref))

    for ref in requested:
        if not graph.has_task(ref):
            raise UnknownTaskError(f"Task '{ref}' does not exist in the project graph")

        for declaration in graph.prerequisites(ref):
            if not isinstance(declaration, str):
                logger.error("Unsupported prerequisite declaration", task=str(ref), declaration=repr(declaration))
                raise UnsupportedDependencyKind(str(ref), declaration)

            upstream = declaration.startswith(UPSTREAM_PREFIX)
            name = declaration[len(UPSTREAM_PREFIX):] if upstream else declaration

            add_if_exists(TaskRef(ref.project, name))

            if upstream:
                for project in graph.project_dependencies(ref.project):
                    if graph.has_project(project):
                        add_if_exists(TaskRef(project, name))

    logger.info("Resolved prerequisites", requested_count=len(requested), resolved=sorted(str(r) for r in resolved))
    return resolved


def group_by_task_name(refs: Iterable[TaskRef]) -> dict[str, list[str]]:
    """Group prerequisites so each task name runs once across its projects."""
    groups: dict[str, list[str]] = defaultdict(list)
    for ref in sorted(refs):
        groups[ref.task].append(ref.project)
    return {name: groups[name] for name in sorted(groups)}
