"""Task graph provider backed by Nx's project graph JSON.

``nx graph --file=graph.json`` writes ``{"graph": {"nodes": ..., "dependencies": ...}}``.
Each node carries its targets and their ``dependsOn`` declarations. Each
dependency edge names the upstream project in ``target``.
"""

import json
import subprocess
import tempfile
from pathlib import Path
from typing import Iterable, Protocol

from jsonschema import Draft202012Validator, ValidationError

from devui.errors import ProjectGraphError
from devui.graph.refs import TaskRef
from devui.utils.logger import ExtraAdapter, get_logger

logger = ExtraAdapter(get_logger(__name__), {"module": "GRAPH"})

SCHEMA_PATH = Path(__file__).parent.parent / "schemas" / "project_graph.schema.json"

_validator = None


def get_validator() -> Draft202012Validator:
    global _validator
    if _validator is None:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            _validator = Draft202012Validator(json.load(f))
    return _validator


class TaskGraphProvider(Protocol):
    """What the resolver and task selection need from a workspace."""

    def projects(self) -> Iterable[str]: ...

    def has_project(self, project: str) -> bool: ...

    def tasks(self, project: str) -> Iterable[str]: ...

    def has_task(self, ref: TaskRef) -> bool: ...

    def prerequisites(self, ref: TaskRef) -> list: ...

    def project_dependencies(self, project: str) -> list[str]: ...


class ProjectGraph:
    """In-memory project graph.

    Args:
        targets: {project: {task_name: [dependsOn declarations...]}}
        dependencies: {project: [direct dependency project names...]}
    """

    def __init__(self, targets: dict[str, dict[str, list]], dependencies: dict[str, list[str]] | None = None):
        self._targets = {project: dict(tasks) for project, tasks in targets.items()}
        self._dependencies = {project: list(deps) for project, deps in (dependencies or {}).items()}

    @classmethod
    def from_nx_json(cls, data: dict) -> "ProjectGraph":
        """Build a graph from ``nx graph --file`` output (wrapped or bare)."""
        if isinstance(data, dict) and isinstance(data.get("graph"), dict):
            data = data["graph"]
        try:
            get_validator().validate(data)
        except ValidationError as e:
            raise ProjectGraphError(f"Invalid project graph: {e.message}") from e

        targets = {}
        for name, node in data["nodes"].items():
            node_targets = node["data"].get("targets") or {}
            targets[name] = {
                target_name: list((config or {}).get("dependsOn") or [])
                for target_name, config in node_targets.items()
            }

        dependencies = {
            name: [edge["target"] for edge in edges]
            for name, edges in data["dependencies"].items()
        }

        logger.debug("Parsed project graph", project_count=len(targets))
        return cls(targets, dependencies)

    def projects(self) -> list[str]:
        return list(self._targets)

    def has_project(self, project: str) -> bool:
        return project in self._targets

    def tasks(self, project: str) -> list[str]:
        return list(self._targets.get(project, {}))

    def has_task(self, ref: TaskRef) -> bool:
        return ref.task in self._targets.get(ref.project, {})

    def prerequisites(self, ref: TaskRef) -> list:
        return list(self._targets[ref.project][ref.task])

    def project_dependencies(self, project: str) -> list[str]:
        return list(self._dependencies.get(project, []))


def load_project_graph(path: str | Path) -> ProjectGraph:
    """Load a project graph JSON file written by ``nx graph --file``."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ProjectGraphError(f"Cannot read project graph {path}: {e}") from e
    logger.info("Loaded project graph", path=str(path))
    return ProjectGraph.from_nx_json(data)


def generate_project_graph(command_builder, cwd: str | Path) -> ProjectGraph:
    """Ask Nx for the current project graph and load it.

    Args:
        command_builder: Object with ``graph_command(path) -> list[str]``.
        cwd: Workspace root to run Nx in.

    Raises:
        ProjectGraphError: If Nx cannot be started or exits non-zero.
    """
    with tempfile.TemporaryDirectory(prefix="devui-graph-") as tmp:
        out_path = Path(tmp) / "graph.json"
        argv = command_builder.graph_command(str(out_path))
        logger.info("Generating project graph", command=argv, cwd=str(cwd))
        try:
            result = subprocess.run(
                argv,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise ProjectGraphError(f"Cannot run {argv[0]}: {e}") from e
        if result.returncode != 0:
            err = (result.stderr or result.stdout or "").strip()
            raise ProjectGraphError(err or f"{' '.join(argv)} exited with code {result.returncode}")
        return load_project_graph(out_path)
