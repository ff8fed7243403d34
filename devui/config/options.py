"""Task selection options.

Options have the shape::

    {"targets": {
        "serve": true,
        "lib:watch": {"statusMatchers": {"compiled successfully": "success"}}
    }}

A key is either a bare task name or ``project:task``, and only exact matches
are supported. ``false`` leaves a pattern out. An object enables the pattern
and adds its status matchers, in file order.
"""

import json
from pathlib import Path
from typing import Iterable, Optional

from jsonschema import Draft202012Validator, ValidationError

from devui.errors import OptionsError
from devui.graph.refs import TaskRef
from devui.state.store import TaskState
from devui.status.matcher import compile_matchers
from devui.utils.logger import ExtraAdapter, get_logger

logger = ExtraAdapter(get_logger(__name__), {"module": "OPTIONS"})

SCHEMA_PATH = Path(__file__).parent.parent / "schemas" / "options.schema.json"

_validator = None


def get_validator() -> Draft202012Validator:
    global _validator
    if _validator is None:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            _validator = Draft202012Validator(json.load(f))
    return _validator


def validate_options(options) -> dict:
    """Validate options against the schema and every matcher regex."""
    try:
        get_validator().validate(options)
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise OptionsError(f"Invalid options at {where}: {e.message}") from e

    for value in options["targets"].values():
        if isinstance(value, dict):
            compile_matchers(value.get("statusMatchers") or {})
    return options


def load_options(path: Optional[str | Path] = None, extra_targets: Iterable[str] = ()) -> dict:
    """Read options from ``path`` and enable each of ``extra_targets``."""
    options = {"targets": {}}
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                options = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise OptionsError(f"Cannot read options {path}: {e}") from e
        if isinstance(options, dict) and isinstance(options.get("targets"), dict):
            options = {**options, "targets": dict(options["targets"])}

    for pattern in extra_targets:
        if isinstance(options, dict) and isinstance(options.get("targets"), dict):
            options["targets"].setdefault(pattern, True)

    return validate_options(options)


def _pattern_matches(pattern: str, ref: TaskRef) -> bool:
    return pattern == ref.task or pattern == str(ref)


def select_tasks(graph, options: dict, exclude_projects: Iterable[str] = ()) -> list[TaskState]:
    """Build one TaskState per selected task, in graph order."""
    excluded = set(exclude_projects)
    targets = options["targets"]
    states = []

    for project in graph.projects():
        if project in excluded:
            continue
        for task_name in graph.tasks(project):
            ref = TaskRef(project, task_name)
            include = False
            matchers = []
            for pattern, value in targets.items():
                if not _pattern_matches(pattern, ref) or value is False:
                    continue
                include = True
                if isinstance(value, dict):
                    matchers.extend(compile_matchers(value.get("statusMatchers") or {}))
            if include:
                states.append(TaskState.for_ref(ref, matchers))

    logger.info("Selected tasks", tasks=[s.display_name for s in states])
    return states
