"""Task references of the form ``project:task``."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class TaskRef:
    """Identifies one task on one project.

    The canonical string is ``project:task``. Parsing splits on the first
    colon, so a project name may not contain one but a task name may.
    """

    project: str
    task: str

    def __post_init__(self):
        if not self.project or ":" in self.project:
            raise ValueError(f"Invalid project name: {self.project!r}")
        if not self.task:
            raise ValueError(f"Empty task name for project {self.project!r}")

    def __str__(self) -> str:
        return f"{self.project}:{self.task}"

    @classmethod
    def parse(cls, value: str) -> "TaskRef":
        project, sep, task = value.partition(":")
        if not sep:
            raise ValueError(f"Expected 'project:task', got {value!r}")
        return cls(project, task)
