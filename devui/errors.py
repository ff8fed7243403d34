"""Error types raised by devui before and during a session."""


class DevUIError(Exception):
    """Base class for all fatal devui errors."""


class UnsupportedDependencyKind(DevUIError, ValueError):
    """A prerequisite declaration is not a plain string."""

    def __init__(self, task: str, declaration):
        self.task = task
        self.declaration = declaration
        super().__init__(
            f"Task '{task}' declares an unsupported prerequisite {declaration!r}; "
            "only string dependsOn entries are supported"
        )


class UnknownTaskError(DevUIError, ValueError):
    """A requested task does not exist in the project graph."""


class OptionsError(DevUIError, ValueError):
    """The task selection options are malformed."""


class ProjectGraphError(DevUIError):
    """The project graph could not be produced or parsed."""


class NoTasksSelectedError(DevUIError):
    """The options did not select any task."""


class PrerequisiteBatchFailed(DevUIError, RuntimeError):
    """A batched prerequisite invocation failed to spawn or exited non-zero."""

    def __init__(self, task_name: str, projects: list[str], returncode: int | None = None, error: Exception | None = None):
        self.task_name = task_name
        self.projects = list(projects)
        self.returncode = returncode
        self.error = error
        if error is not None:
            reason = f"failed to start: {error}"
        else:
            reason = f"exited with code {returncode}"
        super().__init__(
            f"Prerequisite '{task_name}' for {', '.join(self.projects)} {reason}"
        )
