"""Status inference from accumulated plain-text task output.

Each matcher maps a regular expression to a status. After every chunk the
whole plain log is scanned again. The matcher whose last match starts latest
decides the status, and on a tie the matcher declared later wins.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Optional

from devui.errors import OptionsError


class StatusValue(str, Enum):
    LOADING = "loading"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class StatusMatcher:
    pattern: re.Pattern
    status: StatusValue


def compile_matchers(mapping: Mapping[str, str]) -> list[StatusMatcher]:
    """Build matchers from a ``{regex: status}`` mapping, keeping its order.

    Raises:
        OptionsError: On an invalid regex or unknown status name
    """
    matchers = []
    for source, status in mapping.items():
        try:
            value = StatusValue(status)
        except ValueError:
            raise OptionsError(f"Unknown status {status!r} for matcher {source!r}") from None
        try:
            pattern = re.compile(source)
        except re.error as e:
            raise OptionsError(f"Invalid status matcher {source!r}: {e}") from e
        matchers.append(StatusMatcher(pattern, value))
    return matchers


def _last_match_start(pattern: re.Pattern, text: str) -> int:
    last = -1
    for match in pattern.finditer(text):
        last = match.start()
    return last


def compute_status(plain_log: str, matchers: Iterable[StatusMatcher]) -> Optional[StatusValue]:
    """Return the status implied by ``plain_log``, or None if nothing matched."""
    status = None
    best = -1
    for matcher in matchers:
        start = _last_match_start(matcher.pattern, plain_log)
        if start >= 0 and start >= best:
            status = matcher.status
            best = start
    return status
