"""Terminal formatting removal for status matching.

``ANSI_PATTERN`` is the pattern used by the ``ansi-regex`` package. Output
arrives in arbitrary chunks, so ``AnsiStripper`` holds back a trailing escape
sequence whenever more data could still extend it. Feeding chunks and then
flushing yields exactly ``strip_ansi`` of the concatenated input.
"""

import re

_PARAM = r"[-a-zA-Z\d/#&.:=?%@~_]"

ANSI_PATTERN = re.compile(
    r"[\x1b\x9b][\[\]()#;?]*(?:"
    r"(?:(?:(?:;" + _PARAM + r"+)*|[a-zA-Z\d]+(?:;" + _PARAM + r"*)*)?\x07)"
    r"|(?:(?:\d{1,4}(?:;\d{0,4})*)?[\dA-PR-TZcf-nq-uy=><~])"
    r")",
    re.ASCII,
)

# A string-terminated sequence still waiting for its BEL.
_OPEN_SEQUENCE = re.compile(
    r"[\x1b\x9b][\[\]()#;?]*(?:(?:;" + _PARAM + r"+)*;?|[a-zA-Z\d]+(?:;" + _PARAM + r"*)*)",
    re.ASCII,
)

_INTRODUCERS = ("\x1b", "\x9b")


def strip_ansi(text: str) -> str:
    """Remove terminal formatting sequences in one pass."""
    return ANSI_PATTERN.sub("", text)


def _may_grow(tail: str) -> bool:
    if _OPEN_SEQUENCE.fullmatch(tail):
        return True
    match = ANSI_PATTERN.match(tail)
    return match is not None and match.end() == len(tail)


class AnsiStripper:
    """Chunk-boundary-safe incremental version of ``strip_ansi``."""

    def __init__(self):
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: str) -> str:
        buf = self._pending + chunk
        split = len(buf)
        start = max(buf.rfind(c) for c in _INTRODUCERS)
        # Sequences never contain a second introducer, so only the last one can be open.
        if start >= 0 and _may_grow(buf[start:]):
            split = start
        self._pending = buf[split:]
        return strip_ansi(buf[:split])

    def flush(self) -> str:
        out = strip_ansi(self._pending)
        self._pending = ""
        return out
