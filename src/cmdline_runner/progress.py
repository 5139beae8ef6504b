"""Progress sink interface.

The runner reports live status to a progress display it does not own.
Anything implementing ProgressSink can be attached with
``CmdLineRunner.with_progress()``.

Properties published by the runner:
- PROP_CMD: the rendered command line
- PROP_OUTPUT: the most recent output line
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import Any, Protocol, TextIO, runtime_checkable

__all__ = [
    "PROP_CMD",
    "PROP_OUTPUT",
    "ProgressSink",
    "ProgressStatus",
    "StreamProgressSink",
    "safe_call",
]

logger = logging.getLogger(__name__)

PROP_CMD = "cmd"
PROP_OUTPUT = "output"


class ProgressStatus(str, Enum):
    """Status shown by a progress sink."""

    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@runtime_checkable
class ProgressSink(Protocol):
    """Live status display collaborator."""

    def set_property(self, key: str, value: str) -> None: ...

    def set_status(self, status: ProgressStatus) -> None: ...

    def update(self) -> None:
        """Request a redraw after properties changed."""
        ...

    def println(self, text: str) -> None:
        """Print text above/outside the live display."""
        ...


def safe_call(sink: ProgressSink | None, method: str, *args: Any) -> None:
    """Call a sink method, logging instead of raising on failure.

    Progress reporting never fails a run.
    """
    if sink is None:
        return
    try:
        getattr(sink, method)(*args)
    except Exception as e:
        logger.debug(f"Progress sink {method} failed: {e}")


class StreamProgressSink:
    """Minimal sink that writes to a text stream (stderr by default).

    Each update() prints ``[status] cmd: output`` on its own line; println()
    writes the text as-is.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stderr
        self.properties: dict[str, str] = {}
        self.status: ProgressStatus | None = None

    def set_property(self, key: str, value: str) -> None:
        self.properties[key] = value

    def set_status(self, status: ProgressStatus) -> None:
        self.status = status
        self._write(f"[{status.value}] {self.properties.get(PROP_CMD, '')}")

    def update(self) -> None:
        status = self.status.value if self.status else "-"
        cmd = self.properties.get(PROP_CMD, "")
        self._write(f"[{status}] {cmd}: {self.properties.get(PROP_OUTPUT, '')}")

    def println(self, text: str) -> None:
        self._write(text)

    def _write(self, text: str) -> None:
        self._stream.write(text + "\n")
        self._stream.flush()
