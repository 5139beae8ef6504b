"""Run results and the shared aggregator the line pumps write into.

cmdline-runner runtime module v0.1.0

The aggregator is the only state shared by the tasks of a single run.
Writes go through an asyncio.Lock that is held only for the in-memory
append, never across a stream read, so combined_output records lines in
the order they actually arrived across stdout and stderr.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

__all__ = [
    "ExitStatus",
    "ResultAggregator",
    "RunResult",
    "StreamKind",
]


class StreamKind(str, Enum):
    """Which output stream a line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class ExitStatus:
    """Exit status of a child process.

    Attributes:
        code: Exit code, None if the process has not exited or was
            terminated by a signal
        signal: Terminating signal number (POSIX only)
    """

    code: int | None = None
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int | None) -> "ExitStatus":
        """Build from asyncio's returncode (negative means killed by signal)."""
        if returncode is None:
            return cls()
        if returncode < 0:
            return cls(signal=-returncode)
        return cls(code=returncode)

    @property
    def success(self) -> bool:
        return self.code == 0

    def __str__(self) -> str:
        if self.code is not None:
            return f"exit code {self.code}"
        return "no exit status"


@dataclass
class RunResult:
    """Output captured from one run.

    Attributes:
        stdout: Redacted stdout, one newline-terminated entry per line
        stderr: Redacted stderr, one newline-terminated entry per line
        combined_output: Both streams interleaved in arrival order
        status: Final exit status (placeholder until the process exits)
    """

    stdout: str = ""
    stderr: str = ""
    combined_output: str = ""
    status: ExitStatus = field(default_factory=ExitStatus)


class ResultAggregator:
    """Accumulates lines from both pumps into a single RunResult."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._combined: list[str] = []
        self._status = ExitStatus()

    async def append(self, kind: StreamKind, line: str) -> None:
        """Record one already-redacted line from the given stream."""
        async with self._lock:
            if kind is StreamKind.STDOUT:
                self._stdout.append(line)
            else:
                self._stderr.append(line)
            self._combined.append(line)

    def set_status(self, status: ExitStatus) -> None:
        self._status = status

    @property
    def line_count(self) -> int:
        return len(self._combined)

    def transcript(self) -> str:
        """Combined output joined with newlines and trimmed, for error reports."""
        return "\n".join(self._combined).strip()

    def snapshot(self) -> RunResult:
        """Return an independent copy of the accumulated result."""
        return RunResult(
            stdout="".join(f"{line}\n" for line in self._stdout),
            stderr="".join(f"{line}\n" for line in self._stderr),
            combined_output="".join(f"{line}\n" for line in self._combined),
            status=self._status,
        )
