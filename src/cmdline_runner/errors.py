"""Exception types raised by command execution.

cmdline-runner v0.1.0
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .runtime.result import RunResult

__all__ = [
    "CmdError",
    "SpawnError",
    "InternalError",
    "ScriptFailed",
    "CommandCancelled",
]


class CmdError(Exception):
    """Base exception for command execution."""
    pass


class SpawnError(CmdError):
    """The program could not be started (not found, permission denied, ...).

    Always raised from the underlying OSError, available as ``__cause__``.

    Attributes:
        program: Program that failed to start
        arguments: Arguments it was given
    """

    def __init__(self, program: str, args: Sequence[str], reason: str) -> None:
        self.program = program
        self.arguments = list(args)
        self.reason = reason
        super().__init__(f"failed to spawn {program}: {reason}")


class InternalError(CmdError):
    """An invariant of the runner itself was violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"internal error: {message}")


class ScriptFailed(CmdError):
    """The command exited with a non-zero status.

    Attributes:
        program: Program name
        arguments: Argument list
        output: Trimmed combined stdout/stderr transcript
        result: Captured result, including the exit status
    """

    def __init__(
        self,
        program: str,
        args: Sequence[str],
        output: str,
        result: RunResult,
    ) -> None:
        self.program = program
        self.arguments = list(args)
        self.output = output
        self.result = result
        super().__init__(
            f"{program} exited with non-zero status: {result.status}\n{output}"
        )


class CommandCancelled(CmdError):
    """The command was killed because its cancellation token fired.

    Attributes:
        program: Program name
        arguments: Argument list
        result: Output captured before the kill, with the status the killed
            process reported
    """

    def __init__(self, program: str, args: Sequence[str], result: RunResult) -> None:
        self.program = program
        self.arguments = list(args)
        self.result = result
        super().__init__(f"{program} was cancelled")
