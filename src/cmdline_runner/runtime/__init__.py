"""Runtime module for subprocess supervision and output capture.

This module provides concurrent stdout/stderr capture, stdin feeding and
cancel-safe termination for a single command run.
"""

from __future__ import annotations

from .result import ExitStatus, ResultAggregator, RunResult, StreamKind
from .supervisor import RunConfig, RunState, Supervisor

__all__ = [
    "ExitStatus",
    "ResultAggregator",
    "RunConfig",
    "RunResult",
    "RunState",
    "StreamKind",
    "Supervisor",
]
