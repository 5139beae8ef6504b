"""Process supervisor: spawn, race exit against cancellation, collect output.

cmdline-runner runtime module v0.1.0

This module provides:
- RunConfig: frozen description of one command invocation
- Supervisor: drives a single run through its lifecycle

Lifecycle:
    SPAWNING -> RUNNING -> COMPLETED | CANCELLED
    SPAWNING -> SPAWN_FAILED

Key design points:
- The child's PID is tracked in a PidRegistry from spawn until the child
  has exited, whichever way the run ends; pipes held open by a
  grandchild do not keep it registered
- stdout/stderr pumps and the stdin feeder run as separate tasks; the
  result is only read after all three have finished
- Cancellation kills the child (its whole process group when isolated)
  and waits for the real exit; leftover pipes are then drained for at
  most drain_timeout before our ends are closed
- If the awaiting task itself is cancelled, cleanup is shielded so the
  child is never left running
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..cancel import CancellationToken
from ..config import get_config
from ..errors import CommandCancelled, InternalError, ScriptFailed, SpawnError
from ..progress import PROP_CMD, PROP_OUTPUT, ProgressSink, ProgressStatus, safe_call
from ..registry import PidRegistry, default_registry
from .pump import feed_stdin, pump_lines
from .result import ExitStatus, ResultAggregator, RunResult, StreamKind

__all__ = [
    "IS_WINDOWS",
    "RunConfig",
    "RunState",
    "Supervisor",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

PIPE = asyncio.subprocess.PIPE
DEVNULL = asyncio.subprocess.DEVNULL

# How often the child's exit status is checked while it runs
EXIT_POLL_INTERVAL = 0.05


class RunState(str, Enum):
    """Lifecycle state of a Supervisor."""

    SPAWNING = "spawning"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SPAWN_FAILED = "spawn_failed"


@dataclass(frozen=True)
class RunConfig:
    """Specification for one command invocation.

    Attributes:
        program: Program name or path
        args: Arguments, in order
        cwd: Working directory (None = inherit)
        env: Complete child environment (None = inherit parent)
        redactions: Secrets to hide, in application order
        stdin_text: Text to pipe into the child's stdin
        stdin: Stdin override (None = DEVNULL, or PIPE when stdin_text is set)
        stdout: Stdout mode, PIPE unless overridden
        stderr: Stderr mode, PIPE unless overridden
        pass_signals: Keep the child in our process group so terminal
            signals reach it directly
        show_stderr_on_error: Print the transcript on the sink when failing
        stderr_to_progress: Show stderr lines as the sink's live output
        allow_non_zero: Treat any exit code as success
        cancel: Cancellation token (None = never cancelled)
        progress: Optional progress sink
        display: Human readable command line
    """

    program: str
    args: tuple[str, ...] = ()
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    redactions: tuple[str, ...] = ()
    stdin_text: str | None = None
    stdin: Any = None
    stdout: Any = PIPE
    stderr: Any = PIPE
    pass_signals: bool = False
    show_stderr_on_error: bool = True
    stderr_to_progress: bool = False
    allow_non_zero: bool = False
    cancel: CancellationToken | None = None
    progress: ProgressSink | None = None
    display: str = ""

    @property
    def argv(self) -> list[str]:
        """Actual argv; Windows goes through ``cmd.exe /c``."""
        if IS_WINDOWS:
            return ["cmd.exe", "/c", self.program, *self.args]
        return [self.program, *self.args]

    @property
    def stdin_mode(self) -> Any:
        if self.stdin is not None:
            return self.stdin
        return PIPE if self.stdin_text is not None else DEVNULL

    @property
    def command_line(self) -> str:
        return self.display or " ".join([self.program, *self.args])


@dataclass
class Supervisor:
    """Runs one RunConfig to completion.

    A Supervisor is single use; create a new one per run.

    Example:
        supervisor = Supervisor(registry=PidRegistry())
        result = await supervisor.run(RunConfig("echo", ("hello",)))
        assert result.stdout == "hello\\n"
    """

    registry: PidRegistry = field(default_factory=default_registry)
    drain_timeout: float = field(default_factory=lambda: get_config().drain_timeout)
    state: RunState = field(default=RunState.SPAWNING, init=False)

    async def run(self, config: RunConfig) -> RunResult:
        """Execute the command described by config.

        Returns:
            The captured result when the command succeeded, or exited
            non-zero with allow_non_zero set

        Raises:
            SpawnError: The program could not be started
            InternalError: PID tracking or stdin setup failed
            ScriptFailed: Non-zero exit without allow_non_zero
            CommandCancelled: The cancellation token fired first
        """
        if self.state is not RunState.SPAWNING:
            raise InternalError(f"supervisor already used (state={self.state.value})")

        logger.debug(f"$ {config.command_line}")
        process = await self._spawn(config)
        pid = await self._register(process, config)

        progress = config.progress
        safe_call(progress, "set_property", PROP_CMD, config.command_line)
        safe_call(progress, "set_property", PROP_OUTPUT, "")
        safe_call(progress, "set_status", ProgressStatus.RUNNING)

        if config.stdin_text is not None and process.stdin is None:
            await self._kill_and_reap(process, config)
            self.registry.unregister(pid)
            self.state = RunState.SPAWN_FAILED
            safe_call(progress, "set_status", ProgressStatus.FAILED)
            raise InternalError("stdin was requested but not available")

        aggregator = ResultAggregator()
        tasks = [
            asyncio.create_task(
                pump_lines(
                    process.stdout,
                    StreamKind.STDOUT,
                    aggregator,
                    config.redactions,
                    progress,
                )
            ),
            asyncio.create_task(
                pump_lines(
                    process.stderr,
                    StreamKind.STDERR,
                    aggregator,
                    config.redactions,
                    progress,
                    stderr_to_progress=config.stderr_to_progress,
                )
            ),
            asyncio.create_task(feed_stdin(process.stdin, config.stdin_text)),
        ]
        self.state = RunState.RUNNING

        try:
            cancelled = await self._wait_or_cancel(process, config)
        except asyncio.CancelledError:
            await self._safe_cleanup(process, tasks, config)
            raise
        finally:
            self.registry.unregister(pid)
            logger.debug(
                f"Subprocess exited pid={pid} returncode={process.returncode}"
            )

        aggregator.set_status(ExitStatus.from_returncode(process.returncode))

        try:
            if cancelled:
                # the kill may not reach grandchildren holding the pipes
                await self._reap(process, self.drain_timeout)
                await self._join(tasks, self.drain_timeout)
            else:
                await self._join(tasks, None)
                await process.wait()
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            self._close_pipes(process)
            raise

        result = aggregator.snapshot()

        if cancelled:
            self.state = RunState.CANCELLED
            safe_call(progress, "set_status", ProgressStatus.FAILED)
            raise CommandCancelled(config.program, config.args, result)

        self.state = RunState.COMPLETED
        if result.status.success or config.allow_non_zero:
            safe_call(progress, "set_status", ProgressStatus.DONE)
            return result

        output = aggregator.transcript()
        safe_call(progress, "set_status", ProgressStatus.FAILED)
        if config.show_stderr_on_error:
            safe_call(progress, "println", output)
        raise ScriptFailed(config.program, config.args, output, result)

    def _build_subprocess_kwargs(self, config: RunConfig) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs.

        Args:
            config: Run configuration

        Returns:
            Dict of kwargs for asyncio.create_subprocess_exec
        """
        kwargs: dict[str, Any] = {}

        # Environment
        if config.env is not None:
            kwargs["env"] = dict(config.env)

        if config.cwd is not None:
            kwargs["cwd"] = config.cwd

        # Isolation unless signals should reach the child directly
        if not config.pass_signals:
            if IS_WINDOWS:
                kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
            else:
                kwargs["start_new_session"] = True

        return kwargs

    async def _spawn(self, config: RunConfig) -> asyncio.subprocess.Process:
        try:
            process = await asyncio.create_subprocess_exec(
                *config.argv,
                stdin=config.stdin_mode,
                stdout=config.stdout,
                stderr=config.stderr,
                **self._build_subprocess_kwargs(config),
            )
        except OSError as e:
            self.state = RunState.SPAWN_FAILED
            logger.debug(f"Failed to spawn {config.program}: {e}")
            raise SpawnError(config.program, config.args, str(e)) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={config.program} cwd={config.cwd}"
        )
        return process

    async def _register(
        self,
        process: asyncio.subprocess.Process,
        config: RunConfig,
    ) -> int:
        """Track the child's PID; on failure kill it and raise InternalError."""
        pid = process.pid
        if pid is None:
            await self._kill_and_reap(process, config)
            self.state = RunState.SPAWN_FAILED
            raise InternalError("process has no id")
        try:
            self.registry.register(pid)
        except ValueError as e:
            await self._kill_and_reap(process, config)
            self.state = RunState.SPAWN_FAILED
            raise InternalError(f"failed to register pid {pid}: {e}") from e
        return pid

    async def _wait_exit(self, process: asyncio.subprocess.Process) -> None:
        """Return once the child itself has exited.

        process.wait() also waits for every pipe to close, which a
        grandchild can hold open long after the child is gone. The return
        code is filled in as soon as the child exits, so poll it instead.
        """
        while process.returncode is None:
            await asyncio.sleep(EXIT_POLL_INTERVAL)

    async def _wait_or_cancel(
        self,
        process: asyncio.subprocess.Process,
        config: RunConfig,
    ) -> bool:
        """Wait for the child to exit, killing it if cancellation comes first.

        Returns:
            Whether the child was killed because of cancellation
        """
        exit_task = asyncio.ensure_future(self._wait_exit(process))
        cancel_task = (
            asyncio.ensure_future(config.cancel.wait())
            if config.cancel is not None
            else None
        )
        cancelled = False

        try:
            while not exit_task.done():
                waiters: set[asyncio.Future[Any]] = {exit_task}
                if cancel_task is not None and not cancelled:
                    waiters.add(cancel_task)
                done, _ = await asyncio.wait(
                    waiters, return_when=asyncio.FIRST_COMPLETED
                )
                if exit_task in done:
                    break
                # Exit has not been observed yet; kill and keep waiting
                cancelled = True
                logger.debug(f"Cancelling subprocess pid={process.pid}")
                self._kill(process, config)
        finally:
            for task in (exit_task, cancel_task):
                if task is not None and not task.done():
                    task.cancel()

        return cancelled

    def _kill(self, process: asyncio.subprocess.Process, config: RunConfig) -> None:
        """Forcefully kill the child, and its process group when isolated."""
        pid = process.pid
        try:
            if not IS_WINDOWS and not config.pass_signals:
                # start_new_session made the child its own group leader
                try:
                    os.killpg(pid, signal.SIGKILL)
                    logger.debug(f"Sent SIGKILL to process group pgid={pid}")
                    return
                except ProcessLookupError:
                    return
                except OSError as e:
                    logger.debug(f"killpg failed, falling back to kill: {e}")
            process.kill()
            logger.debug(f"Called kill() on pid={pid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")

    async def _reap(
        self,
        process: asyncio.subprocess.Process,
        timeout: float,
    ) -> None:
        """Wait for the child's pipes to close, closing our ends after timeout."""
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
            return
        except asyncio.TimeoutError:
            logger.debug(
                f"Pipes of pid={process.pid} still open after {timeout}s, closing"
            )

        self._close_pipes(process)
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Subprocess transport did not close pid={process.pid}")

    def _close_pipes(self, process: asyncio.subprocess.Process) -> None:
        # Process has no public close(); the transport closes every pipe and
        # leaves an already exited child alone
        transport = getattr(process, "_transport", None)
        if transport is not None:
            transport.close()

    async def _kill_and_reap(
        self,
        process: asyncio.subprocess.Process,
        config: RunConfig,
    ) -> None:
        if process.returncode is None:
            self._kill(process, config)
        await self._wait_exit(process)
        await self._reap(process, self.drain_timeout)

    async def _join(
        self,
        tasks: list[asyncio.Task[None]],
        timeout: float | None,
    ) -> None:
        """Wait for pumps and feeder; with a timeout, cancel stragglers."""
        if timeout is None:
            await asyncio.gather(*tasks)
            return

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            # a grandchild may still hold the pipes open
            logger.debug(
                f"{len(pending)} stream task(s) still open after {timeout}s, cancelling"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            task.result()

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process,
        tasks: list[asyncio.Task[None]],
        config: RunConfig,
    ) -> None:
        """Kill and reap the child, shielded from cancellation."""
        try:
            await asyncio.shield(self._do_cleanup(process, tasks, config))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still try cleanup
            await self._do_cleanup(process, tasks, config)

    async def _do_cleanup(
        self,
        process: asyncio.subprocess.Process,
        tasks: list[asyncio.Task[None]],
        config: RunConfig,
    ) -> None:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if process.returncode is None:
            logger.debug(f"Terminating subprocess pid={process.pid}")
        # the child may be gone while a grandchild still holds the pipes
        await self._kill_and_reap(process, config)
