"""Fluent command runner.

CmdLineRunner collects the configuration for one command and hands it to
a Supervisor when execute() is awaited.

Example:
    result = await (
        CmdLineRunner("git")
        .args(["clone", url])
        .current_dir(workspace)
        .redact([token])
        .execute()
    )
    print(result.stdout)
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional

from .cancel import CancellationToken
from .config import get_config
from .errors import InternalError
from .progress import ProgressSink
from .redaction import Redactions
from .registry import PidRegistry, default_registry
from .runtime.result import RunResult
from .runtime.supervisor import PIPE, RunConfig, Supervisor

__all__ = ["CmdLineRunner", "run"]

# Display-only prefix stripped from str(runner)
SHELL_WRAPPER_PREFIX = "sh -o errexit -c "

# CmdLineRunner methods that run() does not accept as options
_NOT_OPTIONS = frozenset({"execute", "build_config", "kill_all"})


class CmdLineRunner:
    """Builder for executing an external command.

    Every configuration method returns the runner itself so calls can be
    chained. A runner executes once; create a new one for each run.

    Defaults: stdin is /dev/null, stdout and stderr are captured, a
    non-zero exit raises ScriptFailed, and the child runs in its own
    process group.
    """

    def __init__(
        self,
        program: str | os.PathLike[str],
        *,
        registry: Optional[PidRegistry] = None,
    ) -> None:
        self._program = os.fspath(program)
        self._args: list[str] = []
        self._cwd: Path | None = None
        self._env: dict[str, str | None] = {}
        self._env_clear = False
        self._redactions = Redactions()
        self._stdin_text: str | None = None
        self._stdin: Any = None
        self._stdout: Any = PIPE
        self._stderr: Any = PIPE
        self._pass_signals = False
        self._show_stderr_on_error = get_config().show_stderr_on_error
        self._stderr_to_progress = False
        self._allow_non_zero = False
        self._cancel = CancellationToken()
        self._progress: ProgressSink | None = None
        self._registry = registry if registry is not None else default_registry()
        self._executed = False

    @staticmethod
    def kill_all(sig: Optional[int] = None) -> int:
        """Send a signal to every child started through the default registry.

        See PidRegistry.kill_all().
        """
        return default_registry().kill_all(sig)

    @property
    def program(self) -> str:
        return self._program

    @property
    def arguments(self) -> list[str]:
        return list(self._args)

    # Arguments

    def arg(self, arg: str | os.PathLike[str]) -> "CmdLineRunner":
        self._args.append(os.fspath(arg))
        return self

    def opt_arg(self, arg: str | os.PathLike[str] | None) -> "CmdLineRunner":
        """Add an argument only if it is not None."""
        if arg is not None:
            self.arg(arg)
        return self

    def args(self, args: Iterable[str | os.PathLike[str]]) -> "CmdLineRunner":
        self._args.extend(os.fspath(a) for a in args)
        return self

    # Environment and working directory

    def current_dir(self, path: str | os.PathLike[str]) -> "CmdLineRunner":
        self._cwd = Path(path)
        return self

    def env(self, key: str, value: str) -> "CmdLineRunner":
        self._env[key] = value
        return self

    def envs(self, values: Mapping[str, str] | Iterable[tuple[str, str]]) -> "CmdLineRunner":
        items = values.items() if isinstance(values, Mapping) else values
        for key, value in items:
            self._env[key] = value
        return self

    def env_remove(self, key: str) -> "CmdLineRunner":
        self._env[key] = None
        return self

    def env_clear(self) -> "CmdLineRunner":
        """Start the child from an empty environment instead of ours."""
        self._env_clear = True
        self._env.clear()
        return self

    # Output handling

    def redact(self, secrets: Iterable[str]) -> "CmdLineRunner":
        """Replace these strings with ``[redacted]`` in all captured output."""
        self._redactions.update(secrets)
        return self

    def with_progress(self, progress: ProgressSink) -> "CmdLineRunner":
        self._progress = progress
        return self

    def with_cancel_token(self, cancel: CancellationToken) -> "CmdLineRunner":
        """When the token is cancelled the child is killed and CommandCancelled raised."""
        self._cancel = cancel
        return self

    def show_stderr_on_error(self, show: bool) -> "CmdLineRunner":
        """Print the combined output on the progress sink when the command fails."""
        self._show_stderr_on_error = show
        return self

    def stderr_to_progress(self, enable: bool) -> "CmdLineRunner":
        """Show stderr lines as live progress output instead of printing them above it."""
        self._stderr_to_progress = enable
        return self

    def allow_non_zero(self, allow: bool) -> "CmdLineRunner":
        self._allow_non_zero = allow
        return self

    def with_pass_signals(self, enable: bool = True) -> "CmdLineRunner":
        """Keep the child in our process group so terminal signals reach it."""
        self._pass_signals = enable
        return self

    # Streams

    def stdin_string(self, text: str) -> "CmdLineRunner":
        """Pipe text into the child's stdin."""
        self._stdin = PIPE
        self._stdin_text = text
        return self

    def stdin(self, mode: Any) -> "CmdLineRunner":
        self._stdin = mode
        return self

    def stdout(self, mode: Any) -> "CmdLineRunner":
        self._stdout = mode
        return self

    def stderr(self, mode: Any) -> "CmdLineRunner":
        self._stderr = mode
        return self

    # Execution

    def build_config(self) -> RunConfig:
        """Freeze the current configuration."""
        env: dict[str, str] | None = None
        if self._env_clear or self._env:
            env = {} if self._env_clear else dict(os.environ)
            for key, value in self._env.items():
                if value is None:
                    env.pop(key, None)
                else:
                    env[key] = value

        return RunConfig(
            program=self._program,
            args=tuple(self._args),
            cwd=self._cwd,
            env=env,
            redactions=self._redactions.as_tuple(),
            stdin_text=self._stdin_text,
            stdin=self._stdin,
            stdout=self._stdout,
            stderr=self._stderr,
            pass_signals=self._pass_signals,
            show_stderr_on_error=self._show_stderr_on_error,
            stderr_to_progress=self._stderr_to_progress,
            allow_non_zero=self._allow_non_zero,
            cancel=self._cancel,
            progress=self._progress,
            display=str(self),
        )

    async def execute(self) -> RunResult:
        """Run the command and wait for it to finish.

        Returns:
            Captured stdout, stderr, combined output and exit status

        Raises:
            SpawnError: The command could not be started
            ScriptFailed: The command exited non-zero (unless allow_non_zero)
            CommandCancelled: The cancellation token fired
            InternalError: The runner was already executed, or PID/stdin
                setup failed
        """
        if self._executed:
            raise InternalError("runner has already been executed")
        self._executed = True

        config = self.build_config()
        return await Supervisor(registry=self._registry).run(config)

    def __str__(self) -> str:
        cmd = " ".join([self._program, *self._args])
        if cmd.startswith(SHELL_WRAPPER_PREFIX):
            cmd = cmd[len(SHELL_WRAPPER_PREFIX):]
        return cmd

    def __repr__(self) -> str:
        return " ".join([self._program, *self._args])


async def run(program: str, *args: str, **options: Any) -> RunResult:
    """Run a command with keyword options named after CmdLineRunner methods.

    Example:
        result = await run("echo", "hi", allow_non_zero=True, redact=["hi"])
    """
    runner = CmdLineRunner(program, registry=options.pop("registry", None)).args(args)
    for name, value in options.items():
        method = getattr(runner, name, None)
        if name.startswith("_") or name in _NOT_OPTIONS or not callable(method):
            raise TypeError(f"unknown option: {name}")
        method(value)
    return await runner.execute()
