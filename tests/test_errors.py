"""Error type tests."""

from cmdline_runner.errors import (
    CmdError,
    CommandCancelled,
    InternalError,
    ScriptFailed,
    SpawnError,
)
from cmdline_runner.runtime.result import ExitStatus, RunResult


def test_spawn_error():
    error = SpawnError("foo", ("a",), "No such file or directory")

    assert isinstance(error, CmdError)
    assert str(error) == "failed to spawn foo: No such file or directory"
    assert error.arguments == ["a"]


def test_script_failed_message():
    result = RunResult(status=ExitStatus(code=1))
    error = ScriptFailed("bash", ("-c", "exit 1"), "some output", result)

    assert str(error) == "bash exited with non-zero status: exit code 1\nsome output"
    assert error.result is result
    assert error.output == "some output"


def test_command_cancelled_is_distinct():
    error = CommandCancelled("sleep", ("10",), RunResult())

    assert isinstance(error, CmdError)
    assert not isinstance(error, ScriptFailed)
    assert "sleep" in str(error)


def test_internal_error():
    assert "internal error" in str(InternalError("boom"))
