"""ExitStatus, RunResult and ResultAggregator tests."""

from __future__ import annotations

import asyncio

import pytest

from cmdline_runner.runtime.result import (
    ExitStatus,
    ResultAggregator,
    RunResult,
    StreamKind,
)


class TestExitStatus:
    def test_from_returncode(self):
        assert ExitStatus.from_returncode(0) == ExitStatus(code=0)
        assert ExitStatus.from_returncode(42) == ExitStatus(code=42)
        assert ExitStatus.from_returncode(-9) == ExitStatus(signal=9)
        assert ExitStatus.from_returncode(None) == ExitStatus()

    def test_success(self):
        assert ExitStatus(code=0).success
        assert not ExitStatus(code=1).success
        assert not ExitStatus(signal=15).success

    def test_placeholder_is_not_success(self):
        assert not ExitStatus().success

    def test_str(self):
        assert str(ExitStatus(code=1)) == "exit code 1"
        assert str(ExitStatus(signal=9)) == "no exit status"


class TestRunResult:
    def test_default(self):
        result = RunResult()

        assert result.stdout == ""
        assert result.stderr == ""
        assert result.combined_output == ""
        assert result.status.code is None


class TestResultAggregator:
    @pytest.mark.asyncio
    async def test_snapshot(self):
        aggregator = ResultAggregator()
        await aggregator.append(StreamKind.STDOUT, "a")
        await aggregator.append(StreamKind.STDERR, "b")
        await aggregator.append(StreamKind.STDOUT, "c")
        aggregator.set_status(ExitStatus(code=0))

        result = aggregator.snapshot()

        assert result.stdout == "a\nc\n"
        assert result.stderr == "b\n"
        assert result.combined_output == "a\nb\nc\n"
        assert result.status.success
        assert aggregator.line_count == 3

    @pytest.mark.asyncio
    async def test_snapshot_is_independent(self):
        aggregator = ResultAggregator()
        await aggregator.append(StreamKind.STDOUT, "a")
        first = aggregator.snapshot()

        await aggregator.append(StreamKind.STDOUT, "b")

        assert first.stdout == "a\n"
        assert aggregator.snapshot().stdout == "a\nb\n"

    @pytest.mark.asyncio
    async def test_transcript_trimmed(self):
        aggregator = ResultAggregator()
        await aggregator.append(StreamKind.STDOUT, "")
        await aggregator.append(StreamKind.STDERR, "error here")
        await aggregator.append(StreamKind.STDOUT, "")

        assert aggregator.transcript() == "error here"

    @pytest.mark.asyncio
    async def test_concurrent_appends(self):
        """Lines from concurrent writers are all kept, per-stream order intact."""
        aggregator = ResultAggregator()

        async def writer(kind: StreamKind, prefix: str) -> None:
            for i in range(100):
                await aggregator.append(kind, f"{prefix}{i}")
                await asyncio.sleep(0)

        await asyncio.gather(
            writer(StreamKind.STDOUT, "o"), writer(StreamKind.STDERR, "e")
        )

        result = aggregator.snapshot()
        assert result.stdout.splitlines() == [f"o{i}" for i in range(100)]
        assert result.stderr.splitlines() == [f"e{i}" for i in range(100)]
        assert len(result.combined_output.splitlines()) == 200
