"""Line pumps and the stdin feeder.

cmdline-runner runtime module v0.1.0

Each run starts three of these as independent tasks: one pump per output
stream and one feeder for stdin. A task finishing is its completion
signal; the supervisor joins all three before reading the result.

Line splitting:
- Lines end at "\\n"; one trailing "\\r" is stripped
- Bytes are decoded as UTF-8 with replacement characters
- A final fragment without a newline is still emitted as a line when
  the stream closes, so every emitted line is stored with a "\\n"
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable

from ..progress import PROP_OUTPUT, ProgressSink, safe_call
from ..redaction import redact
from .result import ResultAggregator, StreamKind

__all__ = ["feed_stdin", "iter_lines", "pump_lines"]

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


def _decode(raw: bytes) -> str:
    if raw.endswith(b"\r"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


async def iter_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    """Yield decoded lines from a stream until EOF.

    Reads fixed-size chunks rather than readline() so a very long line
    cannot overrun the reader's buffer limit.
    """
    line_buffer = bytearray()
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            if line_buffer:
                yield _decode(bytes(line_buffer))
            return

        # only the new chunk can contain a newline
        scan_from = len(line_buffer)
        line_buffer += chunk
        start = 0
        end = line_buffer.find(b"\n", scan_from)
        while end != -1:
            yield _decode(bytes(line_buffer[start:end]))
            start = end + 1
            end = line_buffer.find(b"\n", start)
        if start:
            del line_buffer[:start]


async def pump_lines(
    stream: asyncio.StreamReader | None,
    kind: StreamKind,
    aggregator: ResultAggregator,
    redactions: Iterable[str] = (),
    progress: ProgressSink | None = None,
    stderr_to_progress: bool = False,
) -> None:
    """Drain one output stream into the aggregator.

    Every line is redacted before it is stored or shown. With a progress
    sink attached, stdout lines (and stderr lines when stderr_to_progress
    is set) become the sink's live output property; other stderr lines are
    printed above the display.

    A read error ends the pump early; it is logged and does not fail the
    run. A missing stream returns immediately.

    Args:
        stream: The child's stdout or stderr reader, None if not piped
        kind: Which stream this is
        aggregator: Shared result accumulator
        redactions: Secrets to hide
        progress: Optional progress sink
        stderr_to_progress: Route stderr to the sink's output property
    """
    if stream is None:
        return

    secrets = tuple(redactions)
    to_progress = kind is StreamKind.STDOUT or stderr_to_progress

    try:
        async for raw_line in iter_lines(stream):
            line = redact(raw_line, secrets)
            await aggregator.append(kind, line)
            if progress is None:
                continue
            if to_progress:
                safe_call(progress, "set_property", PROP_OUTPUT, line)
                safe_call(progress, "update")
            else:
                safe_call(progress, "println", line)
    except OSError as e:
        logger.debug(f"Stopped reading {kind.value}: {e}")


async def feed_stdin(stream: asyncio.StreamWriter | None, text: str | None) -> None:
    """Write text to the child's stdin and close it.

    Write failures (typically the child exiting without reading) are
    logged and swallowed; the exit status decides whether the run failed.
    With no text this returns immediately and leaves the stream alone.
    """
    if text is None or stream is None:
        return

    try:
        stream.write(text.encode("utf-8"))
        await stream.drain()
    except OSError as e:
        # BrokenPipeError / ConnectionResetError when the child never reads
        logger.debug(f"Failed to write to stdin: {e}")
    finally:
        try:
            stream.close()
            await stream.wait_closed()
        except OSError as e:
            logger.debug(f"Failed to close stdin: {e}")
