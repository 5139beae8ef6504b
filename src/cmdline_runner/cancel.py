"""Cooperative cancellation token.

A CancellationToken is handed to a runner with ``with_cancel_token()``.
Cancelling it makes the supervisor kill the child process at its next
poll and fail the run with CommandCancelled.

The token can be created and cancelled outside of an event loop; the
anyio.Event backing ``wait()`` is created lazily on first await.
"""

from __future__ import annotations

import logging
import weakref
from typing import Optional

import anyio

__all__ = ["CancellationToken"]

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-way cancellation flag with an awaitable "became cancelled" event.

    Example:
        ```python
        token = CancellationToken()
        runner = CmdLineRunner("sleep").arg("10").with_cancel_token(token)

        async with anyio.create_task_group() as tg:
            tg.start_soon(runner.execute)
            await anyio.sleep(0.1)
            token.cancel()
        ```
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: Optional[anyio.Event] = None
        # held weakly so a long-lived parent does not keep every run's token alive
        self._children: weakref.WeakSet[CancellationToken] = weakref.WeakSet()
        self._scopes: weakref.WeakSet[anyio.CancelScope] = weakref.WeakSet()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the token, its child tokens and any linked cancel scopes.

        Calling it again has no effect.
        """
        if self._cancelled:
            return
        self._cancelled = True
        logger.debug("Cancellation requested")
        if self._event is not None:
            self._event.set()
        for scope in list(self._scopes):
            scope.cancel()
        for child in list(self._children):
            child.cancel()

    async def wait(self) -> None:
        """Return once the token is cancelled (immediately if it already is)."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = anyio.Event()
        await self._event.wait()

    def child_token(self) -> "CancellationToken":
        """Create a token that is cancelled whenever this one is."""
        child = CancellationToken()
        if self._cancelled:
            child.cancel()
        else:
            self._children.add(child)
        return child

    def cancel_scope(self) -> anyio.CancelScope:
        """Return an anyio.CancelScope that is cancelled together with this token."""
        scope = anyio.CancelScope()
        if self._cancelled:
            scope.cancel()
        else:
            self._scopes.add(scope)
        return scope

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
