"""Cancellation token passed into every generation call of a run."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Optional, TypeVar
from uuid import uuid4

from utils.exceptions import AbortedError


T = TypeVar("T")


class CancellationToken:
    """
    Single-use cancellation handle owned by one pipeline run.

    ``cancel()`` is sticky. ``guard()`` races an awaitable against the signal:
    a pending call is cancelled as soon as the token fires and the caller gets
    ``AbortedError`` instead of the late result.
    """

    def __init__(self, label: str = "run") -> None:
        self.id = f"{label}_{uuid4().hex[:8]}"
        self.reason: Optional[str] = None
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AbortedError(token=self.id, reason=self.reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise AbortedError(token=self.id, reason=self.reason)
        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            waiter.cancel()

        if self._event.is_set():
            if not call.done():
                call.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await call
            elif not call.cancelled():
                # late result or failure of an aborted call is discarded
                call.exception()
            raise AbortedError(token=self.id, reason=self.reason)

        return call.result()

    def __repr__(self) -> str:
        return f"CancellationToken(id={self.id}, cancelled={self.cancelled})"


async def guarded(token: Optional[CancellationToken], awaitable: Awaitable[T]) -> T:
    """``token.guard(awaitable)``, or a plain await when no token is given."""
    if token is None:
        return await awaitable
    return await token.guard(awaitable)
