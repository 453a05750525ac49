"""Timeout racing and the per-instance in-flight guard."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from .errors import OperationInProgressError

T = TypeVar("T")


async def race_with_timeout(awaitable: Awaitable[T], timeout: float) -> T:
    """Race an awaitable against a sleep; whichever finishes first wins.

    The loser is cancelled. A cancelled call is awaited so that its cleanup
    (closing sessions, killing processes) runs before this returns.

    Raises:
        TimeoutError: If the sleep finished first.
    """
    call = asyncio.ensure_future(awaitable)
    timer = asyncio.ensure_future(asyncio.sleep(timeout))
    try:
        done, _ = await asyncio.wait({call, timer}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (call, timer):
            if not task.done():
                task.cancel()

    if call in done:
        return call.result()
    await asyncio.wait({call})
    raise TimeoutError(f"timed out after {timeout:g}s")


class InFlightGuard:
    """Rejects a second concurrent call on the same provider instance."""

    def __init__(self, owner: str):
        self._owner = owner
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def __enter__(self):
        if self._busy:
            raise OperationInProgressError(self._owner)
        self._busy = True
        return self

    def __exit__(self, exc_type, exc, tb):
        self._busy = False
        return False
