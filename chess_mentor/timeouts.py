"""Race an awaitable against a timer."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float) -> T | None:
    """Await with a deadline, returning None if the timer wins.

    The losing call is cancelled through asyncio, so a timed-out gateway
    request does not keep running in the background. Exceptions raised
    by the awaitable itself propagate, except asyncio.TimeoutError: a
    gateway raising that is indistinguishable from the deadline firing
    and also yields None.

    Args:
        awaitable: Coroutine or future to wait for.
        seconds: Deadline in seconds.

    Returns:
        The awaitable's result, or None on timeout.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        return None
