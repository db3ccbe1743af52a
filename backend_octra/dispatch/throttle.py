"""
Bounded-rate iteration for sequential network loops.

Multi-send and auto-cycle returns talk to the node one request at a time with
a minimum spacing between requests so a single batch cannot flood it.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")


async def paced(
    items: Iterable[T],
    interval_sec: float,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> AsyncIterator[T]:
    """
    Yield items in order, at least interval_sec apart (measured between yields).

    Time the consumer spends on an item counts toward the interval, so the
    spacing is a floor rather than an added delay. No wait before the first item.
    """
    last: float | None = None
    for item in items:
        if last is not None and interval_sec > 0:
            remaining = interval_sec - (clock() - last)
            if remaining > 0:
                await sleep(remaining)
        last = clock()
        yield item
