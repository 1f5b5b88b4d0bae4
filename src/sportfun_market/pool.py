"""Bounded-concurrency helpers for fan-out against rate-limited endpoints."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def map_limited(
    items: Sequence[T],
    limit: int,
    fn: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Apply `fn` to every item with at most `limit` calls in flight.

    Results keep the order of `items`. The first exception propagates after
    all calls have settled.
    """
    if not items:
        return []
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_one(item: T) -> R:
        async with semaphore:
            return await fn(item)

    results = await asyncio.gather(*(run_one(item) for item in items), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)  # type: ignore[arg-type]
