"""Bounded-concurrency execution of independent async jobs."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrent: int = 5,
    *,
    timeout_seconds: Optional[float] = None,
) -> List[Union[R, BaseException]]:
    """Run ``worker`` over ``items`` with at most ``max_concurrent`` in flight.

    Waits for every job to settle. Returns one entry per item, in item order:
    the worker's result, or the exception it raised. A failing job never
    cancels its siblings. Cancellation of the caller still propagates.
    """
    if not items:
        return []
    semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def _run(item: T) -> R:
        async with semaphore:
            if timeout_seconds is None:
                return await worker(item)
            return await asyncio.wait_for(worker(item), timeout=timeout_seconds)

    outcomes = await asyncio.gather(*(_run(item) for item in items), return_exceptions=True)
    for outcome in outcomes:
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
    return list(outcomes)
