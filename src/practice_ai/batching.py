"""Caller-side batching for many independent completion calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY_MS = 500


async def run_in_batches(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    delay_ms: int = DEFAULT_BATCH_DELAY_MS,
) -> List[R]:
    """Run ``worker`` over ``items`` in concurrent batches, preserving input order.

    At most ``batch_size`` calls are in flight at once and the next batch starts
    ``delay_ms`` after the previous one finished. The first exception from a
    batch propagates.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    pending = list(items)
    results: List[R] = []
    for offset in range(0, len(pending), batch_size):
        batch = pending[offset : offset + batch_size]
        results.extend(await asyncio.gather(*(worker(item) for item in batch)))
        if offset + batch_size < len(pending) and delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)
    return results
