"""
Bounded parallel fan-out with a join barrier.

gather_bounded runs a set of keyed coroutine factories with at most
`concurrency` of them in flight, waits for all of them up to `timeout`
seconds, cancels whatever is still running at the deadline and reports
each key as succeeded, failed or timed out. A failure in one job never
cancels the others. If the caller is cancelled while waiting, every job still
running is cancelled and awaited before the cancellation propagates.

Usage:
    result = await gather_bounded(
        {batch_id: partial(fetch_batch, ids) for batch_id, ids in batches.items()},
        concurrency=4,
        timeout=20.0,
    )
    for batch_id, records in result.successes.items():
        ...
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Generic, Hashable, List, Mapping, Optional, TypeVar


logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
T = TypeVar('T')


@dataclass
class FanoutResult(Generic[K, T]):
    """Outcome of a fan-out, partitioned by key."""
    successes: Dict[K, T] = field(default_factory=dict)
    failures: Dict[K, BaseException] = field(default_factory=dict)
    timed_out: List[K] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures and not self.timed_out


async def gather_bounded(
    jobs: Mapping[K, Callable[[], Awaitable[T]]],
    concurrency: int,
    timeout: Optional[float] = None,
) -> FanoutResult[K, T]:
    """
    Run keyed jobs concurrently under a semaphore and join them.

    Args:
        jobs: Mapping of key to a zero-argument coroutine factory.
        concurrency: Maximum number of jobs running at once (at least 1).
        timeout: Seconds to wait for all jobs; None waits indefinitely.

    Returns:
        FanoutResult with each key in exactly one of successes, failures or
        timed_out.
    """
    result: FanoutResult[K, T] = FanoutResult()
    if not jobs:
        return result

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    tasks = {asyncio.create_task(run(factory)): key for key, factory in jobs.items()}
    try:
        _, pending = await asyncio.wait(tasks.keys(), timeout=timeout)
    finally:
        # Runs on the deadline and when the caller itself is cancelled
        unfinished = [task for task in tasks if not task.done()]
        for task in unfinished:
            task.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)

    for task, key in tasks.items():
        if task in pending or task.cancelled():
            result.timed_out.append(key)
        elif task.exception() is not None:
            result.failures[key] = task.exception()
        else:
            result.successes[key] = task.result()

    if result.timed_out:
        logger.warning(f"{len(result.timed_out)} of {len(tasks)} jobs timed out after {timeout}s")
    for key, error in result.failures.items():
        logger.warning(f"Job {key} failed: {error}")

    return result
