"""
Batch Executor
===============

Runs one batch of boundary calls (generation or verification)
concurrently and joins on the whole batch.

Rules:
    - Concurrency is bounded by one semaphore shared by every batch the
      executor runs, including batches of concurrent search runs.
    - Each call gets its own timeout; a timeout or exception becomes a
      failure value produced by ``on_failure`` and never aborts the batch.
    - Each batch has its own results queue. The caller processes the
      batch only once every result has arrived.
    - If the caller stops waiting (cancellation), the batch is closed;
      results that arrive afterwards are discarded and logged.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from verisearch.errors import InvalidConfiguration

logger = logging.getLogger("verisearch.search.executor")

T = TypeVar("T")


@dataclass
class _Batch(Generic[T]):
    batch_id: int
    size: int
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    closed: bool = False


class BatchExecutor:
    """
    Bounded worker pool for boundary calls.

    Args:
        max_concurrency: Calls in flight at once, across all batches.
        timeout_s: Per-call timeout (None disables it).
    """

    def __init__(self, max_concurrency: int = 8, timeout_s: Optional[float] = 30.0):
        if max_concurrency < 1:
            raise InvalidConfiguration(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self.timeout_s = timeout_s
        self.discarded = 0
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._batch_ids = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore

    async def run_batch(
        self,
        calls: Sequence[Callable[[], Awaitable[T]]],
        on_failure: Callable[[int, BaseException], T],
    ) -> list[T]:
        """
        Run ``calls`` concurrently and return their results in call order.

        Args:
            calls: Zero-argument coroutine factories.
            on_failure: Maps (call index, exception) to a failure value.
        """
        if not calls:
            return []

        batch: _Batch[T] = _Batch(batch_id=next(self._batch_ids), size=len(calls))
        semaphore = self._get_semaphore()

        async def _worker(index: int, call: Callable[[], Awaitable[T]]) -> None:
            async with semaphore:
                try:
                    result = await asyncio.wait_for(call(), timeout=self.timeout_s)
                except asyncio.TimeoutError as e:
                    logger.warning(f"Batch {batch.batch_id}: call {index} timed out after {self.timeout_s}s")
                    result = on_failure(index, e)
                except Exception as e:
                    logger.warning(f"Batch {batch.batch_id}: call {index} failed: {e!r}")
                    result = on_failure(index, e)
            if batch.closed:
                self.discarded += 1
                logger.info(f"Batch {batch.batch_id}: discarding late result for call {index}")
                return
            batch.queue.put_nowait((index, result))

        for index, call in enumerate(calls):
            task = asyncio.create_task(_worker(index, call))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        results: list[Optional[T]] = [None] * batch.size
        received = 0
        try:
            while received < batch.size:
                index, result = await batch.queue.get()
                results[index] = result
                received += 1
        finally:
            batch.closed = True
        return results  # type: ignore[return-value]

    async def drain(self) -> None:
        """Wait for calls still in flight from abandoned batches."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
