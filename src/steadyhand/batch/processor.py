"""Processor - Bounded-concurrency batch processing of work items."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog

from steadyhand.batch.queue import WorkQueue
from steadyhand.core.config import BatchConfig
from steadyhand.core.errors import BatchAborted, ItemProcessingFailure, ItemTimeout
from steadyhand.core.types import (
    BatchResult,
    ChunkEvent,
    WorkItem,
    WorkResult,
    WorkStatus,
)
from steadyhand.retry import with_retry


logger = structlog.get_logger()

ItemFunction = Callable[[WorkItem], Awaitable[Any]]
ChunkHook = Callable[[ChunkEvent], Any]
ItemHook = Callable[[WorkResult], Any]
Sleep = Callable[[float], Awaitable[None]]


class _Progress:
    """Counters for one process_batch call."""

    def __init__(self, total: int, threshold: float, abort_on_error: bool) -> None:
        self.total = total
        self.threshold = threshold
        self.abort_on_error = abort_on_error
        self.processed = 0
        self.failed = 0
        self.abort_error: BatchAborted | None = None

    @property
    def aborted(self) -> bool:
        return self.abort_error is not None

    def record(self, result: WorkResult) -> None:
        self.processed += 1
        if result.status == WorkStatus.FAILED:
            self.failed += 1

    def breach_is_certain(self) -> bool:
        """Failures already exceed the threshold over the whole batch."""
        return (
            self.abort_on_error
            and self.total > 0
            and self.failed / self.total > self.threshold
        )

    def rate_exceeded(self) -> bool:
        """Observed failure rate exceeds the threshold."""
        return (
            self.abort_on_error
            and self.processed > 0
            and self.failed / self.processed > self.threshold
        )

    def abort(self) -> BatchAborted:
        if self.abort_error is None:
            self.abort_error = BatchAborted(self.failed, self.processed, self.threshold)
        return self.abort_error


class ParallelBatchProcessor:
    """Runs work items through an async function with bounded concurrency.

    Items are split into chunks of ``batch_size``. Each chunk gets a pool of
    up to ``max_concurrency`` workers pulling from a shared queue; chunks run
    strictly one after the other. Item errors are retried, then recorded as
    failed results. They never escape ``process_batch``.
    """

    def __init__(
        self,
        config: BatchConfig | None = None,
        on_chunk_complete: Optional[ChunkHook] = None,
        on_item_complete: Optional[ItemHook] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the processor.

        Args:
            config: Batch configuration
            on_chunk_complete: Observer called after every chunk
            on_item_complete: Observer called after every processed item
            sleep: Awaitable sleep used for item backoff, injectable for tests
        """
        self.config = config or BatchConfig()
        self.on_chunk_complete = on_chunk_complete
        self.on_item_complete = on_item_complete
        self._sleep = sleep

    async def process_batch(
        self,
        items: Sequence[WorkItem],
        fn: ItemFunction,
        abort_on_error: bool | None = None,
    ) -> BatchResult:
        """Process every item and aggregate the results.

        Args:
            items: Work items, each processed at most once
            fn: Async function called with one item; may return a WorkResult
                to set the status itself
            abort_on_error: Override ``config.abort_on_error`` for this call

        Returns:
            BatchResult with one WorkResult per item
        """
        abort = self.config.abort_on_error if abort_on_error is None else abort_on_error
        progress = _Progress(len(items), self.config.error_threshold, abort)
        batch_size = self.config.batch_size
        started = time.monotonic()
        results: list[WorkResult] = []

        logger.info(
            "batch_started",
            total=len(items),
            max_concurrency=self.config.max_concurrency,
            batch_size=batch_size,
            abort_on_error=abort,
        )

        for index, offset in enumerate(range(0, len(items), batch_size)):
            chunk = list(items[offset:offset + batch_size])

            if progress.aborted:
                results.extend(self._skip(chunk, progress.abort_error))
                continue

            chunk_started = time.monotonic()
            chunk_results, unstarted = await self._process_chunk(chunk, fn, progress)
            skipped = self._skip(unstarted, progress.abort_error) if unstarted else []
            results.extend(chunk_results)
            results.extend(skipped)

            if not progress.aborted and progress.rate_exceeded():
                progress.abort()

            if progress.aborted:
                logger.error(
                    "error_threshold_exceeded",
                    failed=progress.failed,
                    processed=progress.processed,
                    threshold=progress.threshold,
                )

            event = ChunkEvent(
                index=index,
                size=len(chunk),
                successes=sum(1 for r in chunk_results if r.status == WorkStatus.SUCCESS),
                failures=sum(1 for r in chunk_results if r.status == WorkStatus.FAILED),
                skipped=len(skipped)
                + sum(1 for r in chunk_results if r.status == WorkStatus.SKIPPED),
                duration=time.monotonic() - chunk_started,
                processed_so_far=progress.processed,
                failed_so_far=progress.failed,
            )
            logger.info(
                "chunk_completed",
                chunk=index + 1,
                processed=len(chunk_results),
                successful=event.successes,
                failed=event.failures,
                skipped=event.skipped,
            )
            self._emit(self.on_chunk_complete, event)

        batch = self._aggregate(results, time.monotonic() - started, progress.aborted)
        logger.info(
            "batch_completed",
            total=batch.total,
            successful=batch.successes,
            failed=batch.failures,
            skipped=batch.skipped,
            duration=f"{batch.total_duration:.2f}s",
            success_rate=f"{batch.success_rate * 100:.1f}%",
            aborted=batch.aborted,
        )
        return batch

    async def _process_chunk(
        self, chunk: list[WorkItem], fn: ItemFunction, progress: _Progress
    ) -> tuple[list[WorkResult], list[WorkItem]]:
        """Run one chunk through a worker pool.

        Returns:
            Results of processed items, and items never started
        """
        queue = WorkQueue(chunk)
        results: list[WorkResult] = []
        worker_count = min(self.config.max_concurrency, len(chunk))

        await asyncio.gather(
            *(self._worker(i, queue, fn, progress, results) for i in range(worker_count))
        )
        return results, queue.drain()

    async def _worker(
        self,
        worker_id: int,
        queue: WorkQueue,
        fn: ItemFunction,
        progress: _Progress,
        results: list[WorkResult],
    ) -> None:
        """Pull items until the queue is drained or the batch aborts."""
        while not progress.aborted:
            item = queue.pop()
            if item is None:
                break

            logger.debug("worker_processing", worker_id=worker_id, item_id=item.id)
            result = await self._process_item(item, fn)
            results.append(result)
            progress.record(result)

            if result.status == WorkStatus.FAILED:
                logger.error(
                    "item_failed",
                    worker_id=worker_id,
                    item_id=item.id,
                    error=str(result.error),
                    duration=f"{(result.duration or 0.0):.2f}s",
                )
            else:
                logger.debug(
                    "item_completed",
                    worker_id=worker_id,
                    item_id=item.id,
                    status=result.status.value,
                    duration=f"{(result.duration or 0.0):.2f}s",
                )

            self._emit(self.on_item_complete, result)

            if not progress.aborted and progress.breach_is_certain():
                progress.abort()
                logger.warning(
                    "batch_aborting",
                    worker_id=worker_id,
                    failed=progress.failed,
                    total=progress.total,
                )

        logger.debug("worker_finished", worker_id=worker_id)

    async def _process_item(self, item: WorkItem, fn: ItemFunction) -> WorkResult:
        """Run one item with retry inside a timeout; never raises."""
        started = time.monotonic()
        timeout = self.config.per_item_timeout
        attempts = 0

        async def run_once() -> Any:
            nonlocal attempts
            attempts += 1
            return await fn(item)

        def on_failed_attempt(attempt: int, error: BaseException, remaining: int) -> None:
            if remaining:
                logger.warning(
                    "item_retry",
                    item_id=item.id,
                    attempt=attempt,
                    retries_left=remaining,
                    error=str(error),
                )

        task = asyncio.ensure_future(
            with_retry(
                run_once,
                self.config.retry_policy(),
                on_failed_attempt=on_failed_attempt,
                sleep=self._sleep,
            )
        )
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return WorkResult(
                item=item,
                status=WorkStatus.FAILED,
                error=ItemTimeout(item.id, timeout, attempts),
                duration=time.monotonic() - started,
                attempts=attempts,
            )

        duration = time.monotonic() - started
        if task.cancelled():
            # fn cancelled itself; the batch itself is still running
            return WorkResult(
                item=item,
                status=WorkStatus.FAILED,
                error=ItemProcessingFailure(
                    item.id,
                    f"Item {item.id} was cancelled after {attempts} attempt(s)",
                    elapsed=duration,
                    attempts=attempts,
                ),
                duration=duration,
                attempts=attempts,
            )

        error = task.exception()
        if error is not None:
            failure = ItemProcessingFailure(
                item.id,
                f"Item {item.id} failed after {attempts} attempt(s): {error}",
                elapsed=duration,
                attempts=attempts,
            )
            failure.__cause__ = error
            return WorkResult(
                item=item,
                status=WorkStatus.FAILED,
                error=failure,
                duration=duration,
                attempts=attempts,
            )

        value = task.result()
        if isinstance(value, WorkResult):
            return value.model_copy(
                update={"item": item, "duration": duration, "attempts": attempts}
            )
        return WorkResult(
            item=item,
            status=WorkStatus.SUCCESS,
            duration=duration,
            attempts=attempts,
            details=value,
        )

    @staticmethod
    def _skip(items: list[WorkItem], error: BatchAborted | None) -> list[WorkResult]:
        return [
            WorkResult(item=item, status=WorkStatus.SKIPPED, error=error)
            for item in items
        ]

    @staticmethod
    def _aggregate(results: list[WorkResult], total_duration: float, aborted: bool) -> BatchResult:
        total = len(results)
        successes = sum(1 for r in results if r.status == WorkStatus.SUCCESS)
        durations = [r.duration for r in results if r.duration is not None]
        return BatchResult(
            results=results,
            success_rate=successes / total if total else 0.0,
            total_duration=total_duration,
            average_duration=sum(durations) / len(durations) if durations else 0.0,
            aborted=aborted,
        )

    @staticmethod
    def _emit(hook: Optional[Callable[[Any], Any]], payload: Any) -> None:
        """Notify an observer; its errors never affect processing."""
        if hook is None:
            return
        try:
            hook(payload)
        except Exception as e:
            logger.warning("batch_hook_error", error=str(e))
