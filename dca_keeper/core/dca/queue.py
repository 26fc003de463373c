"""
DCA Execution Queue

Runs executions with bounded concurrency, a minimum spacing between job
starts, bounded retry of transient failures, a per-job timeout and a shared
batch deadline.

Concurrency defaults to 1. Swaps routed through the same pools invalidate
each other's quotes, so orders are executed one at a time.

Shutdown is cooperative: pending jobs are resolved with a cancellation
failure, retry loops stop between attempts, and a job that is already
submitting runs to completion.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

import structlog

from .events import EventBus, EventListener, KeeperEventType
from .models import BatchExecutionResult, EligibleOrder, ExecutionResult, JobState, QueueStats
from .sizing import DEFAULT_INTERVAL_MS, batch_timeout_for_deadline, calculate_safe_batch_size
from ..recovery.errors import (
    AttemptError,
    BatchTimeoutError,
    ShutdownError,
    classify_error_message,
)
from ..recovery.strategies import CancellationToken, RetryConfig, RetryStrategy, error_message
from ...config import Settings

logger = logging.getLogger(__name__)
_slog = structlog.stdlib.get_logger("dca.queue")

ExecuteFn = Callable[[EligibleOrder], Awaitable[ExecutionResult]]

CANCELLED_ERROR = "Execution cancelled (shutdown)"
QUEUE_SHUTDOWN_ERROR = "Queue is shutting down"


@dataclass
class QueueOptions:
    """Queue tuning. Times are in milliseconds."""

    concurrency: int = 1
    interval_ms: int = DEFAULT_INTERVAL_MS
    max_retries: int = 2
    timeout_ms: int = 30_000
    batch_timeout_ms: int = 55_000
    retry_delay_ms: int = 1_000
    return_partial_on_timeout: bool = True

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> QueueOptions:
        values = {
            "interval_ms": settings.execution_delay_ms,
            "max_retries": settings.max_retries,
            "timeout_ms": settings.execution_timeout_ms,
            "batch_timeout_ms": settings.batch_timeout_ms,
        }
        values.update(overrides)
        return cls(**values)


@dataclass(eq=False)
class _Job:
    order: EligibleOrder
    future: "asyncio.Future[ExecutionResult]"
    state: JobState = JobState.PENDING


def _cancelled_result(order: EligibleOrder, message: str = CANCELLED_ERROR) -> ExecutionResult:
    return ExecutionResult(order_id=order.id, success=False, error=message)


class ExecutionQueue:
    """
    FIFO execution queue.

    Job lifecycle: pending -> running -> succeeded | failed, or
    pending -> cancelled when the queue is cleared or shut down first.
    """

    def __init__(
        self,
        execute_fn: ExecuteFn,
        options: Optional[QueueOptions] = None,
        events: Optional[EventBus] = None,
        token: Optional[CancellationToken] = None,
    ):
        self.execute_fn = execute_fn
        self.options = options or QueueOptions()
        self.events = events or EventBus()
        self.token = token or CancellationToken()

        self._pending: Deque[_Job] = deque()
        self._active: Set[_Job] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._paused = False
        self._shutting_down = False
        self._last_start: Optional[float] = None
        self._idle = asyncio.Event()
        self._idle.set()

        self._completed = 0
        self._failed = 0
        self._cancelled = 0

    # --- control ------------------------------------------------------------

    def on(self, event_type: KeeperEventType, listener: EventListener) -> None:
        self.events.on(event_type, listener)

    def add(self, order: EligibleOrder) -> "asyncio.Future[ExecutionResult]":
        """Queue one order. The future always resolves, never raises."""
        future: asyncio.Future[ExecutionResult] = asyncio.get_running_loop().create_future()
        if self.is_aborted:
            future.set_result(_cancelled_result(order, QUEUE_SHUTDOWN_ERROR))
            return future

        self._pending.append(_Job(order=order, future=future))
        self._idle.clear()
        self._pump()
        return future

    def pause(self) -> None:
        self._paused = True

    def start(self) -> None:
        if self._shutting_down:
            return
        self._paused = False
        self._pump()

    def clear(self) -> None:
        """Cancel every job that has not started."""
        while self._pending:
            job = self._pending.popleft()
            self._cancel_job(job)
        self._update_idle()

    def shutdown(self) -> None:
        """Stop the queue. Idempotent and safe to call from a signal handler."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Shutting down execution queue (%d pending)", len(self._pending))
        self.pause()
        self.clear()
        self.token.cancel()

    async def on_idle(self) -> None:
        """Wait until nothing is pending or running."""
        while self._pending or self._active:
            self._idle.clear()
            await self._idle.wait()

    # --- state --------------------------------------------------------------

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_aborted(self) -> bool:
        return self._shutting_down or self.token.cancelled

    @property
    def size(self) -> int:
        return len(self._pending)

    @property
    def running(self) -> int:
        return sum(1 for job in self._active if job.state == JobState.RUNNING)

    @property
    def stats(self) -> QueueStats:
        return QueueStats(
            pending=len(self._pending) + sum(1 for j in self._active if j.state == JobState.PENDING),
            running=self.running,
            completed=self._completed,
            failed=self._failed,
            cancelled=self._cancelled,
        )

    # --- scheduling ---------------------------------------------------------

    def _pump(self) -> None:
        loop = asyncio.get_running_loop()
        while self._pending and not self._paused and len(self._active) < self.options.concurrency:
            job = self._pending.popleft()
            self._active.add(job)

            # Reserve a start slot so spacing holds at any concurrency.
            now = loop.time()
            start_at = now
            if self._last_start is not None:
                start_at = max(now, self._last_start + self.options.interval_ms / 1000)
            self._last_start = start_at

            task = loop.create_task(self._run_job(job, start_at - now))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_job(self, job: _Job, delay: float) -> None:
        try:
            if delay > 0 and not await self.token.sleep(delay):
                self._cancel_job(job)
                return
            if self.is_aborted:
                self._cancel_job(job)
                return

            job.state = JobState.RUNNING
            result = await self._execute_with_retry(job.order)
            job.state = JobState.SUCCEEDED if result.success else JobState.FAILED
            if result.success:
                self._completed += 1
            else:
                self._failed += 1
            if not job.future.done():
                job.future.set_result(result)
        finally:
            self._active.discard(job)
            self._update_idle()
            self._pump()

    def _cancel_job(self, job: _Job) -> None:
        job.state = JobState.CANCELLED
        self._cancelled += 1
        if not job.future.done():
            job.future.set_result(_cancelled_result(job.order))

    def _update_idle(self) -> None:
        if not self._pending and not self._active:
            self._idle.set()

    # --- execution ----------------------------------------------------------

    async def _execute_with_retry(self, order: EligibleOrder) -> ExecutionResult:
        if self.is_aborted:
            return _cancelled_result(order)

        async def attempt() -> ExecutionResult:
            await self.events.emit(
                KeeperEventType.EXECUTION_START,
                order_id=order.id,
                input_type=order.input_type,
                output_type=order.output_type,
            )
            try:
                result = await self.execute_fn(order)
            except ShutdownError:
                raise
            except Exception as e:
                raise AttemptError(error_message(e)) from e

            if not result.success:
                classification = classify_error_message(result.error)
                if not classification.terminal_success:
                    raise AttemptError(result.error or "Execution failed", classification)
                # Someone else executed it, or it stopped being due: nothing left to do.
                result = replace(result, success=True)

            await self.events.emit(
                KeeperEventType.EXECUTION_SUCCESS,
                order_id=order.id,
                digest=result.digest,
                reward=str(result.reward) if result.reward is not None else None,
                provider=result.provider,
                already_handled=result.error is not None,
            )
            return result

        def on_failed_attempt(error: Exception, attempt_number: int, max_attempts: int) -> None:
            logger.info("Attempt %d/%d for %s failed: %s", attempt_number, max_attempts, order.id[:10], error)

        strategy = RetryStrategy(
            config=RetryConfig(
                max_retries=self.options.max_retries,
                initial_delay_seconds=self.options.retry_delay_ms / 1000,
            ),
            token=self.token,
            on_failed_attempt=on_failed_attempt,
            logger=logger,
        )

        try:
            return await asyncio.wait_for(strategy.execute(attempt), timeout=self.options.timeout_ms / 1000)
        except asyncio.TimeoutError:
            message = f"Execution timed out after {self.options.timeout_ms}ms"
        except Exception as e:
            message = error_message(e)

        await self.events.emit(KeeperEventType.EXECUTION_ERROR, order_id=order.id, error=message)
        return ExecutionResult(order_id=order.id, success=False, error=message)

    async def execute_batch(
        self,
        orders: List[EligibleOrder],
        return_partial_on_timeout: Optional[bool] = None,
    ) -> BatchExecutionResult:
        """
        Submit orders one at a time against a single batch deadline.

        On the deadline the queue is shut down and the completed results are
        returned with ``timed_out`` set, or BatchTimeoutError is raised when
        partial results are not allowed. A job already running is left to
        finish in the background.
        """
        if return_partial_on_timeout is None:
            return_partial_on_timeout = self.options.return_partial_on_timeout

        loop = asyncio.get_running_loop()
        started = time.monotonic()
        deadline = loop.time() + self.options.batch_timeout_ms / 1000
        results: List[ExecutionResult] = []
        timed_out = False

        await self.events.emit(
            KeeperEventType.BATCH_START,
            count=len(orders),
            batch_timeout_ms=self.options.batch_timeout_ms,
        )
        _slog.info("dca_batch_started", count=len(orders), batch_timeout_ms=self.options.batch_timeout_ms)

        for order in orders:
            if self.is_aborted:
                break

            future = self.add(order)
            remaining = deadline - loop.time()
            done: Set[asyncio.Future] = set()
            if remaining > 0:
                done, _ = await asyncio.wait({future}, timeout=remaining)
            elif future.done():
                done = {future}

            if not done:
                timed_out = True
                _slog.warning(
                    "dca_batch_timeout",
                    processed=len(results),
                    total=len(orders),
                    batch_timeout_ms=self.options.batch_timeout_ms,
                )
                self.shutdown()
                if not return_partial_on_timeout:
                    raise BatchTimeoutError(self.options.batch_timeout_ms, len(results), len(orders))
                break

            results.append(future.result())

        succeeded = sum(1 for r in results if r.success)
        batch = BatchExecutionResult(
            total=len(orders),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=results,
            duration_ms=int((time.monotonic() - started) * 1000),
            timed_out=timed_out,
        )

        await self.events.emit(
            KeeperEventType.BATCH_COMPLETE,
            total=batch.total,
            processed=batch.processed,
            succeeded=batch.succeeded,
            failed=batch.failed,
            duration_ms=batch.duration_ms,
            timed_out=timed_out,
        )
        _slog.info(
            "dca_batch_completed",
            total=batch.total,
            processed=batch.processed,
            succeeded=batch.succeeded,
            failed=batch.failed,
            duration_ms=batch.duration_ms,
            timed_out=timed_out,
        )
        return batch


def create_queue(
    execute_fn: ExecuteFn,
    options: Optional[QueueOptions] = None,
    events: Optional[EventBus] = None,
) -> ExecutionQueue:
    return ExecutionQueue(execute_fn, options=options, events=events)


async def execute_batch(
    orders: List[EligibleOrder],
    execute_fn: ExecuteFn,
    options: Optional[QueueOptions] = None,
    events: Optional[EventBus] = None,
    handle_signals: bool = True,
    stop: Optional[CancellationToken] = None,
) -> BatchExecutionResult:
    """
    Run one batch on a fresh queue.

    Args:
        handle_signals: Shut the queue down on SIGTERM or SIGINT for the
            length of the batch. The handlers in place before are restored
            afterwards. Pass False when a server owns the process signals.
        stop: Process-wide token; cancelling it shuts this batch's queue down.
    """
    options = options or QueueOptions()
    queue = ExecutionQueue(execute_fn, options=options, events=events)
    loop = asyncio.get_running_loop()

    previous: Dict[signal.Signals, Any] = {}
    if handle_signals:
        for sig in (signal.SIGTERM, signal.SIGINT):
            handler = signal.getsignal(sig)
            try:
                loop.add_signal_handler(sig, queue.shutdown)
            except (NotImplementedError, RuntimeError, ValueError):
                # No signal support outside the main thread or on this platform.
                logger.debug("Signal handler for %s not installed", sig.name)
                continue
            previous[sig] = handler

    watcher: Optional[asyncio.Task] = None
    if stop is not None:
        watcher = loop.create_task(stop.wait())
        watcher.add_done_callback(lambda task: task.cancelled() or queue.shutdown())

    try:
        return await queue.execute_batch(orders, options.return_partial_on_timeout)
    finally:
        if watcher is not None:
            watcher.cancel()
        for sig, handler in previous.items():
            loop.remove_signal_handler(sig)
            if handler is not None:
                signal.signal(sig, handler)


async def execute_batch_for_cloud(
    orders: List[EligibleOrder],
    cloud_timeout_ms: int,
    execute_fn: ExecuteFn,
    options: Optional[QueueOptions] = None,
    events: Optional[EventBus] = None,
    handle_signals: bool = True,
    stop: Optional[CancellationToken] = None,
) -> BatchExecutionResult:
    """Size the batch to the platform limit, then run it."""
    options = options or QueueOptions()
    safe_size = calculate_safe_batch_size(cloud_timeout_ms, options.interval_ms)
    batch_options = replace(options, batch_timeout_ms=batch_timeout_for_deadline(cloud_timeout_ms))

    logger.info(
        "Cloud timeout %dms: safe batch size %d, processing %d of %d",
        cloud_timeout_ms,
        safe_size,
        min(len(orders), safe_size),
        len(orders),
    )
    return await execute_batch(
        orders[:safe_size],
        execute_fn,
        options=batch_options,
        events=events,
        handle_signals=handle_signals,
        stop=stop,
    )
