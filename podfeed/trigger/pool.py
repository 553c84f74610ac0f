"""Bounded worker pool for refresh actions.

The aggregator hands refreshes to the pool with :meth:`TriggerPool.submit`,
which never blocks, so a slow or hanging script cannot delay ticks or change
consumption. Runs for the same topic are serialised; different topics run
concurrently up to ``workers``.

Every result is reported: logged, counted in metrics and passed to the
optional ``on_result`` callback. A failed run is not retried.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from podfeed.errors import TriggerPoolClosedError
from podfeed.models.events import TriggerResult
from podfeed.observability.logging import get_logger
from podfeed.observability.metrics import trigger_duration_seconds, trigger_runs_total
from podfeed.trigger.script import ActionTrigger

_log = get_logger("trigger.pool")

_OUTPUT_LOG_LIMIT = 2000

ResultCallback = Callable[[TriggerResult], None]


@dataclass(frozen=True)
class _Job:
    topic: str
    count: int


class TriggerPool:
    """Runs refresh actions on ``workers`` background tasks.

    Args:
        trigger:   The refresh action.
        workers:   Maximum number of concurrent runs.
        on_result: Called with every TriggerResult; its errors are logged and
                   otherwise ignored.
    """

    def __init__(
        self,
        trigger: ActionTrigger,
        workers: int = 4,
        on_result: ResultCallback | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self._trigger = trigger
        self._worker_count = workers
        self._on_result = on_result
        self._queue: asyncio.Queue[_Job] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._topic_locks: dict[str, asyncio.Lock] = {}
        self._closing = False

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        for i in range(self._worker_count):
            self._workers.append(asyncio.create_task(self._worker(), name=f"trigger-worker-{i}"))
        _log.info("trigger_pool_started", workers=self._worker_count)

    def submit(self, topic: str, count: int) -> None:
        """Queue a refresh of *topic*; never blocks."""
        if self._closing:
            raise TriggerPoolClosedError(f"trigger pool is stopping; refresh of {topic!r} rejected")
        self._queue.put_nowait(_Job(topic=topic, count=count))

    async def stop(self, timeout: float = 15.0) -> None:
        """Stop accepting work, wait up to *timeout* for queued runs, then cancel workers."""
        self._closing = True
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except TimeoutError:
            _log.warning("trigger_pool_stop_timed_out", timeout=timeout, abandoned=self._queue.qsize())
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        _log.info("trigger_pool_stopped")

    async def _worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                lock = self._topic_locks.setdefault(job.topic, asyncio.Lock())
                async with lock:
                    result = await self._run(job)
                self._report(result)
            finally:
                self._queue.task_done()

    async def _run(self, job: _Job) -> TriggerResult:
        started = time.monotonic()
        try:
            return await self._trigger.run(job.topic, job.count)
        except Exception as exc:  # noqa: BLE001
            return TriggerResult(
                topic=job.topic,
                count=job.count,
                duration_seconds=time.monotonic() - started,
                error=f"unexpected trigger error: {exc}",
            )

    def _report(self, result: TriggerResult) -> None:
        trigger_duration_seconds.observe(result.duration_seconds)
        if result.ok:
            trigger_runs_total.labels(outcome="success").inc()
            _log.info(
                "action_completed",
                topic=result.topic,
                changes=result.count,
                duration_seconds=round(result.duration_seconds, 3),
                output=result.stdout[:_OUTPUT_LOG_LIMIT],
            )
        else:
            outcome = "timeout" if result.timed_out else "failure"
            trigger_runs_total.labels(outcome=outcome).inc()
            _log.error(
                "action_failed",
                topic=result.topic,
                changes=result.count,
                returncode=result.returncode,
                error=result.error,
                stderr=result.stderr[:_OUTPUT_LOG_LIMIT],
                output=result.stdout[:_OUTPUT_LOG_LIMIT],
            )

        if self._on_result is None:
            return
        try:
            self._on_result(result)
        except Exception as exc:  # noqa: BLE001
            _log.error("trigger_result_callback_error", topic=result.topic, error=str(exc))
