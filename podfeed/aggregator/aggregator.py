"""Change aggregator: per-topic debounce of pod IP changes.

The aggregator is the single consumer of classified changes. It owns the
pending-count table outright; producers only ever reach it through
:meth:`ChangeAggregator.publish`, which enqueues onto an ``asyncio.Queue``.

Every ``interval`` seconds a tick fires the refresh action once for each
topic that accumulated changes since the previous tick and resets its count.
When the shutdown token is set the input is closed, anything already queued
is counted, and a final flush fires every remaining nonzero topic.

State machine::

    idle --run()--> running --stop token / cancel--> draining --flush--> terminated
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from enum import StrEnum

from podfeed.models.events import Change
from podfeed.observability.logging import get_logger
from podfeed.observability.metrics import changes_dropped_total, changes_published_total, pending_topics

_log = get_logger("aggregator")

DEFAULT_CHECK_INTERVAL = 10.0

Dispatch = Callable[[str, int], None]


class AggregatorState(StrEnum):
    """Lifecycle state of a ChangeAggregator."""

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class ChangeAggregator:
    """Coalesces changes per topic and fires ``dispatch(topic, count)`` per window.

    Args:
        dispatch:      Non-blocking hand-off to the refresh action, normally
                       ``TriggerPool.submit``. Must return promptly.
        stop_event:    Shutdown token. Setting it drains and flushes.
        interval:      Settlement window in seconds.
        queue_maxsize: 0 for an unbounded input queue; a positive value makes
                       ``publish`` wait for space when the queue is full.
    """

    def __init__(
        self,
        dispatch: Dispatch,
        stop_event: asyncio.Event,
        interval: float = DEFAULT_CHECK_INTERVAL,
        queue_maxsize: int = 0,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._dispatch = dispatch
        self._stop = stop_event
        self._interval = interval
        self._queue: asyncio.Queue[Change] = asyncio.Queue(maxsize=queue_maxsize)
        self._pending: dict[str, int] = {}
        self._state = AggregatorState.IDLE
        self._closed = False

    @property
    def state(self) -> AggregatorState:
        return self._state

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def pending(self) -> dict[str, int]:
        """Snapshot of the pending-count table."""
        return dict(self._pending)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def publish(self, change: Change) -> bool:
        """Enqueue *change* for counting.

        Returns False (and drops the change) once the input has been closed.
        """
        if self._closed:
            changes_dropped_total.labels(reason="closed").inc()
            _log.debug("change_dropped_input_closed", topic=change.topic)
            return False
        await self._queue.put(change)
        changes_published_total.inc()
        return True

    # ------------------------------------------------------------------
    # Consumer side (aggregator task only)
    # ------------------------------------------------------------------

    def record(self, change: Change) -> None:
        previous = self._pending.get(change.topic, 0)
        self._pending[change.topic] = previous + 1
        if previous == 0:
            pending_topics.inc()
        _log.debug("change_received", topic=change.topic, pending=previous + 1)

    def tick(self) -> list[tuple[str, int]]:
        """Fire every topic with pending changes and reset it to zero."""
        fired: list[tuple[str, int]] = []
        for topic, count in self._pending.items():
            if count > 0:
                self._fire(topic, count)
                self._pending[topic] = 0
                fired.append((topic, count))
            else:
                _log.debug("no_changes", topic=topic, window_seconds=self._interval)
        if fired:
            pending_topics.dec(len(fired))
        return fired

    def flush(self) -> list[tuple[str, int]]:
        """Fire every nonzero topic regardless of tick timing."""
        fired: list[tuple[str, int]] = []
        for topic, count in self._pending.items():
            if count > 0:
                self._fire(topic, count)
                self._pending[topic] = 0
                fired.append((topic, count))
        if fired:
            pending_topics.dec(len(fired))
        return fired

    def _fire(self, topic: str, count: int) -> None:
        _log.info("action_triggered", topic=topic, changes=count)
        try:
            self._dispatch(topic, count)
        except Exception as exc:
            # The count is reset by the caller either way.
            _log.error("action_dispatch_failed", topic=topic, changes=count, error=str(exc))

    async def run(self) -> None:
        """Consume changes and tick until the stop token is set, then flush."""
        if self._state is not AggregatorState.IDLE:
            raise RuntimeError(f"aggregator cannot run from state {self._state}")
        self._state = AggregatorState.RUNNING
        _log.info("aggregator_started", interval=self._interval)

        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        stop_waiter = asyncio.ensure_future(self._stop.wait())
        getter: asyncio.Future[Change] | None = None
        try:
            while True:
                if getter is None:
                    getter = asyncio.ensure_future(self._queue.get())
                timeout = max(0.0, next_tick - loop.time())
                done, _ = await asyncio.wait(
                    {getter, stop_waiter},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if getter in done:
                    self.record(getter.result())
                    getter = None
                if stop_waiter in done:
                    break
                now = loop.time()
                if now >= next_tick:
                    self.tick()
                    while next_tick <= now:
                        next_tick += self._interval
        finally:
            if getter is not None:
                if getter.done() and not getter.cancelled():
                    self.record(getter.result())
                else:
                    getter.cancel()
            stop_waiter.cancel()
            self._shutdown()

    def _shutdown(self) -> None:
        self._state = AggregatorState.DRAINING
        self._closed = True
        _log.info("aggregator_draining", queued=self._queue.qsize())
        while True:
            try:
                change = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.record(change)
        fired = self.flush()
        self._state = AggregatorState.TERMINATED
        _log.info("aggregator_stopped", flushed_topics=len(fired))
