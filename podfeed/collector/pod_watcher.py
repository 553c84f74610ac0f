"""Cluster-wide pod watcher.

Lists every pod once, then follows the watch stream from the list's
resourceVersion. A local store keyed by ``(namespace, name)`` lets update
notifications carry the previous state, which the raw watch API does not.

When the stream's resourceVersion expires (410 Gone) the watcher relists and
diffs the result against the store, emitting adds, updates and deletes for
whatever changed while it was disconnected. Other failures are retried with
exponential back-off. There is no periodic resync.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from podfeed.models.events import PodAdded, PodDeleted, PodEvent, PodObservation, PodUpdated
from podfeed.observability.logging import get_logger
from podfeed.observability.metrics import pod_events_total, watch_restarts_total

_log = get_logger("collector.pod_watcher")

_INITIAL_BACKOFF = 1.0
_MAX_BACKOFF = 30.0
DEFAULT_WATCH_TIMEOUT_SECONDS = 300

PodEventHandler = Callable[[PodEvent], Awaitable[None]]


class _WatchExpired(Exception):
    """The watch resourceVersion is too old; a relist is required."""


class _WatchError(Exception):
    """The API server sent an ERROR event other than 410."""


class PodWatcher:
    """Feeds :class:`PodEvent` notifications for all pods to *handler*.

    Args:
        core_v1:               ``kubernetes_asyncio.client.CoreV1Api``.
        handler:               Awaited for every pod event, in stream order.
        stop_event:            Shutdown token; setting it ends :meth:`run`.
        watch_timeout_seconds: Server-side timeout of each watch request.
    """

    def __init__(
        self,
        core_v1: Any,
        handler: PodEventHandler,
        stop_event: asyncio.Event,
        watch_timeout_seconds: int = DEFAULT_WATCH_TIMEOUT_SECONDS,
    ) -> None:
        self._v1 = core_v1
        self._handler = handler
        self._stop = stop_event
        self._watch_timeout = watch_timeout_seconds
        self._store: dict[tuple[str, str], PodObservation] = {}
        self._resource_version: str | None = None

    @property
    def store(self) -> dict[tuple[str, str], PodObservation]:
        return dict(self._store)

    @property
    def resource_version(self) -> str | None:
        return self._resource_version

    async def run(self) -> None:
        """Watch until the stop token is set."""
        _log.info("pod_watcher_started", watch_timeout=self._watch_timeout)
        loop_task = asyncio.create_task(self._loop(), name="pod-watch-loop")
        stop_waiter = asyncio.ensure_future(self._stop.wait())
        try:
            await asyncio.wait({loop_task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_waiter.cancel()
            if not loop_task.done():
                loop_task.cancel()
            await asyncio.gather(loop_task, return_exceptions=True)
        _log.info("pod_watcher_stopped", tracked_pods=len(self._store))

    async def _loop(self) -> None:
        backoff = _INITIAL_BACKOFF
        while not self._stop.is_set():
            try:
                if self._resource_version is None:
                    await self.relist()
                await self._watch()
                backoff = _INITIAL_BACKOFF
                continue
            except _WatchExpired:
                self._expire()
                continue
            except ApiException as exc:
                if exc.status == 410:
                    self._expire()
                    continue
                watch_restarts_total.labels(reason="api_error").inc()
                _log.warning("pod_watch_api_error", status=exc.status, reason=exc.reason, retry_in=backoff)
            except Exception as exc:
                watch_restarts_total.labels(reason="error").inc()
                _log.warning("pod_watch_error", error=str(exc), retry_in=backoff)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, _MAX_BACKOFF)

    def _expire(self) -> None:
        watch_restarts_total.labels(reason="expired").inc()
        _log.info("pod_watch_expired_relisting", resource_version=self._resource_version)
        self._resource_version = None

    async def relist(self) -> None:
        """List all pods and emit the difference against the local store."""
        pod_list = await self._v1.list_pod_for_all_namespaces()
        current: dict[tuple[str, str], PodObservation] = {}
        for item in pod_list.items or []:
            obs = PodObservation.from_pod(item)
            current[obs.key] = obs

        events: list[PodEvent] = []
        for key, obs in current.items():
            old = self._store.get(key)
            if old is None:
                events.append(PodAdded(pod=obs))
            elif old != obs:
                events.append(PodUpdated(old=old, pod=obs))
        for key, old in self._store.items():
            if key not in current:
                events.append(PodDeleted(pod=old))

        self._store = current
        self._resource_version = getattr(pod_list.metadata, "resource_version", None) or ""
        _log.info("pods_listed", pods=len(current), events=len(events), resource_version=self._resource_version)
        for event in events:
            await self._emit(event)

    async def _watch(self) -> None:
        async with watch.Watch().stream(
            self._v1.list_pod_for_all_namespaces,
            resource_version=self._resource_version,
            timeout_seconds=self._watch_timeout,
        ) as stream:
            async for raw_event in stream:
                event_type = raw_event.get("type", "")
                if event_type == "ERROR":
                    raw = raw_event.get("raw_object") or {}
                    if raw.get("code") == 410:
                        raise _WatchExpired()
                    raise _WatchError(str(raw.get("message", raw)))
                obj = raw_event.get("object")
                rv = getattr(getattr(obj, "metadata", None), "resource_version", None)
                if rv:
                    self._resource_version = rv
                pod_event = self.apply(event_type, obj)
                if pod_event is not None:
                    await self._emit(pod_event)

    def apply(self, event_type: str, obj: Any) -> PodEvent | None:
        """Update the store from one watch notification and return the pod event."""
        obs = PodObservation.from_pod(obj)
        old = self._store.get(obs.key)
        if event_type in ("ADDED", "MODIFIED"):
            self._store[obs.key] = obs
            if old is None:
                return PodAdded(pod=obs)
            return PodUpdated(old=old, pod=obs)
        if event_type == "DELETED":
            self._store.pop(obs.key, None)
            if not obs.ip and old is not None and old.ip:
                obs = replace(obs, ip=old.ip)
            return PodDeleted(pod=obs)
        # BOOKMARK and unknown types carry no pod state change.
        return None

    async def _emit(self, event: PodEvent) -> None:
        pod_events_total.labels(operation=event.operation.value).inc()
        try:
            await self._handler(event)
        except Exception as exc:
            _log.error(
                "pod_event_handler_error",
                operation=event.operation.value,
                pod=event.pod.name,
                namespace=event.pod.namespace,
                error=str(exc),
            )
