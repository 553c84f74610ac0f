"""Shared fixtures and factories for podfeed tests.

Pods are built from real ``kubernetes_asyncio`` model classes so the
boundary conversion is exercised exactly as in production.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest
from kubernetes_asyncio.client import V1ObjectMeta, V1Pod, V1PodList, V1PodStatus, V1ListMeta

from podfeed.models.events import PodObservation


def make_pod(
    name: str = "web-7b4f8c6d-x2kj",
    namespace: str = "d2",
    ip: str | None = "10.0.0.5",
    labels: dict[str, str] | None = None,
    resource_version: str = "1",
) -> V1Pod:
    """Create a V1Pod with sensible defaults for testing."""
    return V1Pod(
        metadata=V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={"app": "web2"} if labels is None else labels,
            resource_version=resource_version,
        ),
        status=V1PodStatus(pod_ip=ip),
    )


def make_pod_list(*pods: V1Pod, resource_version: str = "100") -> V1PodList:
    return V1PodList(items=list(pods), metadata=V1ListMeta(resource_version=resource_version))


def make_obs(
    name: str = "web-7b4f8c6d-x2kj",
    namespace: str = "d2",
    ip: str = "10.0.0.5",
    labels: dict[str, str] | None = None,
) -> PodObservation:
    """Create a PodObservation directly."""
    return PodObservation(
        name=name,
        namespace=namespace,
        ip=ip,
        labels={"app": "web2"} if labels is None else labels,
    )


class RecordingDispatch:
    """Stands in for TriggerPool.submit and remembers every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

    def __call__(self, topic: str, count: int) -> None:
        self.calls.append((topic, count))

    def for_topic(self, topic: str) -> list[int]:
        return [count for t, count in self.calls if t == topic]



class _FakeStream:
    def __init__(self, events: list[Any] | None) -> None:
        self._events = events

    async def __aenter__(self) -> _FakeStream:
        return self

    async def __aexit__(self, *exc: object) -> bool:
        return False

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._gen()

    async def _gen(self) -> AsyncIterator[Any]:
        if self._events is None:
            await asyncio.Event().wait()
        for item in self._events or []:
            if isinstance(item, Exception):
                raise item
            yield item


class FakeWatch:
    """Replaces kubernetes_asyncio.watch.Watch; one batch of events per stream() call.

    Exceptions in a batch are raised from the stream. When the batches run
    out the stream blocks until cancelled.
    """

    def __init__(self, *batches: list[Any]) -> None:
        self._batches = list(batches)
        self.stream_kwargs: list[dict[str, Any]] = []

    def __call__(self) -> FakeWatch:
        return self

    def stream(self, func: Any, **kwargs: Any) -> _FakeStream:
        self.stream_kwargs.append(kwargs)
        return _FakeStream(self._batches.pop(0) if self._batches else None)


def watch_event(event_type: str, pod: Any) -> dict[str, Any]:
    return {"type": event_type, "object": pod, "raw_object": {}}


@pytest.fixture
def dispatch() -> RecordingDispatch:
    return RecordingDispatch()


@pytest.fixture
def stop_event() -> asyncio.Event:
    return asyncio.Event()
