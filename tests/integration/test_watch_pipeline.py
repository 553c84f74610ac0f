"""Integration tests for the watch pipeline.

Pod notifications flow from a PodWatcher (over a fake watch stream) through
the classifier and the aggregator into the trigger pool. The app-level tests
run a real refresh script from a temporary directory.
"""

from __future__ import annotations

import asyncio
import stat
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import prometheus_client
import pytest

from podfeed.aggregator import ChangeAggregator
from podfeed.app import PodFeedApp
from podfeed.collector import ChangeClassifier, PodWatcher
from podfeed.collector import pod_watcher as pod_watcher_module
from podfeed.errors import ComponentStartupError
from podfeed.models.config import MetricsConfig, PodFeedConfig, TriggerConfig, WatchConfig
from podfeed.models.events import PodEvent, TriggerResult
from podfeed.trigger import ActionTrigger, TriggerPool

from ..conftest import FakeWatch, make_pod, make_pod_list, watch_event

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingTrigger(ActionTrigger):
    def __init__(self) -> None:
        self.runs: list[tuple[str, int]] = []

    async def run(self, topic: str, count: int) -> TriggerResult:
        self.runs.append((topic, count))
        return TriggerResult(topic=topic, count=count, returncode=0)


def _make_v1(*lists: Any) -> MagicMock:
    v1 = MagicMock()
    v1.list_pod_for_all_namespaces = AsyncMock(side_effect=list(lists))
    return v1


def _ip_churn() -> FakeWatch:
    """Three material changes for d2-web2 plus noise that must be ignored."""
    return FakeWatch(
        [
            watch_event("MODIFIED", make_pod(ip="10.0.0.5", resource_version="101")),
            watch_event("MODIFIED", make_pod(ip="10.0.0.6", resource_version="102")),
            watch_event("MODIFIED", make_pod(ip="10.0.0.6", resource_version="103")),
            watch_event("MODIFIED", make_pod(name="sidecar", ip="10.0.0.9", labels={}, resource_version="104")),
            watch_event("DELETED", make_pod(ip="10.0.0.6", resource_version="105")),
        ]
    )


def _initial_list() -> Any:
    return make_pod_list(
        make_pod(ip=None),
        make_pod(name="sidecar", ip="10.0.0.8", labels={}),
        resource_version="100",
    )


def _script(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "refreshFeed.sh"
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


async def _wait_until(predicate: Any, timeout: float = 5.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


# ---------------------------------------------------------------------------
# Watcher -> classifier -> aggregator -> pool
# ---------------------------------------------------------------------------


class TestPipeline:
    async def test_ip_churn_is_collapsed_into_one_refresh(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(pod_watcher_module.watch, "Watch", _ip_churn())
        trigger = RecordingTrigger()
        pool = TriggerPool(trigger, workers=2)
        await pool.start()

        stop = asyncio.Event()
        classifier = ChangeClassifier(label_key="app")
        aggregator = ChangeAggregator(dispatch=pool.submit, stop_event=stop, interval=60.0)
        seen: list[PodEvent] = []

        async def handle(event: PodEvent) -> None:
            seen.append(event)
            change = classifier.classify(event)
            if change is not None:
                await aggregator.publish(change)

        watcher = PodWatcher(_make_v1(_initial_list()), handler=handle, stop_event=stop, watch_timeout_seconds=60)
        agg_task = asyncio.create_task(aggregator.run())
        watch_task = asyncio.create_task(watcher.run())

        await _wait_until(lambda: len(seen) == 7)
        assert trigger.runs == []

        stop.set()
        await asyncio.wait_for(watch_task, timeout=5.0)
        await asyncio.wait_for(agg_task, timeout=5.0)
        await pool.stop(timeout=5.0)

        assert trigger.runs == [("d2-web2", 3)]

    async def test_tick_dispatches_while_running(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(pod_watcher_module.watch, "Watch", _ip_churn())
        trigger = RecordingTrigger()
        pool = TriggerPool(trigger, workers=1)
        await pool.start()

        stop = asyncio.Event()
        classifier = ChangeClassifier()
        aggregator = ChangeAggregator(dispatch=pool.submit, stop_event=stop, interval=0.2)

        async def handle(event: PodEvent) -> None:
            change = classifier.classify(event)
            if change is not None:
                await aggregator.publish(change)

        watcher = PodWatcher(_make_v1(_initial_list()), handler=handle, stop_event=stop)
        tasks = [asyncio.create_task(aggregator.run()), asyncio.create_task(watcher.run())]
        try:
            await _wait_until(lambda: bool(trigger.runs))
        finally:
            stop.set()
            await asyncio.wait_for(asyncio.gather(*tasks), timeout=5.0)
            await pool.stop(timeout=5.0)

        assert sum(count for topic, count in trigger.runs if topic == "d2-web2") == 3
        assert {topic for topic, _ in trigger.runs} == {"d2-web2"}


# ---------------------------------------------------------------------------
# PodFeedApp with a real refresh script
# ---------------------------------------------------------------------------


def _app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, interval: float, metrics_port: int = 0) -> PodFeedApp:
    _script(tmp_path, 'echo "$1" >> refreshed.log')
    v1 = _make_v1(_initial_list())

    async def _fake_k8s_client(self: PodFeedApp) -> None:
        self._core_v1 = v1

    monkeypatch.setattr(PodFeedApp, "_start_k8s_client", _fake_k8s_client)
    monkeypatch.setattr(pod_watcher_module.watch, "Watch", _ip_churn())
    config = PodFeedConfig(
        watch=WatchConfig(check_interval=interval),
        metrics=MetricsConfig(port=metrics_port),
        trigger=TriggerConfig(command="./refreshFeed.sh", timeout_seconds=5.0, workers=1, cwd=str(tmp_path)),
    )
    return PodFeedApp(config, watch=True, serve=False)


class TestApp:
    async def test_stop_flushes_pending_refresh(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        app = _app(tmp_path, monkeypatch, interval=60.0)
        await app.start()
        assert app.running
        await asyncio.sleep(0.2)

        await app.stop()

        log = tmp_path / "refreshed.log"
        assert log.read_text().splitlines() == ["d2-web2"]
        assert not app.running

    async def test_refresh_runs_on_tick(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        app = _app(tmp_path, monkeypatch, interval=0.2)
        log = tmp_path / "refreshed.log"
        await app.start()
        try:
            await _wait_until(log.exists)
        finally:
            await app.stop()

        assert "d2-web2" in log.read_text().splitlines()

    async def test_metrics_port_in_use_is_a_startup_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _port_taken(port: int, *args: Any, **kwargs: Any) -> None:
            raise OSError(98, "Address already in use")

        monkeypatch.setattr(prometheus_client, "start_http_server", _port_taken)
        app = _app(tmp_path, monkeypatch, interval=60.0, metrics_port=9100)

        with pytest.raises(ComponentStartupError) as exc_info:
            await app.start()
        await app.stop()

        assert exc_info.value.component == "metrics_exporter"
        assert isinstance(exc_info.value.cause, OSError)
        assert not app.running

    def test_nothing_enabled_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            PodFeedApp(PodFeedConfig(), watch=False, serve=False)
