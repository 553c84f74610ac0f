"""Application bootstrap for podfeed.

Wires components in dependency order and manages the asyncio lifecycle.
Startup order: logging → K8s client → trigger pool → aggregator → pod watcher
              → metrics exporter → REST

The watcher/aggregator pair and the feed server can run independently or in
one process. A single ``asyncio.Event`` is the shutdown token; it is handed
to the watcher and the aggregator at construction. OS signals only set it.

Shutdown order: watcher stops producing → aggregator drains and flushes →
trigger pool finishes queued refreshes (bounded by a grace period) → REST
server exits → K8s client closed.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from podfeed.errors import ComponentStartupError
from podfeed.models.config import PodFeedConfig
from podfeed.models.events import PodEvent
from podfeed.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class PodFeedApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Args:
        config:         Resolved configuration.
        watch:          Run the pod watcher and change aggregator.
        serve:          Run the feed server REST API.
        shutdown_event: Shutdown token; created when not supplied.
    """

    def __init__(
        self,
        config: PodFeedConfig,
        watch: bool = True,
        serve: bool = False,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        if not (watch or serve):
            raise ValueError("at least one of watch or serve must be enabled")
        self.config = config
        self.watch_enabled = watch
        self.serve_enabled = serve
        self.shutdown_event = shutdown_event or asyncio.Event()

        self._api_client: Any = None
        self._core_v1: Any = None
        self._classifier: Any = None
        self._trigger_pool: Any = None
        self._aggregator: Any = None
        self._watcher: Any = None
        self._rest_server: Any = None

        self._aggregator_task: asyncio.Task[None] | None = None
        self._watcher_task: asyncio.Task[None] | None = None
        self._rest_task: asyncio.Task[None] | None = None

        self._running = False
        self._log: structlog.stdlib.BoundLogger = get_logger("app")

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all enabled components in dependency order.

        Raises ComponentStartupError if a mandatory component cannot start.
        """
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info(
            "podfeed starting",
            version=_podfeed_version(),
            watch=self.watch_enabled,
            serve=self.serve_enabled,
        )

        await self._start_k8s_client()

        if self.watch_enabled:
            await self._start_trigger_pool()
            self._start_aggregator()
            self._start_watcher()
            self._start_metrics_exporter()

        if self.serve_enabled:
            await self._start_rest()

        self._running = True
        self._log.info("podfeed started")

    async def _start_k8s_client(self) -> None:
        """Configure kubernetes-asyncio from in-cluster credentials or a kubeconfig."""
        self._log.debug("starting k8s client")
        try:
            from kubernetes_asyncio import client as k8s_client
            from kubernetes_asyncio import config as k8s_config

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                kube = self.config.kube
                self._log.info(
                    "k8s client configured from kubeconfig", kubeconfig=kube.kubeconfig, context=kube.context
                )
                await k8s_config.load_kube_config(
                    config_file=kube.kubeconfig or None,
                    context=kube.context or None,
                )

            self._api_client = k8s_client.ApiClient()
            version = await k8s_client.VersionApi(self._api_client).get_code()
            self._core_v1 = k8s_client.CoreV1Api(self._api_client)
            self._log.info("k8s api reachable", server_version=getattr(version, "git_version", ""))
        except Exception as exc:
            raise ComponentStartupError("k8s_client", exc) from exc

    async def _start_trigger_pool(self) -> None:
        from podfeed.trigger import build_trigger_pool

        try:
            pool = build_trigger_pool(self.config.trigger)
            await pool.start()
        except Exception as exc:
            raise ComponentStartupError("trigger_pool", exc) from exc
        self._trigger_pool = pool
        self._log.info(
            "trigger pool started",
            command=self.config.trigger.command,
            workers=self.config.trigger.workers,
            timeout=self.config.trigger.timeout_seconds,
        )

    def _start_aggregator(self) -> None:
        from podfeed.aggregator import ChangeAggregator
        from podfeed.collector import ChangeClassifier

        assert self._trigger_pool is not None
        self._classifier = ChangeClassifier(label_key=self.config.watch.label_key)
        self._aggregator = ChangeAggregator(
            dispatch=self._trigger_pool.submit,
            stop_event=self.shutdown_event,
            interval=self.config.watch.check_interval,
            queue_maxsize=self.config.watch.queue_maxsize,
        )
        self._aggregator_task = self._spawn(self._aggregator.run(), "change-aggregator")

    def _start_watcher(self) -> None:
        from podfeed.collector import PodWatcher

        assert self._core_v1 is not None
        self._watcher = PodWatcher(
            self._core_v1,
            handler=self.handle_pod_event,
            stop_event=self.shutdown_event,
            watch_timeout_seconds=self.config.watch.watch_timeout_seconds,
        )
        self._watcher_task = self._spawn(self._watcher.run(), "pod-watcher")
        self._log.info("pod watcher started", label_key=self.config.watch.label_key)

    def _start_metrics_exporter(self) -> None:
        port = self.config.metrics.port
        # The REST API already serves /metrics.
        if not port or self.serve_enabled:
            return
        from prometheus_client import start_http_server

        try:
            start_http_server(port)
        except Exception as exc:
            raise ComponentStartupError("metrics_exporter", exc) from exc
        self._log.info("metrics exporter started", port=port)

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._core_v1 is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn

            from podfeed.api import build_app
            from podfeed.query import PodQueryService

            fastapi_app = build_app(query_service=PodQueryService(self._core_v1), config=self.config)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host=self.config.api.host,
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            self._rest_task = self._spawn(server.serve(), "rest-server")
            self._rest_server = server
            self._log.info("rest api started", host=self.config.api.host, port=self.config.api.port)
        except Exception as exc:
            raise ComponentStartupError("rest", exc) from exc

    async def handle_pod_event(self, event: PodEvent) -> None:
        """Classify a pod event and publish the resulting change, if any."""
        change = self._classifier.classify(event)
        if change is not None:
            await self._aggregator.publish(change)

    def _spawn(self, coro: Any, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        """A component task ending before shutdown takes the whole app down."""
        if self.shutdown_event.is_set() or task.cancelled():
            return
        exc = task.exception()
        self._log.error("component task exited unexpectedly", task=task.get_name(), error=str(exc) if exc else None)
        self.shutdown_event.set()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop every started component in reverse order. Safe to call twice."""
        log = self._log
        log.info("podfeed shutting down")
        self.shutdown_event.set()
        self._running = False

        await self._await_task("pod-watcher", self._watcher_task)
        self._watcher_task = None
        await self._await_task("change-aggregator", self._aggregator_task)
        self._aggregator_task = None

        if self._trigger_pool is not None:
            try:
                await self._trigger_pool.stop(timeout=_SHUTDOWN_GRACE_SECONDS)
            except Exception as exc:
                log.error("component stop raised an error", component="trigger_pool", error=str(exc))
            self._trigger_pool = None

        if self._rest_server is not None:
            self._rest_server.should_exit = True
            await self._await_task("rest-server", self._rest_task)
            self._rest_server = None
            self._rest_task = None

        await self._stop_k8s_client()
        log.info("podfeed stopped")

    async def _await_task(self, name: str, task: asyncio.Task[None] | None) -> None:
        if task is None:
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            self._log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        except Exception as exc:
            self._log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        try:
            await self._api_client.close()
        except Exception as exc:
            self._log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None
        self._core_v1 = None


def _podfeed_version() -> str:
    from podfeed import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: PodFeedConfig, watch: bool = True, serve: bool = False) -> None:
    """Run until SIGINT/SIGTERM (or a component failure), then shut down."""
    app = PodFeedApp(config, watch=watch, serve=serve)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.shutdown_event.set)

    try:
        await app.start()
        await app.shutdown_event.wait()
    except ComponentStartupError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
    await app.stop()
