"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class KubeConfig:
    """Cluster connection configuration.

    In-cluster credentials are always tried first; ``kubeconfig`` and
    ``context`` only apply to the fallback.
    """

    kubeconfig: str = ""
    context: str = ""


@dataclass
class WatchConfig:
    """Pod watcher and change aggregator configuration."""

    label_key: str = "app"
    check_interval: float = 10.0
    queue_maxsize: int = 0  # 0 = unbounded
    watch_timeout_seconds: int = 300


@dataclass
class TriggerConfig:
    """Refresh action configuration."""

    command: str = "./refreshFeed.sh"
    timeout_seconds: float = 30.0
    workers: int = 4
    cwd: str = ""


@dataclass
class APIConfig:
    """Feed server (REST API) configuration."""

    host: str = "0.0.0.0"
    port: int = 9090


@dataclass
class MetricsConfig:
    """Standalone Prometheus exporter used in watch-only mode."""

    port: int = 0  # 0 = disabled


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class PodFeedConfig:
    """Top-level podfeed configuration."""

    kube: KubeConfig = field(default_factory=KubeConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    api: APIConfig = field(default_factory=APIConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
