"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from podfeed.models.config import (
    APIConfig,
    KubeConfig,
    LogConfig,
    MetricsConfig,
    PodFeedConfig,
    TriggerConfig,
    WatchConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"PODFEED_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    valid = {"json", "console"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log format: {value}. Must be one of {valid}")
    return value.lower()


def _validate_label_key(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Label key must not be empty")
    return value


def _kubeconfig_path() -> str:
    """PODFEED_KUBECONFIG, then KUBECONFIG, then ~/.kube/config when HOME is set."""
    path = _env("KUBECONFIG") or os.environ.get("KUBECONFIG", "")
    if path:
        return path
    home = os.environ.get("HOME", "")
    return os.path.join(home, ".kube", "config") if home else ""


def load_config() -> PodFeedConfig:
    """Load configuration from PODFEED_* environment variables."""
    return PodFeedConfig(
        kube=KubeConfig(
            kubeconfig=_kubeconfig_path(),
            context=_env("KUBE_CONTEXT", ""),
        ),
        watch=WatchConfig(
            label_key=_validate_label_key(_env("LABEL_KEY", "app")),
            check_interval=_env_float("CHECK_INTERVAL", 10.0, min_val=0.1),
            queue_maxsize=_env_int("QUEUE_MAXSIZE", 0, min_val=0),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=10, max_val=3600),
        ),
        trigger=TriggerConfig(
            command=_env("TRIGGER_COMMAND", "./refreshFeed.sh"),
            timeout_seconds=_env_float("TRIGGER_TIMEOUT", 30.0, min_val=1.0),
            workers=_env_int("TRIGGER_WORKERS", 4, min_val=1, max_val=64),
            cwd=_env("TRIGGER_CWD", ""),
        ),
        api=APIConfig(
            host=_env("API_HOST", "0.0.0.0"),
            port=_env_int("API_PORT", 9090, min_val=1024, max_val=65535),
        ),
        metrics=MetricsConfig(
            port=_env_int("METRICS_PORT", 0, min_val=0, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
