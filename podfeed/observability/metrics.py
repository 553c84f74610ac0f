"""Prometheus metrics for podfeed.

All collectors are registered on the default registry so that both the
standalone exporter (watch mode) and the ``/metrics`` route expose them.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

pod_events_total = Counter(
    "podfeed_pod_events_total",
    "Pod notifications received from the watch stream.",
    ["operation"],
)

changes_published_total = Counter(
    "podfeed_changes_published_total",
    "Classified pod IP changes accepted by the aggregator.",
)

changes_dropped_total = Counter(
    "podfeed_changes_dropped_total",
    "Pod notifications that did not become a change.",
    ["reason"],
)

pending_topics = Gauge(
    "podfeed_pending_topics",
    "Topics with a nonzero pending change count.",
)

trigger_runs_total = Counter(
    "podfeed_trigger_runs_total",
    "Refresh action runs by outcome.",
    ["outcome"],
)

trigger_duration_seconds = Histogram(
    "podfeed_trigger_duration_seconds",
    "Refresh action wall-clock duration.",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

watch_restarts_total = Counter(
    "podfeed_watch_restarts_total",
    "Pod watch stream restarts by reason.",
    ["reason"],
)

query_requests_total = Counter(
    "podfeed_query_requests_total",
    "Feed server pod queries by HTTP status.",
    ["status"],
)
