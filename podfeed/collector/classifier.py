"""Change classifier: decides which pod notifications are material IP changes.

A pod event becomes a :class:`~podfeed.models.events.Change` when

* it is an add and the pod already has an IP,
* it is an update and the IP value differs between old and new state, or
* it is a delete,

and the pod carries a non-empty value for the topic label (``app`` by
default). Unlabeled pods have no refresh target and are never attributed.
"""

from __future__ import annotations

from podfeed.models.events import (
    NO_IP,
    Change,
    PodAdded,
    PodDeleted,
    PodEvent,
    PodObservation,
    PodUpdated,
)
from podfeed.observability.logging import get_logger
from podfeed.observability.metrics import changes_dropped_total

_log = get_logger("collector.classifier")

DEFAULT_LABEL_KEY = "app"


def format_labels(labels: dict[str, str]) -> str:
    """Render labels as ``k=v, k=v`` (or ``None`` when empty) for log lines."""
    if not labels:
        return "None"
    return ", ".join(f"{key}={value}" for key, value in labels.items())


class ChangeClassifier:
    """Stateless classifier; safe to call from any number of producers."""

    def __init__(self, label_key: str = DEFAULT_LABEL_KEY) -> None:
        self.label_key = label_key

    def topic_for(self, pod: PodObservation) -> str | None:
        """Return ``<namespace>-<label value>`` or None when the label is missing."""
        value = pod.labels.get(self.label_key, "")
        if not value:
            return None
        return f"{pod.namespace}-{value}"

    def classify(self, event: PodEvent) -> Change | None:
        pod = event.pod
        _log.debug(
            "pod_event",
            op=event.marker,
            ip=pod.ip or NO_IP,
            pod=pod.name,
            namespace=pod.namespace,
            labels=format_labels(pod.labels),
        )

        if not self._is_material(event):
            changes_dropped_total.labels(reason="immaterial").inc()
            return None

        topic = self.topic_for(pod)
        if topic is None:
            changes_dropped_total.labels(reason="unlabeled").inc()
            return None
        return Change(topic=topic)

    @staticmethod
    def _is_material(event: PodEvent) -> bool:
        if isinstance(event, PodAdded):
            return bool(event.pod.ip)
        if isinstance(event, PodUpdated):
            return event.old.ip != event.pod.ip
        return isinstance(event, PodDeleted)
