"""Pod observation and change event data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

NO_IP = "<none>"


class PodOperation(StrEnum):
    """Kind of pod notification delivered by the watcher."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class PodObservation:
    """Point-in-time view of a pod as seen by the watcher.

    Built once at the watch boundary; downstream components never touch the
    raw Kubernetes object.
    """

    name: str
    namespace: str
    ip: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    @classmethod
    def from_pod(cls, pod: Any) -> PodObservation:
        """Build an observation from a ``V1Pod``-shaped object.

        Missing metadata or status sections yield empty fields rather than
        errors.
        """
        metadata = getattr(pod, "metadata", None)
        status = getattr(pod, "status", None)
        labels = getattr(metadata, "labels", None) or {}
        return cls(
            name=str(getattr(metadata, "name", None) or ""),
            namespace=str(getattr(metadata, "namespace", None) or ""),
            ip=str(getattr(status, "pod_ip", None) or ""),
            labels={str(k): str(v) for k, v in labels.items()},
        )


@dataclass(frozen=True)
class PodAdded:
    pod: PodObservation
    operation: PodOperation = PodOperation.ADD
    marker: str = "+"


@dataclass(frozen=True)
class PodUpdated:
    old: PodObservation
    pod: PodObservation
    operation: PodOperation = PodOperation.UPDATE
    marker: str = "~"


@dataclass(frozen=True)
class PodDeleted:
    pod: PodObservation
    operation: PodOperation = PodOperation.DELETE
    marker: str = "-"


PodEvent = PodAdded | PodUpdated | PodDeleted


@dataclass(frozen=True)
class Change:
    """A material pod IP change attributed to a topic.

    Produced by the classifier, consumed exactly once by the aggregator.
    """

    topic: str


@dataclass(frozen=True)
class TriggerResult:
    """Outcome of one refresh action run."""

    topic: str
    count: int
    returncode: int | None = None
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    error: str | None = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.returncode == 0


@dataclass(frozen=True)
class PodInfo:
    """Query result entry: pod name and current IP."""

    name: str
    ip_address: str
