"""Core data structures for podfeed."""

from podfeed.models.config import PodFeedConfig
from podfeed.models.events import (
    NO_IP,
    Change,
    PodAdded,
    PodDeleted,
    PodEvent,
    PodInfo,
    PodObservation,
    PodOperation,
    PodUpdated,
    TriggerResult,
)

__all__ = [
    "NO_IP",
    "Change",
    "PodAdded",
    "PodDeleted",
    "PodEvent",
    "PodFeedConfig",
    "PodInfo",
    "PodObservation",
    "PodOperation",
    "PodUpdated",
    "TriggerResult",
]
