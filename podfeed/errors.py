"""Exception hierarchy for podfeed."""

from __future__ import annotations


class PodFeedError(Exception):
    """Base class for all podfeed errors."""


class ComponentStartupError(PodFeedError):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class InvalidQueryError(PodFeedError, ValueError):
    """Raised for a pod query with a missing namespace or label selector."""


class PodQueryError(PodFeedError):
    """Raised when the Kubernetes API rejects or fails a pod query."""


class TriggerPoolClosedError(PodFeedError):
    """Raised when a refresh is submitted to a pool that is shutting down."""
