"""On-demand pod queries backing the feed server."""

from podfeed.query.service import PodQueryService

__all__ = ["PodQueryService"]
