"""REST API layer (feed server) for podfeed.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by podfeed.app bootstrap).
"""

from podfeed.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
