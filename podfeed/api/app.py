"""FastAPI application factory for the podfeed feed server.

Usage::

    from podfeed.api.app import create_app

    app = create_app(query_service=PodQueryService(core_v1))

The factory is used by both the production bootstrap (``podfeed.app``) and
unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from podfeed.api.routes import router
from podfeed.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def create_app(query_service: Any, config: Any = None) -> FastAPI:
    """Create and configure the feed server application.

    Args:
        query_service: PodQueryService (or anything with an async
                       ``list_pods(namespace, label_selector)``).
        config:        Optional PodFeedConfig, kept for handlers.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from podfeed import __version__

    app = FastAPI(
        title="podfeed",
        summary="Pod lookup by namespace and label selector",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
    )

    app.state.query_service = query_service
    app.state.config = config

    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Undecodable or mistyped request bodies are client errors (400)."""
        errors = exc.errors()
        detail = str(errors[0].get("msg", "")) if errors else "Invalid input"
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_INPUT", detail=f"Invalid input: {detail}").model_dump(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        _request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=_HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
                detail=str(exc.detail),
            ).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
