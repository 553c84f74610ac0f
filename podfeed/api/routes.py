"""Feed server routes.

GET  /pods?namespace=NS&label=SEL
POST /pods  {"Namespace": NS, "Label": SEL}
    -> 200 [{"name": ..., "ip_address": ...}]
GET  /healthz
GET  /metrics
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from podfeed.api.schemas import ErrorResponse, HealthResponse, PodInfoResponse, PodQueryRequest
from podfeed.errors import InvalidQueryError, PodQueryError
from podfeed.observability.logging import get_logger
from podfeed.observability.metrics import query_requests_total

_log = get_logger("api.routes")

router = APIRouter()


def _error(status_code: int, error: str, detail: str) -> JSONResponse:
    query_requests_total.labels(status=str(status_code)).inc()
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, detail=detail).model_dump(),
    )


async def _query_pods(request: Request, namespace: str, label: str) -> list[PodInfoResponse] | JSONResponse:
    service = request.app.state.query_service
    try:
        pods = await service.list_pods(namespace, label)
    except InvalidQueryError as exc:
        return _error(400, "INVALID_QUERY", str(exc))
    except PodQueryError as exc:
        return _error(500, "UPSTREAM_ERROR", f"Error retrieving pods: {exc}")

    query_requests_total.labels(status="200").inc()
    return [PodInfoResponse(name=pod.name, ip_address=pod.ip_address) for pod in pods]


@router.get("/pods", response_model=list[PodInfoResponse])
async def get_pods(
    request: Request,
    namespace: str = "",
    label: str = "",
) -> list[PodInfoResponse] | JSONResponse:
    if not label or not namespace:
        return _error(400, "MISSING_PARAMETER", "Missing 'label' or 'namespace' query parameter")
    return await _query_pods(request, namespace, label)


@router.post("/pods", response_model=list[PodInfoResponse])
async def post_pods(request: Request, body: PodQueryRequest) -> list[PodInfoResponse] | JSONResponse:
    _log.debug("pod_query_request", namespace=body.namespace, label=body.label)
    if not body.label or not body.namespace:
        return _error(400, "MISSING_PARAMETER", "Missing 'Label' or 'Namespace' in request body")
    return await _query_pods(request, body.namespace, body.label)


@router.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    from podfeed import __version__

    return HealthResponse(status="ok", version=__version__)


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
