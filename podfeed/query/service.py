"""Pod lookup by namespace and label selector."""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException

from podfeed.errors import InvalidQueryError, PodQueryError
from podfeed.models.events import PodInfo
from podfeed.observability.logging import get_logger

_log = get_logger("query.service")


class PodQueryService:
    """Lists pods matching a label selector in one namespace.

    Args:
        core_v1: A ``kubernetes_asyncio.client.CoreV1Api`` (or compatible).
    """

    def __init__(self, core_v1: Any) -> None:
        self._v1 = core_v1

    async def list_pods(self, namespace: str, label_selector: str) -> list[PodInfo]:
        """Return ``(name, ip)`` for every matching pod; ``[]`` when none match.

        Raises:
            InvalidQueryError: namespace or selector is empty.
            PodQueryError:     the Kubernetes API call failed.
        """
        namespace = (namespace or "").strip()
        label_selector = (label_selector or "").strip()
        if not namespace:
            raise InvalidQueryError("namespace cannot be empty")
        if not label_selector:
            raise InvalidQueryError("label selector cannot be empty")

        try:
            pod_list = await self._v1.list_namespaced_pod(
                namespace=namespace,
                label_selector=label_selector,
            )
        except ApiException as exc:
            _log.warning(
                "pod_query_failed",
                namespace=namespace,
                label_selector=label_selector,
                status=exc.status,
                reason=exc.reason,
            )
            raise PodQueryError(f"error querying pods: {exc.status} {exc.reason}") from exc
        except Exception as exc:
            _log.warning("pod_query_failed", namespace=namespace, label_selector=label_selector, error=str(exc))
            raise PodQueryError(f"error querying pods: {exc}") from exc

        pods = [
            PodInfo(
                name=pod.metadata.name,
                ip_address=(pod.status.pod_ip if pod.status else None) or "",
            )
            for pod in pod_list.items or []
        ]
        _log.debug("pod_query", namespace=namespace, label_selector=label_selector, matches=len(pods))
        return pods
