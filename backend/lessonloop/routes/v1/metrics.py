"""
Prometheus metrics endpoint.

Public, unauthenticated, following standard Prometheus practice. Exposes the
custom registry fed by ``@BaseService.measure_operation`` and the domain
counters.
"""

from fastapi import APIRouter, Response

from ...database import get_db_pool_status
from ...monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["monitoring-v1"])


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=prometheus_metrics.get_metrics(), media_type=prometheus_metrics.get_content_type())


@router.get("/health")
def health() -> dict[str, object]:
    return {"status": "ok", "db_pool": get_db_pool_status()}
