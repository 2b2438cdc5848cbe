"""
Prometheus metrics endpoint.

Exposes metrics in Prometheus text format for scraping.
"""

import structlog
from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..core.auth import get_services
from ..core.services import ServiceContainer

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="""
    Prometheus metrics endpoint in standard text format.

    **Key Metrics:**
    - rate_limit_decisions_total{decision} - Admissions and denials
    - remote_attempts_total{outcome} - Backend attempts
    - remote_operations_total{result} - Final results of resilient operations
    - disclosure_requests_total{record_type,outcome} - Reveal requests
    - audit_log_failures_total{record_type} - Failed audit calls
    - backend_online - Last connectivity probe result
    """,
)
async def get_metrics(services: ServiceContainer = Depends(get_services)) -> Response:
    metrics_collector = services.metrics

    if not metrics_collector:
        logger.warning("Metrics collector not initialized")
        return Response(
            content="# Metrics collector not initialized\n",
            media_type=CONTENT_TYPE_LATEST,
        )

    try:
        metrics_collector.update_system_metrics()
        metrics_data = generate_latest(metrics_collector.registry)
    except Exception as e:
        logger.error(
            "Failed to generate metrics",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        error_metrics = f"""# HELP sitegate_metrics_error Metrics generation errors
# TYPE sitegate_metrics_error counter
sitegate_metrics_error{{error="{type(e).__name__}"}} 1
"""
        return Response(content=error_metrics, media_type=CONTENT_TYPE_LATEST)

    logger.debug("Metrics scraped successfully", size_bytes=len(metrics_data))

    return Response(content=metrics_data, media_type=CONTENT_TYPE_LATEST)
