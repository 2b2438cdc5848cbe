"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /v1/disclosures/... - Sensitive field reveal and masking
- /v1/admin/rate-limits/... - Rate limit counter admin
- /metrics - Prometheus metrics
- /healthz, /readyz - Health checks
"""
from .admin import router as admin_router
from .disclosure import router as disclosure_router
from .healthz import router as healthz_router
from .metrics import router as metrics_router

__all__ = ["admin_router", "disclosure_router", "healthz_router", "metrics_router"]
