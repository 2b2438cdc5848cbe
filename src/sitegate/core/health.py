"""
Health checker for service dependencies.

Performs health checks for:
- Backend connectivity
- Rate limit counter store round trip
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import structlog

from .services import ServiceContainer

logger = structlog.get_logger(__name__)

PROBE_KEY = "rate_limit_healthcheck_probe"


@dataclass
class HealthCheck:
    """Individual health check result."""
    name: str
    status: str  # "healthy", "unhealthy"
    message: str
    details: Dict[str, Any]
    last_check: float


@dataclass
class HealthStatus:
    """Overall health status."""
    is_healthy: bool
    checks: Dict[str, HealthCheck]
    failed_checks: List[str]
    timestamp: float


class HealthChecker:
    """Readiness checks over the service container."""

    def __init__(self, services: ServiceContainer) -> None:
        self.services = services

    async def check_all(self) -> HealthStatus:
        """Perform all health checks and return overall status."""
        checks: Dict[str, HealthCheck] = {}
        failed_checks = []

        check_results = await asyncio.gather(
            self._check_backend(),
            self._check_store(),
            return_exceptions=True
        )

        check_names = ["backend", "quota_store"]
        for name, result in zip(check_names, check_results):
            if isinstance(result, BaseException):
                checks[name] = HealthCheck(
                    name=name,
                    status="unhealthy",
                    message=f"Check failed: {str(result)}",
                    details={"error": str(result), "error_type": type(result).__name__},
                    last_check=time.time()
                )
                failed_checks.append(name)
            else:
                checks[name] = result
                if result.status != "healthy":
                    failed_checks.append(name)

        return HealthStatus(
            is_healthy=len(failed_checks) == 0,
            checks=checks,
            failed_checks=failed_checks,
            timestamp=time.time(),
        )

    async def _check_backend(self) -> HealthCheck:
        connectivity = self.services.connectivity
        online = await connectivity.probe()
        return HealthCheck(
            name="backend",
            status="healthy" if online else "unhealthy",
            message="Backend reachable" if online else "Backend unreachable",
            details={"probe_url": connectivity.probe_url, "last_probe": connectivity.last_probe},
            last_check=time.time(),
        )

    async def _check_store(self) -> HealthCheck:
        store = self.services.store
        marker = str(time.time())
        await store.set(PROBE_KEY, marker)
        read_back = await store.get(PROBE_KEY)
        await store.delete(PROBE_KEY)

        if read_back != marker:
            logger.warning("Quota store round trip mismatch")
            return HealthCheck(
                name="quota_store",
                status="unhealthy",
                message="Store returned a different value",
                details={"store": type(store).__name__},
                last_check=time.time(),
            )

        return HealthCheck(
            name="quota_store",
            status="healthy",
            message="Store read/write OK",
            details={"store": type(store).__name__},
            last_check=time.time(),
        )
