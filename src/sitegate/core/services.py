"""
Service wiring.

Every service is built once at process start by build_services() and
passed to callers by reference; tests build their own containers with
fake backends, stores and clocks.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from ..config import Settings
from .audit import AuditLogger
from .backend import PersistenceBackend, RestBackend
from .connectivity import ConnectivityMonitor
from .disclosure import DisclosureGate, parse_role_allowlist
from .executor import DataClient, ResilientExecutor, Sleep
from .metrics import MetricsCollector
from .rate_limit import QuotaStore, RateLimiter
from .retry import RetryClassifier
from .store import InMemoryStore, JsonFileStore, KeyValueStore

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    """Process-wide service instances."""
    settings: Settings
    store: KeyValueStore
    backend: PersistenceBackend
    connectivity: ConnectivityMonitor
    rate_limiter: RateLimiter
    executor: ResilientExecutor
    data_client: DataClient
    audit_logger: AuditLogger
    disclosure_gate: DisclosureGate
    metrics: Optional[MetricsCollector] = None

    async def start(self) -> None:
        await self.backend.start()
        await self.connectivity.start()
        logger.info("Services started")

    async def stop(self) -> None:
        await self.connectivity.stop()
        await self.backend.stop()
        logger.info("Services stopped")


def build_store(settings: Settings) -> KeyValueStore:
    if settings.rate_limit.store_backend == "file":
        return JsonFileStore(settings.rate_limit.store_path)
    return InMemoryStore()


def build_services(
    settings: Settings,
    backend: Optional[PersistenceBackend] = None,
    store: Optional[KeyValueStore] = None,
    connectivity: Optional[ConnectivityMonitor] = None,
    metrics: Optional[MetricsCollector] = None,
    clock: Callable[[], float] = time.time,
    sleep: Sleep = asyncio.sleep,
) -> ServiceContainer:
    """Construct the service graph from settings, with optional overrides."""
    store = store if store is not None else build_store(settings)
    backend = backend if backend is not None else RestBackend(settings.backend)

    if connectivity is None:
        connectivity = ConnectivityMonitor(
            probe_url=settings.backend.rest_url + "/",
            interval_seconds=settings.backend.connectivity_probe_seconds,
            metrics=metrics,
        )

    rate_limiter = RateLimiter(
        QuotaStore(store),
        clock=clock,
        fail_open=settings.rate_limit.fail_open,
        metrics=metrics,
    )
    executor = ResilientExecutor(
        rate_limiter,
        classifier=RetryClassifier(settings.retry.non_retryable_codes),
        connectivity=connectivity,
        sleep=sleep,
        metrics=metrics,
    )
    data_client = DataClient(
        backend,
        executor,
        retry_settings=settings.retry,
        rate_limit_settings=settings.rate_limit,
    )
    audit_logger = AuditLogger(backend, metrics=metrics)
    disclosure_gate = DisclosureGate(
        data_client,
        audit_logger,
        role_allowlist=parse_role_allowlist(settings.disclosure.role_allowlist),
        access_type=settings.disclosure.access_type,
        metrics=metrics,
    )

    logger.info(
        "Services built",
        store=type(store).__name__,
        backend=type(backend).__name__,
        fail_open=settings.rate_limit.fail_open,
    )

    return ServiceContainer(
        settings=settings,
        store=store,
        backend=backend,
        connectivity=connectivity,
        rate_limiter=rate_limiter,
        executor=executor,
        data_client=data_client,
        audit_logger=audit_logger,
        disclosure_gate=disclosure_gate,
        metrics=metrics,
    )
