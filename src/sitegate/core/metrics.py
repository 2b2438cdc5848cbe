"""
Prometheus metrics collection.

In-memory counters and histograms; Prometheus handles storage.
"""

import time
from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for SiteGate.

    Every core service takes an optional collector so that tests can run
    without one, or with one bound to a private registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        registry = registry if registry is not None else REGISTRY
        self.registry = registry

        # Service info
        self.service_info = Info(
            "sitegate_service",
            "SiteGate service information",
            registry=registry,
        )
        self.service_info.info({
            "version": "0.1.0",
            "service": "sitegate",
        })

        # Request metrics
        self.requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        # Rate limiter metrics
        self.rate_limit_decisions_total = Counter(
            "rate_limit_decisions_total",
            "Rate limiter admission decisions",
            ["decision"],
            registry=registry,
        )

        self.rate_limit_store_errors_total = Counter(
            "rate_limit_store_errors_total",
            "Counter store failures during admission",
            ["policy"],
            registry=registry,
        )

        # Executor metrics
        self.remote_attempts_total = Counter(
            "remote_attempts_total",
            "Backend operation attempts",
            ["outcome"],
            registry=registry,
        )

        self.remote_operations_total = Counter(
            "remote_operations_total",
            "Completed resilient operations by final result",
            ["result"],
            registry=registry,
        )

        self.backoff_delay_seconds = Histogram(
            "remote_backoff_delay_seconds",
            "Backoff delay inserted before a retry",
            buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 16.0],
            registry=registry,
        )

        # Disclosure metrics
        self.disclosure_requests_total = Counter(
            "disclosure_requests_total",
            "Sensitive field reveal requests",
            ["record_type", "outcome"],
            registry=registry,
        )

        self.audit_log_failures_total = Counter(
            "audit_log_failures_total",
            "Audit log calls that failed",
            ["record_type"],
            registry=registry,
        )

        # Connectivity
        self.backend_online = Gauge(
            "backend_online",
            "1 if the backend was reachable on the last probe",
            registry=registry,
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=registry,
        )

        self._start_time = time.time()

    def record_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration_seconds: float
    ) -> None:
        """Record HTTP request metrics."""
        self.requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self.request_duration.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration_seconds)

    def record_admission(self, admitted: bool) -> None:
        self.rate_limit_decisions_total.labels(
            decision="admitted" if admitted else "denied"
        ).inc()

    def record_store_error(self, fail_open: bool) -> None:
        self.rate_limit_store_errors_total.labels(
            policy="fail_open" if fail_open else "fail_closed"
        ).inc()

    def record_attempt(self, outcome: str) -> None:
        """Record one backend attempt (success, retryable, fatal)."""
        self.remote_attempts_total.labels(outcome=outcome).inc()

    def record_backoff(self, delay_seconds: float) -> None:
        self.backoff_delay_seconds.observe(delay_seconds)

    def record_operation(self, result: str) -> None:
        """Record the final result of an execute call ("ok" or an error kind)."""
        self.remote_operations_total.labels(result=result).inc()

    def record_disclosure(self, record_type: str, outcome: str) -> None:
        self.disclosure_requests_total.labels(
            record_type=record_type,
            outcome=outcome
        ).inc()

    def record_audit_failure(self, record_type: str) -> None:
        self.audit_log_failures_total.labels(record_type=record_type).inc()

    def update_connectivity(self, online: bool) -> None:
        self.backend_online.set(1 if online else 0)

    def update_system_metrics(self) -> None:
        """Update system-level metrics."""
        self.uptime_seconds.set(time.time() - self._start_time)
