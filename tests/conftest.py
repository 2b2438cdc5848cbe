"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules. The network
is replaced by FakeBackend, time by FakeClock and RecordingSleep.
"""

from typing import Any, Dict, Generator, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from sitegate.config import (
    BackendSettings,
    DisclosureSettings,
    RateLimitSettings,
    RetrySettings,
    SecuritySettings,
    Settings,
)
from sitegate.core.backend import BackendResponse, PersistenceBackend
from sitegate.core.connectivity import ConnectivityMonitor
from sitegate.core.metrics import MetricsCollector
from sitegate.core.services import ServiceContainer, build_services
from sitegate.core.store import InMemoryStore
from sitegate.main import create_app


class FakeBackend(PersistenceBackend):
    """
    Scripted backend.

    Responses are queued per table or function name. The last queued
    response repeats; a queued exception is raised. Unscripted calls
    answer with an empty successful response.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Any]] = []
        self._responses: Dict[Tuple[str, str], List[Any]] = {}

    def script(self, method: str, name: str, *responses: Any) -> None:
        self._responses[(method, name)] = list(responses)

    def calls_to(self, name: str) -> List[Tuple[str, str, Any]]:
        return [call for call in self.calls if call[1] == name]

    async def _answer(self, method: str, name: str, payload: Any) -> BackendResponse:
        self.calls.append((method, name, payload))
        queue = self._responses.get((method, name))
        if not queue:
            return BackendResponse(data=None)
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    async def select(
        self, table: str, projection: str = "*", match: Optional[Dict[str, Any]] = None
    ) -> BackendResponse:
        return await self._answer("select", table, {"select": projection, "match": match})

    async def insert(self, table: str, row: Any) -> BackendResponse:
        return await self._answer("insert", table, row)

    async def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> BackendResponse:
        return await self._answer("update", table, {"patch": patch, "match": match})

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> BackendResponse:
        return await self._answer("rpc", function, params)


class FakeClock:
    """Settable wall clock in seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns immediately and remembers each delay."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def test_config() -> Dict[str, Any]:
    """Test configuration data."""
    return {
        "server": {
            "host": "0.0.0.0",
            "port": 8080,
            "debug": True,
            "log_level": "INFO"
        },
        "security": {
            "admin_token": "test_admin_token_123456789abc",
            "api_keys": {
                "test_token_builder_123456789": {
                    "name": "builder-one",
                    "subject": "builder-1",
                    "role": "builder",
                    "active": True
                },
                "test_token_provider_12345678": {
                    "name": "provider-one",
                    "subject": "provider-1",
                    "role": "delivery_provider",
                    "active": True
                },
                "test_token_supplier_12345678": {
                    "name": "supplier-one",
                    "subject": "supplier-1",
                    "role": "supplier",
                    "active": True
                },
                "test_token_inactive_1234567": {
                    "name": "inactive-service",
                    "subject": "inactive-1",
                    "role": "builder",
                    "active": False
                },
                "test_token_admin_role_123456": {
                    "name": "ops",
                    "subject": "ops-1",
                    "role": "admin",
                    "active": True
                }
            }
        },
        "rate_limit": {
            "api_limit": 5,
            "api_window_minutes": 1,
            "query_limit": 100,
            "query_window_minutes": 10,
            "fail_open": True
        },
        "retry": {
            "max_retries": 2,
            "write_max_retries": 1,
            "retry_delay_ms": 100
        },
        "disclosure": {
            "role_allowlist": {"delivery_provider": ["delivery_request"]},
            "access_type": "sensitive_view"
        },
        "backend": {
            "base_url": "http://backend.test",
            "api_key": "test-anon-key"
        }
    }


@pytest.fixture
def settings(test_config: Dict[str, Any]) -> Settings:
    """Settings built directly from the test config, ignoring the environment file."""
    return Settings(
        log_level=test_config["server"]["log_level"],
        security=SecuritySettings(**test_config["security"]),
        rate_limit=RateLimitSettings(**test_config["rate_limit"]),
        retry=RetrySettings(**test_config["retry"]),
        disclosure=DisclosureSettings(**test_config["disclosure"]),
        backend=BackendSettings(**test_config["backend"]),
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Collector bound to a private registry so tests never share series."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def services(
    settings: Settings,
    fake_backend: FakeBackend,
    fake_clock: FakeClock,
    recording_sleep: RecordingSleep,
    metrics: MetricsCollector,
) -> ServiceContainer:
    """Isolated service container over fakes."""
    return build_services(
        settings,
        backend=fake_backend,
        store=InMemoryStore(),
        connectivity=ConnectivityMonitor(metrics=metrics),
        metrics=metrics,
        clock=fake_clock,
        sleep=recording_sleep,
    )


@pytest.fixture
def test_client(services: ServiceContainer) -> Generator[TestClient, None, None]:
    """FastAPI test client over the isolated service container."""
    with TestClient(create_app(services=services)) as client:
        yield client


@pytest.fixture
def delivery_row() -> Dict[str, Any]:
    """Row returned by the secure delivery fetch."""
    return {
        "pickup_address": "Plot 12, Mombasa Road, Nairobi",
        "delivery_address": "Kilimani Estate",
        "driver_name": "Jonathan",
        "driver_phone": "0712345678",
    }
