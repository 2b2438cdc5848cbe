"""
Tests for DataClient convenience wrappers.

Reads retry up to twice, writes at most once.
"""

import pytest

from sitegate.core.backend import BackendError, BackendResponse
from sitegate.core.result import ErrorKind

TRANSIENT = BackendResponse(error=BackendError(message="Failed to fetch"))


class TestDataClient:

    @pytest.mark.asyncio
    async def test_select_attempts_three_times(self, services, fake_backend) -> None:
        fake_backend.script("select", "orders", TRANSIENT)

        result = await services.data_client.select("orders", subject="builder-1")

        assert result.error is not None
        assert result.error.kind is ErrorKind.TRANSIENT_REMOTE
        assert len(fake_backend.calls_to("orders")) == 3

    @pytest.mark.asyncio
    async def test_insert_attempts_twice(self, services, fake_backend, recording_sleep) -> None:
        fake_backend.script("insert", "orders", TRANSIENT)

        result = await services.data_client.insert("orders", {"item": "cement"}, subject="builder-1")

        assert result.attempts == 2
        assert len(fake_backend.calls_to("orders")) == 2
        assert recording_sleep.delays == [0.1]

    @pytest.mark.asyncio
    async def test_update_attempts_twice(self, services, fake_backend) -> None:
        fake_backend.script("update", "orders", TRANSIENT)

        result = await services.data_client.update(
            "orders", {"status": "shipped"}, {"id": "o-1"}, subject="builder-1"
        )

        assert result.attempts == 2
        assert fake_backend.calls_to("orders")[0][2] == {
            "patch": {"status": "shipped"},
            "match": {"id": "o-1"},
        }

    @pytest.mark.asyncio
    async def test_rpc_passes_params(self, services, fake_backend) -> None:
        fake_backend.script("rpc", "get_orders", BackendResponse(data=[{"id": "o-1"}]))

        result = await services.data_client.rpc("get_orders", {"limit": 5})

        assert result.ok
        assert result.data == [{"id": "o-1"}]
        assert fake_backend.calls == [("rpc", "get_orders", {"limit": 5})]

    @pytest.mark.asyncio
    async def test_quota_key_per_operation_and_subject(self, services, fake_backend) -> None:
        fake_backend.script("select", "orders", BackendResponse(data=[]))

        await services.data_client.select("orders", subject="builder-1")
        await services.data_client.select("orders")

        limiter = services.rate_limiter
        builder = await limiter.status("rate_limit_builder-1_select_orders")
        anonymous = await limiter.status("rate_limit_anonymous_select_orders")
        assert builder is not None and builder.count == 1
        assert anonymous is not None and anonymous.count == 1

    def test_config_uses_query_quota(self, services) -> None:
        config = services.data_client.config_for("select_orders", "builder-1")
        assert config.limit == 100
        assert config.window_seconds == 600
        assert config.retry_delay_ms == 100
        assert config.max_retries == 2
        assert services.data_client.config_for("insert_orders", write=True).max_retries == 1
