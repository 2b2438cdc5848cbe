"""
Tests for the connectivity signal.
"""

import pytest

from sitegate.core.connectivity import ConnectivityMonitor


class TestConnectivityMonitor:

    @pytest.mark.asyncio
    async def test_probe_without_url_keeps_flag(self) -> None:
        monitor = ConnectivityMonitor(online=False)
        assert await monitor.probe() is False
        assert monitor.last_probe is None

    def test_set_online_updates_gauge(self, metrics) -> None:
        monitor = ConnectivityMonitor(metrics=metrics)

        monitor.set_online(False)

        assert not monitor.is_online
        assert metrics.registry.get_sample_value("backend_online") == 0.0

    @pytest.mark.asyncio
    async def test_unreachable_probe_marks_offline(self) -> None:
        # Nothing listens on the discard port
        monitor = ConnectivityMonitor(probe_url="http://127.0.0.1:9/")
        try:
            assert await monitor.probe() is False
            assert not monitor.is_online
            assert monitor.last_probe is not None
        finally:
            await monitor.stop()

    @pytest.mark.asyncio
    async def test_start_without_url_is_noop(self) -> None:
        monitor = ConnectivityMonitor()
        await monitor.start()
        assert monitor._task is None
        await monitor.stop()
