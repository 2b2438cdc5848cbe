"""
Online/offline signal read by the executor before retrying.

The flag can be set directly, or refreshed by a background loop that
probes the backend root URL.
"""

import asyncio
import time
from typing import Optional

import aiohttp
import structlog

from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class ConnectivityMonitor:
    """
    Tracks whether the backend network is reachable.

    Any HTTP answer from the probe URL, whatever the status, means the
    network is up; only transport errors flip the flag to offline.
    """

    def __init__(
        self,
        probe_url: Optional[str] = None,
        interval_seconds: int = 30,
        online: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.probe_url = probe_url
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.last_probe: Optional[float] = None
        self._online = online
        self._session: Optional[aiohttp.ClientSession] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online != self._online:
            logger.info("Connectivity changed", online=online)
        self._online = online
        if self.metrics:
            self.metrics.update_connectivity(online)

    async def probe(self) -> bool:
        """Probe the backend once and update the flag."""
        if not self.probe_url:
            return self._online

        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=10)
            )

        try:
            async with self._session.get(self.probe_url) as response:
                logger.debug("Connectivity probe answered", status=response.status)
            online = True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Connectivity probe failed", url=self.probe_url, error=str(e))
            online = False

        self.last_probe = time.time()
        self.set_online(online)
        return online

    async def start(self) -> None:
        """Start periodic probing if a probe URL is configured."""
        if self._running or not self.probe_url:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_probe_loop())
        logger.info("Connectivity monitor started", url=self.probe_url, interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop probing and close the probe session."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._session:
            await self._session.close()
            self._session = None

        logger.info("Connectivity monitor stopped")

    async def _run_probe_loop(self) -> None:
        while self._running:
            try:
                await self.probe()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Connectivity probe loop error", error=str(e))
                await asyncio.sleep(self.interval_seconds)
