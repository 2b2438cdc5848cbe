"""
Fixed-window rate limiting backed by a key-value store.

Counters are keyed by rate_limit_<subject or "anonymous">_<endpoint> and
stored as {"count": n, "windowStart": epoch_ms}. The read-modify-write in
admit() takes no lock: two concurrent checks on one key can both pass.
"""

import json
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from .exceptions import ConfigurationError
from .metrics import MetricsCollector
from .store import KeyValueStore

logger = structlog.get_logger(__name__)

ANONYMOUS_SUBJECT = "anonymous"
DEFAULT_ENDPOINT = "general"
DEFAULT_LIMIT = 100
DEFAULT_WINDOW_MINUTES = 60


def quota_key(subject: Optional[str], endpoint: str = DEFAULT_ENDPOINT) -> str:
    """Build the counter key for a (subject, endpoint) pair."""
    return f"rate_limit_{subject or ANONYMOUS_SUBJECT}_{endpoint}"


@dataclass
class QuotaRecord:
    """Request counter for one key and its current window."""
    count: int
    window_start: float

    def to_json(self) -> str:
        return json.dumps({
            "count": self.count,
            "windowStart": int(round(self.window_start * 1000)),
        })

    @classmethod
    def from_json(cls, raw: str) -> "QuotaRecord":
        data = json.loads(raw)
        count = int(data["count"])
        if count < 0:
            raise ValueError(f"Negative quota count: {count}")
        return cls(count=count, window_start=float(data["windowStart"]) / 1000.0)


@dataclass
class QuotaStatus:
    """Read-only view of a counter."""
    count: int
    limit: int
    remaining: int


class QuotaStore:
    """Loads and saves QuotaRecords on a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def load(self, key: str) -> Optional[QuotaRecord]:
        raw = await self.store.get(key)
        if raw is None:
            return None
        return QuotaRecord.from_json(raw)

    async def save(self, key: str, record: QuotaRecord) -> None:
        await self.store.set(key, record.to_json())

    async def delete(self, key: str) -> None:
        await self.store.delete(key)


class RateLimiter:
    """
    Per-key fixed-window rate limiter.

    Admission failures caused by the counter store follow the fail_open
    policy: admit (default) or deny.
    """

    def __init__(
        self,
        quota_store: QuotaStore,
        clock: Callable[[], float] = time.time,
        fail_open: bool = True,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.quota_store = quota_store
        self.clock = clock
        self.fail_open = fail_open
        self.metrics = metrics

    async def admit(self, key: str, limit: int, window_seconds: float) -> bool:
        """
        Count one request against key.

        Returns True if the request is within the limit for the current
        window, False otherwise.
        """
        if limit < 0:
            raise ConfigurationError(f"Rate limit must be non-negative, got {limit}")
        if window_seconds <= 0:
            raise ConfigurationError(f"Rate limit window must be positive, got {window_seconds}")

        try:
            now = self.clock()
            record = await self.quota_store.load(key)
            if record is None:
                record = QuotaRecord(count=0, window_start=now)

            # Reset if window expired
            if now - record.window_start > window_seconds:
                record.count = 0
                record.window_start = now

            if record.count >= limit:
                logger.warning(
                    "Rate limit exceeded",
                    key=key,
                    limit=limit,
                    window_seconds=window_seconds,
                )
                self._record_admission(False)
                return False

            record.count += 1
            await self.quota_store.save(key, record)

        except Exception as e:
            logger.error(
                "Rate limit check failed",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
                fail_open=self.fail_open,
            )
            if self.metrics:
                self.metrics.record_store_error(self.fail_open)
            return self.fail_open

        logger.debug(
            "Rate limit check passed",
            key=key,
            count=record.count,
            limit=limit,
        )
        self._record_admission(True)
        return True

    async def check(
        self,
        subject: Optional[str] = None,
        endpoint: str = DEFAULT_ENDPOINT,
        limit: int = DEFAULT_LIMIT,
        window_minutes: float = DEFAULT_WINDOW_MINUTES,
    ) -> bool:
        """Admit one request for subject on endpoint."""
        return await self.admit(quota_key(subject, endpoint), limit, window_minutes * 60)

    async def clear(self, key: str) -> None:
        """Remove the counter for key."""
        await self.quota_store.delete(key)
        logger.info("Rate limit cleared", key=key)

    async def status(self, key: str, limit: int = DEFAULT_LIMIT) -> Optional[QuotaStatus]:
        """Current counter for key, or None if no record exists. Never mutates."""
        record = await self.quota_store.load(key)
        if record is None:
            return None
        return QuotaStatus(
            count=record.count,
            limit=limit,
            remaining=max(0, limit - record.count),
        )

    async def seconds_until_reset(self, key: str, window_seconds: float) -> Optional[int]:
        """Whole seconds until the window for key rolls over, or None without a record."""
        record = await self.quota_store.load(key)
        if record is None:
            return None
        remaining = record.window_start + window_seconds - self.clock()
        return max(1, math.ceil(remaining))

    def _record_admission(self, admitted: bool) -> None:
        if self.metrics:
            self.metrics.record_admission(admitted)
