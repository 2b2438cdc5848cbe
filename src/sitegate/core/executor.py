"""
Resilient execution of backend operations.

Flow per execute() call:
1. One rate limit admission for the configured key
2. Attempt the operation
3. Classify failures as retryable or final
4. Exponential backoff between retryable attempts
5. Abort early when the network is known to be down
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from pydantic import BaseModel, Field

from ..config import RateLimitSettings, RetrySettings
from .backend import PersistenceBackend
from .connectivity import ConnectivityMonitor
from .metrics import MetricsCollector
from .rate_limit import RateLimiter, quota_key
from .result import ErrorKind, RemoteError, Result
from .retry import AttemptOutcome, RetryClassifier

logger = structlog.get_logger(__name__)

Operation = Callable[[], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]


class ExecuteConfig(BaseModel):
    """Per-call retry and quota settings. Invalid values fail at construction."""

    max_retries: int = Field(default=2, ge=0, description="Retries after the first attempt")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base backoff delay")
    rate_limit_key: str = Field(default=quota_key(None, "query"), min_length=1)
    limit: int = Field(default=100, ge=0, description="Admissions per window")
    window_seconds: float = Field(default=600, gt=0, description="Quota window length")

    def backoff_seconds(self, attempt_index: int) -> float:
        """Delay before the attempt following attempt_index (0-based)."""
        return self.retry_delay_ms * (2 ** attempt_index) / 1000.0


class ResilientExecutor:
    """
    Wraps remote operations with rate limiting, retries and backoff.

    Operations return a BackendResponse, a plain value, or raise. Errors
    never escape execute(); they come back inside the Result.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        classifier: Optional[RetryClassifier] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        sleep: Sleep = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.classifier = classifier or RetryClassifier()
        self.connectivity = connectivity or ConnectivityMonitor()
        self.sleep = sleep
        self.metrics = metrics

    async def execute(self, operation: Operation, config: Optional[ExecuteConfig] = None) -> Result[Any]:
        config = config or ExecuteConfig()

        admitted = await self.rate_limiter.admit(
            config.rate_limit_key, config.limit, config.window_seconds
        )
        if not admitted:
            return self._finish(Result.failure(
                RemoteError(
                    kind=ErrorKind.RATE_LIMIT_EXCEEDED,
                    message=f"Rate limit exceeded for {config.rate_limit_key}",
                    details={
                        "rate_limit_key": config.rate_limit_key,
                        "limit": config.limit,
                        "window_seconds": config.window_seconds,
                    },
                ),
                attempts=0,
            ))

        attempts = 0

        while True:
            attempts += 1
            outcome = await self._attempt(operation)

            if outcome.ok:
                self._record_attempt("success")
                return self._finish(Result.success(outcome.data, attempts=attempts))

            if not outcome.retryable:
                self._record_attempt("fatal")
                logger.warning(
                    "Non-retryable backend error",
                    key=config.rate_limit_key,
                    attempt=attempts,
                    code=outcome.code,
                    error=outcome.message,
                )
                return self._finish(Result.failure(
                    RemoteError(
                        kind=ErrorKind.NON_RETRYABLE_REMOTE,
                        message=outcome.message or "Backend rejected the request",
                        code=outcome.code,
                    ),
                    attempts=attempts,
                ))

            self._record_attempt("retryable")
            logger.warning(
                "Backend attempt failed",
                key=config.rate_limit_key,
                attempt=attempts,
                max_retries=config.max_retries,
                code=outcome.code,
                error=outcome.message,
            )

            if not self.connectivity.is_online:
                logger.warning("Offline, not retrying", key=config.rate_limit_key, attempt=attempts)
                break

            if attempts > config.max_retries:
                break

            delay = config.backoff_seconds(attempts - 1)
            if self.metrics:
                self.metrics.record_backoff(delay)
            await self.sleep(delay)

        logger.error(
            "Backend operation failed",
            key=config.rate_limit_key,
            attempts=attempts,
            code=outcome.code,
            error=outcome.message,
        )
        return self._finish(Result.failure(
            RemoteError(
                kind=ErrorKind.TRANSIENT_REMOTE,
                message=outcome.message or "Backend operation failed",
                code=outcome.code,
            ),
            attempts=attempts,
        ))

    async def _attempt(self, operation: Operation) -> AttemptOutcome:
        try:
            response = await operation()
        except Exception as e:
            return self.classifier.classify_exception(e)
        return self.classifier.classify_response(response)

    def _record_attempt(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_attempt(outcome)

    def _finish(self, result: Result[Any]) -> Result[Any]:
        if self.metrics:
            self.metrics.record_operation("ok" if result.error is None else result.error.kind.value)
        return result


class DataClient:
    """
    Table and RPC access through the resilient executor.

    Reads retry with the read default; create/update use the write default
    since a retried write whose first attempt partly succeeded can duplicate
    side effects.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        executor: ResilientExecutor,
        retry_settings: Optional[RetrySettings] = None,
        rate_limit_settings: Optional[RateLimitSettings] = None,
    ) -> None:
        self.backend = backend
        self.executor = executor
        self.retry_settings = retry_settings or RetrySettings()
        self.rate_limit_settings = rate_limit_settings or RateLimitSettings()

    def config_for(self, endpoint: str, subject: Optional[str] = None, write: bool = False) -> ExecuteConfig:
        """Execute settings for one endpoint and caller."""
        return ExecuteConfig(
            max_retries=self.retry_settings.write_max_retries if write else self.retry_settings.max_retries,
            retry_delay_ms=self.retry_settings.retry_delay_ms,
            rate_limit_key=quota_key(subject, endpoint),
            limit=self.rate_limit_settings.query_limit,
            window_seconds=self.rate_limit_settings.query_window_minutes * 60,
        )

    async def select(
        self,
        table: str,
        projection: str = "*",
        subject: Optional[str] = None,
        match: Optional[Dict[str, Any]] = None,
    ) -> Result[Any]:
        return await self.executor.execute(
            lambda: self.backend.select(table, projection, match),
            self.config_for(f"select_{table}", subject),
        )

    async def insert(self, table: str, row: Any, subject: Optional[str] = None) -> Result[Any]:
        return await self.executor.execute(
            lambda: self.backend.insert(table, row),
            self.config_for(f"insert_{table}", subject, write=True),
        )

    async def update(
        self,
        table: str,
        patch: Dict[str, Any],
        match: Dict[str, Any],
        subject: Optional[str] = None,
    ) -> Result[Any]:
        return await self.executor.execute(
            lambda: self.backend.update(table, patch, match),
            self.config_for(f"update_{table}", subject, write=True),
        )

    async def rpc(
        self,
        function: str,
        params: Optional[Dict[str, Any]] = None,
        subject: Optional[str] = None,
    ) -> Result[Any]:
        return await self.executor.execute(
            lambda: self.backend.rpc(function, params),
            self.config_for(f"rpc_{function}", subject),
        )
