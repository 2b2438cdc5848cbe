"""
Persistence backend contract and its PostgREST implementation.

Every operation answers with a BackendResponse {data, error}. Backend-level
rejections come back as BackendError values; transport failures
(connection errors, timeouts) are raised and left to the caller.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp
import structlog

from ..config import BackendSettings

logger = structlog.get_logger(__name__)


@dataclass
class BackendError:
    """Error reported by the backend."""
    message: str
    code: Optional[str] = None
    details: Optional[str] = None
    hint: Optional[str] = None
    status: Optional[int] = None


@dataclass
class BackendResponse:
    """Result of one backend call."""
    data: Any = None
    error: Optional[BackendError] = None


class PersistenceBackend(ABC):
    """Narrow contract consumed by the data client and the disclosure gate."""

    @abstractmethod
    async def select(
        self, table: str, projection: str = "*", match: Optional[Dict[str, Any]] = None
    ) -> BackendResponse:
        """Read rows from table, optionally only those whose columns equal match."""

    @abstractmethod
    async def insert(self, table: str, row: Any) -> BackendResponse:
        """Insert one row (dict) or several (list of dicts)."""

    @abstractmethod
    async def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> BackendResponse:
        """Apply patch to every row whose columns equal match."""

    @abstractmethod
    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> BackendResponse:
        """Call a stored procedure."""

    async def start(self) -> None:
        """Open connections; no-op by default."""

    async def stop(self) -> None:
        """Release connections; no-op by default."""


def parse_error_body(status: int, body: str) -> BackendError:
    """
    Turn a non-2xx PostgREST response into a BackendError.

    PostgREST answers with {"code", "message", "details", "hint"}; anything
    else (proxy pages, empty bodies) keeps the status and raw text.
    """
    try:
        payload = json.loads(body) if body else None
    except json.JSONDecodeError:
        payload = None

    if isinstance(payload, dict):
        code = payload.get("code")
        return BackendError(
            message=payload.get("message") or f"HTTP {status}",
            code=str(code) if code is not None else None,
            details=payload.get("details"),
            hint=payload.get("hint"),
            status=status,
        )

    return BackendError(
        message=body.strip() or f"HTTP {status}",
        status=status,
    )


def match_params(match: Dict[str, Any]) -> Dict[str, str]:
    """Encode equality criteria as PostgREST filters (column=eq.value)."""
    params = {}
    for column, value in match.items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, bool):
            params[column] = f"eq.{str(value).lower()}"
        else:
            params[column] = f"eq.{value}"
    return params


class RestBackend(PersistenceBackend):
    """
    PostgREST client over aiohttp.

    The session is opened by start() or lazily on first use.
    """

    def __init__(self, settings: BackendSettings) -> None:
        self.settings = settings
        self.session: Optional[aiohttp.ClientSession] = None

        logger.info("REST backend initialized", rest_url=settings.rest_url)

    async def start(self) -> None:
        """Open the HTTP session."""
        if self.session is not None:
            return

        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        )
        logger.info("REST backend started")

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

        logger.info("REST backend stopped")

    def _headers(self, write: bool = False) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "sitegate/0.1",
        }
        if self.settings.api_key:
            headers["apikey"] = self.settings.api_key
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        if write:
            headers["Prefer"] = "return=representation"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        payload: Any = None,
        write: bool = False,
    ) -> BackendResponse:
        if self.session is None:
            await self.start()

        url = f"{self.settings.rest_url}/{path.lstrip('/')}"

        async with self.session.request(
            method,
            url,
            params=params,
            json=payload,
            headers=self._headers(write=write),
        ) as response:
            body = await response.text()

            if 200 <= response.status < 300:
                data = json.loads(body) if body else None
                logger.debug("Backend request succeeded", method=method, path=path, status=response.status)
                return BackendResponse(data=data)

            error = parse_error_body(response.status, body)
            logger.warning(
                "Backend returned error",
                method=method,
                path=path,
                status=response.status,
                code=error.code,
                error=error.message,
            )
            return BackendResponse(error=error)

    async def select(
        self, table: str, projection: str = "*", match: Optional[Dict[str, Any]] = None
    ) -> BackendResponse:
        params = {"select": projection}
        if match:
            params.update(match_params(match))
        return await self._request("GET", table, params=params)

    async def insert(self, table: str, row: Any) -> BackendResponse:
        return await self._request("POST", table, payload=row, write=True)

    async def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> BackendResponse:
        return await self._request("PATCH", table, params=match_params(match), payload=patch, write=True)

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> BackendResponse:
        return await self._request("POST", f"rpc/{function}", payload=params or {})
