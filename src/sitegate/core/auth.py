"""
Authentication and inbound rate limiting dependencies.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..models.disclosure import SubjectRole
from .exceptions import AuthenticationError, AuthorizationError, RateLimitError
from .rate_limit import quota_key
from .services import ServiceContainer

logger = structlog.get_logger(__name__)
security = HTTPBearer(auto_error=False)


@dataclass
class Caller:
    """Authenticated API caller."""
    token: str
    name: str
    subject: str
    role: SubjectRole


def _short(token: str) -> str:
    return token[:8] + "..." if len(token) >= 8 else "invalid"


def get_services(request: Request) -> ServiceContainer:
    """Dependency to get the service container from app state."""
    return request.app.state.services


async def authenticate_token(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> Caller:
    """
    Authenticate bearer token against configured API keys.

    Validates the token exists in config and is active, and resolves the
    caller's subject and role from the key metadata.
    """
    if not token or not token.credentials or not token.credentials.strip():
        raise AuthenticationError("Missing authentication token")

    token_value = token.credentials.strip()
    valid_keys = services.settings.security.api_keys

    if token_value not in valid_keys:
        logger.warning("Authentication failed: unknown token", token=_short(token_value))
        raise AuthenticationError("Invalid authentication token")

    key_info = valid_keys[token_value]
    if not key_info.get("active", False):
        logger.warning(
            "Authentication failed: inactive token",
            token=_short(token_value),
            key_name=key_info.get("name", "unknown")
        )
        raise AuthenticationError("Authentication token is inactive")

    try:
        role = SubjectRole(key_info.get("role", SubjectRole.GUEST.value))
    except ValueError:
        logger.warning(
            "Authentication failed: unknown role",
            token=_short(token_value),
            role=key_info.get("role"),
        )
        raise AuthenticationError("Authentication token has an invalid role")

    caller = Caller(
        token=token_value,
        name=key_info.get("name", "unknown"),
        subject=str(key_info.get("subject") or key_info.get("name") or "anonymous"),
        role=role,
    )

    logger.debug(
        "Token authenticated successfully",
        token=_short(token_value),
        key_name=caller.name,
        role=caller.role.value,
    )

    return caller


async def authenticate_admin_token(
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> Caller:
    """Accept the configured admin token, or any active key with the admin role."""
    admin_token = services.settings.security.admin_token
    if token and admin_token and token.credentials.strip() == admin_token:
        return Caller(token=admin_token, name="admin", subject="admin", role=SubjectRole.ADMIN)

    caller = await authenticate_token(token, services)
    if caller.role is not SubjectRole.ADMIN:
        logger.warning("Admin access refused", token=_short(caller.token), role=caller.role.value)
        raise AuthorizationError()
    return caller


async def check_rate_limit(caller: Caller, services: ServiceContainer, endpoint: str = "api") -> None:
    """
    Count one inbound request for the caller.

    Raises RateLimitError, with a retry hint, if the caller's quota for the
    current window is used up.
    """
    settings = services.settings.rate_limit
    key = quota_key(caller.subject, endpoint)
    window_seconds = settings.api_window_minutes * 60

    if await services.rate_limiter.admit(key, settings.api_limit, window_seconds):
        return

    raise RateLimitError(retry_after=await retry_hint(services, key, window_seconds))


async def retry_hint(services: ServiceContainer, key: str, window_seconds: float) -> Optional[int]:
    """Seconds until key's window rolls over, for the Retry-After header."""
    try:
        return await services.rate_limiter.seconds_until_reset(key, window_seconds)
    except Exception as e:
        # Store down under a fail-closed policy
        logger.error("Could not compute retry hint", key=key, error=str(e))
        return None
