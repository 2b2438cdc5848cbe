"""
Admin API endpoints for SiteGate.

Provides rate limit counter introspection and manual clearing.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..core.auth import Caller, authenticate_admin_token, get_services
from ..core.rate_limit import quota_key
from ..core.services import ServiceContainer
from ..models.admin import ErrorResponse, RateLimitClearResponse, RateLimitStatusResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/v1/admin/rate-limits/{subject}/{endpoint}",
    response_model=RateLimitStatusResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Admin role required"},
        404: {"description": "No counter for this subject and endpoint"},
    },
    summary="Inspect a rate limit counter",
    description="""
    Read the current window counter for a subject and endpoint.

    **Admin Operation:**
    - Requires the admin token or an API key with the admin role
    - Reading a counter never counts a request against it
    - `limit` only affects the computed `remaining`
    """,
)
async def get_rate_limit_status(
    subject: str,
    endpoint: str,
    limit: Optional[int] = Query(default=None, ge=0),
    caller: Caller = Depends(authenticate_admin_token),
    services: ServiceContainer = Depends(get_services),
) -> RateLimitStatusResponse:
    key = quota_key(subject, endpoint)
    effective_limit = limit if limit is not None else services.settings.rate_limit.api_limit

    logger.debug("Rate limit status requested", key=key, admin=caller.name)

    quota = await services.rate_limiter.status(key, effective_limit)
    if quota is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No rate limit counter for '{key}'"
        )

    return RateLimitStatusResponse(
        key=key,
        count=quota.count,
        limit=quota.limit,
        remaining=quota.remaining,
    )


@router.delete(
    "/v1/admin/rate-limits/{subject}/{endpoint}",
    response_model=RateLimitClearResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Admin role required"},
    },
    summary="Clear a rate limit counter",
)
async def clear_rate_limit(
    subject: str,
    endpoint: str,
    caller: Caller = Depends(authenticate_admin_token),
    services: ServiceContainer = Depends(get_services),
) -> RateLimitClearResponse:
    """Drop the counter so the next request starts a fresh window."""
    key = quota_key(subject, endpoint)
    await services.rate_limiter.clear(key)

    logger.info("Rate limit counter cleared by admin", key=key, admin=caller.name)

    return RateLimitClearResponse(key=key, message=f"Rate limit counter '{key}' cleared")
