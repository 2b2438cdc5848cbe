"""
Admin API data models.

Contains Pydantic models for rate limit introspection and the shared
error response.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class RateLimitStatusResponse(BaseModel):
    """Counter state for one (subject, endpoint) key."""

    key: str = Field(..., description="Counter key")
    count: int = Field(..., description="Requests counted in the current window")
    limit: int = Field(..., description="Limit the status was computed against")
    remaining: int = Field(..., description="Requests left in the current window")


class RateLimitClearResponse(BaseModel):
    """Response after clearing a counter."""

    key: str = Field(..., description="Counter key")
    message: str = Field(..., description="Success message")


class ErrorResponse(BaseModel):
    """
    Standard error response model.
    """

    error: str = Field(description="Error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Additional error details"
    )
