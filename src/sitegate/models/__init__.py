"""
Pydantic data models package.

Contains all data validation models for:
- Disclosure policy, roles and record types
- API requests and responses
"""

from .admin import ErrorResponse, RateLimitClearResponse, RateLimitStatusResponse
from .disclosure import (
    DisclosurePolicy,
    FieldView,
    MaskRequest,
    MaskResponse,
    RecordType,
    RevealResponse,
    SubjectRole,
)

__all__ = [
    # Disclosure models
    "DisclosurePolicy",
    "FieldView",
    "MaskRequest",
    "MaskResponse",
    "RecordType",
    "RevealResponse",
    "SubjectRole",

    # Admin models
    "ErrorResponse",
    "RateLimitClearResponse",
    "RateLimitStatusResponse",
]
