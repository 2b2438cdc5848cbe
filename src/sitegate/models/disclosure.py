"""
Disclosure data models.

- Roles and record types are closed enums
- DisclosurePolicy describes one access request
- Request/response schemas for the disclosure endpoints
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SubjectRole(str, Enum):
    """Marketplace roles."""

    GUEST = "guest"
    BUILDER = "builder"
    SUPPLIER = "supplier"
    DELIVERY_PROVIDER = "delivery_provider"
    ADMIN = "admin"


class RecordType(str, Enum):
    """Record types carrying sensitive fields."""

    DELIVERY = "delivery"
    DELIVERY_REQUEST = "delivery_request"
    PURCHASE_ORDER = "purchase_order"
    ACKNOWLEDGEMENT = "acknowledgement"
    DRIVER_INFO = "driver_info"


class DisclosurePolicy(BaseModel):
    """
    Who is asking to reveal what.

    The admin role satisfies the policy regardless of ownership or
    delivery status.
    """

    subject_role: SubjectRole
    is_owner: bool = False
    record_type: RecordType
    subject_id: Optional[str] = Field(
        default=None,
        description="Caller identity, used for the rate limit key"
    )
    delivery_status: Optional[str] = Field(
        default=None,
        description="Status of the delivery, consulted for driver contact details"
    )

    model_config = ConfigDict(frozen=True)


class FieldView(BaseModel):
    """Both projections of one sensitive field."""

    masked: Optional[str] = Field(description="Partially redacted value")
    real: Optional[str] = Field(default=None, description="Full value, present only after a reveal")


class RevealResponse(BaseModel):
    """Response from the reveal endpoint."""

    record_type: RecordType
    record_id: str
    revealed: bool
    audit_logged: bool = Field(description="Whether the access reached the audit log")
    fields: Dict[str, FieldView]
    message: str


class MaskRequest(BaseModel):
    """Caller-held values to mask locally."""

    fields: Dict[str, Optional[str]] = Field(
        description="Field name to value; unknown fields are rejected"
    )


class MaskResponse(BaseModel):
    """Masked projections plus a coarse area hint for address fields."""

    record_type: RecordType
    masked: Dict[str, Optional[str]]
    area_hints: Dict[str, str] = Field(default_factory=dict)
