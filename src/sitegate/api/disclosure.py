"""
Disclosure API endpoints.

- POST /v1/disclosures/{record_type}/{record_id}:reveal - audited reveal
- POST /v1/disclosures/{record_type}:mask - local masking, no backend call
"""

from typing import Dict, Optional

import structlog
from fastapi import APIRouter, Depends

from ..core.auth import Caller, authenticate_token, check_rate_limit, get_services, retry_hint
from ..core.exceptions import SiteGateException, ValidationError, exception_for_error
from ..core.masking import MaskKind, SensitiveRecord, area_hint, mask_value
from ..core.result import ErrorKind, RemoteError
from ..core.services import ServiceContainer
from ..models.admin import ErrorResponse
from ..models.disclosure import (
    FieldView,
    MaskRequest,
    MaskResponse,
    RecordType,
    RevealResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "/disclosures/{record_type}/{record_id}:reveal",
    response_model=RevealResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Access denied"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        502: {"model": ErrorResponse, "description": "Backend rejected the request"},
        503: {"model": ErrorResponse, "description": "Backend unavailable"},
    },
    summary="Reveal sensitive fields of a record",
    description="""
    Reveal the unmasked sensitive fields of one record.

    **Flow:**
    1. Authentication & inbound rate limiting
    2. Policy lookup: ownership (and delivery status for driver contact)
       is read from the stored record, never taken from the request
    3. Policy check (admin, record party, or role allowlist)
    4. Audit log entry for the access
    5. Secure fetch from the backend (rate limited, retried on transient errors)

    The backend makes the final decision: a secure fetch with no rows is
    reported as access denied.
    """,
)
async def reveal_record(
    record_type: RecordType,
    record_id: str,
    caller: Caller = Depends(authenticate_token),
    services: ServiceContainer = Depends(get_services),
) -> RevealResponse:
    await check_rate_limit(caller, services)

    gate = services.disclosure_gate
    resolved = await gate.policy_for(record_type, record_id, caller.role, caller.subject)
    if resolved.error is not None:
        raise await _http_error(services, resolved.error)
    policy = resolved.data

    logger.info(
        "Reveal requested",
        record_type=record_type.value,
        record_id=record_id,
        role=caller.role.value,
        is_owner=policy.is_owner,
    )

    record = SensitiveRecord.from_values(record_type, record_id)
    result = await gate.reveal(record, policy)
    if result.error is not None:
        raise await _http_error(services, result.error)
    revealed = result.data

    fields = {
        field.name: FieldView(masked=mask_value(field.kind, field.real), real=field.real)
        for field in revealed.record
    }

    return RevealResponse(
        record_type=record_type,
        record_id=record_id,
        revealed=revealed.record.revealed,
        audit_logged=revealed.audit_logged,
        fields=fields,
        message=(
            "Access has been logged for security audit purposes"
            if revealed.audit_logged
            else "Details revealed, but the access could not be logged"
        ),
    )


async def _http_error(services: ServiceContainer, error: RemoteError) -> SiteGateException:
    retry_after = None
    if error.kind is ErrorKind.RATE_LIMIT_EXCEEDED:
        retry_after = await retry_hint(
            services,
            error.details["rate_limit_key"],
            error.details["window_seconds"],
        )
    return exception_for_error(error, retry_after=retry_after)


@router.post(
    "/disclosures/{record_type}:mask",
    response_model=MaskResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown field"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
    summary="Mask caller-held values",
)
async def mask_record(
    record_type: RecordType,
    body: MaskRequest,
    caller: Caller = Depends(authenticate_token),
    services: ServiceContainer = Depends(get_services),
) -> MaskResponse:
    """Apply the display masks of record_type to the given values."""
    await check_rate_limit(caller, services)

    try:
        record = SensitiveRecord.from_values(record_type, "", body.fields)
    except ValueError as e:
        raise ValidationError(str(e), details={"record_type": record_type.value})

    masked: Dict[str, Optional[str]] = {}
    hints: Dict[str, str] = {}
    for name, value in body.fields.items():
        field = record.fields[name]
        masked[name] = field.masked
        if field.kind is MaskKind.ADDRESS:
            hints[name] = area_hint(value)

    return MaskResponse(record_type=record_type, masked=masked, area_hints=hints)
