"""
Deterministic masking of sensitive record fields.

Masks are display policy: they hide most of a value by default while the
full value stays behind the disclosure gate. They run locally, never touch
the network, and must stay byte-for-byte stable so every client renders
the same redaction.
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

import structlog

from ..models.disclosure import RecordType

logger = structlog.get_logger(__name__)


class MaskKind(str, Enum):
    """Masking rule applied to a field."""

    PHONE = "phone"
    NAME = "name"
    ADDRESS = "address"
    REFERENCE = "reference"


def mask_phone(phone: Optional[str]) -> Optional[str]:
    """0712345678 -> ***-***-5678; fewer than 4 characters are returned unchanged."""
    if not phone or len(phone) < 4:
        return phone
    return f"***-***-{phone[-4:]}"


def mask_name(name: Optional[str]) -> Optional[str]:
    """Jonathan -> J***n; fewer than 3 characters are returned unchanged."""
    if not name or len(name) < 3:
        return name
    return f"{name[0]}***{name[-1]}"


def mask_address(address: Optional[str]) -> Optional[str]:
    """
    Keep a hint of the street and the last locality segment.

    "Plot 12, Mombasa Road, Nairobi" -> "Plo***, Nairobi"
    "Kilimani Estate" -> "Kilima***"
    Values shorter than 10 characters are returned unchanged.
    """
    if not address or len(address) < 10:
        return address
    parts = address.split(',')
    if len(parts) > 1:
        return f"{parts[0][:3]}***, {parts[-1].strip()}"
    return f"{address[:6]}***"


def mask_reference(reference: Optional[str]) -> Optional[str]:
    """MPESA-QX81234 -> ***1234; fewer than 4 characters are returned unchanged."""
    if not reference or len(reference) < 4:
        return reference
    return f"***{reference[-4:]}"


def area_hint(address: Optional[str]) -> str:
    """Coarse location for callers that may not reveal the address."""
    if not address:
        return "Location area"
    parts = address.split(',')
    if len(parts) > 1:
        return parts[-1].strip()
    return "General area"


MASKERS: Dict[MaskKind, Callable[[Optional[str]], Optional[str]]] = {
    MaskKind.PHONE: mask_phone,
    MaskKind.NAME: mask_name,
    MaskKind.ADDRESS: mask_address,
    MaskKind.REFERENCE: mask_reference,
}


def mask_value(kind: MaskKind, value: Optional[str]) -> Optional[str]:
    return MASKERS[kind](value)


# Sensitive fields carried by each record type
SENSITIVE_FIELDS: Dict[RecordType, Dict[str, MaskKind]] = {
    RecordType.DELIVERY: {
        "pickup_address": MaskKind.ADDRESS,
        "delivery_address": MaskKind.ADDRESS,
        "driver_name": MaskKind.NAME,
        "driver_phone": MaskKind.PHONE,
    },
    RecordType.DELIVERY_REQUEST: {
        "pickup_address": MaskKind.ADDRESS,
        "delivery_address": MaskKind.ADDRESS,
    },
    RecordType.PURCHASE_ORDER: {
        "delivery_address": MaskKind.ADDRESS,
    },
    RecordType.ACKNOWLEDGEMENT: {
        "payment_reference": MaskKind.REFERENCE,
    },
    RecordType.DRIVER_INFO: {
        "driver_name": MaskKind.NAME,
        "driver_phone": MaskKind.PHONE,
    },
}


class MaskedField:
    """
    One sensitive value with its masked and real projections.

    The source value is masked at construction and not kept; the real
    value is attached only by a successful reveal.
    """

    def __init__(self, name: str, kind: MaskKind, masked: Optional[str]) -> None:
        self.name = name
        self.kind = kind
        self.masked = masked
        self._real: Optional[str] = None

    @classmethod
    def from_value(cls, name: str, kind: MaskKind, value: Optional[str]) -> "MaskedField":
        return cls(name=name, kind=kind, masked=mask_value(kind, value))

    @property
    def real(self) -> Optional[str]:
        return self._real

    def attach(self, value: Any) -> None:
        self._real = None if value is None else str(value)

    def discard(self) -> None:
        self._real = None

    def display(self, revealed: bool) -> Optional[str]:
        if revealed and self._real is not None:
            return self._real
        return self.masked

    def __repr__(self) -> str:
        # Never render the real value
        return f"MaskedField(name={self.name!r}, kind={self.kind.value}, masked={self.masked!r})"


class SensitiveRecord:
    """A record's sensitive fields and whether they are currently revealed."""

    def __init__(self, record_type: RecordType, record_id: str, fields: Dict[str, MaskedField]) -> None:
        self.record_type = record_type
        self.record_id = record_id
        self.fields = fields
        self.revealed = False

    @classmethod
    def from_values(
        cls,
        record_type: RecordType,
        record_id: str,
        values: Optional[Mapping[str, Optional[str]]] = None,
    ) -> "SensitiveRecord":
        """
        Build a masked record from values the caller already holds.

        Every sensitive field of the record type is present; fields without
        a held value mask to None. Unknown field names raise ValueError.
        """
        values = values or {}
        kinds = SENSITIVE_FIELDS[record_type]

        unknown = set(values) - set(kinds)
        if unknown:
            raise ValueError(
                f"Unknown fields for {record_type.value}: {', '.join(sorted(unknown))}"
            )

        fields = {
            name: MaskedField.from_value(name, kind, values.get(name))
            for name, kind in kinds.items()
        }
        return cls(record_type=record_type, record_id=record_id, fields=fields)

    def __iter__(self) -> Iterator[MaskedField]:
        return iter(self.fields.values())

    def attach_row(self, row: Mapping[str, Any]) -> None:
        """Attach unmasked values from a secure fetch row and mark revealed."""
        for field in self:
            field.attach(row.get(field.name))
        self.revealed = True

    def hide(self) -> None:
        """Drop every real value. Local only."""
        for field in self:
            field.discard()
        self.revealed = False

    def masked_view(self) -> Dict[str, Optional[str]]:
        return {field.name: field.masked for field in self}

    def view(self) -> Dict[str, Optional[str]]:
        return {field.name: field.display(self.revealed) for field in self}
