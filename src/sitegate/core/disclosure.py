"""
Disclosure gate for sensitive record fields.

Reveal flow:
1. Local policy check (admin, owner, or role allowlist; driver contact
   also needs an active or completed delivery)
2. Audit log call, before any unmasked data is fetched
3. Secure fetch through the resilient executor
4. Attach real values to the record

The local check only spares a round trip; the secure fetch procedures
apply row-level rules and answer with no rows when the caller may not see
the record.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

import structlog

from ..models.disclosure import DisclosurePolicy, RecordType, SubjectRole
from .audit import AuditLogger
from .exceptions import ConfigurationError
from .executor import DataClient
from .masking import SensitiveRecord
from .metrics import MetricsCollector
from .result import ErrorKind, RemoteError, Result

logger = structlog.get_logger(__name__)

FetchSensitive = Callable[[], Awaitable[Any]]

# record type -> (secure fetch procedure, record id parameter)
SECURE_FETCH_RPCS: Dict[RecordType, Tuple[str, str]] = {
    RecordType.DELIVERY: ("get_secure_delivery", "delivery_uuid"),
    RecordType.DELIVERY_REQUEST: ("get_secure_delivery_request", "request_uuid"),
    RecordType.PURCHASE_ORDER: ("get_secure_purchase_order", "order_uuid"),
    RecordType.ACKNOWLEDGEMENT: ("get_secure_acknowledgement", "acknowledgement_uuid"),
    # Driver contact lives on the delivery row
    RecordType.DRIVER_INFO: ("get_secure_delivery", "delivery_uuid"),
}

# record type -> (table, columns holding the parties to the record)
RECORD_PARTIES: Dict[RecordType, Tuple[str, Tuple[str, ...]]] = {
    RecordType.DELIVERY: ("deliveries", ("builder_id", "supplier_id")),
    RecordType.DELIVERY_REQUEST: ("delivery_requests", ("builder_id", "provider_id")),
    RecordType.PURCHASE_ORDER: ("purchase_orders", ("buyer_id", "supplier_id")),
    RecordType.ACKNOWLEDGEMENT: ("delivery_acknowledgements", ("supplier_id",)),
    RecordType.DRIVER_INFO: ("deliveries", ("builder_id", "supplier_id")),
}

# Driver contact is only shown once the delivery is under way
DRIVER_CONTACT_STATUSES = frozenset({"in_progress", "delivered"})

RoleAllowlist = Dict[SubjectRole, Set[RecordType]]


def parse_role_allowlist(raw: Mapping[str, Iterable[str]]) -> RoleAllowlist:
    """Convert configured role -> record type names into enums."""
    allowlist: RoleAllowlist = {}
    for role_name, type_names in raw.items():
        try:
            role = SubjectRole(role_name)
            types = {RecordType(name) for name in type_names}
        except ValueError as e:
            raise ConfigurationError(f"Invalid disclosure allowlist entry {role_name!r}: {e}") from e
        allowlist[role] = types
    return allowlist


@dataclass
class RevealResult:
    """A revealed record and whether the access reached the audit log."""
    record: SensitiveRecord
    audit_logged: bool
    audit_error: Optional[RemoteError] = None


class DisclosureGate:
    """Decides, audits and performs reveals of sensitive fields."""

    def __init__(
        self,
        data_client: DataClient,
        audit_logger: AuditLogger,
        role_allowlist: Optional[RoleAllowlist] = None,
        access_type: str = "sensitive_view",
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.data_client = data_client
        self.audit_logger = audit_logger
        self.role_allowlist = role_allowlist or {}
        self.access_type = access_type
        self.metrics = metrics

    def can_access(self, policy: DisclosurePolicy) -> bool:
        if policy.subject_role is SubjectRole.ADMIN:
            return True
        granted = policy.is_owner or policy.record_type in self.role_allowlist.get(policy.subject_role, set())
        if granted and policy.record_type is RecordType.DRIVER_INFO:
            return policy.delivery_status in DRIVER_CONTACT_STATUSES
        return granted

    async def policy_for(
        self,
        record_type: RecordType,
        record_id: str,
        subject_role: SubjectRole,
        subject_id: Optional[str],
    ) -> Result[DisclosurePolicy]:
        """
        Build the policy for one caller and record from the stored row.

        Ownership means the caller's subject appears in one of the record's
        party columns. Admins and allowlisted roles skip the lookup, except
        for driver contact, which also needs the delivery status.
        """
        policy = DisclosurePolicy(
            subject_role=subject_role,
            record_type=record_type,
            subject_id=subject_id,
        )
        if subject_role is SubjectRole.ADMIN:
            return Result.success(policy, attempts=0)
        allowlisted = record_type in self.role_allowlist.get(subject_role, set())
        if allowlisted and record_type is not RecordType.DRIVER_INFO:
            return Result.success(policy, attempts=0)

        table, party_columns = RECORD_PARTIES[record_type]
        columns = party_columns + (("status",) if record_type is RecordType.DRIVER_INFO else ())
        lookup = await self.data_client.select(
            table, ",".join(columns), subject=subject_id, match={"id": record_id}
        )
        if not lookup.ok:
            return Result.failure(lookup.error, attempts=lookup.attempts)

        row = self._first_row(lookup.data) or {}
        is_owner = subject_id is not None and any(
            row.get(column) is not None and str(row[column]) == subject_id
            for column in party_columns
        )
        status = row.get("status")

        logger.debug(
            "Disclosure policy resolved",
            record_type=record_type.value,
            record_id=record_id,
            found=bool(row),
            is_owner=is_owner,
        )

        return Result.success(
            policy.model_copy(update={
                "is_owner": is_owner,
                "delivery_status": str(status) if status is not None else None,
            }),
            attempts=lookup.attempts,
        )

    async def reveal(
        self,
        record: SensitiveRecord,
        policy: DisclosurePolicy,
        fetch_sensitive: Optional[FetchSensitive] = None,
    ) -> Result[RevealResult]:
        """
        Reveal the real values of record's sensitive fields.

        fetch_sensitive overrides the secure fetch procedure for the record
        type; it must resolve to a row mapping, a list of rows, or a
        BackendResponse carrying either.
        """
        if policy.record_type is not record.record_type:
            raise ConfigurationError(
                f"Policy is for {policy.record_type.value}, record is {record.record_type.value}"
            )

        record_type = record.record_type.value

        if not self.can_access(policy):
            logger.warning(
                "Disclosure denied by policy",
                record_type=record_type,
                record_id=record.record_id,
                role=policy.subject_role.value,
            )
            self._record(record_type, "denied")
            return Result.failure(RemoteError(
                kind=ErrorKind.ACCESS_DENIED,
                message=f"Role {policy.subject_role.value} may not view {record_type} details",
            ))

        audit_error = await self.audit_logger.log_access(
            record.record_type, record.record_id, self.access_type
        )

        fetched = await self._fetch(record, policy, fetch_sensitive)
        if not fetched.ok:
            self._record(record_type, "failed")
            return Result.failure(fetched.error, attempts=fetched.attempts)

        row = self._first_row(fetched.data)
        if row is None:
            logger.warning(
                "Secure fetch returned no rows",
                record_type=record_type,
                record_id=record.record_id,
            )
            self._record(record_type, "backend_denied")
            return Result.failure(
                RemoteError(
                    kind=ErrorKind.ACCESS_DENIED,
                    message=f"No {record_type} details available to this caller",
                ),
                attempts=fetched.attempts,
            )

        record.attach_row(row)
        self._record(record_type, "revealed")
        logger.info(
            "Sensitive fields revealed",
            record_type=record_type,
            record_id=record.record_id,
            fields=sorted(record.fields),
            audit_logged=audit_error is None,
        )

        return Result.success(
            RevealResult(record=record, audit_logged=audit_error is None, audit_error=audit_error),
            attempts=fetched.attempts,
        )

    def hide(self, record: SensitiveRecord) -> None:
        """Return record to its masked state. No backend call."""
        record.hide()

    async def _fetch(
        self,
        record: SensitiveRecord,
        policy: DisclosurePolicy,
        fetch_sensitive: Optional[FetchSensitive],
    ) -> Result[Any]:
        if fetch_sensitive is not None:
            return await self.data_client.executor.execute(
                fetch_sensitive,
                self.data_client.config_for(f"reveal_{record.record_type.value}", policy.subject_id),
            )

        function, id_param = SECURE_FETCH_RPCS[record.record_type]
        return await self.data_client.rpc(
            function, {id_param: record.record_id}, subject=policy.subject_id
        )

    @staticmethod
    def _first_row(data: Any) -> Optional[Mapping[str, Any]]:
        if isinstance(data, Mapping):
            return data
        if isinstance(data, (list, tuple)) and data and isinstance(data[0], Mapping):
            return data[0]
        return None

    def _record(self, record_type: str, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_disclosure(record_type, outcome)
