"""
Best-effort audit logging of sensitive data access.

Each record type has its own logging procedure on the backend. A failed
call is written to the local log and counted, then reported to the
caller; it never raises.
"""

from typing import Dict, Optional, Tuple

import structlog

from ..models.disclosure import RecordType
from .backend import PersistenceBackend
from .metrics import MetricsCollector
from .result import ErrorKind, RemoteError

logger = structlog.get_logger(__name__)

# record type -> (procedure, record id parameter)
# Names other than log_driver_info_access follow its pattern; the backend must define them
AUDIT_RPCS: Dict[RecordType, Tuple[str, str]] = {
    RecordType.DELIVERY: ("log_delivery_access", "delivery_uuid"),
    RecordType.DELIVERY_REQUEST: ("log_delivery_request_access", "request_uuid"),
    RecordType.PURCHASE_ORDER: ("log_purchase_order_access", "order_uuid"),
    RecordType.ACKNOWLEDGEMENT: ("log_acknowledgement_access", "acknowledgement_uuid"),
    RecordType.DRIVER_INFO: ("log_driver_info_access", "delivery_uuid"),
}


class AuditLogger:
    """Calls the backend access-log procedures."""

    def __init__(self, backend: PersistenceBackend, metrics: Optional[MetricsCollector] = None) -> None:
        self.backend = backend
        self.metrics = metrics

    async def log_access(
        self,
        record_type: RecordType,
        record_id: str,
        access_type: str,
    ) -> Optional[RemoteError]:
        """
        Record one access.

        Returns None when the backend accepted the entry, otherwise an
        AUDIT_LOG_FAILURE error describing what went wrong.
        """
        function, id_param = AUDIT_RPCS[record_type]
        params = {id_param: record_id, "access_type_param": access_type}

        try:
            response = await self.backend.rpc(function, params)
        except Exception as e:
            return self._failed(record_type, record_id, function, str(e) or type(e).__name__, None)

        if response.error is not None:
            return self._failed(
                record_type, record_id, function, response.error.message, response.error.code
            )

        logger.info(
            "Sensitive access logged",
            record_type=record_type.value,
            record_id=record_id,
            access_type=access_type,
        )
        return None

    def _failed(
        self,
        record_type: RecordType,
        record_id: str,
        function: str,
        message: str,
        code: Optional[str],
    ) -> RemoteError:
        logger.warning(
            "Failed to log access",
            record_type=record_type.value,
            record_id=record_id,
            function=function,
            code=code,
            error=message,
        )
        if self.metrics:
            self.metrics.record_audit_failure(record_type.value)
        return RemoteError(
            kind=ErrorKind.AUDIT_LOG_FAILURE,
            message=message,
            code=code,
            details={"function": function},
        )
