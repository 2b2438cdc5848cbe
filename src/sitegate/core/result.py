"""
Uniform result shape returned by the executor and the disclosure gate.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Error taxonomy shared by every core component."""

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    NON_RETRYABLE_REMOTE = "non_retryable_remote_error"
    TRANSIENT_REMOTE = "transient_remote_error"
    ACCESS_DENIED = "access_denied"
    AUDIT_LOG_FAILURE = "audit_log_failure"


# Remediation differs per kind: wait, contact support, or retry now
USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMIT_EXCEEDED: "Rate limit exceeded. Please try again later.",
    ErrorKind.NON_RETRYABLE_REMOTE: "The request was rejected by the server.",
    ErrorKind.TRANSIENT_REMOTE: "The server could not be reached. Please retry.",
    ErrorKind.ACCESS_DENIED: (
        "You don't have permission to view this information. "
        "Contact support or the record owner if you need access."
    ),
    ErrorKind.AUDIT_LOG_FAILURE: "Access could not be recorded in the audit log.",
}


@dataclass
class RemoteError:
    """Error carried inside a Result."""
    kind: ErrorKind
    message: str
    code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]


@dataclass
class Result(Generic[T]):
    """Outcome of a resilient operation."""
    data: Optional[T] = None
    error: Optional[RemoteError] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Optional[T], attempts: int = 1) -> "Result[T]":
        return cls(data=data, attempts=attempts)

    @classmethod
    def failure(cls, error: RemoteError, attempts: int = 0) -> "Result[T]":
        return cls(error=error, attempts=attempts)
