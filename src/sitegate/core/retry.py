"""
Retryability classification for backend failures.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .backend import BackendError, BackendResponse

# Permission denied, no data found, unique violation, foreign-key violation
NON_RETRYABLE_CODES = ("PGRST116", "PGRST204", "23505", "23503")


@dataclass
class AttemptOutcome:
    """Outcome of a single attempt inside one execute call."""
    data: Any = None
    failed: bool = False
    retryable: bool = False
    code: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.failed


class RetryClassifier:
    """
    Decides whether a failed attempt may succeed if repeated.

    A failure is final when its code is one of the non-retryable codes, or
    when one of those codes appears in its message. Everything else,
    including exceptions that carry no code at all, is retryable.
    """

    def __init__(self, non_retryable_codes: Iterable[str] = NON_RETRYABLE_CODES) -> None:
        self.non_retryable_codes = tuple(non_retryable_codes)

    def is_retryable(self, code: Optional[str], message: Optional[str] = None) -> bool:
        for non_retryable in self.non_retryable_codes:
            if code == non_retryable:
                return False
            if message and non_retryable in message:
                return False
        return True

    def classify_response(self, response: Any) -> AttemptOutcome:
        """Classify whatever the operation returned."""
        if isinstance(response, BackendResponse):
            if response.error is None:
                return AttemptOutcome(data=response.data)
            return self.classify_error(response.error)
        return AttemptOutcome(data=response)

    def classify_error(self, error: BackendError) -> AttemptOutcome:
        return AttemptOutcome(
            failed=True,
            retryable=self.is_retryable(error.code, error.message),
            code=error.code,
            message=error.message,
        )

    def classify_exception(self, exc: BaseException) -> AttemptOutcome:
        """Classify an exception raised by the operation."""
        code = getattr(exc, "code", None)
        code = str(code) if code is not None else None
        message = str(exc) or type(exc).__name__
        return AttemptOutcome(
            failed=True,
            retryable=self.is_retryable(code, message),
            code=code,
            message=message,
        )
