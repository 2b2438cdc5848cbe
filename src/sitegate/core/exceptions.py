"""
Custom exceptions for SiteGate service.

Core components return errors as Result values; these exceptions live at
the HTTP boundary and carry status codes and error details for API
responses. ConfigurationError is the exception to that rule: malformed
configuration aborts synchronously wherever it is detected.
"""

from typing import Any, Dict, Optional

from .result import ErrorKind, RemoteError


class SiteGateException(Exception):
    """Base exception for SiteGate service."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(ValueError):
    """Raised synchronously for malformed limiter or executor configuration."""


class ValidationError(SiteGateException):
    """Raised when request validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="validation_error",
            details=details,
        )


class AuthenticationError(SiteGateException):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Invalid or missing authentication token") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="authentication_error",
        )


class AuthorizationError(SiteGateException):
    """Raised when an authenticated caller lacks the admin role."""

    def __init__(self, message: str = "Admin privileges required") -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="authorization_error",
        )


class RateLimitError(SiteGateException):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: Optional[int] = None,
    ) -> None:
        details = {}
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(
            message=message,
            status_code=429,
            error_code="rate_limit_exceeded",
            details=details,
        )


class AccessDeniedError(SiteGateException):
    """Raised when a disclosure request is refused."""

    def __init__(
        self,
        message: str = "You don't have permission to view this information",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code="access_denied",
            details=details,
        )


class RemoteOperationError(SiteGateException):
    """Raised when the backend rejects an operation in a way retries cannot fix."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=502,
            error_code="remote_error",
            details=details,
        )


class BackendUnavailableError(SiteGateException):
    """Raised when the backend kept failing after all retries."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=503,
            error_code="backend_unavailable",
            details=details,
        )


def exception_for_error(error: RemoteError, retry_after: Optional[int] = None) -> SiteGateException:
    """Map a result error onto the HTTP exception that reports it."""
    details: Dict[str, Any] = dict(error.details)
    if error.code:
        details["code"] = error.code

    if error.kind is ErrorKind.RATE_LIMIT_EXCEEDED:
        return RateLimitError(message=error.user_message, retry_after=retry_after)
    if error.kind is ErrorKind.ACCESS_DENIED:
        return AccessDeniedError(message=error.user_message, details=details)
    if error.kind is ErrorKind.NON_RETRYABLE_REMOTE:
        return RemoteOperationError(message=error.message, details=details)
    return BackendUnavailableError(message=error.user_message, details=details)
