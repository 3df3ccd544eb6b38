"""
Error taxonomy and result type for the analytics client.

Client operations never raise for expected failures. They return a
``Result`` carrying either a value or one of the errors below:

- ValidationError: bad input caught before any network call
- AuthError: credential exchange failed, or still unauthorized after refresh
- PermissionDeniedError: operation not allowed for the active auth mode
- ApiError: any other non-2xx response from the service
- TransportError: network-level failure (timeout, DNS, connection reset)

Callers who prefer exceptions can call ``result.unwrap()``.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class AnalyticsError(Exception):
    """Base class for all client errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AnalyticsError):
    """Raised for missing or invalid input, detected before any request."""
    pass


class AuthError(AnalyticsError):
    """Credential exchange failed or the service keeps rejecting the token."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PermissionDeniedError(AnalyticsError):
    """Operation is not allowed with the configured credentials."""
    pass


class ApiError(AnalyticsError):
    """
    A non-2xx response from the service.

    Attributes:
        status_code: HTTP status of the response
        message: First error message returned by the service
        code: Service specific error code, if any
        validation: Per-field validation messages, if any
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str | None = None,
        validation: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.validation = validation or {}

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


class TransportError(AnalyticsError):
    """The request never produced an HTTP response."""
    pass


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a client operation.

    Exactly one of ``value`` or ``error`` is meaningful. Operations that
    return nothing on success carry ``value=None``.
    """
    value: T | None = None
    error: AnalyticsError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        """Allow `if result:` to check for success."""
        return self.ok

    def unwrap(self) -> T:
        """Return the value, or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AnalyticsError) -> "Result[T]":
        return cls(error=error)
