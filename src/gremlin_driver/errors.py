"""Exception types raised by the driver and delivered to result sinks."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Coarse failure category carried by every response error."""

    PROTOCOL = "protocol"
    AUTHENTICATION = "authentication"
    RETRIES_EXHAUSTED = "retries_exhausted"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    SERVER = "server"


class DriverError(Exception):
    """Base exception for the driver."""


class ConfigurationError(DriverError):
    """Raised when driver settings fail validation."""


class DuplicateRequestIdError(DriverError):
    """Raised when a request id is registered while another request still owns it."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Request id '{request_id}' is already pending")
        self.request_id = request_id


class ResponseError(DriverError):
    """Failure delivered to the caller that owns one request."""

    category: ErrorCategory = ErrorCategory.SERVER

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        server_message: str | None = None,
        status_attributes: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message
        self.status_attributes = dict(status_attributes or {})
        self.request_id = request_id

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(category={self.category.value!r}, status_code={self.status_code!r}, "
            f"request_id={self.request_id!r}, message={str(self)!r})"
        )


class ProtocolError(ResponseError):
    """The server sent something the driver cannot interpret."""

    category = ErrorCategory.PROTOCOL


class UnknownStatusCodeError(ProtocolError):
    """A status code outside the closed set understood by the driver."""

    def __init__(self, status_code: int, *, request_id: str | None = None) -> None:
        super().__init__(f"Unknown response status code: {status_code}", status_code=status_code, request_id=request_id)


class AuthenticationFailedError(ResponseError):
    """The server challenged the request again after credentials were sent."""

    category = ErrorCategory.AUTHENTICATION


class RetriesExhaustedError(ResponseError):
    """A transient failure persisted past the retry budget."""

    category = ErrorCategory.RETRIES_EXHAUSTED

    def __init__(self, message: str, *, attempts: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts


class RequestTimeoutError(ResponseError):
    """No frame arrived for the request within the configured duration."""

    category = ErrorCategory.TIMEOUT


class RequestCancelledError(ResponseError):
    """The caller cancelled the request."""

    category = ErrorCategory.CANCELLED


class ServerError(ResponseError):
    """Fatal status surfaced verbatim from the server."""

    category = ErrorCategory.SERVER
