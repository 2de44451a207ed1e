"""Response classification and stream completion for a Gremlin traversal driver."""

from .connection import Connection
from .dispatcher import ProtocolAnomaly, ResponseDispatcher
from .errors import (
    AuthenticationFailedError,
    DriverError,
    ErrorCategory,
    ProtocolError,
    RequestCancelledError,
    RequestTimeoutError,
    ResponseError,
    RetriesExhaustedError,
    ServerError,
    UnknownStatusCodeError,
)
from .messages import RequestMessage, ResponseFrame
from .sink import ResultSink
from .status import Classification, ResponseKind, ResponseStatusCode, classify, indicates_error
from .transport import LoopbackTransport, Transport

__version__ = "0.1.0"

__all__ = [
    "AuthenticationFailedError",
    "Classification",
    "Connection",
    "DriverError",
    "ErrorCategory",
    "LoopbackTransport",
    "ProtocolAnomaly",
    "ProtocolError",
    "RequestCancelledError",
    "RequestMessage",
    "RequestTimeoutError",
    "ResponseDispatcher",
    "ResponseError",
    "ResponseFrame",
    "ResponseKind",
    "ResponseStatusCode",
    "ResultSink",
    "RetriesExhaustedError",
    "ServerError",
    "Transport",
    "UnknownStatusCodeError",
    "classify",
    "indicates_error",
]
