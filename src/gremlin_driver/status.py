"""Response status codes and their classification.

The server tags every response frame with one of a closed set of numeric codes.
`classify` maps a code to the kind of step the owning request takes next:

    >>> classify(206)
    Classification(kind=<ResponseKind.PARTIAL_SUCCESS: 'partial_success'>, is_error=False)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from types import MappingProxyType

from gremlin_driver.errors import UnknownStatusCodeError


class ResponseStatusCode(IntEnum):
    """Status codes returned by the traversal server."""

    SUCCESS = 200
    NO_CONTENT = 204
    PARTIAL_CONTENT = 206
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    AUTHENTICATE = 407
    TOO_MANY_REQUESTS = 429
    CLIENT_SERIALIZATION_ERROR = 497
    MALFORMED_REQUEST = 498
    INVALID_REQUEST_ARGUMENTS = 499
    SERVER_ERROR = 500
    SERVER_ERROR_FAIL_STEP = 595
    SERVER_ERROR_TEMPORARY = 596
    SERVER_EVALUATION_ERROR = 597
    SERVER_TIMEOUT = 598
    SERVER_SERIALIZATION_ERROR = 599


class ResponseKind(Enum):
    """What a frame means for the request stream it belongs to."""

    TERMINAL_SUCCESS_EMPTY = "terminal_success_empty"
    TERMINAL_SUCCESS_WITH_DATA = "terminal_success_with_data"
    PARTIAL_SUCCESS = "partial_success"
    AUTH_CHALLENGE = "auth_challenge"
    RETRYABLE_ERROR = "retryable_error"
    FATAL_ERROR = "fatal_error"

    @property
    def is_terminal(self) -> bool:
        return self in (ResponseKind.TERMINAL_SUCCESS_EMPTY, ResponseKind.TERMINAL_SUCCESS_WITH_DATA)


@dataclass(frozen=True)
class Classification:
    kind: ResponseKind
    is_error: bool


_Code = ResponseStatusCode
_Kind = ResponseKind

_TABLE: MappingProxyType[int, Classification] = MappingProxyType({
    _Code.SUCCESS: Classification(_Kind.TERMINAL_SUCCESS_WITH_DATA, False),
    _Code.NO_CONTENT: Classification(_Kind.TERMINAL_SUCCESS_EMPTY, False),
    _Code.PARTIAL_CONTENT: Classification(_Kind.PARTIAL_SUCCESS, False),
    _Code.UNAUTHORIZED: Classification(_Kind.FATAL_ERROR, True),
    _Code.FORBIDDEN: Classification(_Kind.FATAL_ERROR, True),
    # A challenge is control flow, not a failure.
    _Code.AUTHENTICATE: Classification(_Kind.AUTH_CHALLENGE, False),
    _Code.TOO_MANY_REQUESTS: Classification(_Kind.RETRYABLE_ERROR, True),
    _Code.CLIENT_SERIALIZATION_ERROR: Classification(_Kind.FATAL_ERROR, True),
    _Code.MALFORMED_REQUEST: Classification(_Kind.FATAL_ERROR, True),
    _Code.INVALID_REQUEST_ARGUMENTS: Classification(_Kind.FATAL_ERROR, True),
    _Code.SERVER_ERROR: Classification(_Kind.FATAL_ERROR, True),
    _Code.SERVER_ERROR_FAIL_STEP: Classification(_Kind.FATAL_ERROR, True),
    _Code.SERVER_ERROR_TEMPORARY: Classification(_Kind.RETRYABLE_ERROR, True),
    _Code.SERVER_EVALUATION_ERROR: Classification(_Kind.FATAL_ERROR, True),
    _Code.SERVER_TIMEOUT: Classification(_Kind.FATAL_ERROR, True),
    _Code.SERVER_SERIALIZATION_ERROR: Classification(_Kind.FATAL_ERROR, True),
})

_DESCRIPTIONS: MappingProxyType[int, str] = MappingProxyType({
    _Code.SUCCESS: "Request processed to completion; no more frames follow.",
    _Code.NO_CONTENT: "Request processed but produced no result; no more frames follow.",
    _Code.PARTIAL_CONTENT: "Some results returned; more frames follow for this request.",
    _Code.UNAUTHORIZED: "The user may not access the requested resources.",
    _Code.FORBIDDEN: "Authenticated, but not authorized to perform the request.",
    _Code.AUTHENTICATE: "The server asks the client to authenticate this request.",
    _Code.TOO_MANY_REQUESTS: "Too many requests in a given amount of time.",
    _Code.CLIENT_SERIALIZATION_ERROR: "The request holds objects the client could not serialize.",
    _Code.MALFORMED_REQUEST: "The request could not be parsed or its op was not recognized.",
    _Code.INVALID_REQUEST_ARGUMENTS: "The request arguments conflict or are incomplete.",
    _Code.SERVER_ERROR: "A general server error prevented processing.",
    _Code.SERVER_ERROR_FAIL_STEP: "The traversal hit a fail() step.",
    _Code.SERVER_ERROR_TEMPORARY: "Transient conflict on the server (e.g. a lock); retry later.",
    _Code.SERVER_EVALUATION_ERROR: "The script or traversal failed during evaluation.",
    _Code.SERVER_TIMEOUT: "A server timeout was exceeded; the response is partial or missing.",
    _Code.SERVER_SERIALIZATION_ERROR: "The server could not serialize a result.",
})


def classify(code: int, *, has_payload: bool = True) -> Classification:
    """Map a status code to its response kind.

    Args:
        code: Numeric status code from a response frame.
        has_payload: Whether the frame carries result data. Only affects 200,
            which is terminal with data when a payload is present and terminal
            empty otherwise.

    Raises:
        UnknownStatusCodeError: If the code is not one the server defines.
    """
    classification = _TABLE.get(code)
    if classification is None:
        raise UnknownStatusCodeError(code)
    if code == ResponseStatusCode.SUCCESS and not has_payload:
        return Classification(ResponseKind.TERMINAL_SUCCESS_EMPTY, False)
    return classification


def indicates_error(code: int) -> bool:
    return classify(code).is_error


def describe(code: int) -> str:
    """Return the human description of a known code."""
    if code not in _DESCRIPTIONS:
        raise UnknownStatusCodeError(code)
    return _DESCRIPTIONS[code]


def known_codes() -> tuple[ResponseStatusCode, ...]:
    return tuple(ResponseStatusCode)
