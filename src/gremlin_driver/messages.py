"""Request and response message models exchanged with the transport."""

from __future__ import annotations

import base64
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

AUTHENTICATION_OP = "authentication"
SASL_MECHANISM = "PLAIN"


def new_request_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RequestMessage:
    """Request sent to the server; everything but the id is opaque to the driver."""

    request_id: str
    op: str = "eval"
    processor: str = ""
    args: dict[str, Any] = field(default_factory=dict)

    def with_request_id(self, request_id: str) -> RequestMessage:
        """Copy of this message under a new id, used when resubmitting."""
        return replace(self, request_id=request_id)

    @property
    def is_authentication(self) -> bool:
        return self.op == AUTHENTICATION_OP


@dataclass(frozen=True)
class ResponseFrame:
    """One server-to-client response unit."""

    request_id: str
    status_code: int
    payload: Any = None
    status_message: str = ""
    status_attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def has_payload(self) -> bool:
        if self.payload is None:
            return False
        if isinstance(self.payload, (list, tuple)):
            return len(self.payload) > 0
        return True

    def payload_items(self) -> list[Any]:
        """Normalize the payload to a list of result items."""

        if self.payload is None:
            return []
        if isinstance(self.payload, (list, tuple)):
            return list(self.payload)
        return [self.payload]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ResponseFrame:
        """Build a frame from a decoded wire mapping.

        Accepts both the flat shape (``request_id``, ``status_code``, ``payload``)
        and the server's nested shape (``requestId``, ``status.code``,
        ``result.data``).
        """

        status = data.get("status")
        result = data.get("result")
        if isinstance(status, Mapping):
            code = status.get("code")
            message = status.get("message", "")
            attributes = status.get("attributes") or {}
        else:
            code = data.get("status_code", status)
            message = data.get("status_message", "")
            attributes = data.get("status_attributes") or {}
        if code is None:
            raise ValueError("frame has no status code")
        payload = result.get("data") if isinstance(result, Mapping) else data.get("payload")
        request_id = data.get("request_id", data.get("requestId"))
        if request_id is None:
            raise ValueError("frame has no request id")
        return cls(
            request_id=str(request_id),
            status_code=int(code),
            payload=payload,
            status_message=str(message or ""),
            status_attributes=dict(attributes),
        )


def authentication_message(request_id: str, username: str, password: str) -> RequestMessage:
    """Build the SASL PLAIN credentials reply for a challenged request."""

    token = b"\0" + username.encode("utf-8") + b"\0" + password.encode("utf-8")
    return RequestMessage(
        request_id=request_id,
        op=AUTHENTICATION_OP,
        processor="",
        args={
            "saslMechanism": SASL_MECHANISM,
            "sasl": base64.b64encode(token).decode("ascii"),
        },
    )
