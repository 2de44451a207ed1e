"""Answering server authentication challenges."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from gremlin_driver.errors import AuthenticationFailedError, ProtocolError
from gremlin_driver.messages import RequestMessage, authentication_message
from gremlin_driver.pending import PendingRequest, PendingRequestTable
from gremlin_driver.status import ResponseStatusCode
from gremlin_driver.tasks import BackgroundTasks
from gremlin_driver.transport import Transport


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


class AuthChallengeHandler:
    """Send one credentials frame per challenged request id.

    A second challenge on the same id means the server rejected the
    credentials; the request then fails instead of looping.
    """

    def __init__(
        self,
        credentials: Credentials | None,
        *,
        table: PendingRequestTable,
        transport: Transport,
        tasks: BackgroundTasks,
    ) -> None:
        self._credentials = credentials
        self._table = table
        self._transport = transport
        self._tasks = tasks

    def on_challenge(self, pending: PendingRequest, *, server_message: str = "") -> bool:
        """Handle a challenge; returns True when credentials were sent."""
        request_id = pending.request_id
        if self._credentials is None:
            logger.warning("auth.challenge.no_credentials request_id={}", request_id)
            self._table.fail(
                request_id,
                AuthenticationFailedError(
                    "Server requested authentication but no credentials are configured",
                    status_code=ResponseStatusCode.AUTHENTICATE,
                    server_message=server_message,
                ),
            )
            return False
        if pending.challenged:
            logger.warning("auth.challenge.rejected request_id={}", request_id)
            self._table.fail(
                request_id,
                AuthenticationFailedError(
                    "Server rejected the supplied credentials",
                    status_code=ResponseStatusCode.AUTHENTICATE,
                    server_message=server_message,
                ),
            )
            return False

        pending.challenged = True
        message = authentication_message(request_id, self._credentials.username, self._credentials.password)
        logger.debug("auth.challenge.respond request_id={}", request_id)
        self._tasks.spawn(self._send(pending, message), name=f"auth:{request_id}")
        return True

    async def _send(self, pending: PendingRequest, message: RequestMessage) -> None:
        try:
            await self._transport.send(message)
        except Exception as error:
            logger.opt(exception=True).warning("auth.send_failed request_id={}", message.request_id)
            if self._table.lookup(message.request_id) is pending:
                self._table.fail(message.request_id, ProtocolError(f"Failed to send credentials: {error}"))
