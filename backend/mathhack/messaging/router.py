from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

from mathhack.logic.enums import PowerUpType, SessionErrorCode
from mathhack.logic.exceptions import ContestError, MalformedMessageError
from mathhack.messaging.types import (
    EndGameMessage,
    ErrorMessage,
    JoinSessionMessage,
    PingMessage,
    SkipQuestionMessage,
    StartGameMessage,
    StartHackMessage,
    SubmitAnswerMessage,
    ToggleReadyMessage,
    UsePowerUpMessage,
    parse_client_message,
)

if TYPE_CHECKING:
    from mathhack.messaging.encoder import DecodeError
    from mathhack.messaging.protocol import ConnectionProtocol
    from mathhack.messaging.types import SessionScopedMessage
    from mathhack.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to SessionManager handlers.

    Rejected requests (ContestError, including malformed messages) are
    answered with a session_error frame to the sender only. Unexpected failures are logged and answered with
    internal_error; the connection stays open.

    This class contains pure business logic and can be tested
    without real WebSocket connections.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        self._session_manager.record_activity(connection)
        try:
            message = parse_client_message(raw_message)
            if isinstance(message, JoinSessionMessage):
                await self._session_manager.join_session(connection, message.session_id, message.player_id)
            elif isinstance(message, PingMessage):
                await self._session_manager.handle_ping(connection)
            else:
                await self._dispatch_bound(connection, message)
        except MalformedMessageError as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e.__cause__)
            await self._send_error(connection, e)
        except ContestError as e:
            logger.info("request rejected for %s: %s (%s)", connection.connection_id, e.message, e.code)
            await self._send_error(connection, e)
        except Exception:
            logger.exception("unhandled error for %s", connection.connection_id)
            await self._send_error(
                connection,
                ContestError("internal server error", code=SessionErrorCode.INTERNAL_ERROR),
            )

    async def handle_decode_error(self, connection: ConnectionProtocol, error: DecodeError) -> None:
        """Answer an undecodable frame. The frame still counts as liveness."""
        self._session_manager.record_activity(connection)
        logger.warning("undecodable frame from %s: %s", connection.connection_id, error)
        await self._send_error(connection, MalformedMessageError("invalid message"))

    async def _dispatch_bound(self, connection: ConnectionProtocol, message: SessionScopedMessage) -> None:
        binding = self._session_manager.require_binding(connection, message.session_id, message.player_id)

        if isinstance(message, ToggleReadyMessage):
            await self._session_manager.toggle_ready(binding)
        elif isinstance(message, StartGameMessage):
            await self._session_manager.start_game(binding)
        elif isinstance(message, SubmitAnswerMessage):
            await self._session_manager.submit_answer(binding, message.answer)
        elif isinstance(message, UsePowerUpMessage):
            await self._session_manager.use_power_up(binding, message.power_up_type, message.target_id)
        elif isinstance(message, StartHackMessage):
            await self._session_manager.use_power_up(binding, PowerUpType.HACK, message.target_id)
        elif isinstance(message, SkipQuestionMessage):
            await self._session_manager.skip_question(binding)
        elif isinstance(message, EndGameMessage):
            await self._session_manager.end_game(binding)

    @staticmethod
    async def _send_error(connection: ConnectionProtocol, error: ContestError) -> None:
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(ErrorMessage(code=error.code, message=error.message).to_wire())

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.handle_disconnect(connection)
