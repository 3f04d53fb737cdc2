"""Create, join and inspect sessions before and during play.

These operations back the REST endpoints. Joining mutates the session's game
log, so the SessionManager calls ``join_session`` while holding that session's
lock.
"""

import random

import structlog

from mathhack.logic import game_log
from mathhack.logic.enums import LogEntryType, SessionErrorCode, SessionStatus
from mathhack.logic.exceptions import (
    ConflictError,
    NotFoundError,
    RequestValidationError,
    ServerCapacityError,
)
from mathhack.logic.settings import ContestSettings
from mathhack.logic.types import PlayerRecord, SessionRecord
from mathhack.session.codes import DEFAULT_ATTEMPTS, allocate_code, normalize_code
from mathhack.session.store import PlayerStore, SessionStore

MIN_PLAYERS = 2
MAX_PLAYERS = 8
MIN_GAME_MINUTES = 1
MAX_GAME_MINUTES = 60

logger = structlog.get_logger()


def _require_text(value: str, field: str) -> str:
    value = value.strip()
    if not value:
        raise RequestValidationError(f"{field} is required")
    return value


class LobbyService:
    def __init__(
        self,
        sessions: SessionStore,
        players: PlayerStore,
        settings: ContestSettings | None = None,
        *,
        max_sessions: int = 100,
        code_attempts: int = DEFAULT_ATTEMPTS,
        rng: random.Random | None = None,
    ) -> None:
        self._sessions = sessions
        self._players = players
        self._settings = settings or ContestSettings()
        self._max_sessions = max_sessions
        self._code_attempts = code_attempts
        self._rng = rng

    async def create_session(
        self,
        *,
        host_id: str,
        host_name: str,
        max_players: int = 4,
        game_duration: int = 15,
    ) -> tuple[SessionRecord, PlayerRecord]:
        """Create a waiting session with the caller as host and first player."""
        host_id = _require_text(host_id, "hostId")
        host_name = _require_text(host_name, "hostName")
        if not MIN_PLAYERS <= max_players <= MAX_PLAYERS:
            raise RequestValidationError(f"maxPlayers must be {MIN_PLAYERS}-{MAX_PLAYERS}, got {max_players}")
        if not MIN_GAME_MINUTES <= game_duration <= MAX_GAME_MINUTES:
            raise RequestValidationError(
                f"gameDuration must be {MIN_GAME_MINUTES}-{MAX_GAME_MINUTES} minutes, got {game_duration}",
            )
        if self._sessions.live_count >= self._max_sessions:
            raise ServerCapacityError("server is at session capacity, try again later")

        code = await allocate_code(self._sessions.code_in_use, attempts=self._code_attempts, rng=self._rng)
        session = await self._sessions.create(
            code=code,
            host_id=host_id,
            max_players=max_players,
            game_duration=game_duration,
        )
        host = await self._players.create(
            session_id=session.id,
            player_id=host_id,
            name=host_name,
            credits=self._settings.starting_credits,
            is_host=True,
        )
        entry = game_log.make_entry(LogEntryType.PLAYER_JOIN, f"{host.name} created the session", player=host)
        session = await self._sessions.update(game_log.append(session, entry))
        logger.info("session created", session_id=session.id, code=code, host_id=host_id)
        return session, host

    async def resolve_code(self, code: str) -> SessionRecord:
        session = await self._sessions.get_by_code(normalize_code(code))
        if session is None:
            raise NotFoundError("game session not found")
        return session

    async def join_session(self, session_id: int, *, player_id: str, name: str) -> tuple[SessionRecord, PlayerRecord]:
        """Add a player to a waiting session that still has a free seat."""
        player_id = _require_text(player_id, "playerId")
        name = _require_text(name, "name")
        session = await self.require_session(session_id)
        if session.status != SessionStatus.WAITING:
            raise ConflictError("game has already started", code=SessionErrorCode.GAME_ALREADY_STARTED)

        existing = await self._players.list_for_session(session.id)
        if any(p.player_id == player_id for p in existing):
            raise ConflictError("player already in session", code=SessionErrorCode.ALREADY_JOINED)
        if len(existing) >= session.max_players:
            raise ConflictError("game session is full", code=SessionErrorCode.SESSION_FULL)

        player = await self._players.create(
            session_id=session.id,
            player_id=player_id,
            name=name,
            credits=self._settings.starting_credits,
        )
        entry = game_log.make_entry(LogEntryType.PLAYER_JOIN, f"{player.name} joined the session", player=player)
        session = await self._sessions.update(game_log.append(session, entry))
        logger.info("player joined session", session_id=session.id, player_id=player_id)
        return session, player

    async def require_session(self, session_id: int) -> SessionRecord:
        session = await self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"game session {session_id} not found")
        return session

    async def get_state(self, session_id: int) -> tuple[SessionRecord, list[PlayerRecord]]:
        session = await self.require_session(session_id)
        return session, await self._players.list_for_session(session_id)
