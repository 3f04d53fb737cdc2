import itertools

from mathhack.logic.enums import SessionErrorCode, SessionStatus
from mathhack.logic.exceptions import NotFoundError
from mathhack.logic.types import PlayerRecord, SessionRecord


class SessionStore:
    """In-memory store for session records.

    Records are immutable snapshots; callers read, build an updated copy and
    write it back with ``update``. The async interface matches what a durable
    backend would expose, so the session layer never assumes reads are free.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, SessionRecord] = {}  # session id -> record
        self._by_code: dict[str, int] = {}  # join code -> session id
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(
        self,
        *,
        code: str,
        host_id: str,
        max_players: int,
        game_duration: int,
    ) -> SessionRecord:
        session = SessionRecord(
            id=next(self._ids),
            code=code,
            host_id=host_id,
            max_players=max_players,
            game_duration=game_duration,
        )
        self._sessions[session.id] = session
        self._by_code[code] = session.id
        return session

    async def get(self, session_id: int) -> SessionRecord | None:
        return self._sessions.get(session_id)

    async def get_by_code(self, code: str) -> SessionRecord | None:
        session_id = self._by_code.get(code)
        return self._sessions.get(session_id) if session_id is not None else None

    async def code_in_use(self, code: str) -> bool:
        """A code is free again once the session holding it has finished."""
        session = await self.get_by_code(code)
        return session is not None and session.status != SessionStatus.FINISHED

    async def update(self, session: SessionRecord) -> SessionRecord:
        if session.id not in self._sessions:
            raise NotFoundError(f"session {session.id} not found")
        self._sessions[session.id] = session
        return session

    async def delete(self, session_id: int) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None and self._by_code.get(session.code) == session_id:
            del self._by_code[session.code]

    def count_by_status(self) -> dict[SessionStatus, int]:
        counts = dict.fromkeys(SessionStatus, 0)
        for session in self._sessions.values():
            counts[session.status] += 1
        return counts

    @property
    def live_count(self) -> int:
        """Sessions that are waiting or active."""
        return sum(1 for s in self._sessions.values() if s.status != SessionStatus.FINISHED)


class PlayerStore:
    """In-memory store for player records, keyed by session and caller-supplied player id."""

    def __init__(self) -> None:
        self._players: dict[int, dict[str, PlayerRecord]] = {}  # session id -> player id -> record
        self._ids = itertools.count(1)

    async def create(
        self,
        *,
        session_id: int,
        player_id: str,
        name: str,
        credits: int = 0,
        is_host: bool = False,
    ) -> PlayerRecord:
        player = PlayerRecord(
            id=next(self._ids),
            session_id=session_id,
            player_id=player_id,
            name=name,
            credits=credits,
            is_host=is_host,
        )
        self._players.setdefault(session_id, {})[player_id] = player
        return player

    async def get(self, session_id: int, player_id: str) -> PlayerRecord | None:
        return self._players.get(session_id, {}).get(player_id)

    async def require(self, session_id: int, player_id: str) -> PlayerRecord:
        player = await self.get(session_id, player_id)
        if player is None:
            raise NotFoundError(f"player {player_id} not found", code=SessionErrorCode.PLAYER_NOT_FOUND)
        return player

    async def list_for_session(self, session_id: int) -> list[PlayerRecord]:
        """Players of a session in join order."""
        return list(self._players.get(session_id, {}).values())

    async def update(self, player: PlayerRecord) -> PlayerRecord:
        players = self._players.get(player.session_id)
        if players is None or player.player_id not in players:
            raise NotFoundError(f"player {player.player_id} not found", code=SessionErrorCode.PLAYER_NOT_FOUND)
        players[player.player_id] = player
        return player

    async def delete_session(self, session_id: int) -> None:
        self._players.pop(session_id, None)
