from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mathhack.logic.duels import DuelCoordinator
from mathhack.logic.effects import EffectTracker

if TYPE_CHECKING:
    from mathhack.logic.types import Question
    from mathhack.messaging.protocol import ConnectionProtocol


@dataclass
class Player:
    """A connection bound to one player of one session.

    Lifecycle:
    - Created when the connection sends joinSession
    - Replaced when the same player binds from a newer connection
    - Removed when the connection disconnects
    """

    connection: ConnectionProtocol
    session_id: int
    player_id: str

    @property
    def connection_id(self) -> str:
        return self.connection.connection_id


@dataclass
class SessionRuntime:
    """In-process owner of one session's lock, trackers and bound connections.

    Every mutation of the session's records happens while holding ``lock``.
    """

    session_id: int
    duel_target: int = 5
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    effects: EffectTracker = field(default_factory=EffectTracker)
    duels: DuelCoordinator = field(init=False)
    questions: dict[str, Question] = field(default_factory=dict)  # player_id -> last issued question
    players: dict[str, Player] = field(default_factory=dict)  # connection_id -> Player
    sweep_task: asyncio.Task[None] | None = None

    def __post_init__(self) -> None:
        self.duels = DuelCoordinator(target=self.duel_target)

    def connections_for(self, player_id: str) -> list[Player]:
        return [p for p in self.players.values() if p.player_id == player_id]

    def is_connected(self, player_id: str) -> bool:
        return any(p.player_id == player_id for p in self.players.values())

    @property
    def is_empty(self) -> bool:
        return not self.players
