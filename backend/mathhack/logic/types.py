"""
Pydantic models for contest records.

Records are frozen snapshots: every mutation produces a new instance via
``model_copy(update=...)`` and is written back through the stores. Wire
serialization uses camelCase aliases to match the browser client.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mathhack.logic.enums import LogEntryType, Operation, SessionStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


class WireModel(BaseModel):
    """Base for models that travel to clients with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self, **kwargs: Any) -> dict[str, Any]:  # noqa: ANN401
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class Question(WireModel):
    id: str
    text: str
    left: int
    right: int
    operation: Operation
    answer: int
    options: list[int]
    difficulty: int
    time_limit: int

    def public_view(self) -> dict[str, Any]:
        """Question as sent to the player: the answer is withheld."""
        return self.to_wire(exclude={"answer"})


class GameLogEntry(WireModel):
    id: str
    timestamp: int  # epoch milliseconds
    type: LogEntryType
    player_id: str | None = None
    player_name: str | None = None
    target_id: str | None = None
    target_name: str | None = None
    details: str
    credit_change: int | None = None


class PlayerRecord(WireModel):
    """A participant's mutable state within one session."""

    id: int
    session_id: int
    player_id: str
    name: str
    credits: int = Field(default=0, ge=0)
    correct_answers: int = 0
    wrong_answers: int = 0
    difficulty_level: int = 1
    max_difficulty_reached: int = 1
    consecutive_correct: int = 0
    consecutive_wrong: int = 0
    overall_consecutive_correct: int = 0
    is_host: bool = False
    is_ready: bool = False
    questions_skipped: int = 0
    hack_attempts: int = 0
    joined_at: datetime = Field(default_factory=utcnow)

    def adjust_credits(self, delta: int) -> PlayerRecord:
        """Return a copy with credits shifted by delta, clamped at zero."""
        return self.model_copy(update={"credits": max(0, self.credits + delta)})


class SessionRecord(WireModel):
    """A single contest instance and its full game log."""

    id: int
    code: str
    host_id: str
    status: SessionStatus = SessionStatus.WAITING
    max_players: int = 4
    question_number: int = 0
    game_duration: int = 15  # minutes
    game_start_time: datetime | None = None
    game_end_time: datetime | None = None
    game_log: tuple[GameLogEntry, ...] = ()
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def view(self, log_window: int) -> dict[str, Any]:
        """Wire view with the game log cut to the newest ``log_window`` entries."""
        payload = self.to_wire(exclude={"game_log"})
        payload["gameLog"] = [entry.to_wire() for entry in self.game_log[-log_window:]]
        return payload
