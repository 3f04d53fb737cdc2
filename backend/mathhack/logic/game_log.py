"""Append-only event log kept on each session record."""

import time
from uuid import uuid4

from mathhack.logic.enums import LogEntryType
from mathhack.logic.types import GameLogEntry, PlayerRecord, SessionRecord


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def make_entry(
    entry_type: LogEntryType,
    details: str,
    *,
    player: PlayerRecord | None = None,
    target: PlayerRecord | None = None,
    credit_change: int | None = None,
) -> GameLogEntry:
    return GameLogEntry(
        id=uuid4().hex,
        timestamp=_epoch_ms(),
        type=entry_type,
        player_id=player.player_id if player else None,
        player_name=player.name if player else None,
        target_id=target.player_id if target else None,
        target_name=target.name if target else None,
        details=details,
        credit_change=credit_change,
    )


def append(session: SessionRecord, *entries: GameLogEntry) -> SessionRecord:
    """Return a copy of the session with entries appended newest-last."""
    if not entries:
        return session
    return session.model_copy(update={"game_log": (*session.game_log, *entries)})


def recent(session: SessionRecord, window: int) -> list[GameLogEntry]:
    """The newest ``window`` entries, oldest first."""
    if window <= 0:
        return []
    return list(session.game_log[-window:])
