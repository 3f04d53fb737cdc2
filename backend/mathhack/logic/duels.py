"""Hack duels: two-player races to a fixed number of correct answers.

A player may take part in at most one live duel at a time, as hacker or
target. Duels are removed from the coordinator as soon as they resolve,
are forfeited, or are cancelled at session end.
"""

from __future__ import annotations

import math
import random
import time
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from mathhack.logic.enums import DuelOutcome, SessionErrorCode
from mathhack.logic.exceptions import ConflictError, RequestValidationError


@dataclass
class Duel:
    hacker_id: str
    target_id: str
    attacker_progress: int = 0
    defender_progress: int = 0
    id: str = field(default_factory=lambda: uuid4().hex)
    started_at: int = field(default_factory=lambda: int(time.time() * 1000))  # epoch milliseconds

    def involves(self, player_id: str) -> bool:
        return player_id in (self.hacker_id, self.target_id)

    def to_wire(self) -> dict[str, Any]:
        return {
            "duelId": self.id,
            "hackerId": self.hacker_id,
            "targetId": self.target_id,
            "attackerProgress": self.attacker_progress,
            "defenderProgress": self.defender_progress,
            "startedAt": self.started_at,
        }


@dataclass(frozen=True)
class DuelProgress:
    """Snapshot of a duel after one progress step or a terminal event."""

    duel_id: str
    hacker_id: str
    target_id: str
    attacker_progress: int
    defender_progress: int
    outcome: DuelOutcome | None = None

    @classmethod
    def of(cls, duel: Duel, outcome: DuelOutcome | None = None) -> DuelProgress:
        return cls(
            duel_id=duel.id,
            hacker_id=duel.hacker_id,
            target_id=duel.target_id,
            attacker_progress=duel.attacker_progress,
            defender_progress=duel.defender_progress,
            outcome=outcome,
        )

    @property
    def resolved(self) -> bool:
        return self.outcome is not None


class DuelCoordinator:
    """Own the live duels of a single session."""

    def __init__(self, target: int = 5) -> None:
        self._target = target
        self._duels: dict[str, Duel] = {}  # duel_id -> Duel

    def __len__(self) -> int:
        return len(self._duels)

    @property
    def target(self) -> int:
        return self._target

    def active(self) -> list[Duel]:
        """Live duels in start order."""
        return list(self._duels.values())

    def duel_for(self, player_id: str) -> Duel | None:
        for duel in self._duels.values():
            if duel.involves(player_id):
                return duel
        return None

    def ensure_can_start(self, hacker_id: str, target_id: str) -> None:
        """Raise if a duel between these players would break the one-duel rule."""
        if hacker_id == target_id:
            raise RequestValidationError("cannot hack yourself", code=SessionErrorCode.INVALID_TARGET)
        if self.duel_for(hacker_id) is not None:
            raise ConflictError("you are already in a hack duel", code=SessionErrorCode.DUEL_IN_PROGRESS)
        if self.duel_for(target_id) is not None:
            raise ConflictError("target is already in a hack duel", code=SessionErrorCode.DUEL_IN_PROGRESS)

    def start(self, hacker_id: str, target_id: str) -> Duel:
        self.ensure_can_start(hacker_id, target_id)
        duel = Duel(hacker_id=hacker_id, target_id=target_id)
        self._duels[duel.id] = duel
        return duel

    def record_correct(self, player_id: str) -> DuelProgress | None:
        """Advance the duel a player is in after they answer correctly.

        Returns None if the player is not dueling. A resolved duel is
        removed before returning.
        """
        duel = self.duel_for(player_id)
        if duel is None:
            return None

        if player_id == duel.hacker_id:
            duel.attacker_progress += 1
        else:
            duel.defender_progress += 1

        outcome = None
        if duel.attacker_progress >= self._target:
            outcome = DuelOutcome.ATTACKER_WON
        elif duel.defender_progress >= self._target:
            outcome = DuelOutcome.DEFENDER_WON

        if outcome is not None:
            del self._duels[duel.id]
        return DuelProgress.of(duel, outcome)

    def forfeit(self, player_id: str) -> DuelProgress | None:
        """Cancel the duel a departing player is in, if any."""
        duel = self.duel_for(player_id)
        if duel is None:
            return None
        del self._duels[duel.id]
        return DuelProgress.of(duel, DuelOutcome.FORFEIT)

    def cancel_all(self) -> list[DuelProgress]:
        cancelled = [DuelProgress.of(duel, DuelOutcome.GAME_ENDED) for duel in self._duels.values()]
        self._duels.clear()
        return cancelled


def steal_amount(target_credits: int, rng: random.Random, low: float, high: float) -> int:
    """Credits taken from a defeated target: floor(credits * U(low, high))."""
    return math.floor(max(0, target_credits) * rng.uniform(low, high))
