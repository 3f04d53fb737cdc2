"""Track time-bounded status effects (slow, freeze, shield) for one session.

Expiry is evaluated lazily: an effect is active while its entry exists and its
expiry lies in the future. ``prune_expired`` only bounds memory; correctness
never depends on it having run.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass

from mathhack.logic.enums import EffectKind

Clock = Callable[[], float]


@dataclass(frozen=True)
class EffectApplication:
    """Result of applying an effect to a player."""

    target_id: str
    kind: EffectKind
    applied: bool  # False when a shield suppressed the effect
    expires_at: float | None = None
    cleansed: tuple[EffectKind, ...] = ()


class EffectTracker:
    """Map (player, effect kind) to an absolute expiry on a monotonic clock."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._expiries: dict[tuple[str, EffectKind], float] = {}

    def __len__(self) -> int:
        return len(self._expiries)

    def is_active(self, player_id: str, kind: EffectKind) -> bool:
        expires_at = self._expiries.get((player_id, kind))
        return expires_at is not None and expires_at > self._clock()

    def remaining(self, player_id: str, kind: EffectKind) -> float:
        """Seconds left on an effect, 0 when inactive."""
        expires_at = self._expiries.get((player_id, kind))
        if expires_at is None:
            return 0.0
        return max(0.0, expires_at - self._clock())

    def active_effects(self, player_id: str) -> dict[EffectKind, float]:
        """Remaining seconds for every active effect on a player."""
        return {kind: left for kind in EffectKind if (left := self.remaining(player_id, kind)) > 0}

    def apply(self, target_id: str, kind: EffectKind, duration_seconds: float) -> EffectApplication:
        """Apply an effect to a target.

        A shield on the target suppresses any other effect. Applying a shield
        removes every other effect on the target.
        """
        now = self._clock()
        if kind == EffectKind.SHIELD:
            cleansed = tuple(k for k in EffectKind if k != EffectKind.SHIELD and self.is_active(target_id, k))
            for other in EffectKind:
                if other != EffectKind.SHIELD:
                    self._expiries.pop((target_id, other), None)
        elif self.is_active(target_id, EffectKind.SHIELD):
            return EffectApplication(target_id=target_id, kind=kind, applied=False)
        else:
            cleansed = ()

        expires_at = now + duration_seconds
        self._expiries[(target_id, kind)] = expires_at
        return EffectApplication(
            target_id=target_id,
            kind=kind,
            applied=True,
            expires_at=expires_at,
            cleansed=cleansed,
        )

    def prune_expired(self) -> int:
        """Drop entries whose expiry has passed. Return how many were removed."""
        now = self._clock()
        expired = [key for key, expires_at in self._expiries.items() if expires_at <= now]
        for key in expired:
            del self._expiries[key]
        return len(expired)

    def clear(self) -> None:
        self._expiries.clear()
