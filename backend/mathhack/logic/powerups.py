"""Power-up catalog: what each ability costs and what it does."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from mathhack.logic.enums import EffectKind, PowerUpType


class PowerUp(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: PowerUpType
    name: str
    cost: int
    duration_seconds: int | None = None  # None for hack, which starts a duel
    self_only: bool = False

    @property
    def effect_kind(self) -> EffectKind | None:
        """Effect written to the tracker, or None when the power-up is not a timed effect."""
        if self.type == PowerUpType.HACK:
            return None
        return EffectKind(self.type.value)


POWER_UPS: dict[PowerUpType, PowerUp] = {
    PowerUpType.SLOW: PowerUp(type=PowerUpType.SLOW, name="Slow Down", cost=50, duration_seconds=10),
    PowerUpType.FREEZE: PowerUp(type=PowerUpType.FREEZE, name="Freeze", cost=100, duration_seconds=8),
    PowerUpType.SHIELD: PowerUp(type=PowerUpType.SHIELD, name="Shield", cost=150, duration_seconds=10, self_only=True),
    PowerUpType.HACK: PowerUp(type=PowerUpType.HACK, name="Hack", cost=250),
}


def get_power_up(power_up_type: PowerUpType) -> PowerUp:
    return POWER_UPS[power_up_type]
