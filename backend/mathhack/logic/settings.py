"""Centralized gameplay rules for the arithmetic contest."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 9


class ContestSettings(BaseModel):
    """
    Configuration for all contest rules.

    Defaults reproduce the reference game economy.
    """

    model_config = ConfigDict(frozen=True)

    # --- Session ---
    min_players_to_start: int = Field(default=2, ge=2)
    starting_credits: int = Field(default=0, ge=0)

    # --- Rewards ---
    base_reward: int = 10
    reward_per_level: int = 5

    # --- Difficulty adaptation ---
    min_difficulty: int = MIN_DIFFICULTY
    max_difficulty: int = MAX_DIFFICULTY
    level_up_streak: int = Field(default=5, ge=1)
    level_down_streak: int = Field(default=3, ge=1)

    # --- Skipping ---
    skip_cost: int = Field(default=5, ge=0)
    skip_requires_credits: bool = True
    # Reference revisions disagree on whether a skip counts as a wrong answer.
    skip_counts_as_wrong: bool = False

    # --- Hack duels ---
    duel_target: int = Field(default=5, ge=1)
    theft_min_fraction: float = Field(default=0.2, ge=0, le=1)
    theft_max_fraction: float = Field(default=0.5, ge=0, le=1)

    # --- Effects ---
    slow_answer_delay_seconds: float = Field(default=2.0, ge=0)

    # --- Game log ---
    log_broadcast_window: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def _validate_ranges(self) -> ContestSettings:
        if not MIN_DIFFICULTY <= self.min_difficulty <= self.max_difficulty <= MAX_DIFFICULTY:
            raise ValueError(f"difficulty bounds must satisfy {MIN_DIFFICULTY} <= min <= max <= {MAX_DIFFICULTY}")
        if self.theft_min_fraction > self.theft_max_fraction:
            raise ValueError("theft_min_fraction must not exceed theft_max_fraction")
        return self

    def reward_for(self, difficulty: int) -> int:
        """Credits earned by a correct answer at the given difficulty."""
        return self.base_reward + self.reward_per_level * difficulty
