"""
Per-player difficulty adaptation.

Pure state transitions: each function takes a PlayerRecord and returns an
updated copy plus a summary of what changed. Streaks are per level, so both
counters reset whenever the level moves.
"""

from dataclasses import dataclass

from mathhack.logic.settings import ContestSettings
from mathhack.logic.types import PlayerRecord


@dataclass(frozen=True)
class AnswerOutcome:
    credit_change: int
    previous_level: int
    new_level: int

    @property
    def level_changed(self) -> bool:
        return self.previous_level != self.new_level


def _miss_streak(player: PlayerRecord, settings: ContestSettings) -> dict[str, int]:
    """Streak fields after a wrong answer or skip."""
    consecutive_wrong = player.consecutive_wrong + 1
    level = player.difficulty_level
    if consecutive_wrong >= settings.level_down_streak:
        level = max(settings.min_difficulty, level - 1)
        consecutive_wrong = 0
    return {
        "consecutive_wrong": consecutive_wrong,
        "consecutive_correct": 0,
        "overall_consecutive_correct": 0,
        "difficulty_level": level,
    }


def apply_correct(player: PlayerRecord, settings: ContestSettings) -> tuple[PlayerRecord, AnswerOutcome]:
    """Credit the reward at the current level, then advance the streak."""
    previous_level = player.difficulty_level
    reward = settings.reward_for(previous_level)

    consecutive_correct = player.consecutive_correct + 1
    level = previous_level
    if consecutive_correct >= settings.level_up_streak:
        level = min(settings.max_difficulty, level + 1)
        consecutive_correct = 0

    updated = player.adjust_credits(reward).model_copy(
        update={
            "correct_answers": player.correct_answers + 1,
            "consecutive_correct": consecutive_correct,
            "consecutive_wrong": 0,
            "overall_consecutive_correct": player.overall_consecutive_correct + 1,
            "difficulty_level": level,
            "max_difficulty_reached": max(player.max_difficulty_reached, level),
        },
    )
    return updated, AnswerOutcome(credit_change=reward, previous_level=previous_level, new_level=level)


def apply_wrong(player: PlayerRecord, settings: ContestSettings) -> tuple[PlayerRecord, AnswerOutcome]:
    changes = _miss_streak(player, settings)
    changes["wrong_answers"] = player.wrong_answers + 1
    updated = player.model_copy(update=changes)
    return updated, AnswerOutcome(
        credit_change=0,
        previous_level=player.difficulty_level,
        new_level=updated.difficulty_level,
    )


def apply_skip(player: PlayerRecord, settings: ContestSettings) -> tuple[PlayerRecord, AnswerOutcome]:
    """Debit the skip cost (floored at zero) and count the skip as a miss for streaks."""
    changes = _miss_streak(player, settings)
    changes["questions_skipped"] = player.questions_skipped + 1
    if settings.skip_counts_as_wrong:
        changes["wrong_answers"] = player.wrong_answers + 1

    debited = player.adjust_credits(-settings.skip_cost)
    updated = debited.model_copy(update=changes)
    return updated, AnswerOutcome(
        credit_change=debited.credits - player.credits,
        previous_level=player.difficulty_level,
        new_level=updated.difficulty_level,
    )
