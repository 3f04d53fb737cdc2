"""
Adaptive arithmetic question generation.

The operation pool and operand magnitudes widen with difficulty according to
the tier table below. Every question carries four distinct integer options,
exactly one of which is the true answer.
"""

import random
from dataclasses import dataclass

from mathhack.logic.enums import Operation
from mathhack.logic.settings import MAX_DIFFICULTY, MIN_DIFFICULTY
from mathhack.logic.types import Question

OPTION_COUNT = 4
MIN_TIME_LIMIT_SECONDS = 15
BASE_TIME_LIMIT_SECONDS = 35
DIVISION_DISTRACTOR_SPREAD = 5
MIN_DISTRACTOR_SPREAD = 5
_MAX_DISTRACTOR_DRAWS = 100

Range = tuple[int, int]


@dataclass(frozen=True)
class Tier:
    """Operand configuration for a band of difficulty levels (inclusive upper bound)."""

    max_difficulty: int
    operations: tuple[Operation, ...]
    additive: tuple[Range, Range]  # (left, right) for addition and subtraction
    multiplicative: tuple[Range, Range]  # (left, right) factors
    division: tuple[Range, Range]  # (divisor, quotient)


_ADD = (Operation.ADDITION,)
_ADD_SUB = (Operation.ADDITION, Operation.SUBTRACTION)
_ADD_SUB_MUL = (Operation.ADDITION, Operation.SUBTRACTION, Operation.MULTIPLICATION)
_ALL = tuple(Operation)

TIERS: tuple[Tier, ...] = (
    Tier(1, _ADD, ((1, 9), (1, 9)), ((2, 5), (2, 5)), ((2, 5), (1, 9))),
    Tier(3, _ADD_SUB, ((10, 99), (1, 9)), ((2, 9), (2, 9)), ((2, 9), (2, 9))),
    Tier(4, _ADD_SUB_MUL, ((10, 99), (10, 99)), ((2, 12), (2, 12)), ((2, 12), (2, 12))),
    Tier(6, _ALL, ((10, 99), (10, 99)), ((2, 20), (2, 12)), ((2, 12), (2, 20))),
    Tier(MAX_DIFFICULTY, _ALL, ((100, 999), (10, 99)), ((10, 99), (2, 20)), ((2, 20), (10, 99))),
)


def clamp_difficulty(difficulty: int) -> int:
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, difficulty))


def tier_for(difficulty: int) -> Tier:
    difficulty = clamp_difficulty(difficulty)
    for tier in TIERS:
        if difficulty <= tier.max_difficulty:
            return tier
    return TIERS[-1]


def time_limit_for(difficulty: int) -> int:
    return max(MIN_TIME_LIMIT_SECONDS, BASE_TIME_LIMIT_SECONDS - 2 * difficulty)


def evaluate(operation: Operation, left: int, right: int) -> int:
    """Compute the exact integer result of a generated expression."""
    if operation == Operation.ADDITION:
        return left + right
    if operation == Operation.SUBTRACTION:
        return left - right
    if operation == Operation.MULTIPLICATION:
        return left * right
    quotient, remainder = divmod(left, right)
    if remainder:
        raise ValueError(f"{left} is not divisible by {right}")
    return quotient


def _draw(rng: random.Random, bounds: Range) -> int:
    return rng.randint(*bounds)


def _operands(operation: Operation, tier: Tier, rng: random.Random) -> tuple[int, int]:
    if operation == Operation.DIVISION:
        divisor = _draw(rng, tier.division[0])
        quotient = _draw(rng, tier.division[1])
        return divisor * quotient, divisor
    if operation == Operation.MULTIPLICATION:
        return _draw(rng, tier.multiplicative[0]), _draw(rng, tier.multiplicative[1])
    left = _draw(rng, tier.additive[0])
    right = _draw(rng, tier.additive[1])
    if operation == Operation.SUBTRACTION and right > left:
        left, right = right, left
    return left, right


def build_options(answer: int, operation: Operation, rng: random.Random) -> list[int]:
    """Return the answer plus three distinct non-negative distractors, shuffled."""
    if operation == Operation.DIVISION:
        spread = DIVISION_DISTRACTOR_SPREAD
    else:
        spread = max(MIN_DISTRACTOR_SPREAD, abs(answer) // 2)

    options = {answer}
    for _ in range(_MAX_DISTRACTOR_DRAWS):
        if len(options) == OPTION_COUNT:
            break
        candidate = answer + rng.randint(-spread, spread)
        if candidate >= 0:
            options.add(candidate)

    # Sequential fallback keeps the loop bounded for tiny answers.
    offset = 1
    while len(options) < OPTION_COUNT:
        options.add(answer + offset)
        offset += 1

    result = list(options)
    rng.shuffle(result)
    return result


def generate_question(difficulty: int, rng: random.Random | None = None) -> Question:
    """Generate one question scaled to the given difficulty (clamped to 1..9)."""
    rng = rng or random.Random()  # noqa: S311
    difficulty = clamp_difficulty(difficulty)
    tier = tier_for(difficulty)

    operation = rng.choice(tier.operations)
    left, right = _operands(operation, tier, rng)
    answer = evaluate(operation, left, right)

    return Question(
        id=f"{rng.getrandbits(48):012x}",
        text=f"{left} {operation.symbol} {right} = ?",
        left=left,
        right=right,
        operation=operation,
        answer=answer,
        options=build_options(answer, operation, rng),
        difficulty=difficulty,
        time_limit=time_limit_for(difficulty),
    )
