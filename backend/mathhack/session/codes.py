"""Six-character join codes, collision-checked against live sessions."""

import random
import string
from collections.abc import Awaitable, Callable

import structlog

from mathhack.logic.exceptions import CodeAllocationError

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6
DEFAULT_ATTEMPTS = 10

logger = structlog.get_logger()

_system_random = random.SystemRandom()


def generate_code(rng: random.Random | None = None) -> str:
    rng = rng or _system_random
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def allocate_code(
    is_taken: Callable[[str], Awaitable[bool]],
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    rng: random.Random | None = None,
) -> str:
    """Draw codes until one is unused. Fail closed after ``attempts`` collisions."""
    for attempt in range(1, attempts + 1):
        code = generate_code(rng)
        if not await is_taken(code):
            return code
        logger.debug("join code collision", attempt=attempt)
    logger.error("join code allocation exhausted", attempts=attempts)
    raise CodeAllocationError(f"could not allocate a unique join code after {attempts} attempts")
