from __future__ import annotations

import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from random import Random
from typing import Awaitable, Callable, Optional

from .errors import CodeGenerationExhausted
from .repositories import Clock

logger = logging.getLogger(__name__)

# Upper-case letters and digits without the look-alikes I, O, 0 and 1.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_BODY_LENGTH = 6
DEFAULT_CODE_PREFIX = "BM"
MAX_RANDOM_ATTEMPTS = 10

_system_random = secrets.SystemRandom()
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def booking_code_pattern(prefix: str = DEFAULT_CODE_PREFIX) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}[{CODE_ALPHABET}]{{{CODE_BODY_LENGTH}}}$")


def draw_code(prefix: str = DEFAULT_CODE_PREFIX, *, rng: Optional[Random] = None) -> str:
    source = rng or _system_random
    return prefix + "".join(source.choice(CODE_ALPHABET) for _ in range(CODE_BODY_LENGTH))


def fallback_code(clock: Clock, prefix: str = DEFAULT_CODE_PREFIX) -> str:
    """
    Deterministic code built from the clock's millisecond timestamp, written
    in base 32 over ``CODE_ALPHABET`` and truncated to the low six digits.

    Two fallbacks within the same millisecond (or exactly 2**30 ms apart)
    produce the same code; that window is accepted rather than closed.
    """
    value = (clock.now() - _EPOCH) // timedelta(milliseconds=1)
    base = len(CODE_ALPHABET)
    digits: list[str] = []
    for _ in range(CODE_BODY_LENGTH):
        value, remainder = divmod(value, base)
        digits.append(CODE_ALPHABET[remainder])
    return prefix + "".join(reversed(digits))


async def _draw_unique(
    code_exists: Callable[[str], Awaitable[bool]],
    *,
    prefix: str,
    attempts: int,
    rng: Optional[Random],
) -> str:
    for attempt in range(1, attempts + 1):
        candidate = draw_code(prefix, rng=rng)
        if not await code_exists(candidate):
            return candidate
        logger.debug("booking code collision on attempt %d", attempt)
    raise CodeGenerationExhausted(f"no unique booking code after {attempts} attempts")


async def generate_booking_code(
    code_exists: Callable[[str], Awaitable[bool]],
    *,
    clock: Clock,
    prefix: str = DEFAULT_CODE_PREFIX,
    attempts: int = MAX_RANDOM_ATTEMPTS,
    rng: Optional[Random] = None,
) -> str:
    """
    Draw random codes until one is not taken. After ``attempts`` collisions
    fall back to the clock-derived code; this function never raises
    ``CodeGenerationExhausted`` to its caller.

    The uniqueness check and the later insert are not atomic. The unique
    index on ``bookings.booking_code`` is the last line of defence.
    """
    try:
        return await _draw_unique(code_exists, prefix=prefix, attempts=attempts, rng=rng)
    except CodeGenerationExhausted:
        code = fallback_code(clock, prefix)
        logger.warning("booking code generation exhausted after %d attempts, using time-based code", attempts)
        return code
