"""Service limits resolved from the environment."""

from __future__ import annotations

from dataclasses import dataclass
import os

MAX_INDEX_ENV = "FIBENGINE_MAX_INDEX"
DIGIT_CAPACITY_ENV = "FIBENGINE_DIGIT_CAPACITY"

# F(500) has 105 digits; 128 leaves room for the terminator.
MAX_INDEX = 500
DIGIT_CAPACITY = 128


@dataclass(frozen=True)
class ServiceLimits:
    """Bounds shared by the cursor layer and the sequence builder."""

    max_index: int = MAX_INDEX
    digit_capacity: int = DIGIT_CAPACITY


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def required_capacity(max_index: int) -> int:
    """Buffer size needed for F(max_index): its digits plus the terminator."""
    a, b = 0, 1
    for _ in range(max_index):
        a, b = b, a + b
    return len(str(a)) + 1


def resolve_limits() -> ServiceLimits:
    """Resolve service limits from environment variables.

    The digit capacity must hold F(max_index), so every index the cursor
    can reach is readable.
    """
    limits = ServiceLimits(
        max_index=_env_int(MAX_INDEX_ENV, MAX_INDEX, 0),
        digit_capacity=_env_int(DIGIT_CAPACITY_ENV, DIGIT_CAPACITY, 2),
    )
    needed = required_capacity(limits.max_index)
    if limits.digit_capacity < needed:
        raise ValueError(
            f"{DIGIT_CAPACITY_ENV}={limits.digit_capacity} cannot hold F({limits.max_index}); "
            f"need at least {needed} (raise it or lower {MAX_INDEX_ENV})"
        )
    return limits
