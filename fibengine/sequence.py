"""
Sequence table builder: exact Fibonacci values through decimal addition.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from fibengine.bignum import BigNumber, add
from fibengine.config import DIGIT_CAPACITY, MAX_INDEX
from fibengine.error_msg import fail_index

logger = logging.getLogger("fibengine.sequence")


@dataclass(frozen=True)
class DecimalResult:
    """Decimal rendering of F(index) as handed back to a reader."""

    index: int
    text: str

    @property
    def length(self) -> int:
        """Digit count, terminator excluded."""
        return len(self.text)

    @property
    def payload(self) -> bytes:
        """ASCII digits followed by the NUL terminator."""
        return self.text.encode("ascii") + b"\0"


def check_index(k: int, max_index: int = MAX_INDEX) -> int:
    if isinstance(k, bool) or not isinstance(k, int):
        fail_index(f"Index must be an integer, got {type(k).__name__}", None)
    if k < 0 or k > max_index:
        fail_index(f"Index out of range [0, {max_index}]", k)
    return k


def build_table(
    k: int,
    max_index: int = MAX_INDEX,
    capacity: int = DIGIT_CAPACITY,
) -> list[BigNumber]:
    """Return [F(0), ..., F(k)], each slot the sum of the previous two."""
    check_index(k, max_index)
    table = [BigNumber.from_int(0, capacity)]
    if k == 0:
        return table
    table.append(BigNumber.from_int(1, capacity))
    for i in range(2, k + 1):
        table.append(add(table[i - 1], table[i - 2], capacity))
    return table


def fibonacci_decimal(
    k: int,
    max_index: int = MAX_INDEX,
    capacity: int = DIGIT_CAPACITY,
) -> DecimalResult:
    """Compute F(k) exactly as a decimal string."""
    table = build_table(k, max_index, capacity)
    value = table[k]
    logger.debug("F(%d) built from %d slots, %d digits", k, len(table), len(value))
    return DecimalResult(index=k, text=value.to_decimal())
