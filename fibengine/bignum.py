"""Decimal big numbers stored as capacity-bounded digit buffers.

Digits live least-significant-first while being built, the way schoolbook
addition walks them, and are reversed only when handed to a caller.
"""

from __future__ import annotations

from typing import Iterable

from fibengine.config import DIGIT_CAPACITY
from fibengine.error_msg import CapacityExceeded

_ZERO = ord("0")
TERMINATOR = b"\0"


class BigNumber:
    """Non-negative decimal integer in a fixed-capacity digit buffer.

    ``capacity`` counts the terminator emitted by :meth:`to_bytes`, so at
    most ``capacity - 1`` digits fit.
    """

    __slots__ = ("_digits", "capacity")

    def __init__(self, capacity: int = DIGIT_CAPACITY):
        if capacity < 2:
            raise ValueError(f"capacity must be at least 2, got {capacity}")
        self.capacity = capacity
        self._digits = bytearray()

    @classmethod
    def from_lsd_digits(cls, digits: Iterable[int], capacity: int = DIGIT_CAPACITY) -> "BigNumber":
        """Build from digit values (0-9), least significant first."""
        number = cls(capacity)
        for digit in digits:
            number.append_digit(digit)
        if not number._digits:
            number.append_digit(0)
        return number

    @classmethod
    def from_decimal(cls, text: str, capacity: int = DIGIT_CAPACITY) -> "BigNumber":
        """Parse conventional most-significant-first decimal text."""
        if not text or not text.isascii() or not text.isdigit():
            raise ValueError(f"Not a decimal digit string: {text!r}")
        stripped = text.lstrip("0") or "0"
        return cls.from_lsd_digits((ord(ch) - _ZERO for ch in reversed(stripped)), capacity)

    @classmethod
    def from_int(cls, value: int, capacity: int = DIGIT_CAPACITY) -> "BigNumber":
        if value < 0:
            raise ValueError(f"BigNumber cannot hold negative values: {value}")
        return cls.from_decimal(str(value), capacity)

    def append_digit(self, digit: int) -> None:
        """Write the next more-significant digit, checking capacity first."""
        if not 0 <= digit <= 9:
            raise ValueError(f"Invalid decimal digit: {digit}")
        needed = len(self._digits) + 1 + len(TERMINATOR)
        if needed > self.capacity:
            raise CapacityExceeded(needed, self.capacity)
        self._digits.append(_ZERO + digit)

    def digit(self, position: int) -> int:
        """Digit value at ``position``, counting from the least significant."""
        return self._digits[position] - _ZERO

    @property
    def lsd_digits(self) -> str:
        """Digits least-significant-first, as stored."""
        return self._digits.decode("ascii")

    def to_decimal(self) -> str:
        return self._digits[::-1].decode("ascii")

    def to_bytes(self) -> bytes:
        """Most-significant-first digits followed by the terminator."""
        return bytes(self._digits[::-1]) + TERMINATOR

    def __len__(self) -> int:
        return len(self._digits)

    def __int__(self) -> int:
        return int(self.to_decimal())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BigNumber):
            return NotImplemented
        return self._digits == other._digits

    def __hash__(self) -> int:
        return hash(bytes(self._digits))

    def __str__(self) -> str:
        return self.to_decimal()

    def __repr__(self) -> str:
        return f"BigNumber({self.to_decimal()!r}, capacity={self.capacity})"


def add(x: BigNumber, y: BigNumber, capacity: int | None = None) -> BigNumber:
    """Schoolbook addition of two least-significant-first digit buffers.

    The result buffer takes ``capacity`` if given, else the larger operand
    capacity. Raises CapacityExceeded when the sum does not fit.
    """
    result = BigNumber(capacity if capacity is not None else max(x.capacity, y.capacity))
    shorter, longer = (x, y) if len(x) <= len(y) else (y, x)
    carry = 0
    for i in range(len(shorter)):
        total = shorter.digit(i) + longer.digit(i) + carry
        result.append_digit(total % 10)
        carry = total // 10
    for i in range(len(shorter), len(longer)):
        total = longer.digit(i) + carry
        result.append_digit(total % 10)
        carry = total // 10
    if carry:
        result.append_digit(1)
    return result
