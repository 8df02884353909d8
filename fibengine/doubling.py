"""
Fast-doubling Fibonacci engine over 64-bit signed integers.

Uses F(2n) = F(n) * (2F(n+1) - F(n)) and F(2n+1) = F(n)^2 + F(n+1)^2,
consuming the index one bit at a time from the most significant end.
Arithmetic wraps like a C ``long long``: results are exact up to
FAST_EXACT_LIMIT and wrap silently beyond it. Use the sequence table
builder when exact large values are needed.
"""

from __future__ import annotations

from fibengine.error_msg import fail_index

INT_BITS = 64
FAST_EXACT_LIMIT = 92

_MASK = (1 << INT_BITS) - 1
_SIGN = 1 << (INT_BITS - 1)


def wrap_signed(value: int) -> int:
    """Reduce ``value`` to the two's-complement range of INT_BITS."""
    value &= _MASK
    return value - (1 << INT_BITS) if value & _SIGN else value


def fibonacci_fast(k: int) -> int:
    if isinstance(k, bool) or not isinstance(k, int):
        fail_index(f"Index must be an integer, got {type(k).__name__}", None)
    if k < 0:
        fail_index("Index must be non-negative", k)
    if k < 2:
        return k

    a, b = 0, 1
    for bit in range(k.bit_length() - 1, -1, -1):
        t1 = wrap_signed(a * wrap_signed(2 * b - a))
        t2 = wrap_signed(b * b + a * a)
        a, b = t1, t2
        if (k >> bit) & 1:
            a, b = b, wrap_signed(a + b)
    return a


def is_exact(k: int) -> bool:
    """Whether fibonacci_fast(k) is free of wraparound."""
    return 0 <= k <= FAST_EXACT_LIMIT
