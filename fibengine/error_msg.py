"""
fibengine Error Message module
"""

from typing import Optional


class FibEngineError(Exception):
    """fibengine specific exception carrying a short message"""

    def __init__(self, msg: str, index: Optional[int] = None):
        self.msg = msg
        self.index = index
        super().__init__(self.format_message())

    def format_message(self) -> str:
        if self.index is None:
            return self.msg
        return f"{self.msg} (index {self.index})"


class BusyError(FibEngineError):
    """Raised by open() when another client holds the session."""

    def __init__(self, msg: str = "fibengine is in use"):
        super().__init__(msg)


class CapacityExceeded(FibEngineError):
    """A digit sequence does not fit its declared buffer capacity."""

    def __init__(self, needed: int, capacity: int):
        self.needed = needed
        self.capacity = capacity
        super().__init__(
            f"Digit buffer capacity exceeded: need {needed} bytes, capacity is {capacity}"
        )


class InvalidIndex(FibEngineError):
    """Index outside the supported range."""


class InvalidSession(FibEngineError):
    """Handle is closed or does not own the session."""


class ServiceUnavailable(FibEngineError):
    """The device has been shut down."""


def fail_index(msg: str, index: Optional[int]) -> None:
    """Raise an InvalidIndex exception for the given index"""
    raise InvalidIndex(msg, index)
