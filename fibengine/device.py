"""
fibengine device: open/close/seek/read/write over the Fibonacci engine.

One client at a time holds the session. The cursor selects the index the
next read computes; reads never move it.
"""

from __future__ import annotations

from enum import IntEnum
import logging
from typing import Optional

from fibengine.config import ServiceLimits
from fibengine.error_msg import (
    BusyError,
    CapacityExceeded,
    InvalidSession,
    ServiceUnavailable,
)
from fibengine.sequence import DecimalResult, fibonacci_decimal
from fibengine.session import SessionHandle, SessionLock

logger = logging.getLogger("fibengine.device")


class SeekMode(IntEnum):
    """Seek origins, numbered like os.SEEK_SET/SEEK_CUR/SEEK_END."""

    SET = 0
    CUR = 1
    END = 2

    @classmethod
    def parse(cls, value: "str | int | SeekMode") -> "SeekMode":
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown seek mode: {value!r}") from None
        return cls(value)


class FibonacciDevice:
    """Addressable read/seek resource computing Fibonacci numbers."""

    def __init__(
        self,
        lock: Optional[SessionLock] = None,
        limits: Optional[ServiceLimits] = None,
    ):
        self.lock = lock if lock is not None else SessionLock()
        self.limits = limits if limits is not None else ServiceLimits()
        self._current: Optional[SessionHandle] = None
        self._available = True

    @property
    def available(self) -> bool:
        return self._available

    @property
    def max_index(self) -> int:
        return self.limits.max_index

    def open(self) -> SessionHandle:
        if not self._available:
            raise ServiceUnavailable("fibengine device has been shut down")
        if not self.lock.try_acquire():
            logger.warning("fibengine is in use")
            raise BusyError()
        handle = SessionHandle()
        self._current = handle
        logger.debug("Session %s opened", handle.session_id)
        return handle

    def close(self, handle: SessionHandle) -> None:
        if handle.closed:
            return
        handle.closed = True
        if self._current is handle:
            self._current = None
            self.lock.release()
        logger.debug("Session %s closed", handle.session_id)

    def get_handle(self, session_id: str) -> SessionHandle:
        """Return the open handle with ``session_id``."""
        current = self._current
        if current is None or current.session_id != session_id:
            raise InvalidSession(f"No open session {session_id!r}")
        return current

    def _check(self, handle: SessionHandle) -> SessionHandle:
        if handle.closed or handle is not self._current:
            raise InvalidSession(f"Session {handle.session_id!r} is not open")
        return handle

    def seek(
        self,
        handle: SessionHandle,
        offset: int,
        whence: "str | int | SeekMode" = SeekMode.SET,
    ) -> int:
        """Move the cursor and return its clamped position.

        Names ("set", "cur", "end") go through SeekMode.parse and unknown
        names raise ValueError. Unknown numeric origins target 0.
        """
        self._check(handle)
        if isinstance(whence, str):
            whence = SeekMode.parse(whence)
        new_pos = 0
        if whence == SeekMode.SET:
            new_pos = offset
        elif whence == SeekMode.CUR:
            new_pos = handle.cursor + offset
        elif whence == SeekMode.END:
            # end-relative offsets count backwards from the last index
            new_pos = self.max_index - offset

        if new_pos > self.max_index:
            new_pos = self.max_index
        if new_pos < 0:
            new_pos = 0
        handle.cursor = new_pos
        return new_pos

    def read_value(self, handle: SessionHandle) -> DecimalResult:
        self._check(handle)
        return fibonacci_decimal(
            handle.cursor,
            max_index=self.max_index,
            capacity=self.limits.digit_capacity,
        )

    def read(self, handle: SessionHandle, buffer: "bytearray | memoryview") -> int:
        """Write F(cursor) digits and terminator into ``buffer``.

        Returns the digit count; the terminator is written but not counted.
        """
        result = self.read_value(handle)
        payload = result.payload
        if len(payload) > len(buffer):
            raise CapacityExceeded(len(payload), len(buffer))
        buffer[: len(payload)] = payload
        return result.length

    def write(self, handle: SessionHandle, data: bytes) -> int:
        self._check(handle)
        return 1

    def shutdown(self) -> None:
        """Mark the device unavailable; later opens fail."""
        self._available = False
        logger.info("fibengine device shut down")
