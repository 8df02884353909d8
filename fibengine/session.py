"""Single-client session control."""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
import uuid


class SessionLock:
    """Process-wide Free/Held flag with a non-blocking test-and-set.

    There is deliberately no blocking ``acquire``: a second client is
    rejected, never queued.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Move Free to Held and return True, or return False if held."""
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        """Move Held to Free. Releasing a free lock is a no-op."""
        if self._lock.locked():
            self._lock.release()

    @property
    def held(self) -> bool:
        return self._lock.locked()


@dataclass
class SessionHandle:
    """An open session and its cursor."""

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    cursor: int = 0
    closed: bool = False
