"""
Cancellation token threaded through resolution, network calls and the runner.

A token is cancelled explicitly (``cancel()``) or implicitly once its optional
deadline passes. Long-running operations poll ``raise_if_cancelled()`` so a
fired token surfaces as OperationCancelled rather than a generic failure.
"""

import threading
import time
from typing import Optional

from .errors import OperationCancelled


class CancellationToken:
    """Thread-safe cancellation signal with an optional deadline."""

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def cancelled(cls) -> "CancellationToken":
        """Return a token that is already cancelled."""
        token = cls()
        token.cancel()
        return token

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancellation_requested(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        if self.is_cancellation_requested:
            raise OperationCancelled(f"{operation} cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancellation_requested})"
