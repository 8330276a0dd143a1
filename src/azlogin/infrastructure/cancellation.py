"""Cooperative cancellation for long-running operations.

A CancelToken is owned by the caller of an operation. It can be cancelled
explicitly or expire at a deadline; retry waits race against it, and HTTP
operations check it before sending and cap their timeouts to what is left.
"""

from __future__ import annotations

import threading
import time
from typing import Optional, Type


class OperationCancelledError(Exception):
    """Raised when the caller cancelled the operation."""

    pass


class DeadlineExceededError(OperationCancelledError):
    """Raised when the caller's deadline for the operation has passed."""

    pass


class CancelToken:
    """Cancellation signal with an optional deadline"""

    def __init__(self, timeout: Optional[float] = None):
        """Initialize cancel token

        Args:
            timeout: Seconds until the token expires on its own (None = never)
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._reason: Optional[Type[OperationCancelledError]] = None

    def cancel(self) -> None:
        """Cancel the operation; wakes up any pending wait()"""
        self._fire(OperationCancelledError)

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._fire(DeadlineExceededError)
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline"""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Block for up to `seconds`.

        Returns:
            True if the token was cancelled or expired before the time elapsed
        """
        if self.cancelled:
            return True
        remaining = self.remaining()
        if remaining is not None and remaining <= seconds:
            if not self._event.wait(remaining):
                self._fire(DeadlineExceededError)
            return True
        return self._event.wait(seconds)

    def error(self) -> OperationCancelledError:
        """Exception describing why the token fired"""
        if self._reason is DeadlineExceededError:
            return DeadlineExceededError("operation deadline exceeded")
        return OperationCancelledError("operation cancelled")

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise self.error()

    def _fire(self, reason: Type[OperationCancelledError]) -> None:
        # first signal wins
        if self._reason is None:
            self._reason = reason
        self._event.set()
