"""Tests for CancelToken"""

import threading
import time

import pytest

from azlogin.infrastructure.cancellation import (
    CancelToken,
    DeadlineExceededError,
    OperationCancelledError,
)


class TestCancelToken:
    """Tests for CancelToken"""

    def test_new_token_is_not_cancelled(self):
        token = CancelToken()
        assert token.cancelled is False
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancelToken()
        token.cancel()
        assert token.cancelled is True
        with pytest.raises(OperationCancelledError) as exc_info:
            token.raise_if_cancelled()
        assert not isinstance(exc_info.value, DeadlineExceededError)

    def test_wait_elapses_without_cancellation(self):
        token = CancelToken()
        assert token.wait(0.01) is False

    def test_wait_returns_early_on_cancel(self):
        token = CancelToken()
        threading.Timer(0.02, token.cancel).start()

        start = time.monotonic()
        assert token.wait(5.0) is True
        assert time.monotonic() - start < 1.0

    def test_deadline_expires(self):
        token = CancelToken(timeout=0.02)

        start = time.monotonic()
        assert token.wait(5.0) is True
        assert time.monotonic() - start < 1.0
        assert token.cancelled is True
        assert isinstance(token.error(), DeadlineExceededError)

    def test_wait_shorter_than_deadline(self):
        token = CancelToken(timeout=5.0)
        assert token.wait(0.01) is False
        assert 0 < token.remaining() <= 5.0

    def test_zero_timeout_is_already_expired(self):
        token = CancelToken(timeout=0)
        with pytest.raises(DeadlineExceededError):
            token.raise_if_cancelled()

    def test_first_signal_wins(self):
        token = CancelToken(timeout=0)
        assert token.cancelled
        token.cancel()
        assert isinstance(token.error(), DeadlineExceededError)

    def test_error_is_a_fresh_instance(self):
        token = CancelToken()
        token.cancel()
        assert token.error() is not token.error()
