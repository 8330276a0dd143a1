"""Retry utilities for transient network failures, built on tenacity.

Two pieces live here: a failure classifier that decides whether an exception
is worth retrying, and a driver that re-runs an operation with exponential
backoff until it succeeds, fails terminally, runs out of attempts or is
cancelled by the caller.
"""

from __future__ import annotations

import errno
import logging
import socket
from typing import Callable, Iterator, List, Optional, TypeVar

import requests
import urllib3.exceptions
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from azlogin.domain.config.retry import RetryPolicy
from azlogin.infrastructure.cancellation import CancelToken, OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CONNECTION_ERRNOS = frozenset(
    {
        errno.ECONNRESET,
        errno.ECONNREFUSED,
        errno.ENETUNREACH,
        errno.EHOSTUNREACH,
        errno.ECONNABORTED,
        errno.ETIMEDOUT,
    }
)

_TEMPORARY_ERRNOS = frozenset(
    {
        errno.EINTR,
        errno.EAGAIN,
        errno.EWOULDBLOCK,
        errno.EMFILE,
        errno.ENFILE,
    }
)

_CONNECTION_ERRORS = (ConnectionResetError, ConnectionRefusedError, ConnectionAbortedError)

_TRANSPORT_TIMEOUTS = (requests.exceptions.Timeout, urllib3.exceptions.TimeoutError)


class RetryExhaustedError(Exception):
    """Raised when every permitted attempt failed with a retryable error.

    The last operation error is available as `last_error` and as `__cause__`.
    """

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"operation failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def _error_chain(error: BaseException) -> Iterator[BaseException]:
    """Yield an exception and every exception it wraps, outermost first.

    Follows explicit causes (`raise ... from`), urllib3's `reason` attribute
    and exceptions passed as constructor arguments, which is how requests
    wraps urllib3 errors. Implicit `__context__` is not followed.
    """
    pending: List[BaseException] = [error]
    seen = set()
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current

        if current.__cause__ is not None:
            pending.append(current.__cause__)
        reason = getattr(current, "reason", None)
        if isinstance(reason, BaseException):
            pending.append(reason)
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))


def _is_dns_error(error: BaseException) -> bool:
    return isinstance(error, socket.gaierror)


def _transport_timeout(chain: List[BaseException]) -> Optional[bool]:
    for e in chain:
        # urllib3 derives NewConnectionError from ConnectTimeoutError; requests
        # does not treat it as a timeout either
        if isinstance(e, _TRANSPORT_TIMEOUTS) and not isinstance(
            e, urllib3.exceptions.NewConnectionError
        ):
            return True
    return None


def _cancellation(chain: List[BaseException]) -> Optional[bool]:
    if any(isinstance(e, OperationCancelledError) for e in chain):
        return False
    return None


def _connection_failure(chain: List[BaseException]) -> Optional[bool]:
    for e in chain:
        if isinstance(e, _CONNECTION_ERRORS):
            return True
        if isinstance(e, OSError) and not _is_dns_error(e) and e.errno in _CONNECTION_ERRNOS:
            return True
    return None


def _temporary_failure(chain: List[BaseException]) -> Optional[bool]:
    for e in chain:
        if isinstance(e, OSError) and not _is_dns_error(e) and e.errno in _TEMPORARY_ERRNOS:
            return True
    return None


def _dns_failure(chain: List[BaseException]) -> Optional[bool]:
    for e in chain:
        if _is_dns_error(e):
            # EAI_AGAIN is the resolver's "temporary failure"; NXDOMAIN is final
            return e.errno == socket.EAI_AGAIN
    return None


def _network_timeout(chain: List[BaseException]) -> Optional[bool]:
    if any(isinstance(e, TimeoutError) for e in chain):
        return True
    return None


# Order matters: an HTTP client timeout can wrap a deadline-exceeded cause and
# must still be retried, while a caller's own cancellation never is.
_RULES: List[Callable[[List[BaseException]], Optional[bool]]] = [
    _transport_timeout,
    _cancellation,
    _connection_failure,
    _temporary_failure,
    _dns_failure,
    _network_timeout,
]


def is_retryable(error: Optional[BaseException]) -> bool:
    """Check if an error is a transient network failure worth retrying.

    Args:
        error: Exception raised by an operation (None is never retryable)

    Returns:
        True if the operation should be attempted again
    """
    if error is None:
        return False
    chain = list(_error_chain(error))
    for rule in _RULES:
        verdict = rule(chain)
        if verdict is not None:
            return verdict
    return False


def _log_retry(retry_state: RetryCallState) -> None:
    if retry_state.outcome is None or retry_state.next_action is None:
        return
    logger.debug(
        "Attempt %d failed with %r, retrying in %.2fs",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
        retry_state.next_action.sleep,
    )


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    cancel_token: Optional[CancelToken] = None,
) -> T:
    """Run an operation, retrying transient failures with exponential backoff.

    The wait before attempt n+1 is min(initial_delay * multiplier**(n-1), max_delay).
    Waits are abandoned as soon as the cancel token fires.

    Args:
        operation: Zero-argument callable performing a single attempt
        policy: Retry policy for this call
        cancel_token: Optional caller cancellation signal

    Returns:
        Whatever the successful attempt returned

    Raises:
        OperationCancelledError: If the token fired during a wait
        RetryExhaustedError: If all attempts failed retryably and max_attempts > 1
        Exception: The operation's own exception when it is not retryable, or
            when the single permitted attempt failed
    """
    token = cancel_token or CancelToken()

    def _sleep(seconds: float) -> None:
        if token.wait(seconds):
            raise token.error()

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.initial_delay,
            exp_base=policy.backoff_multiplier,
            max=policy.max_delay,
        ),
        retry=retry_if_exception(is_retryable),
        sleep=_sleep,
        before_sleep=_log_retry,
        # With a single attempt there is no retrying to report
        reraise=policy.max_attempts == 1,
    )

    try:
        return retrying(operation)
    except RetryError as exc:
        last_error = exc.last_attempt.exception()
        raise RetryExhaustedError(exc.last_attempt.attempt_number, last_error) from last_error
