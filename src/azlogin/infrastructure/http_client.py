"""Shared HTTP client utilities (requests + cancellation-aware timeouts).

We keep HTTP logic centralized to avoid divergence across the token and AKS clients.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from azlogin.infrastructure.cancellation import CancelToken

logger = logging.getLogger(__name__)

# Responses are never expected to be large; cap reads to avoid memory exhaustion
MAX_RESPONSE_BYTES = 1024 * 1024

_CHUNK_SIZE = 64 * 1024


def effective_timeout(timeout: float, cancel_token: Optional[CancelToken] = None) -> float:
    """Per-request timeout, capped to whatever is left of the caller's deadline.

    Raises:
        OperationCancelledError: If the token already fired
    """
    if cancel_token is None:
        return timeout
    cancel_token.raise_if_cancelled()
    remaining = cancel_token.remaining()
    if remaining is None:
        return timeout
    return max(min(timeout, remaining), 0.001)


def read_limited(response: requests.Response, limit: int = MAX_RESPONSE_BYTES) -> bytes:
    """Read at most `limit` bytes of a (streamed) response body and release it.

    Bodies larger than the limit are truncated, not rejected.
    """
    body = bytearray()
    try:
        for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
            body.extend(chunk)
            if len(body) >= limit:
                break
    finally:
        response.close()
    return bytes(body[:limit])


def request(
    method: str,
    url: str,
    *,
    timeout: float,
    cancel_token: Optional[CancelToken] = None,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any,
) -> requests.Response:
    """Send a single request with redirects disabled and a streamed body.

    Transport errors propagate as requests exceptions; status codes are left
    to the caller.
    """
    logger.debug(f"HTTP {method} {url}")
    return requests.request(
        method,
        url,
        headers=headers,
        timeout=effective_timeout(timeout, cancel_token),
        allow_redirects=False,
        stream=True,
        **kwargs,
    )
