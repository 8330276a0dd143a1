"""Shared fixtures"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import pytest
import requests

from azlogin.domain.config.retry import RetryPolicy


def _make_response(
    status_code: int,
    payload: Optional[Any] = None,
    body: Optional[bytes] = None,
    url: str = "http://example.test",
) -> requests.Response:
    r = requests.Response()
    r.status_code = status_code
    r.url = url
    if body is None:
        body = json.dumps(payload if payload is not None else {}).encode("utf-8")
    r._content = body  # type: ignore[attr-defined]
    r._content_consumed = True  # type: ignore[attr-defined]
    r.headers["Content-Type"] = "application/json"
    return r


@pytest.fixture
def make_response() -> Callable[..., requests.Response]:
    return _make_response


class _FastRetryPolicy:
    """Stands in for RetryPolicy so retries do not wait whole seconds"""

    @staticmethod
    def from_env(environ=None) -> RetryPolicy:
        return RetryPolicy(max_attempts=3, initial_delay=0.001, max_delay=0.01, backoff_multiplier=2.0)


@pytest.fixture
def fast_retry(monkeypatch):
    monkeypatch.setattr("azlogin.infrastructure.auth.oidc.RetryPolicy", _FastRetryPolicy)
    monkeypatch.setattr("azlogin.infrastructure.auth.azure.RetryPolicy", _FastRetryPolicy)


@pytest.fixture
def github_env():
    return {
        "ACTIONS_ID_TOKEN_REQUEST_TOKEN": "request-token",
        "ACTIONS_ID_TOKEN_REQUEST_URL": "https://token.actions.example.test/token?api-version=2.0",
    }
