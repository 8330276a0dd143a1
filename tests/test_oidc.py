"""Tests for GitHub OIDC token retrieval"""

from __future__ import annotations

import errno
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from azlogin.infrastructure.auth.oidc import (
    AZURE_AD_AUDIENCE,
    OIDC_REQUEST_TIMEOUT,
    OIDCTokenError,
    get_github_oidc_token,
)
from azlogin.infrastructure.cancellation import CancelToken, OperationCancelledError
from azlogin.infrastructure.http_client import MAX_RESPONSE_BYTES
from azlogin.infrastructure.retry import RetryExhaustedError


class TestGetGitHubOIDCToken:
    """Tests for get_github_oidc_token"""

    def test_success(self, monkeypatch, make_response, github_env, fast_retry):
        captured = {}

        def fake_request(method, url, **kwargs):
            captured["method"] = method
            captured["url"] = url
            captured.update(kwargs)
            return make_response(200, {"value": "oidc-jwt"})

        monkeypatch.setattr(requests, "request", fake_request)

        assert get_github_oidc_token(environ=github_env) == "oidc-jwt"

        assert captured["method"] == "GET"
        query = parse_qs(urlsplit(captured["url"]).query)
        assert query["audience"] == [AZURE_AD_AUDIENCE]
        assert query["api-version"] == ["2.0"]
        assert captured["headers"]["Authorization"] == "Bearer request-token"
        assert captured["headers"]["Accept"] == "application/json"
        assert captured["allow_redirects"] is False
        assert captured["timeout"] == OIDC_REQUEST_TIMEOUT

    def test_existing_audience_is_replaced(self, monkeypatch, make_response, github_env, fast_retry):
        urls = []

        def fake_request(method, url, **kwargs):
            urls.append(url)
            return make_response(200, {"value": "oidc-jwt"})

        monkeypatch.setattr(requests, "request", fake_request)
        env = dict(github_env, ACTIONS_ID_TOKEN_REQUEST_URL="https://token.example.test/?audience=other")

        get_github_oidc_token(environ=env)

        assert parse_qs(urlsplit(urls[0]).query)["audience"] == [AZURE_AD_AUDIENCE]

    def test_missing_request_token(self, github_env):
        env = dict(github_env)
        del env["ACTIONS_ID_TOKEN_REQUEST_TOKEN"]
        with pytest.raises(OIDCTokenError, match="ACTIONS_ID_TOKEN_REQUEST_TOKEN"):
            get_github_oidc_token(environ=env)

    def test_missing_request_url(self, github_env):
        env = dict(github_env, ACTIONS_ID_TOKEN_REQUEST_URL="")
        with pytest.raises(OIDCTokenError, match="ACTIONS_ID_TOKEN_REQUEST_URL"):
            get_github_oidc_token(environ=env)

    def test_invalid_request_url(self, github_env):
        env = dict(github_env, ACTIONS_ID_TOKEN_REQUEST_URL="not a url")
        with pytest.raises(OIDCTokenError, match="invalid ACTIONS_ID_TOKEN_REQUEST_URL"):
            get_github_oidc_token(environ=env)

    def test_http_error_is_not_retried(self, monkeypatch, make_response, github_env, fast_retry):
        calls = {"n": 0}

        def fake_request(method, url, **kwargs):
            calls["n"] += 1
            return make_response(500, {"message": "boom"})

        monkeypatch.setattr(requests, "request", fake_request)

        with pytest.raises(OIDCTokenError, match="status 500"):
            get_github_oidc_token(environ=github_env)
        assert calls["n"] == 1

    def test_invalid_json(self, monkeypatch, make_response, github_env, fast_retry):
        monkeypatch.setattr(requests, "request", lambda *a, **k: make_response(200, body=b"not json"))
        with pytest.raises(OIDCTokenError, match="failed to parse OIDC token response"):
            get_github_oidc_token(environ=github_env)

    def test_empty_token_value(self, monkeypatch, make_response, github_env, fast_retry):
        monkeypatch.setattr(requests, "request", lambda *a, **k: make_response(200, {"value": ""}))
        with pytest.raises(OIDCTokenError, match="empty OIDC token"):
            get_github_oidc_token(environ=github_env)

    def test_large_response_is_truncated(self, monkeypatch, make_response, github_env, fast_retry):
        body = b'{"value": "' + b"a" * (MAX_RESPONSE_BYTES + 10) + b'"}'
        monkeypatch.setattr(requests, "request", lambda *a, **k: make_response(200, body=body))
        with pytest.raises(OIDCTokenError, match="failed to parse"):
            get_github_oidc_token(environ=github_env)

    def test_transient_failure_is_retried(self, monkeypatch, make_response, github_env, fast_retry):
        calls = {"n": 0}

        def fake_request(method, url, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise requests.exceptions.ConnectionError(ConnectionResetError(errno.ECONNRESET, "reset"))
            return make_response(200, {"value": "oidc-jwt"})

        monkeypatch.setattr(requests, "request", fake_request)

        assert get_github_oidc_token(environ=github_env) == "oidc-jwt"
        assert calls["n"] == 2

    def test_timeouts_exhaust_retries(self, monkeypatch, github_env, fast_retry):
        calls = {"n": 0}

        def fake_request(method, url, **kwargs):
            calls["n"] += 1
            raise requests.exceptions.ReadTimeout("read timed out")

        monkeypatch.setattr(requests, "request", fake_request)

        with pytest.raises(RetryExhaustedError) as exc_info:
            get_github_oidc_token(environ=github_env)
        assert calls["n"] == 3
        assert isinstance(exc_info.value.last_error, OIDCTokenError)

    def test_cancelled_before_request(self, monkeypatch, github_env, fast_retry):
        def fake_request(method, url, **kwargs):
            raise AssertionError("request should not be sent")

        monkeypatch.setattr(requests, "request", fake_request)
        token = CancelToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            get_github_oidc_token(cancel_token=token, environ=github_env)

    def test_timeout_capped_by_deadline(self, monkeypatch, make_response, github_env, fast_retry):
        timeouts = []

        def fake_request(method, url, **kwargs):
            timeouts.append(kwargs["timeout"])
            return make_response(200, {"value": "oidc-jwt"})

        monkeypatch.setattr(requests, "request", fake_request)

        get_github_oidc_token(cancel_token=CancelToken(timeout=2.0), environ=github_env)

        assert 0 < timeouts[0] <= 2.0
