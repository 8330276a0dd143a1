"""GitHub Actions OIDC token retrieval"""

import json
import logging
import os
from typing import Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests

from azlogin.domain.config.retry import RetryPolicy
from azlogin.infrastructure.cancellation import CancelToken
from azlogin.infrastructure.http_client import read_limited, request
from azlogin.infrastructure.retry import call_with_retry

logger = logging.getLogger(__name__)

AZURE_AD_AUDIENCE = "api://AzureADTokenExchange"

# Short so transient stalls fail fast; call_with_retry handles re-attempts
OIDC_REQUEST_TIMEOUT = 5.0


class OIDCTokenError(Exception):
    """OIDC token could not be obtained."""

    pass


def _token_url(request_url: str) -> str:
    """Add (or replace) the audience query parameter on the request URL"""
    try:
        parts = urlsplit(request_url)
    except ValueError as e:
        raise OIDCTokenError(f"invalid ACTIONS_ID_TOKEN_REQUEST_URL: {e}") from e
    if not parts.scheme or not parts.netloc:
        raise OIDCTokenError(f"invalid ACTIONS_ID_TOKEN_REQUEST_URL: {request_url!r}")

    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "audience"]
    query.append(("audience", AZURE_AD_AUDIENCE))
    return urlunsplit(parts._replace(query=urlencode(query)))


def get_github_oidc_token(
    cancel_token: Optional[CancelToken] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Get the OIDC token issued to the running GitHub Actions job

    Args:
        cancel_token: Optional caller cancellation signal
        environ: Environment to read ACTIONS_ID_TOKEN_* from (default: os.environ)

    Returns:
        The raw OIDC JWT

    Raises:
        OIDCTokenError: If the environment is incomplete or the token request fails
        RetryExhaustedError: If transient network failures persisted
        OperationCancelledError: If the caller cancelled while waiting to retry
    """
    environ = os.environ if environ is None else environ
    request_token = environ.get("ACTIONS_ID_TOKEN_REQUEST_TOKEN", "")
    request_url = environ.get("ACTIONS_ID_TOKEN_REQUEST_URL", "")

    if not request_token:
        raise OIDCTokenError(
            "ACTIONS_ID_TOKEN_REQUEST_TOKEN environment variable not set. "
            "Are you running in GitHub Actions?"
        )
    if not request_url:
        raise OIDCTokenError(
            "ACTIONS_ID_TOKEN_REQUEST_URL environment variable not set. "
            "Are you running in GitHub Actions?"
        )

    url = _token_url(request_url)
    headers = {
        "Authorization": f"Bearer {request_token}",
        "Accept": "application/json",
    }

    def _fetch() -> str:
        try:
            resp = request("GET", url, headers=headers, timeout=OIDC_REQUEST_TIMEOUT, cancel_token=cancel_token)
        except requests.exceptions.RequestException as e:
            raise OIDCTokenError(f"failed to request OIDC token: {e}") from e

        try:
            body = read_limited(resp)
        except requests.exceptions.RequestException as e:
            raise OIDCTokenError(f"failed to read OIDC token response: {e}") from e

        if resp.status_code != 200:
            raise OIDCTokenError(
                f"failed to get OIDC token: status {resp.status_code} "
                "(check ACTIONS_ID_TOKEN_REQUEST_TOKEN and workflow permissions)"
            )

        try:
            value = json.loads(body).get("value", "")
        except (ValueError, AttributeError) as e:
            raise OIDCTokenError(f"failed to parse OIDC token response: {e}") from e

        if not value:
            raise OIDCTokenError("empty OIDC token received")
        return value

    # Policy is loaded once per logical operation
    token = call_with_retry(_fetch, RetryPolicy.from_env(environ), cancel_token)
    logger.debug("Obtained GitHub OIDC token")
    return token
