"""Azure AD token exchange using OIDC workload identity federation.

Trades a GitHub Actions OIDC token for an Azure access token via the OAuth 2.0
client credentials flow, with the OIDC token as the client assertion.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

import requests

from azlogin.domain.config.retry import RetryPolicy
from azlogin.domain.models.token import TokenResponse
from azlogin.infrastructure.cancellation import CancelToken
from azlogin.infrastructure.http_client import read_limited, request
from azlogin.infrastructure.retry import call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
ARM_SCOPE = "https://management.azure.com/.default"
AKS_RESOURCE_APP_ID = "6dae42f8-4368-4678-94ff-3960e28e3630"
AKS_SCOPE = f"{AKS_RESOURCE_APP_ID}/.default"
CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

AZURE_TOKEN_EXCHANGE_TIMEOUT = 10.0


class AuthenticationError(Exception):
    """Azure AD rejected the token exchange or returned an unusable response."""

    pass


class AzureAuthClient:
    """Client for the Azure AD v2.0 token endpoint"""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        subscription_id: str = "",
        scope: str = ARM_SCOPE,
        authority_host: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """Initialize auth client

        Args:
            tenant_id: Azure AD tenant ID
            client_id: Application (client) ID with a federated credential
            subscription_id: Subscription recorded alongside the token
            scope: OAuth2 scope to request (default: Azure Resource Manager)
            authority_host: Authority URL (default: AZURE_AUTHORITY_HOST env or public cloud)
            environ: Environment used for defaults and the retry policy
        """
        self.environ = os.environ if environ is None else environ
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.subscription_id = subscription_id
        self.scope = scope
        self.authority_host = (
            authority_host or self.environ.get("AZURE_AUTHORITY_HOST") or DEFAULT_AUTHORITY_HOST
        ).rstrip("/")

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority_host}/{self.tenant_id}/oauth2/v2.0/token"

    def exchange_oidc_token(
        self, oidc_token: str, cancel_token: Optional[CancelToken] = None
    ) -> TokenResponse:
        """Exchange a GitHub OIDC token for an Azure access token

        Args:
            oidc_token: JWT issued by GitHub Actions
            cancel_token: Optional caller cancellation signal

        Returns:
            TokenResponse with expiry computed in UTC

        Raises:
            AuthenticationError: If Azure AD rejects the request or the response is malformed
            RetryExhaustedError: If transient network failures persisted
            OperationCancelledError: If the caller cancelled while waiting to retry
        """
        form = {
            "client_id": self.client_id,
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": oidc_token,
            "grant_type": "client_credentials",
            "scope": self.scope,
        }
        headers = {"Accept": "application/json"}

        def _exchange() -> TokenResponse:
            try:
                resp = request(
                    "POST",
                    self.token_endpoint,
                    headers=headers,
                    data=form,
                    timeout=AZURE_TOKEN_EXCHANGE_TIMEOUT,
                    cancel_token=cancel_token,
                )
                body = read_limited(resp)
            except requests.exceptions.RequestException as e:
                raise AuthenticationError(f"failed to exchange token: {e}") from e

            if resp.status_code != 200:
                raise AuthenticationError(self._describe_failure(resp.status_code, body))
            return self._parse_token(body)

        token = call_with_retry(_exchange, RetryPolicy.from_env(self.environ), cancel_token)
        logger.debug(f"Exchanged OIDC token for scope {self.scope}, expires {token.expires_on.isoformat()}")
        return token

    @staticmethod
    def _describe_failure(status_code: int, body: bytes) -> str:
        # error_description can echo request details, so only the code is surfaced
        try:
            error = json.loads(body).get("error")
        except (ValueError, AttributeError):
            error = None
        if error:
            return (
                f"authentication failed: {error} "
                "(check credentials and federated identity configuration)"
            )
        return (
            f"authentication failed with status {status_code} "
            "(check credentials and network connectivity)"
        )

    def _parse_token(self, body: bytes) -> TokenResponse:
        try:
            data = json.loads(body)
            expires_in = int(data.get("expires_in", 0))
            access_token = data["access_token"]
            expires_on = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        except (ValueError, TypeError, KeyError, AttributeError, OverflowError) as e:
            raise AuthenticationError(f"failed to parse token response: {e}") from e

        return TokenResponse(
            access_token=access_token,
            token_type=data.get("token_type", "Bearer"),
            expires_in=expires_in,
            expires_on=expires_on,
            tenant_id=self.tenant_id,
            client_id=self.client_id,
            subscription_id=self.subscription_id,
            ext_expires_in=data.get("ext_expires_in"),
            refresh_token=data.get("refresh_token"),
        )
