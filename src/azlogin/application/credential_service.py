"""Credential service - orchestrates token exchange, storage and derived credentials"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from azlogin.domain.config.login import LoginOptions
from azlogin.domain.models.token import (
    ACCESS_TOKEN_EXPIRY_FORMAT,
    EXEC_CREDENTIAL_EXPIRY_FORMAT,
    SavedToken,
    TokenResponse,
)
from azlogin.infrastructure.aks.client import AKSClient
from azlogin.infrastructure.aks.kubeconfig import (
    EXEC_API_VERSION,
    kubeconfig_path,
    load_kubeconfig,
    save_kubeconfig,
)
from azlogin.infrastructure.auth.azure import AKS_SCOPE, AzureAuthClient
from azlogin.infrastructure.auth.oidc import get_github_oidc_token
from azlogin.infrastructure.cancellation import CancelToken
from azlogin.infrastructure.config.token_store import (
    NotAuthenticatedError,
    TokenStore,
    default_config_dir,
)

logger = logging.getLogger(__name__)

# Clock skew and API latency allowance when handing out stored tokens
TOKEN_EXPIRATION_BUFFER = 5 * 60

# Overall budget for kubectl exec credential requests
KUBECTL_CREDENTIAL_TIMEOUT = 30.0

NOT_AUTHENTICATED_MESSAGE = "not authenticated. Run 'azure-login login' first"


class CredentialError(Exception):
    """A stored credential cannot be used for the requested operation."""

    pass


class CredentialService:
    """Service for obtaining Azure tokens and the credentials derived from them"""

    def __init__(
        self,
        token_store: Optional[TokenStore] = None,
        environ: Optional[Mapping[str, str]] = None,
        oidc_token_provider: Optional[Callable[..., str]] = None,
        auth_client_factory: Optional[Callable[..., AzureAuthClient]] = None,
        aks_client_factory: Optional[Callable[[str, str], AKSClient]] = None,
    ):
        """Initialize credential service

        Args:
            token_store: Where tokens are persisted (default: AZURE_CONFIG_DIR / ~/.azure)
            environ: Environment snapshot used for OIDC, retry and path settings
            oidc_token_provider: Callable returning a GitHub OIDC token
            auth_client_factory: Builds AzureAuthClient instances
            aks_client_factory: Builds AKSClient instances from (subscription, token)
        """
        self.environ = os.environ if environ is None else environ
        self.token_store = token_store or TokenStore(default_config_dir(self.environ))
        self.oidc_token_provider = oidc_token_provider or get_github_oidc_token
        self.auth_client_factory = auth_client_factory or AzureAuthClient
        self.aks_client_factory = aks_client_factory or AKSClient

    def _load_token(self) -> SavedToken:
        try:
            return self.token_store.load()
        except NotAuthenticatedError as e:
            raise CredentialError(NOT_AUTHENTICATED_MESSAGE) from e

    def get_oidc_token(self, cancel_token: Optional[CancelToken] = None) -> str:
        return self.oidc_token_provider(cancel_token=cancel_token, environ=self.environ)

    def login(self, options: LoginOptions, cancel_token: Optional[CancelToken] = None) -> TokenResponse:
        """Exchange the job's OIDC token for an ARM token and persist it

        Returns:
            The token that was saved
        """
        logger.info(f"Logging in as {options.client_id} in tenant {options.tenant_id}")
        oidc_token = self.get_oidc_token(cancel_token)

        auth_client = self.auth_client_factory(
            options.tenant_id,
            options.client_id,
            options.subscription_id,
            environ=self.environ,
        )
        token = auth_client.exchange_oidc_token(oidc_token, cancel_token=cancel_token)
        self.token_store.save(token)
        return token

    def logout(self) -> None:
        self.token_store.delete()

    def account_info(self) -> Dict[str, Any]:
        """Account details in the `az account show` shape"""
        token = self._load_token()
        return {
            "environmentName": "AzureCloud",
            "id": token.subscription_id,
            "name": "Azure Subscription",
            "tenantId": token.tenant_id,
            "user": {
                "name": token.client_id,
                "type": "servicePrincipal",
            },
        }

    def access_token_info(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Stored access token in the `az account get-access-token` shape

        Raises:
            CredentialError: If not logged in, or the token expires within five minutes
        """
        token = self._load_token()
        if token.expires_within(TOKEN_EXPIRATION_BUFFER, now=now):
            raise CredentialError(
                "token expired or expiring soon. Please re-authenticate with 'azure-login login'"
            )
        return {
            "accessToken": token.access_token,
            "expiresOn": token.expires_on.astimezone(timezone.utc).strftime(ACCESS_TOKEN_EXPIRY_FORMAT),
            "subscription": token.subscription_id,
            "tenant": token.tenant_id,
            "tokenType": "Bearer",
        }

    def kubectl_credential(self, cancel_token: Optional[CancelToken] = None) -> Dict[str, Any]:
        """Fresh AKS-scoped token as a Kubernetes ExecCredential document

        The stored login provides tenant and client; the token itself is
        exchanged anew on every call.
        """
        saved = self._load_token()
        cancel_token = cancel_token or CancelToken(timeout=KUBECTL_CREDENTIAL_TIMEOUT)

        oidc_token = self.get_oidc_token(cancel_token)
        auth_client = self.auth_client_factory(
            saved.tenant_id,
            saved.client_id,
            saved.subscription_id,
            scope=AKS_SCOPE,
            environ=self.environ,
        )
        kube_token = auth_client.exchange_oidc_token(oidc_token, cancel_token=cancel_token)

        return {
            "apiVersion": EXEC_API_VERSION,
            "kind": "ExecCredential",
            "status": {
                "token": kube_token.access_token,
                "expirationTimestamp": kube_token.expires_on.astimezone(timezone.utc).strftime(
                    EXEC_CREDENTIAL_EXPIRY_FORMAT
                ),
            },
        }

    def aks_get_credentials(
        self,
        resource_group: str,
        cluster_name: str,
        exec_path: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> Tuple[Path, str]:
        """Merge AKS cluster credentials into the kubeconfig

        Returns:
            (kubeconfig path, context name)
        """
        saved = self._load_token()
        if not saved.subscription_id:
            raise CredentialError(
                "no subscription configured. Run 'azure-login login' with --subscription-id"
            )

        aks_client = self.aks_client_factory(saved.subscription_id, saved.access_token)
        credentials = aks_client.get_cluster_credentials(resource_group, cluster_name, cancel_token=cancel_token)

        path = kubeconfig_path(self.environ)
        kubeconfig = load_kubeconfig(path)
        kubeconfig.merge_cluster_credentials(credentials, exec_path)
        save_kubeconfig(path, kubeconfig)
        logger.info(f"Merged cluster {cluster_name} into {path}")
        return path, cluster_name
