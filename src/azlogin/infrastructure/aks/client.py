"""Azure Kubernetes Service API client"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, Optional, Tuple

import requests
import yaml

from azlogin.domain.models.cluster import ClusterCredentials
from azlogin.infrastructure.cancellation import CancelToken
from azlogin.infrastructure.http_client import read_limited, request

logger = logging.getLogger(__name__)

AZURE_MANAGEMENT_URL = "https://management.azure.com"
AKS_API_VERSION = "2023-01-01"
AKS_REQUEST_TIMEOUT = 30.0


class AKSError(Exception):
    """AKS credentials could not be retrieved."""

    pass


def extract_cluster_info(kubeconfig: Dict[str, Any]) -> Tuple[str, bytes]:
    """Extract the server URL and CA certificate from the first cluster entry

    Args:
        kubeconfig: Parsed kubeconfig document

    Returns:
        (server URL, decoded CA certificate)

    Raises:
        AKSError: If the document does not contain a usable cluster
    """
    if not isinstance(kubeconfig, dict) or "clusters" not in kubeconfig:
        raise AKSError("no clusters found in kubeconfig")
    clusters = kubeconfig["clusters"]
    if not isinstance(clusters, list) or not clusters:
        raise AKSError("invalid clusters format in kubeconfig")
    first = clusters[0]
    if not isinstance(first, dict):
        raise AKSError("invalid cluster format")
    cluster = first.get("cluster")
    if not isinstance(cluster, dict):
        raise AKSError("invalid cluster data format")

    server = cluster.get("server")
    if not isinstance(server, str):
        raise AKSError("no server URL found in cluster data")
    ca_data = cluster.get("certificate-authority-data")
    if not isinstance(ca_data, str):
        raise AKSError("no CA certificate found in cluster data")
    try:
        ca_cert = base64.b64decode(ca_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AKSError(f"failed to decode CA certificate: {e}") from e
    return server, ca_cert


class AKSClient:
    """Client for AKS management operations"""

    def __init__(self, subscription_id: str, access_token: str, base_url: str = AZURE_MANAGEMENT_URL):
        self.subscription_id = subscription_id
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")

    def _cluster_url(self, resource_group: str, cluster_name: str, action: str = "") -> str:
        suffix = f"/{action}" if action else ""
        return (
            f"{self.base_url}/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{resource_group}"
            f"/providers/Microsoft.ContainerService/managedClusters/{cluster_name}"
            f"{suffix}?api-version={AKS_API_VERSION}"
        )

    def _call(self, method: str, url: str, what: str, cancel_token: Optional[CancelToken]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            resp = request(method, url, headers=headers, timeout=AKS_REQUEST_TIMEOUT, cancel_token=cancel_token)
            body = read_limited(resp)
        except requests.exceptions.RequestException as e:
            raise AKSError(f"failed to get {what}: {e}") from e

        if resp.status_code != 200:
            raise AKSError(f"Azure API error (status {resp.status_code}): {body.decode('utf-8', 'replace')}")
        try:
            return json.loads(body)
        except ValueError as e:
            raise AKSError(f"failed to parse {what}: {e}") from e

    def get_cluster_credentials(
        self, resource_group: str, cluster_name: str, cancel_token: Optional[CancelToken] = None
    ) -> ClusterCredentials:
        """Retrieve user credentials for a managed cluster

        Args:
            resource_group: Resource group containing the cluster
            cluster_name: Managed cluster name
            cancel_token: Optional caller cancellation signal

        Returns:
            ClusterCredentials with the API server URL and CA certificate

        Raises:
            AKSError: If the cluster cannot be read or returns no usable kubeconfig
        """
        logger.info(f"Fetching credentials for cluster {cluster_name} in {resource_group}")

        # Existence/authorization check only; the body is not used
        self._call("GET", self._cluster_url(resource_group, cluster_name), "cluster info", cancel_token)

        credentials = self._call(
            "POST",
            self._cluster_url(resource_group, cluster_name, "listClusterUserCredential"),
            "cluster credentials",
            cancel_token,
        )
        kubeconfigs = credentials.get("kubeconfigs") if isinstance(credentials, dict) else None
        if not kubeconfigs:
            raise AKSError("no kubeconfig returned from Azure")

        try:
            raw = base64.b64decode(kubeconfigs[0].get("value", ""), validate=True)
        except (binascii.Error, ValueError, AttributeError) as e:
            raise AKSError(f"failed to decode kubeconfig: {e}") from e
        try:
            document = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise AKSError(f"failed to parse kubeconfig: {e}") from e

        server_url, ca_cert = extract_cluster_info(document)
        return ClusterCredentials(
            cluster_name=cluster_name,
            server_url=server_url,
            ca_certificate=ca_cert,
            resource_group=resource_group,
            subscription_id=self.subscription_id,
        )
