"""ClusterCredentials model - connection details for an AKS cluster"""

from dataclasses import dataclass


@dataclass
class ClusterCredentials:
    """Credentials needed to reach a managed Kubernetes cluster"""

    cluster_name: str
    server_url: str
    ca_certificate: bytes  # PEM bytes, decoded from the Azure response
    resource_group: str
    subscription_id: str

    @property
    def user_name(self) -> str:
        """Kubeconfig user entry name, matching the Azure CLI convention"""
        return f"clusterUser_{self.resource_group}_{self.cluster_name}"
