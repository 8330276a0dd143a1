"""Kubeconfig loading, merging and atomic saving"""

import base64
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from azlogin.domain.models.cluster import ClusterCredentials

logger = logging.getLogger(__name__)

EXEC_API_VERSION = "client.authentication.k8s.io/v1beta1"
KUBECTL_CREDENTIAL_COMMAND = "kubectl-credential"


class KubeconfigError(Exception):
    """Kubeconfig could not be read, parsed or written."""

    pass


def kubeconfig_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """KUBECONFIG, or ~/.kube/config"""
    environ = os.environ if environ is None else environ
    configured = environ.get("KUBECONFIG")
    if configured:
        return Path(configured)
    try:
        return Path.home() / ".kube" / "config"
    except RuntimeError:
        return Path(".kube") / "config"


class Kubeconfig:
    """Kubeconfig document; entries and keys it does not manage are kept as-is"""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = data if data is not None else {}
        self.data.setdefault("apiVersion", "v1")
        self.data.setdefault("kind", "Config")
        for key in ("clusters", "contexts", "users"):
            if not isinstance(self.data.get(key), list):
                self.data[key] = []
        if self.data.get("preferences") is None:
            self.data["preferences"] = {}

    @property
    def clusters(self) -> List[Dict[str, Any]]:
        return self.data["clusters"]

    @property
    def contexts(self) -> List[Dict[str, Any]]:
        return self.data["contexts"]

    @property
    def users(self) -> List[Dict[str, Any]]:
        return self.data["users"]

    @property
    def current_context(self) -> Optional[str]:
        return self.data.get("current-context")

    @staticmethod
    def _find(entries: List[Dict[str, Any]], name: str) -> Optional[Dict[str, Any]]:
        for entry in entries:
            if isinstance(entry, dict) and entry.get("name") == name:
                return entry
        return None

    def _upsert(self, entries: List[Dict[str, Any]], name: str, section: str, fields: Dict[str, Any]) -> None:
        entry = self._find(entries, name)
        if entry is None:
            entries.append({"name": name, section: dict(fields)})
            return
        if not isinstance(entry.get(section), dict):
            entry[section] = {}
        entry[section].update(fields)

    def upsert_cluster(self, name: str, server: str, ca_data: str) -> None:
        self._upsert(
            self.clusters,
            name,
            "cluster",
            {"server": server, "certificate-authority-data": ca_data},
        )

    def upsert_user(self, name: str, exec_path: str) -> None:
        # Replaces the whole user block, not just exec
        entry = self._find(self.users, name)
        user = {
            "exec": {
                "apiVersion": EXEC_API_VERSION,
                "command": exec_path,
                "args": [KUBECTL_CREDENTIAL_COMMAND],
                "interactiveMode": "Never",
            }
        }
        if entry is None:
            self.users.append({"name": name, "user": user})
        else:
            entry["user"] = user

    def upsert_context(self, name: str, cluster: str, user: str) -> None:
        self._upsert(self.contexts, name, "context", {"cluster": cluster, "user": user})

    def merge_cluster_credentials(self, credentials: ClusterCredentials, exec_path: str) -> None:
        """Add or update the cluster, user and context, and make the context current

        Args:
            credentials: Cluster connection details
            exec_path: azure-login executable invoked by kubectl for tokens
        """
        cluster_name = credentials.cluster_name
        ca_data = base64.b64encode(credentials.ca_certificate).decode("ascii")

        self.upsert_cluster(cluster_name, credentials.server_url, ca_data)
        self.upsert_user(credentials.user_name, exec_path)
        self.upsert_context(cluster_name, cluster_name, credentials.user_name)
        self.data["current-context"] = cluster_name

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.data, default_flow_style=False, sort_keys=False)


def load_kubeconfig(path: Union[str, Path]) -> Kubeconfig:
    """Load a kubeconfig; a missing file yields an empty document

    Raises:
        KubeconfigError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug(f"No kubeconfig at {path}, starting a new one")
        return Kubeconfig()
    except OSError as e:
        raise KubeconfigError(f"failed to read kubeconfig: {e}") from e

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise KubeconfigError(f"failed to parse kubeconfig: {e}") from e
    if not isinstance(data, dict):
        raise KubeconfigError("failed to parse kubeconfig: expected a mapping at the top level")
    return Kubeconfig(data)


def save_kubeconfig(path: Union[str, Path], kubeconfig: Kubeconfig) -> None:
    """Atomically write a kubeconfig with owner-only permissions

    Raises:
        KubeconfigError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise KubeconfigError(f"failed to create kubeconfig directory: {e}") from e

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(kubeconfig.to_yaml())
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise KubeconfigError(f"failed to write kubeconfig: {e}") from e

    try:
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise KubeconfigError(f"failed to save kubeconfig: {e}") from e
