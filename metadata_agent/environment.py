"""
Deployment Environment
======================
Resolve identity facts about the instance the agent runs on.

Every property prefers a non-empty configured value and otherwise asks the
metadata server afresh on each call. Only the service account credentials
are cached.
"""

import os
from dataclasses import asdict, dataclass
from typing import Any, Optional

import structlog

from metadata_agent.config import Settings
from metadata_agent.credentials import Credentials, CredentialStore
from metadata_agent.metadata import MetadataServerClient, extract_zone

logger = structlog.get_logger()

DEFAULT_INSTANCE_RESOURCE_TYPE = "gce_instance"
CREDENTIALS_ENV_VAR = "GOOGLE_APPLICATION_CREDENTIALS"


@dataclass
class InstanceIdentity:
    """Snapshot of every resolved environment property."""

    instance_id: str = ""
    instance_resource_type: str = ""
    instance_zone: str = ""
    project_id: str = ""
    numeric_project_id: str = ""
    kubernetes_cluster_name: str = ""
    kubernetes_cluster_location: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


class Environment:
    """Precedence-based resolution of the agent's deployment context."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        metadata_server_url: Optional[str] = None,
    ):
        """
        Initialize the environment.

        Args:
            settings: Resolved agent configuration (defaults if not provided)
            metadata_server_url: Metadata service root, overridden in tests
        """
        self.settings = settings or Settings()
        self.metadata = MetadataServerClient(
            base_url=metadata_server_url,
            timeout=self.settings.metadata_timeout,
        )
        credentials_file = self.settings.credentials_file or os.getenv(CREDENTIALS_ENV_VAR, "")
        self._credential_store = CredentialStore(credentials_file)

    def get_metadata_string(self, path: str) -> str:
        """Return the metadata value at ``path``, or an empty string."""
        return self.metadata.get_metadata_string(path)

    # Credentials

    def credentials(self) -> Credentials:
        """Return the service account credentials, loading them on first use."""
        return self._credential_store.load()

    def credentials_client_email(self) -> str:
        return self.credentials().client_email

    def credentials_private_key(self) -> str:
        return self.credentials().private_key

    def credentials_project_id(self) -> str:
        return self.credentials().project_id

    # Instance

    def instance_id(self) -> str:
        if self.settings.instance_id:
            return self.settings.instance_id
        return self.get_metadata_string("instance/id")

    def instance_resource_type(self) -> str:
        return self.settings.instance_resource_type or DEFAULT_INSTANCE_RESOURCE_TYPE

    def instance_zone(self) -> str:
        if self.settings.instance_zone:
            return self.settings.instance_zone
        # projects/<number>/zones/<zone>
        zone = self.get_metadata_string("instance/zone")
        return zone.rsplit("/", 1)[-1]

    # Project

    def project_id(self) -> str:
        if self.settings.project_id:
            return self.settings.project_id
        project_id = self.credentials_project_id()
        if project_id:
            return project_id
        return self.get_metadata_string("project/project-id")

    def numeric_project_id(self) -> str:
        value = self.get_metadata_string("project/numeric-project-id").strip()
        try:
            return str(int(value))
        except ValueError:
            if value:
                logger.warning("Ignoring non-numeric project number", value=value)
            return ""

    # Kubernetes

    def kubernetes_cluster_name(self) -> str:
        if self.settings.kubernetes_cluster_name:
            return self.settings.kubernetes_cluster_name
        return self.get_metadata_string("instance/attributes/cluster-name")

    def kubernetes_cluster_location(self) -> str:
        if self.settings.kubernetes_cluster_location:
            return self.settings.kubernetes_cluster_location
        location = self.get_metadata_string("instance/attributes/cluster-location")
        if location:
            return location.rsplit("/", 1)[-1]
        return extract_zone(self.get_metadata_string("instance/attributes/kube-env"))

    def identity(self) -> InstanceIdentity:
        """Resolve every property once and return the snapshot."""
        return InstanceIdentity(
            instance_id=self.instance_id(),
            instance_resource_type=self.instance_resource_type(),
            instance_zone=self.instance_zone(),
            project_id=self.project_id(),
            numeric_project_id=self.numeric_project_id(),
            kubernetes_cluster_name=self.kubernetes_cluster_name(),
            kubernetes_cluster_location=self.kubernetes_cluster_location(),
        )

    def close(self) -> None:
        self.metadata.close()

    def __enter__(self) -> "Environment":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
