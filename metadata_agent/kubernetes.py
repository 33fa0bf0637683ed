"""
Kubernetes Metadata Query
=========================
Authenticated entry point for one Kubernetes metadata collection cycle.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import structlog

from metadata_agent.config import Settings
from metadata_agent.environment import Environment
from metadata_agent.exceptions import AuthenticationError
from metadata_agent.models import ResourceMetadata
from metadata_agent.oauth2 import OAuth2

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClusterContext:
    """Identity and credentials handed to the API client for one cycle."""

    project_id: str
    cluster_name: str
    cluster_location: str
    authorization: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": self.authorization}


class KubernetesApiClient(Protocol):
    """Enumerates cluster objects and turns them into resource metadata."""

    def query(self, context: ClusterContext) -> list[ResourceMetadata]:
        ...


class KubernetesReader:
    """
    Runs a metadata query with a fresh authorization header each cycle.

    Usage:
        reader = KubernetesReader(settings, api_client=my_client)
        records = reader.metadata_query()
    """

    def __init__(
        self,
        settings: Settings,
        api_client: Optional[KubernetesApiClient] = None,
        environment: Optional[Environment] = None,
        auth: Optional[OAuth2] = None,
    ):
        self.settings = settings
        self.environment = environment or Environment(settings)
        self.auth = auth or OAuth2(self.environment)
        self.api_client = api_client

    def metadata_query(self) -> list[ResourceMetadata]:
        """
        Run one collection cycle.

        Raises:
            AuthenticationError: if no valid authorization header is available
        """
        try:
            authorization = self.auth.get_auth_header_value()
        except AuthenticationError:
            logger.error("Skipping Kubernetes metadata query, authentication failed")
            raise

        context = ClusterContext(
            project_id=self.environment.project_id(),
            cluster_name=self.environment.kubernetes_cluster_name(),
            cluster_location=self.environment.kubernetes_cluster_location(),
            authorization=authorization,
        )

        if self.api_client is None:
            logger.warning("No Kubernetes API client configured", cluster=context.cluster_name)
            return []

        records = list(self.api_client.query(context))
        logger.info(
            "Kubernetes metadata query completed",
            cluster=context.cluster_name,
            location=context.cluster_location,
            records=len(records),
        )
        return records

    def close(self) -> None:
        self.auth.close()
        self.environment.close()
