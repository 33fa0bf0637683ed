"""
Metadata Agent
==============
Identity and credential core of a cloud metadata collection agent.
"""

from metadata_agent.config import Settings, load_settings
from metadata_agent.credentials import Credentials, CredentialStore
from metadata_agent.environment import Environment, InstanceIdentity
from metadata_agent.exceptions import (
    AuthenticationError,
    ConfigurationError,
    MetadataAgentError,
)
from metadata_agent.kubernetes import ClusterContext, KubernetesReader
from metadata_agent.metadata import MetadataServerClient, extract_zone
from metadata_agent.oauth2 import OAuth2, OAuthToken

__version__ = "1.0.0"

__all__ = [
    "AuthenticationError",
    "ClusterContext",
    "ConfigurationError",
    "CredentialStore",
    "Credentials",
    "Environment",
    "InstanceIdentity",
    "KubernetesReader",
    "MetadataAgentError",
    "MetadataServerClient",
    "OAuth2",
    "OAuthToken",
    "Settings",
    "extract_zone",
    "load_settings",
]
