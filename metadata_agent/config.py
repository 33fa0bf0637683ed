"""
Agent Configuration
===================
Resolved configuration for the metadata agent using Pydantic Settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from metadata_agent.exceptions import ConfigurationError

logger = structlog.get_logger()

# Keys used by the agent configuration file.
CONFIG_KEYS = {
    "InstanceId": "instance_id",
    "InstanceResourceType": "instance_resource_type",
    "InstanceZone": "instance_zone",
    "ProjectId": "project_id",
    "KubernetesClusterLocation": "kubernetes_cluster_location",
    "KubernetesClusterName": "kubernetes_cluster_name",
    "CredentialsFile": "credentials_file",
    "MetadataTimeout": "metadata_timeout",
    "TokenTimeout": "token_timeout",
    "LogLevel": "log_level",
    "LogFormat": "log_format",
}

_STRING_FIELDS = {
    "instance_id",
    "instance_resource_type",
    "instance_zone",
    "project_id",
    "kubernetes_cluster_name",
    "kubernetes_cluster_location",
    "credentials_file",
}


class Settings(BaseSettings):
    """Agent settings loaded from the config file or environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="METADATA_AGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Identity overrides
    instance_id: str = ""
    instance_resource_type: str = ""
    instance_zone: str = ""
    project_id: str = ""
    kubernetes_cluster_name: str = ""
    kubernetes_cluster_location: str = ""

    # Service account credentials
    credentials_file: str = ""

    # HTTP
    metadata_timeout: float = Field(default=1.0, gt=0)
    token_timeout: float = Field(default=30.0, gt=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"


def _translate_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Map CamelCase config file keys onto settings fields."""
    translated = {}
    for key, value in data.items():
        field = CONFIG_KEYS.get(key)
        if field is None:
            logger.debug("Ignoring unknown config key", key=key)
            continue
        if value is None:
            if field not in _STRING_FIELDS:
                continue
            value = ""
        elif field in _STRING_FIELDS and not isinstance(value, str):
            # YAML reads bare numbers such as instance ids as ints
            value = str(value)
        translated[field] = value
    return translated


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from the agent configuration file.

    Args:
        path: YAML file with ``Key: value`` pairs (defaults only if omitted)

    Returns:
        Settings with file values layered over environment variables
    """
    if not path:
        return Settings()

    config_file = Path(path)
    if not config_file.exists():
        logger.warning("Config file not found, using defaults", path=path)
        return Settings()

    try:
        with open(config_file) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    try:
        settings = Settings(**_translate_keys(data))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e

    logger.info("Loaded agent configuration", path=path)
    return settings


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
