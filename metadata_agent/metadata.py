"""
Metadata Server Access
======================
Read instance facts from the link-local metadata service.
"""

from typing import Any, Optional

import httpx
import structlog
import yaml

logger = structlog.get_logger()

DEFAULT_METADATA_SERVER_URL = "http://metadata.google.internal/computeMetadata/v1/"
METADATA_FLAVOR_HEADER = {"Metadata-Flavor": "Google"}


class MetadataServerClient:
    """
    Minimal GET client for the metadata service.

    Lookups through ``get_metadata_string`` never raise: off the cloud
    platform every answer is simply empty.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the metadata client.

        Args:
            base_url: Metadata service root (tests point this at a fake server)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport override
        """
        self.base_url = base_url or DEFAULT_METADATA_SERVER_URL
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=METADATA_FLAVOR_HEADER,
            transport=transport,
        )

    def fetch(self, path: str) -> httpx.Response:
        """
        GET a metadata path, raising on transport errors and non-2xx answers.

        Raises:
            httpx.HTTPError: if the request fails for any reason
        """
        response = self._client.get(path.lstrip("/"))
        response.raise_for_status()
        return response

    def get_metadata_string(self, path: str) -> str:
        """Return the raw body at ``path``, or an empty string on any failure."""
        try:
            return self.fetch(path).text
        except httpx.HTTPError as e:
            logger.debug("Metadata lookup failed", path=path, error=str(e))
            return ""

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "MetadataServerClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def extract_zone(kube_env: str) -> str:
    """
    Pull the ``ZONE`` value out of a kube-env attribute.

    The blob is a flat sequence of ``KEY: value`` lines. Empty or malformed
    input yields an empty string.
    """
    if not kube_env:
        return ""

    try:
        # BaseLoader keeps every scalar as its literal text
        values = yaml.load(kube_env, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        logger.debug("Unparsable kube-env", error=str(e))
        return ""

    if not isinstance(values, dict):
        return ""

    zone = values.get("ZONE")
    if not isinstance(zone, str):
        return ""
    return zone
