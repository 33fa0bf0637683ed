"""
Service Account Credentials
===========================
Load and cache the local service account credentials file.
"""

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger()

NEW_STYLE_ACCOUNT_DOMAIN = ".iam.gserviceaccount.com"


@dataclass(frozen=True)
class Credentials:
    """Service account credentials. All fields are empty when none were found."""

    client_email: str = ""
    private_key: str = ""
    project_id: str = ""

    def __bool__(self) -> bool:
        return bool(self.client_email and self.private_key)


def project_id_from_email(client_email: str) -> str:
    """
    Infer the project id from a service account email.

    ``name@my-project.iam.gserviceaccount.com`` yields ``my-project``. Legacy
    ``12345-hash@developer.gserviceaccount.com`` accounts carry no project id.
    """
    _, at, domain = client_email.partition("@")
    if not at or not domain.endswith(NEW_STYLE_ACCOUNT_DOMAIN):
        return ""
    project_id = domain[: -len(NEW_STYLE_ACCOUNT_DOMAIN)]
    if not project_id or "." in project_id:
        return ""
    return project_id


class CredentialStore:
    """
    Lazily reads the credentials file once and serves the cached result.

    Later changes to the file are never observed.
    """

    def __init__(self, path: Optional[str]):
        self.path = path or ""
        self._credentials: Optional[Credentials] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._credentials is not None

    def load(self) -> Credentials:
        """Return the credentials, reading the file on first use."""
        credentials = self._credentials
        if credentials is not None:
            return credentials

        with self._lock:
            if self._credentials is None:
                self._credentials = self._read()
            return self._credentials

    def _read(self) -> Credentials:
        if not self.path:
            logger.debug("No credentials file configured")
            return Credentials()

        try:
            with open(Path(self.path)) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to read credentials file", path=self.path, error=str(e))
            return Credentials()

        if not isinstance(data, dict):
            logger.warning("Credentials file is not a JSON object", path=self.path)
            return Credentials()

        client_email = _string_field(data, "client_email")
        private_key = _string_field(data, "private_key")
        project_id = _string_field(data, "project_id") or project_id_from_email(client_email)

        logger.info(
            "Loaded service account credentials",
            path=self.path,
            client_email=client_email,
            project_id=project_id,
        )
        return Credentials(
            client_email=client_email,
            private_key=private_key,
            project_id=project_id,
        )


def _string_field(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""
