"""
OAuth2 Access Tokens
====================
Produce ``Authorization`` header values for outbound cloud API calls.

Two mutually exclusive flows are supported:

- Assertion flow: when service account credentials are available, a JWT
  signed with the private key is exchanged at the token endpoint.
- Metadata flow: otherwise the metadata server issues a token for the
  instance's default service account.

Failures in either flow raise ``AuthenticationError``.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import httpx
import jwt
import structlog
from pydantic import ValidationError

from metadata_agent.environment import Environment
from metadata_agent.exceptions import AuthenticationError
from metadata_agent.models import TokenResponse

logger = structlog.get_logger()

DEFAULT_TOKEN_ENDPOINT = "https://www.googleapis.com/oauth2/v3/token"
DEFAULT_SCOPE = "https://www.googleapis.com/auth/monitoring"
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
METADATA_TOKEN_PATH = "instance/service-accounts/default/token"

ASSERTION_LIFETIME = 3600
REFRESH_MARGIN = 60.0


@dataclass(frozen=True)
class OAuthToken:
    """Access token with its absolute expiry (seconds since the epoch)."""

    access_token: str
    token_type: str
    expiry: float
    lifetime: Optional[float] = None

    def is_valid(self, now: float, margin: float = REFRESH_MARGIN) -> bool:
        # Short-lived tokens are refreshed halfway through their lifetime.
        if self.lifetime is not None:
            margin = min(margin, self.lifetime / 2)
        return now < self.expiry - margin


class TokenSigner(Protocol):
    """Signs JWT claims with a service account private key."""

    def sign(self, claims: dict[str, Any], private_key: str) -> str:
        ...


class RS256Signer:
    """PyJWT signer using RSA SHA-256."""

    def sign(self, claims: dict[str, Any], private_key: str) -> str:
        return jwt.encode(claims, private_key, algorithm="RS256")


class OAuth2:
    """
    Cached OAuth2 token provider.

    A valid cached token is served without any network call. Refreshes are
    serialized per instance, so concurrent callers that find the token
    expired share the result of a single round trip.
    """

    def __init__(
        self,
        environment: Environment,
        scope: str = DEFAULT_SCOPE,
        token_endpoint: Optional[str] = None,
        signer: Optional[TokenSigner] = None,
        clock: Callable[[], float] = time.time,
        refresh_margin: float = REFRESH_MARGIN,
    ):
        """
        Initialize the token provider.

        Args:
            environment: Source of credentials and the metadata server
            scope: OAuth2 scope requested in the assertion flow
            token_endpoint: Token endpoint URL, overridden in tests
            signer: JWT signer (RS256 via PyJWT if not provided)
            clock: Time source returning seconds since the epoch
            refresh_margin: Seconds before expiry at which a token is refreshed
        """
        self.environment = environment
        self.scope = scope
        self.token_endpoint = token_endpoint or DEFAULT_TOKEN_ENDPOINT
        self.signer = signer or RS256Signer()
        self.clock = clock
        self.refresh_margin = refresh_margin

        self._token: Optional[OAuthToken] = None
        self._lock = threading.Lock()
        self._client = httpx.Client(timeout=environment.settings.token_timeout)

    @property
    def token(self) -> Optional[OAuthToken]:
        return self._token

    def get_auth_header_value(self) -> str:
        """
        Return ``Bearer <access_token>``, refreshing the token if needed.

        Raises:
            AuthenticationError: if no token could be obtained
        """
        token = self._token
        if token is None or not token.is_valid(self.clock(), self.refresh_margin):
            token = self._refresh()
        return f"Bearer {token.access_token}"

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        with self._lock:
            self._token = None

    def _refresh(self) -> OAuthToken:
        with self._lock:
            current = self._token
            # Another caller refreshed while we waited for the lock.
            if current is not None and current.is_valid(self.clock(), self.refresh_margin):
                return current

            credentials = self.environment.credentials()
            if credentials:
                response = self._token_from_credentials(
                    credentials.client_email, credentials.private_key
                )
            else:
                response = self._token_from_metadata_server()

            token = OAuthToken(
                access_token=response.access_token,
                token_type=response.token_type,
                expiry=self.clock() + response.expires_in,
                lifetime=response.expires_in,
            )
            self._token = token
            logger.info(
                "Obtained access token",
                token_type=token.token_type,
                expires_in=response.expires_in,
            )
            return token

    def _token_from_credentials(self, client_email: str, private_key: str) -> TokenResponse:
        now = int(self.clock())
        claims = {
            "iss": client_email,
            "scope": self.scope,
            "aud": self.token_endpoint,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME,
        }
        try:
            assertion = self.signer.sign(claims, private_key)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            logger.error("Failed to sign token assertion", client_email=client_email, error=str(e))
            raise AuthenticationError(f"Failed to sign token assertion: {e}") from e

        logger.debug("Requesting token from token endpoint", endpoint=self.token_endpoint)
        try:
            response = self._client.post(
                self.token_endpoint,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Token endpoint request failed", endpoint=self.token_endpoint, error=str(e))
            raise AuthenticationError(f"Token endpoint request failed: {e}") from e

        return self._parse(response)

    def _token_from_metadata_server(self) -> TokenResponse:
        logger.debug("Requesting token from metadata server")
        try:
            response = self.environment.metadata.fetch(METADATA_TOKEN_PATH)
        except httpx.HTTPError as e:
            logger.error("Metadata server token request failed", error=str(e))
            raise AuthenticationError(f"Metadata server token request failed: {e}") from e

        return self._parse(response)

    def _parse(self, response: httpx.Response) -> TokenResponse:
        try:
            return TokenResponse.model_validate_json(response.content)
        except ValidationError as e:
            logger.error("Malformed token response", error=str(e))
            raise AuthenticationError(f"Malformed token response: {e}") from e

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OAuth2":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
