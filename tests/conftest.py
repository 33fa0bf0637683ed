"""
Test Configuration
==================
Pytest fixtures for metadata agent tests.
"""

import json
import threading
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


@dataclass
class RecordedRequest:
    """A request received by the fake server."""

    method: str
    path: str
    headers: dict[str, str]
    body: bytes = b""


@dataclass
class FakeServer:
    """Fake metadata service and token endpoint on an ephemeral port."""

    responses: dict[str, tuple[int, str]] = field(default_factory=dict)
    requests: list[RecordedRequest] = field(default_factory=list)
    delay: Optional[threading.Event] = None
    _httpd: Optional[ThreadingHTTPServer] = None

    @property
    def url(self) -> str:
        host, port = self._httpd.server_address[:2]
        return f"http://{host}:{port}"

    def set_response(self, path: str, body: str, status: int = 200) -> None:
        self.responses[path] = (status, body)

    def requests_for(self, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.path == path]

    def start(self) -> None:
        server = self

        class Handler(BaseHTTPRequestHandler):
            def _respond(self, body: bytes = b"") -> None:
                server.requests.append(
                    RecordedRequest(
                        method=self.command,
                        path=self.path,
                        headers=dict(self.headers),
                        body=body,
                    )
                )
                if server.delay is not None:
                    server.delay.wait(timeout=5)
                status, text = server.responses.get(self.path, (404, "Not Found"))
                payload = text.encode()
                self.send_response(status)
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                self.wfile.write(payload)

            def do_GET(self):
                self._respond()

            def do_POST(self):
                length = int(self.headers.get("Content-Length", 0))
                self._respond(self.rfile.read(length))

            def log_message(self, format, *args):
                pass

        self._httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._httpd.daemon_threads = True
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host credentials and agent settings out of the tests."""
    monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
    for name in (
        "INSTANCE_ID",
        "INSTANCE_RESOURCE_TYPE",
        "INSTANCE_ZONE",
        "PROJECT_ID",
        "KUBERNETES_CLUSTER_NAME",
        "KUBERNETES_CLUSTER_LOCATION",
        "CREDENTIALS_FILE",
    ):
        monkeypatch.delenv(f"METADATA_AGENT_{name}", raising=False)


@pytest.fixture
def fake_server() -> Generator[FakeServer, None, None]:
    """Start a fake HTTP server for the duration of a test."""
    server = FakeServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def unreachable_url() -> str:
    """URL of a port nothing listens on."""
    server = FakeServer()
    server.start()
    url = server.url + "/"
    server.stop()
    return url


@pytest.fixture
def credentials_file(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a service account credentials file."""

    def write(contents: object, name: str = "creds.json") -> Path:
        path = tmp_path / name
        if isinstance(contents, str):
            path.write_text(contents)
        else:
            path.write_text(json.dumps(contents))
        return path

    return write


@pytest.fixture(scope="session")
def rsa_private_key() -> str:
    """PEM encoded RSA private key for exercising the real signer."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def token_response() -> str:
    """Token endpoint answer shared by the OAuth2 tests."""
    return json.dumps(
        {
            "access_token": "the-access-token",
            "token_type": "Bearer",
            "expires_in": 3600,
        }
    )
