"""Root conftest for the dadissl test suite."""

from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from dadissl.providers.base import Provider  # noqa: E402
from dadissl.providers.registry import register_provider, unregister_provider  # noqa: E402

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


def challenge_handler(app):
    """Middleware factory handed out by :class:`RecordingProvider`."""
    return app


class RecordingProvider(Provider):
    """Provider that records which lifecycle operations were invoked."""

    instances: list[RecordingProvider] = []

    def __init__(self, settings) -> None:
        super().__init__(settings)
        self.calls: list[str] = []
        RecordingProvider.instances.append(self)

    def init(self) -> None:
        self.calls.append("init")

    def watch(self) -> None:
        self.calls.append("watch")

    def middleware(self):
        return challenge_handler


class BareProvider(Provider):
    """Provider without the middleware capability."""

    def init(self) -> None:
        pass

    def watch(self) -> None:
        pass


class RecordingServer:
    """Listening server on port 80 that records registered handlers."""

    def __init__(self, port=80) -> None:
        self.port = port
        self.handlers: list = []

    def use(self, handler) -> None:
        self.handlers.append(handler)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def recording_provider():
    """Register :class:`RecordingProvider` as ``recording`` for one test."""
    RecordingProvider.instances.clear()
    register_provider("recording", RecordingProvider)
    yield RecordingProvider
    unregister_provider("recording")
    RecordingProvider.instances.clear()


@pytest.fixture()
def bare_provider():
    register_provider("bare", BareProvider)
    yield BareProvider
    unregister_provider("bare")


@pytest.fixture()
def server() -> RecordingServer:
    return RecordingServer()


@pytest.fixture()
def cert_dir(tmp_path: Path) -> Path:
    """A certificate directory path that does not exist yet."""
    return tmp_path / "ssl"


def make_certificate_pem(days_valid: int = 90, common_name: str = "example.com") -> bytes:
    """Return a self-signed PEM certificate expiring in *days_valid* days."""
    from cryptography import x509
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import ec
    from cryptography.x509.oid import NameOID

    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=days_valid))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture()
def certificate_pem() -> bytes:
    return make_certificate_pem()


@pytest.fixture()
def make_certificate():
    """Factory fixture for self-signed certificates with a chosen lifetime."""
    return make_certificate_pem
