"""Let's Encrypt certificate provider.

Obtains and renews certificates from Let's Encrypt through ACMEOW.  The
ACME protocol exchange is entirely ACMEOW's; this provider answers the
HTTP-01 challenges through its middleware, generates the domain key and
CSR, and stores the results in the certificate directory.

Both :meth:`LetsEncryptProvider.init` and :meth:`LetsEncryptProvider.watch`
return immediately; the work runs on daemon threads.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from dadissl.config.settings import Environment
from dadissl.errors import IOFailure, ProviderError
from dadissl.middleware import ChallengeStore, challenge_middleware
from dadissl.providers.base import Provider
from dadissl.storage import CertificateStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from dadissl.config.settings import SSLSettings

log = logging.getLogger(__name__)

DIRECTORY_URLS: dict[Environment, str] = {
    Environment.STAGING: "https://acme-staging-v02.api.letsencrypt.org/directory",
    Environment.PRODUCTION: "https://acme-v02.api.letsencrypt.org/directory",
}

_ACCOUNT_SUBDIR = "account"
_RSA_PUBLIC_EXPONENT = 65537
_MAX_BACKOFF_FACTOR = 8


class LetsEncryptProvider(Provider):
    """Provider issuing certificates from Let's Encrypt via HTTP-01.

    Parameters
    ----------
    settings:
        The finalised configuration snapshot.

    """

    def __init__(self, settings: SSLSettings) -> None:
        super().__init__(settings)
        self._store = CertificateStore(settings.directory)
        self._challenges = ChallengeStore()
        self._issue_lock = threading.Lock()
        self._issue_thread: threading.Thread | None = None
        self._watcher: RenewalWorker | None = None

    @property
    def directory_url(self) -> str:
        return DIRECTORY_URLS[self._settings.environment]

    @property
    def store(self) -> CertificateStore:
        return self._store

    @property
    def challenges(self) -> ChallengeStore:
        return self._challenges

    # -- Provider interface --------------------------------------------------

    def middleware(self) -> Callable[..., Any]:
        return challenge_middleware(self._challenges)

    def init(self) -> None:
        """Start first-time issuance on a background thread."""
        if self._issue_thread is not None and self._issue_thread.is_alive():
            return
        self._issue_thread = threading.Thread(
            target=self._run_first_issuance,
            name="certificate-issuance",
            daemon=True,
        )
        self._issue_thread.start()
        log.info(
            "Certificate issuance started for %s (%s)",
            ", ".join(self._settings.domains) or "(no domains)",
            self._settings.environment,
        )

    def watch(self) -> None:
        """Start the renewal worker unless it is already running."""
        if self._watcher is not None and self._watcher.is_running:
            return
        self._watcher = RenewalWorker(self)
        self._watcher.start()

    def stop(self) -> None:
        """Stop the renewal worker.  A running issuance is left to finish."""
        if self._watcher is not None:
            self._watcher.stop()

    # -- issuance ------------------------------------------------------------

    def issue(self) -> None:
        """Run a complete issuance synchronously.

        Raises
        ------
        ProviderError
            If no domains are configured, ACMEOW is missing, or the
            upstream exchange fails.
        IOFailure
            If the certificate files cannot be written.

        """
        domains = list(self._settings.domains)
        if not domains:
            msg = "Cannot request a certificate without domains"
            raise ProviderError(msg)

        try:
            from acmeow import AcmeClient  # noqa: PLC0415
            from acmeow.handlers import CallbackHttpHandler  # noqa: PLC0415
        except ImportError as exc:
            msg = "ACMEOW is not installed. Install with: pip install acmeow"
            raise ProviderError(msg) from exc

        with self._issue_lock:
            storage = self._account_storage()
            try:
                client = AcmeClient(
                    directory_url=self.directory_url,
                    storage_path=str(storage),
                )
                account_kwargs: dict[str, str] = {}
                if self._settings.email:
                    account_kwargs["email"] = self._settings.email
                client.create_account(**account_kwargs)

                log.info("Creating order for %d domain(s)", len(domains))
                client.create_order(domains)

                handler = CallbackHttpHandler(
                    deploy=self._deploy_challenge,
                    cleanup=self._cleanup_challenge,
                )
                client.complete_challenges(handler, challenge_type="http-01")

                key_pem, csr_der = generate_key_and_csr(domains, self._settings.key_bytes)
                client.finalize_order(csr=csr_der)
                cert_pem, _ = client.get_certificate()
            except Exception as exc:  # noqa: BLE001
                msg = f"Certificate request failed ({type(exc).__name__}): {exc}"
                raise ProviderError(msg) from exc
            finally:
                self._challenges.clear()

            if isinstance(cert_pem, str):
                cert_pem = cert_pem.encode("ascii")
            self._store.write_materials(key_pem, cert_pem)
        log.info("Certificate issued for %s", ", ".join(domains))

    def renew(self) -> None:
        """Re-issue the certificate and invoke the restart hook."""
        self.issue()
        hook = self._settings.restart_server
        if hook is None:
            return
        try:
            hook()
        except Exception:
            log.exception("Server restart hook failed after renewal")

    def needs_renewal(self, now: datetime | None = None) -> bool:
        """True when the stored certificate is missing or close to expiry."""
        expiry = self._store.certificate_expiry()
        if expiry is None:
            return True
        now = now or datetime.now(UTC)
        return expiry - now <= timedelta(days=self._settings.renew_before_days)

    # -- internal helpers ----------------------------------------------------

    def _run_first_issuance(self) -> None:
        try:
            self.issue()
        except (ProviderError, IOFailure):
            log.exception("Certificate issuance failed")
            return
        if self._settings.auto_renew:
            self.watch()

    def _account_storage(self) -> Path:
        directory = self._store.path
        if directory is None:
            msg = f"Invalid certificate directory: {self._settings.directory!r}"
            raise ProviderError(msg)
        storage = directory / _ACCOUNT_SUBDIR
        try:
            storage.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Failed to create account storage '{storage}': {exc}"
            raise IOFailure(msg) from exc
        return storage

    def _deploy_challenge(self, domain: str, token: str, key_authorization: str) -> None:
        log.debug("Deploying HTTP-01 challenge for %s", domain)
        self._challenges.add(token, key_authorization)

    def _cleanup_challenge(self, domain: str, token: str) -> None:
        log.debug("Cleaning up HTTP-01 challenge for %s", domain)
        self._challenges.remove(token)


def generate_key_and_csr(domains: list[str], key_bytes: int) -> tuple[bytes, bytes]:
    """Generate an RSA key and a CSR covering *domains*.

    Returns
    -------
    tuple[bytes, bytes]
        The PEM-encoded private key and the DER-encoded CSR.

    """
    from cryptography import x509  # noqa: PLC0415
    from cryptography.hazmat.primitives import hashes, serialization  # noqa: PLC0415
    from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: PLC0415
    from cryptography.x509.oid import NameOID  # noqa: PLC0415

    key = rsa.generate_private_key(
        public_exponent=_RSA_PUBLIC_EXPONENT,
        key_size=key_bytes,
    )
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return key_pem, csr.public_bytes(serialization.Encoding.DER)


class RenewalWorker:
    """Daemon thread that renews the certificate shortly before expiry.

    Checks once on start, then every ``check_interval_seconds``.  Failed
    checks back off exponentially, capped at 8x the interval.
    """

    def __init__(self, provider: LetsEncryptProvider) -> None:
        self._provider = provider
        self._interval = provider.settings.check_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._consecutive_failures = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background worker thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="certificate-renewal",
            daemon=True,
        )
        self._thread.start()
        log.info(
            "Renewal worker started (renew_before=%dd, interval=%ds)",
            self._provider.settings.renew_before_days,
            self._interval,
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the worker to stop and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            log.info("Renewal worker stopped")

    def run_once(self) -> bool:
        """Renew if needed.  Returns ``True`` when a renewal happened."""
        if not self._provider.needs_renewal():
            log.debug("Certificate is not due for renewal")
            return False
        log.info("Certificate is due for renewal")
        self._provider.renew()
        return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
                self._consecutive_failures = 0
                wait = self._interval
            except Exception:
                self._consecutive_failures += 1
                log.exception(
                    "Renewal check failed (consecutive: %d)",
                    self._consecutive_failures,
                )
                wait = min(
                    self._interval * (2**self._consecutive_failures),
                    self._interval * _MAX_BACKOFF_FACTOR,
                )
            self._stop_event.wait(timeout=wait)
