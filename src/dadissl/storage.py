"""Certificate store on the local filesystem.

The store owns two files inside the configured directory:

* ``domain.key``  -- PEM private key of the certificate
* ``chained.pem`` -- PEM leaf certificate followed by the intermediates

Probing never raises: a missing, unreadable or non-regular file reads as
``None``.  Writes are atomic (temp file + :func:`os.replace`) and the key
and certificate are read and written as a pair under a per-directory lock,
so a probe never observes a new key next to an old certificate.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import weakref
from pathlib import Path
from typing import TYPE_CHECKING

from dadissl.errors import IOFailure

if TYPE_CHECKING:
    from datetime import datetime

log = logging.getLogger(__name__)

KEY_FILE = "domain.key"
CERT_FILE = "chained.pem"

# Entries live only while some store holds the lock.
_locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def _lock_for(path: Path | None) -> threading.Lock:
    key = str(path.resolve()) if path is not None else ""
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _locks[key] = lock
        return lock


class CertificateStore:
    """Filesystem helpers for one certificate directory.

    Parameters
    ----------
    directory:
        Store root.  ``~`` is expanded.  A non-string value (allowed when
        directory creation is disabled) makes every probe read as absent.

    """

    def __init__(self, directory: str | os.PathLike[str] | None) -> None:
        self._raw = directory
        if isinstance(directory, (str, os.PathLike)) and os.fspath(directory):
            self._path: Path | None = Path(directory).expanduser()
        else:
            self._path = None
        self._lock = _lock_for(self._path)

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def lock(self) -> threading.Lock:
        """Lock shared by every store over the same directory."""
        return self._lock

    # -- probing -------------------------------------------------------------

    def dir_exists(self) -> bool:
        if self._path is None:
            return False
        try:
            return self._path.is_dir()
        except OSError:
            return False

    def file_exists(self, name: str) -> bool:
        if self._path is None:
            return False
        try:
            return (self._path / name).is_file()
        except OSError:
            return False

    def read_file(self, name: str) -> bytes | None:
        """Return the raw content of *name*, or ``None`` when unavailable."""
        if not self.file_exists(name):
            return None
        try:
            return (self._path / name).read_bytes()  # type: ignore[operator]
        except OSError:
            log.debug("Could not read %s in %s", name, self._path, exc_info=True)
            return None

    def get_key(self) -> bytes | None:
        return self.read_file(KEY_FILE)

    def get_certificate(self) -> bytes | None:
        return self.read_file(CERT_FILE)

    def read_materials(self) -> tuple[bytes | None, bytes | None]:
        """Read the key and certificate as a consistent pair."""
        with self._lock:
            return self.get_key(), self.get_certificate()

    def certificate_expiry(self) -> datetime | None:
        """Return the ``notAfter`` of the leaf in ``chained.pem``.

        ``None`` when the file is missing or does not parse.
        """
        pem = self.get_certificate()
        if pem is None:
            return None

        from cryptography import x509  # noqa: PLC0415

        try:
            leaf = x509.load_pem_x509_certificate(pem)
        except ValueError:
            log.warning("Certificate in %s could not be parsed", self._path)
            return None
        return leaf.not_valid_after_utc

    # -- writing -------------------------------------------------------------

    def ensure_directory(self) -> Path:
        """Create the directory (and parents) unless it already exists.

        Raises
        ------
        IOFailure
            If the directory cannot be created.

        """
        if self._path is None:
            msg = f"Invalid certificate directory: {self._raw!r}"
            raise IOFailure(msg)
        try:
            self._path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Failed to create certificate directory '{self._path}': {exc}"
            raise IOFailure(msg) from exc
        return self._path

    def write_file(self, name: str, data: bytes, *, mode: int = 0o644) -> Path:
        """Atomically replace *name* with *data*."""
        directory = self.ensure_directory()
        target = directory / name
        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{name}.")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, mode)  # noqa: PTH101
            os.replace(tmp_name, target)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            msg = f"Failed to write '{target}': {exc}"
            raise IOFailure(msg) from exc
        return target

    def write_materials(self, key_pem: bytes, chain_pem: bytes) -> None:
        """Write the key and certificate as a pair."""
        with self._lock:
            self.write_file(KEY_FILE, key_pem, mode=0o600)
            self.write_file(CERT_FILE, chain_pem)
        log.info("Stored certificate materials in %s", self._path)
