"""
Local keystore operations.

A keystore holds the run's RSA key and one app's issued certificate at a
time so the pair can be exported as an identity bundle. Two backends are
provided: a portable directory-based store and the macOS keychain driven
through the ``security`` tool.
"""

import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import pkcs12

from .logger import get_logger


class KeystoreError(Exception):
    """Raised when a keystore operation fails."""
    pass


class Keystore(ABC):
    """Abstract named credential store."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def exists(self) -> bool:
        """Check whether the store is present."""

    @abstractmethod
    def create(self) -> None:
        """Create a new, empty store."""

    @abstractmethod
    def delete(self) -> None:
        """Delete the store and everything in it."""

    @abstractmethod
    def import_rsa_key(self, key_path: str) -> None:
        """Import a PEM private key."""

    @abstractmethod
    def import_certificate(self, cert_path: str) -> None:
        """Import a DER or PEM certificate."""

    @abstractmethod
    def export_identities(self, bundle_path: str, password: str = "") -> None:
        """Export the key and its matching certificate as a PKCS#12 bundle."""


def load_certificate(data: bytes) -> x509.Certificate:
    """Load a certificate from PEM or DER bytes."""
    if data.lstrip().startswith(b"-----BEGIN"):
        return x509.load_pem_x509_certificate(data)
    return x509.load_der_x509_certificate(data)


def _public_key_der(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class FileKeystore(Keystore):
    """
    Keystore kept as a directory of PEM files.

    Layout::

        <root>/<name>.keystore/
            key-0.pem
            cert-0.pem
    """

    def __init__(self, name: str, root_dir: str):
        super().__init__(name)
        self.path = Path(root_dir) / f"{name}.keystore"
        self.logger = get_logger()

    def exists(self) -> bool:
        return self.path.is_dir()

    def create(self) -> None:
        if self.exists():
            raise KeystoreError(f"Keystore already exists: {self.path}")
        self.path.mkdir(parents=True)
        os.chmod(self.path, 0o700)
        self.logger.debug(f"Created keystore {self.path}")

    def delete(self) -> None:
        if not self.exists():
            raise KeystoreError(f"Keystore does not exist: {self.path}")
        shutil.rmtree(self.path)
        self.logger.debug(f"Deleted keystore {self.path}")

    def _require(self) -> None:
        if not self.exists():
            raise KeystoreError(f"Keystore does not exist: {self.path}")

    def _next_slot(self, kind: str) -> Path:
        index = len(list(self.path.glob(f"{kind}-*.pem")))
        return self.path / f"{kind}-{index}.pem"

    def list_items(self) -> List[Tuple[str, str]]:
        """
        List the stored items.

        Returns:
            (kind, file name) pairs, kind being "key" or "cert"
        """
        self._require()
        return [
            (item.name.split("-", 1)[0], item.name)
            for item in sorted(self.path.glob("*.pem"))
        ]

    def import_rsa_key(self, key_path: str) -> None:
        self._require()
        try:
            key = serialization.load_pem_private_key(Path(key_path).read_bytes(), password=None)
        except (OSError, ValueError) as e:
            raise KeystoreError(f"Failed to read private key {key_path}: {e}")
        if not isinstance(key, RSAPrivateKey):
            raise KeystoreError(f"Expected an RSA private key in {key_path}")

        slot = self._next_slot("key")
        slot.write_bytes(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))
        os.chmod(slot, 0o600)

    def import_certificate(self, cert_path: str) -> None:
        self._require()
        try:
            cert = load_certificate(Path(cert_path).read_bytes())
        except (OSError, ValueError) as e:
            raise KeystoreError(f"Failed to read certificate {cert_path}: {e}")

        self._next_slot("cert").write_bytes(cert.public_bytes(serialization.Encoding.PEM))

    def _find_identity(self) -> Optional[Tuple[RSAPrivateKey, x509.Certificate]]:
        certs = [
            x509.load_pem_x509_certificate(p.read_bytes())
            for p in sorted(self.path.glob("cert-*.pem"))
        ]
        for key_file in sorted(self.path.glob("key-*.pem")):
            key = serialization.load_pem_private_key(key_file.read_bytes(), password=None)
            key_der = _public_key_der(key.public_key())
            for cert in certs:
                if _public_key_der(cert.public_key()) == key_der:
                    return key, cert
        return None

    def export_identities(self, bundle_path: str, password: str = "") -> None:
        self._require()
        identity = self._find_identity()
        if identity is None:
            raise KeystoreError(f"No certificate in {self.name} matches a stored private key")

        key, cert = identity
        encryption = (
            serialization.BestAvailableEncryption(password.encode())
            if password
            else serialization.NoEncryption()
        )
        bundle = pkcs12.serialize_key_and_certificates(
            name=self.name.encode(),
            key=key,
            cert=cert,
            cas=None,
            encryption_algorithm=encryption,
        )
        Path(bundle_path).write_bytes(bundle)
        os.chmod(bundle_path, 0o600)


class MacKeychain(Keystore):
    """Keychain managed with the macOS ``security`` command line tool."""

    def __init__(self, name: str, password: str = ""):
        super().__init__(name)
        self.password = password
        self.keychain = f"{name}.keychain"
        self.logger = get_logger()
        self._security: Optional[str] = None

    @property
    def security(self) -> str:
        """Path to the security executable."""
        if self._security is None:
            path = shutil.which("security")
            if not path:
                raise KeystoreError("The 'security' tool was not found (macOS only)")
            self._security = path
        return self._security

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.security, *args]
        self.logger.debug(f"Running: security {args[0]} {self.keychain}")

        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=60,
        )

        if check and result.returncode != 0:
            raise KeystoreError(f"security {args[0]} failed: {result.stderr.strip()}")

        return result

    def exists(self) -> bool:
        return self._run("show-keychain-info", self.keychain, check=False).returncode == 0

    def create(self) -> None:
        self._run("create-keychain", "-p", self.password, self.keychain)
        self._run("unlock-keychain", "-p", self.password, self.keychain)

    def delete(self) -> None:
        self._run("delete-keychain", self.keychain)

    def import_rsa_key(self, key_path: str) -> None:
        self._run("import", key_path, "-k", self.keychain, "-t", "priv", "-A")

    def import_certificate(self, cert_path: str) -> None:
        self._run("import", cert_path, "-k", self.keychain, "-t", "cert")

    def export_identities(self, bundle_path: str, password: str = "") -> None:
        self._run(
            "export",
            "-k", self.keychain,
            "-t", "identities",
            "-f", "pkcs12",
            "-P", password,
            "-o", bundle_path,
        )


class KeystoreSession:
    """
    Scoped ownership of a keystore for one app.

    Acquiring deletes any leftover store of the same name, creates an empty
    one and imports the run's RSA key. Releasing deletes the store. Use as
    a context manager so release happens on every exit path::

        with KeystoreSession(keystore, rsa_key_path) as session:
            session.import_certificate(...)
    """

    def __init__(self, keystore: Keystore, rsa_key_path: str):
        self.keystore = keystore
        self.rsa_key_path = rsa_key_path
        self.active = False
        self.logger = get_logger()

    def acquire(self) -> "KeystoreSession":
        if self.active:
            raise KeystoreError(f"Keystore session for {self.keystore.name} already active")

        if self.keystore.exists():
            self.logger.debug(f"Removing leftover keystore {self.keystore.name}")
            self.keystore.delete()

        self.active = True
        try:
            self.keystore.create()
            self.keystore.import_rsa_key(self.rsa_key_path)
        except Exception:
            self.release()
            raise

        return self

    def release(self) -> None:
        if self.keystore.exists():
            self.keystore.delete()
        self.active = False

    def import_certificate(self, cert_path: str) -> None:
        self.keystore.import_certificate(cert_path)

    def export_identities(self, bundle_path: str, password: str = "") -> None:
        self.keystore.export_identities(bundle_path, password)

    def __enter__(self) -> "KeystoreSession":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.release()
            return

        # a release error must not replace the body's exception
        try:
            self.release()
        except Exception as e:
            self.logger.error(f"Failed to release keystore {self.keystore.name}: {e}")


def open_keystore(name: str, backend: str, work_dir: str, password: str = "") -> Keystore:
    """
    Build the configured keystore backend.

    Args:
        name: Keystore name
        backend: "file" or "macos"
        work_dir: Directory holding file-backed stores
        password: Keychain password (macOS backend)

    Returns:
        Keystore instance
    """
    if backend == "file":
        return FileKeystore(name, work_dir)
    if backend == "macos":
        return MacKeychain(name, password)
    raise KeystoreError(f"Unknown keystore backend: {backend}")
