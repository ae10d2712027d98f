"""
Well-known certificate files for a run.

The RSA key and signing request are generated once per run and shared by
every app. The downloaded certificate and the identity bundle are
transient and never outlive a single app's workflow. The per-app PEM under
the certificate directory is the durable output.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .config_loader import Config
from .keystore import KeystoreSession
from .logger import get_logger


RSA_KEY_NAME = "push_notification.key"
CSR_NAME = "CertificateSigningRequest.certSigningRequest"
BUNDLE_NAME = "out.p12"


class ArtifactError(Exception):
    """Raised when a certificate artifact cannot be produced."""
    pass


def generate_private_key(key_size: int = 2048) -> RSAPrivateKey:
    """Generate an RSA private key."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def generate_rsa_key(path: str, key_size: int = 2048) -> bool:
    """
    Write an unencrypted PEM RSA key, keeping an existing one.

    Args:
        path: Destination file
        key_size: RSA modulus size in bits

    Returns:
        True if a new key was written, False if one was already present
    """
    if os.path.exists(path):
        return False

    key = generate_private_key(key_size)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_bytes(key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    os.chmod(path, 0o600)
    return True


def generate_certificate_request(user: str, country_code: str, key_path: str, out_path: str) -> None:
    """
    Derive a signing request from the account identity and RSA key.

    Args:
        user: Account e-mail, used as e-mail address and common name
        country_code: Two-letter country code
        key_path: PEM private key
        out_path: Destination for the PEM signing request
    """
    key = serialization.load_pem_private_key(Path(key_path).read_bytes(), password=None)
    if not isinstance(key, RSAPrivateKey):
        raise ArtifactError(f"Expected an RSA private key in {key_path}")

    subject = x509.Name([
        x509.NameAttribute(NameOID.EMAIL_ADDRESS, user),
        x509.NameAttribute(NameOID.COMMON_NAME, user),
        x509.NameAttribute(NameOID.COUNTRY_NAME, country_code),
    ])
    csr = x509.CertificateSigningRequestBuilder().subject_name(subject).sign(key, hashes.SHA256())

    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    Path(out_path).write_bytes(csr.public_bytes(serialization.Encoding.PEM))


def convert_bundle_to_pem(bundle_path: str, pem_path: str, password: str = "") -> None:
    """
    Convert a PKCS#12 identity bundle into a single PEM file.

    The output holds the certificate followed by the unencrypted private key.
    """
    try:
        key, cert, _ = pkcs12.load_key_and_certificates(
            Path(bundle_path).read_bytes(),
            password.encode() if password else None,
        )
    except (OSError, ValueError) as e:
        raise ArtifactError(f"Failed to read identity bundle {bundle_path}: {e}")

    if key is None or cert is None:
        raise ArtifactError(f"Identity bundle {bundle_path} has no key/certificate pair")

    pem = cert.public_bytes(serialization.Encoding.PEM) + key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    Path(pem_path).parent.mkdir(parents=True, exist_ok=True)
    Path(pem_path).write_bytes(pem)
    os.chmod(pem_path, 0o600)


def _remove(path: str) -> bool:
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


@dataclass(frozen=True)
class CertificateArtifacts:
    """Fixed file slots used by every app in a run."""
    rsa_key_path: str
    csr_path: str
    downloaded_cert_path: str
    p12_path: str
    cert_dir: str
    bundle_password: str = ""

    @classmethod
    def from_config(cls, config: Config, bundle_password: str = "") -> "CertificateArtifacts":
        work_dir = config.paths.work_dir
        return cls(
            rsa_key_path=os.path.join(work_dir, RSA_KEY_NAME),
            csr_path=os.path.join(work_dir, CSR_NAME),
            downloaded_cert_path=os.path.join(
                config.paths.download_dir, config.paths.downloaded_cert_name
            ),
            p12_path=os.path.join(work_dir, BUNDLE_NAME),
            cert_dir=config.paths.cert_dir,
            bundle_password=bundle_password,
        )

    def pem_output_path(self, app_id: str) -> str:
        return os.path.join(self.cert_dir, f"{app_id}.pem")

    def prepare(self, user: str, country_code: str, key_size: int = 2048) -> None:
        """
        Create the certificate directory and the shared key and request.

        Runs once per process, before any app is processed.
        """
        logger = get_logger()
        os.makedirs(self.cert_dir, exist_ok=True)

        if generate_rsa_key(self.rsa_key_path, key_size):
            logger.info(f"Generated RSA key {self.rsa_key_path}")
        else:
            logger.info(f"Reusing RSA key {self.rsa_key_path}")

        generate_certificate_request(user, country_code, self.rsa_key_path, self.csr_path)
        logger.info(f"Generated certificate signing request {self.csr_path}")

    def clear_downloaded_certificate(self) -> None:
        if _remove(self.downloaded_cert_path):
            get_logger().debug(f"Removed stale download {self.downloaded_cert_path}")

    def clear_bundle(self) -> None:
        _remove(self.p12_path)

    def import_and_export(self, session: KeystoreSession) -> None:
        """Import the downloaded certificate, drop the download, export the bundle."""
        session.import_certificate(self.downloaded_cert_path)
        self.clear_downloaded_certificate()
        session.export_identities(self.p12_path, self.bundle_password)

    def convert_bundle_to_pem(self, app_id: str) -> str:
        """
        Write the app's PEM from the exported bundle and remove the bundle.

        Returns:
            Path to the PEM file
        """
        pem_path = self.pem_output_path(app_id)
        try:
            convert_bundle_to_pem(self.p12_path, pem_path, self.bundle_password)
        finally:
            self.clear_bundle()
        return pem_path
