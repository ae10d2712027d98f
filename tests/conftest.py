"""Test fixtures for pushcert tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from pushcert.artifacts import CertificateArtifacts, generate_private_key
from pushcert.catalog import CatalogRow
from pushcert.config_loader import Config, parse_config
from pushcert.console import ConsoleDriver, Control, Prompt
from pushcert.keystore import Keystore, KeystoreError


CATALOG_URL = "https://console.example.com/bundles"


def issue_certificate(
    csr_pem: bytes,
    ca_key: RSAPrivateKey,
    ca_cert: x509.Certificate,
) -> x509.Certificate:
    """Sign a CSR the way the remote console would."""
    csr = x509.load_pem_x509_csr(csr_pem)
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, "Apple Production IOS Push Services"),
        ]))
        .issuer_name(ca_cert.subject)
        .public_key(csr.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(ca_key, hashes.SHA256())
    )


class FakeConsole(ConsoleDriver):
    """
    Scripted console that walks through the issuance pages.

    stall_at: a prompt that never appears, to exercise timeouts
    stall_app: limit stall_at to the wizard of this app
    deliver_download: whether clicking download writes the certificate
    """

    PAGES = {
        "sign_in": "Please Sign in to continue",
        "team": "Select Your Team",
        "catalog": "Certificates, Identifiers & Profiles",
        "app": "Configure App ID",
        "csr_intro": Prompt.CSR_INTRO,
        "csr_submit": Prompt.CSR_SUBMIT,
        "generated": Prompt.CERT_GENERATED,
        "download_step": Prompt.DOWNLOAD_STEP,
        "install": Prompt.INSTALL_STEP,
        "finished": "All done",
    }

    def __init__(
        self,
        ca_key: RSAPrivateKey,
        ca_cert: x509.Certificate,
        download_path: str,
        rows: Optional[List[CatalogRow]] = None,
        start_page: str = "catalog",
        password: str = "secret",
        stall_at: Optional[str] = None,
        stall_app: Optional[str] = None,
        deliver_download: bool = True,
    ):
        self.ca_key = ca_key
        self.ca_cert = ca_cert
        self.download_path = download_path
        self.rows = rows or []
        self.page = start_page
        self.password = password
        self.stall_at = stall_at
        self.stall_app = stall_app
        self.opened_app: Optional[str] = None
        self.deliver_download = deliver_download
        self.fields: Dict[str, str] = {}
        self.clicks: List[str] = []
        self.visits: List[str] = []
        self.scripts: List[str] = []
        self.uploaded: Optional[str] = None
        self.issued: Optional[x509.Certificate] = None
        self.selected_team: Optional[str] = None
        self.download_present_at_click: Optional[bool] = None
        self.closed = False

    def navigate(self, url: str) -> None:
        self.visits.append(url)
        if self.page not in ("sign_in", "team"):
            self.page = "catalog"

    def current_text(self) -> str:
        text = self.PAGES[self.page]
        stalled = self.stall_app is None or self.stall_app == self.opened_app
        if self.stall_at and stalled and self.stall_at in text:
            return "Please wait..."
        return text

    def click_control(self, ref: str) -> None:
        self.clicks.append(ref)
        transitions = {
            ("sign_in", Control.SIGN_IN): self._sign_in,
            ("team", Control.SAVE_TEAM): lambda: "catalog",
            ("app", Control.ENABLE_PUSH): lambda: "app",
            ("app", Control.CONFIGURE_PRODUCTION): lambda: "csr_intro",
            ("app", Control.RENEW_PRODUCTION): lambda: "csr_intro",
            ("csr_intro", Control.CONTINUE): lambda: "csr_submit",
            ("csr_submit", Control.SUBMIT_CSR): self._issue,
            ("generated", Control.CONTINUE): lambda: "download_step",
            ("download_step", Control.DOWNLOAD): self._download,
            ("install", Control.DONE): lambda: "finished",
        }
        if self.page == "catalog" and ref.startswith("configure:"):
            self.page = "app"
            self.opened_app = ref.split(":", 1)[1]
            return
        action = transitions.get((self.page, ref))
        if action is None:
            raise AssertionError(f"Unexpected click on {ref} at page {self.page}")
        self.page = action()

    def _sign_in(self) -> str:
        if self.fields.get(Control.ACCOUNT_PASSWORD) != self.password:
            return "sign_in"
        return "team"

    def _issue(self) -> str:
        assert self.uploaded is not None
        assert "callFileValidate();" in self.scripts
        self.issued = issue_certificate(Path(self.uploaded).read_bytes(), self.ca_key, self.ca_cert)
        return "generated"

    def _download(self) -> str:
        self.download_present_at_click = Path(self.download_path).exists()
        if self.deliver_download:
            Path(self.download_path).parent.mkdir(parents=True, exist_ok=True)
            Path(self.download_path).write_bytes(self.issued.public_bytes(serialization.Encoding.DER))
        return "install"

    def set_field(self, ref: str, value: str) -> None:
        self.fields[ref] = value

    def select_option(self, ref: str, value: str) -> None:
        assert ref == Control.TEAM_LIST
        self.selected_team = value

    def upload_file(self, ref: str, path: str) -> None:
        assert ref == Control.CSR_UPLOAD
        self.uploaded = path

    def execute_script(self, script: str) -> None:
        self.scripts.append(script)

    def wait_for_text(self, predicate: Callable[[str], bool], timeout: float) -> bool:
        return predicate(self.current_text())

    def catalog_rows(self) -> List[CatalogRow]:
        return list(self.rows)

    def close(self) -> None:
        self.closed = True


class RecordingKeystore(Keystore):
    """In-memory keystore that records every operation."""

    def __init__(self, name: str = "push-certs", exists: bool = False, fail_on: Optional[str] = None):
        super().__init__(name)
        self.items: Optional[List[Tuple[str, str]]] = [("cert", "stale")] if exists else None
        self.events: List[str] = []
        self.created = 0
        self.fail_on = fail_on

    def _record(self, event: str) -> None:
        self.events.append(event)
        if event == self.fail_on:
            raise KeystoreError(f"{event} failed")

    def exists(self) -> bool:
        return self.items is not None

    def create(self) -> None:
        self._record("create")
        assert self.items is None
        self.items = []
        self.created += 1

    def delete(self) -> None:
        self._record("delete")
        assert self.items is not None
        self.items = None

    def import_rsa_key(self, key_path: str) -> None:
        self._record("import_rsa_key")
        self.items.append(("key", key_path))

    def import_certificate(self, cert_path: str) -> None:
        self._record("import_certificate")
        self.items.append(("cert", cert_path))

    def export_identities(self, bundle_path: str, password: str = "") -> None:
        self._record("export_identities")


@pytest.fixture
def ca_key() -> RSAPrivateKey:
    """Generate the signing key of the fake console's CA."""
    return generate_private_key(2048)


@pytest.fixture
def ca_cert(ca_key: RSAPrivateKey) -> x509.Certificate:
    """Self-signed CA certificate for the fake console."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Push CA")])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )


@pytest.fixture
def raw_config(tmp_path: Path) -> dict:
    """Return raw configuration data pointing every path into tmp_path."""
    return {
        "account": {"user": "dev@example.com", "password": "secret", "team": "Example Team"},
        "keychain": {"name": "push-certs", "backend": "file"},
        "paths": {
            "download_dir": str(tmp_path / "downloads"),
            "cert_dir": str(tmp_path / "certs"),
            "work_dir": str(tmp_path / "work"),
        },
        "selection": {"app_filter": "FanFB", "refresh_certs": False},
        "settings": {
            "rsa_key_size": 2048,
            "download_timeout": 0.05,
            "poll_interval": 0.01,
        },
        "console": {"catalog_url": CATALOG_URL},
    }


@pytest.fixture
def config(raw_config: dict) -> Config:
    """Return a parsed test configuration."""
    return parse_config(raw_config)


@pytest.fixture
def artifacts(config: Config) -> CertificateArtifacts:
    """Return artifacts for the test configuration."""
    return CertificateArtifacts.from_config(config)


@pytest.fixture
def prepared_artifacts(config: Config, artifacts: CertificateArtifacts) -> CertificateArtifacts:
    """Artifacts with the shared key and signing request already generated."""
    artifacts.prepare(config.account.user, config.settings.country_code, config.settings.rsa_key_size)
    return artifacts


@pytest.fixture
def make_console(
    ca_key: RSAPrivateKey,
    ca_cert: x509.Certificate,
    artifacts: CertificateArtifacts,
) -> Callable[..., FakeConsole]:
    """Factory for fake consoles bound to the test CA and download path."""

    def factory(**kwargs) -> FakeConsole:
        return FakeConsole(ca_key, ca_cert, artifacts.downloaded_cert_path, **kwargs)

    return factory
