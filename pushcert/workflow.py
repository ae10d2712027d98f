"""
Certificate configure/renew workflow.

Drives one app from the console's "configure" page through remote
issuance to the app's PEM file, holding a keystore session for exactly
that app and clearing transient files however the workflow ends.
"""

from .artifacts import CertificateArtifacts
from .catalog import App
from .config_loader import Config
from .console import (
    VALIDATE_UPLOAD_SCRIPT,
    ConsoleDriver,
    ConsoleError,
    Control,
    Prompt,
    await_text,
)
from .decision import Action
from .keystore import Keystore, KeystoreSession
from .logger import get_logger
from .waiting import wait_for_file


class CertificateWorkflow:
    """Runs the configure and renew sequences for catalog apps."""

    def __init__(
        self,
        config: Config,
        console: ConsoleDriver,
        keystore: Keystore,
        artifacts: CertificateArtifacts,
    ):
        self.config = config
        self.console = console
        self.keystore = keystore
        self.artifacts = artifacts
        self.logger = get_logger()

    def execute(self, app: App, action: Action) -> str:
        """
        Run the sequence for an action.

        Returns:
            Path to the app's PEM file

        Raises:
            ValueError: If the action is SKIP
        """
        if action == Action.CONFIGURE_NEW:
            return self.configure_new(app)
        if action == Action.RENEW_EXISTING:
            return self.renew_existing(app)
        raise ValueError(f"No workflow for action {action.value}")

    def _open_app(self, app: App) -> None:
        if not app.configure_ref:
            raise ConsoleError(f"No configure control found for {app.id}")
        self.console.click_control(app.configure_ref)

    def configure_new(self, app: App) -> str:
        """Enable push for an app and issue its first production certificate."""
        self.logger.info(f"Configuring certificate for {app.id}...")
        self._open_app(app)
        self.console.click_control(Control.ENABLE_PUSH)
        self.console.click_control(Control.CONFIGURE_PRODUCTION)
        return self.configure_and_export_pem(app)

    def renew_existing(self, app: App) -> str:
        """Issue a new production certificate before the current one expires."""
        self.logger.info(f"Rebuilding push ssl cert for {app.id}...")
        self._open_app(app)
        self.console.click_control(Control.RENEW_PRODUCTION)
        return self.configure_and_export_pem(app)

    def configure_and_export_pem(self, app: App) -> str:
        """
        Issue, import and export the certificate for an app.

        The keystore is released and the downloaded certificate and bundle
        are cleared on every exit path.

        Returns:
            Path to the app's PEM file
        """
        try:
            with KeystoreSession(self.keystore, self.artifacts.rsa_key_path) as session:
                self._request_certificate()
                self.logger.info("Importing Apple cert")
                self.artifacts.import_and_export(session)
                pem_path = self.artifacts.convert_bundle_to_pem(app.id)
                self.logger.info(f"Exporting {pem_path}")
        finally:
            self.artifacts.clear_downloaded_certificate()
            self.artifacts.clear_bundle()

        return pem_path

    def _request_certificate(self) -> None:
        """Submit the signing request and download the issued certificate."""
        settings = self.config.settings
        console = self.console

        await_text(console, Prompt.CSR_INTRO, settings.page_timeout)
        console.click_control(Control.CONTINUE)

        await_text(console, Prompt.CSR_SUBMIT, settings.page_timeout)
        console.upload_file(Control.CSR_UPLOAD, self.artifacts.csr_path)
        console.execute_script(VALIDATE_UPLOAD_SCRIPT)
        console.click_control(Control.SUBMIT_CSR)

        await_text(console, Prompt.CERT_GENERATED, settings.issuance_timeout)
        console.click_control(Control.CONTINUE)

        await_text(console, Prompt.DOWNLOAD_STEP, settings.page_timeout)
        self.artifacts.clear_downloaded_certificate()
        console.click_control(Control.DOWNLOAD)

        self.logger.info("Checking for existence of downloaded certificate file...")
        wait_for_file(
            self.artifacts.downloaded_cert_path,
            settings.download_timeout,
            interval=settings.poll_interval,
        )

        await_text(console, Prompt.INSTALL_STEP, settings.page_timeout)
        console.click_control(Control.DONE)
        console.navigate(self.config.console.catalog_url)
