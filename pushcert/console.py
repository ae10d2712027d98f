"""
Remote management console interface.

The workflow talks to the console only through ConsoleDriver, using
logical control names. Drivers translate those names into whatever their
automation backend needs.
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from .catalog import CatalogRow
from .config_loader import AccountConfig
from .logger import get_logger
from .waiting import TimedOut


class ConsoleError(Exception):
    """Raised when the remote console is not in the expected state."""
    pass


class AuthenticationError(ConsoleError):
    """Raised when signing in to the console fails."""
    pass


class Prompt:
    """Text markers identifying console pages."""
    SIGN_IN = "Sign in"
    SELECT_TEAM = "Select Your Team"
    CSR_INTRO = "Generate a Certificate Signing Request"
    CSR_SUBMIT = "Submit Certificate Signing Request"
    CERT_GENERATED = "Your APNs SSL Certificate has been generated."
    DOWNLOAD_STEP = "Step 1: Download"
    INSTALL_STEP = "Download & Install Your Apple Push Notification service SSL Certificate"


class Control:
    """Logical names of console controls."""
    ACCOUNT_NAME = "account_name"
    ACCOUNT_PASSWORD = "account_password"
    SIGN_IN = "sign_in"
    TEAM_LIST = "team_list"
    SAVE_TEAM = "save_team"
    ENABLE_PUSH = "enable_push"
    CONFIGURE_PRODUCTION = "configure_production"
    RENEW_PRODUCTION = "renew_production"
    CONTINUE = "continue"
    CSR_UPLOAD = "csr_upload"
    SUBMIT_CSR = "submit_csr"
    DOWNLOAD = "download"
    DONE = "done"


VALIDATE_UPLOAD_SCRIPT = "callFileValidate();"


class ConsoleDriver(ABC):
    """Capabilities the workflow needs from a UI automation backend."""

    @abstractmethod
    def navigate(self, url: str) -> None:
        """Load a URL."""

    @abstractmethod
    def current_text(self) -> str:
        """Return the visible text of the current page."""

    @abstractmethod
    def click_control(self, ref: str) -> None:
        """Click a control by logical name or driver-specific reference."""

    @abstractmethod
    def set_field(self, ref: str, value: str) -> None:
        """Fill a text field."""

    @abstractmethod
    def select_option(self, ref: str, value: str) -> None:
        """Pick an option of a select list by its label."""

    @abstractmethod
    def upload_file(self, ref: str, path: str) -> None:
        """Attach a local file to a file input."""

    @abstractmethod
    def execute_script(self, script: str) -> None:
        """Run a script in the page."""

    @abstractmethod
    def wait_for_text(self, predicate: Callable[[str], bool], timeout: float) -> bool:
        """
        Wait until the page text satisfies a predicate.

        Returns:
            True if it did within the timeout, False otherwise
        """

    @abstractmethod
    def catalog_rows(self) -> List[CatalogRow]:
        """Read the rows of the app catalog table on the current page."""

    def close(self) -> None:
        """Release browser resources."""


def await_text(driver: ConsoleDriver, text: str, timeout: float) -> None:
    """
    Wait for text to appear on the console page.

    Raises:
        TimedOut: If the text did not appear within the timeout
    """
    get_logger().debug(f"Waiting up to {timeout:g}s for '{text}'")
    if not driver.wait_for_text(lambda page: text in page, timeout):
        raise TimedOut(f"'{text}'", timeout)


def ensure_signed_in(driver: ConsoleDriver, account: AccountConfig, timeout: float) -> bool:
    """
    Sign in if the console shows a sign-in prompt.

    Returns:
        True if a sign-in was performed

    Raises:
        AuthenticationError: If the prompt is still shown after signing in
    """
    logger = get_logger()

    if Prompt.SIGN_IN not in driver.current_text():
        return False

    logger.info("Not logged in... logging in...")
    driver.set_field(Control.ACCOUNT_NAME, account.user)
    driver.set_field(Control.ACCOUNT_PASSWORD, account.password)
    driver.click_control(Control.SIGN_IN)

    if not driver.wait_for_text(lambda page: Prompt.SIGN_IN not in page, timeout):
        raise AuthenticationError(f"Sign-in failed for {account.user}")

    logger.success("Logged in")
    return True


def ensure_team_selected(driver: ConsoleDriver, team: Optional[str]) -> bool:
    """
    Select the configured team if the console asks for one.

    Returns:
        True if a team was selected

    Raises:
        ConsoleError: If a team is requested but none is configured
    """
    logger = get_logger()

    if Prompt.SELECT_TEAM not in driver.current_text():
        return False

    if not team:
        raise ConsoleError("Console requires a team selection but account.team is not configured")

    logger.info("Now let's select your team...")
    driver.select_option(Control.TEAM_LIST, team)
    driver.click_control(Control.SAVE_TEAM)
    logger.success(f"Team {team} is selected")
    return True
