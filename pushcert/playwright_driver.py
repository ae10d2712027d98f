"""
Playwright implementation of the console driver.

Maps logical control names to selectors on the developer console and
saves downloads into the configured download directory.
"""

from pathlib import Path
from typing import Callable, Dict, List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .catalog import CatalogRow
from .config_loader import ConsoleConfig
from .console import ConsoleDriver, ConsoleError, Control
from .logger import get_logger
from .waiting import TimedOut, poll


CATALOG_ROWS = "div.nt_multi table tr"
CONFIGURE_COLUMN = 5

DEFAULT_CONTROLS: Dict[str, str] = {
    Control.ACCOUNT_NAME: "input[name='theAccountName']",
    Control.ACCOUNT_PASSWORD: "#accountpassword",
    Control.SIGN_IN: "form[name='appleConnectForm'] [type='submit']",
    Control.TEAM_LIST: "#teams",
    Control.SAVE_TEAM: "#saveTeamSelection_saveTeamSelection_save",
    Control.ENABLE_PUSH: "#enablePush",
    Control.CONFIGURE_PRODUCTION: "#aps-assistant-btn-prod-en",
    Control.RENEW_PRODUCTION: "#aps-assistant-btn-ov-prod-en",
    Control.CONTINUE: "#ext-gen59",
    Control.CSR_UPLOAD: "input[name='upload']",
    Control.SUBMIT_CSR: "#ext-gen75",
    Control.DOWNLOAD: "[alt='Download']",
    Control.DONE: "#ext-gen91",
}


class PlaywrightConsoleDriver(ConsoleDriver):
    """Drives the console in a real browser."""

    def __init__(
        self,
        config: ConsoleConfig,
        download_dir: str,
        poll_interval: float = 1.0,
        download_timeout: float = 120.0,
        download_name: Optional[str] = None,
    ):
        self.config = config
        self.download_dir = Path(download_dir)
        self.poll_interval = poll_interval
        self.download_timeout = download_timeout
        self.download_name = download_name
        self.controls = {**DEFAULT_CONTROLS, **config.controls}
        self.logger = get_logger()

        self._playwright = sync_playwright().start()
        browser_type = getattr(self._playwright, config.browser)
        self._browser = browser_type.launch(headless=config.headless)
        self._context = self._browser.new_context(accept_downloads=True)
        self.page = self._context.new_page()
        self.logger.debug(f"Launched {config.browser} (headless={config.headless})")

    def _selector(self, ref: str) -> str:
        return self.controls.get(ref, ref)

    def navigate(self, url: str) -> None:
        self.page.goto(url)

    def current_text(self) -> str:
        try:
            return self.page.inner_text("body")
        except PlaywrightError:
            # page mid-navigation
            return ""

    def click_control(self, ref: str) -> None:
        selector = self._selector(ref)
        if ref != Control.DOWNLOAD:
            self.page.click(selector)
            return

        try:
            with self.page.expect_download(timeout=self.download_timeout * 1000) as download_info:
                self.page.click(selector)
            download = download_info.value
        except PlaywrightTimeoutError:
            raise TimedOut("certificate download", self.download_timeout)

        filename = download.suggested_filename
        if self.download_name and filename != self.download_name:
            self.logger.warning(
                f"Console offered {filename}, expected {self.download_name}; "
                "set paths.downloaded_cert_name to match"
            )
        self.download_dir.mkdir(parents=True, exist_ok=True)
        target = self.download_dir / filename
        download.save_as(str(target))
        self.logger.debug(f"Saved download to {target}")

    def set_field(self, ref: str, value: str) -> None:
        self.page.fill(self._selector(ref), value)

    def select_option(self, ref: str, value: str) -> None:
        self.page.select_option(self._selector(ref), label=value)

    def upload_file(self, ref: str, path: str) -> None:
        self.page.set_input_files(self._selector(ref), path)

    def execute_script(self, script: str) -> None:
        self.page.evaluate(script)

    def wait_for_text(self, predicate: Callable[[str], bool], timeout: float) -> bool:
        return poll(
            lambda: predicate(self.current_text()),
            timeout,
            interval=self.poll_interval,
            sleep=lambda seconds: self.page.wait_for_timeout(seconds * 1000),
        )

    def catalog_rows(self) -> List[CatalogRow]:
        rows = []

        for index, row in enumerate(self.page.query_selector_all(CATALOG_ROWS)):
            cells = row.query_selector_all("td")
            name = cells[0].query_selector("strong") if cells else None
            if name is None:
                rows.append(CatalogRow(name_text=None))
                continue

            configure_ref: Optional[str] = None
            if len(cells) > CONFIGURE_COLUMN and cells[CONFIGURE_COLUMN].query_selector("a"):
                configure_ref = (
                    f"{CATALOG_ROWS} >> nth={index} >> td >> nth={CONFIGURE_COLUMN} >> a"
                )

            rows.append(CatalogRow(
                name_text=name.inner_text(),
                name_title=name.get_attribute("title"),
                status_text=cells[1].inner_text() if len(cells) > 1 else "",
                configure_ref=configure_ref,
            ))

        if not rows:
            raise ConsoleError("App catalog table not found on the current page")

        return rows

    def close(self) -> None:
        self._context.close()
        self._browser.close()
        self._playwright.stop()
