"""
Configuration loading, validation, and parsing.

Loads the run configuration from a YAML file into immutable, typed
values that are built once at startup and passed to every component.
"""

import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .logger import get_logger


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


DEFAULT_CATALOG_URL = "https://developer.apple.com/ios/manage/bundles/index.action"
DEFAULT_DOWNLOADED_CERT_NAME = "aps_production_identity.cer"

VALID_BROWSERS = ["chromium", "firefox", "webkit"]
VALID_KEYSTORE_BACKENDS = ["file", "macos"]
VALID_RSA_SIZES = [2048, 3072, 4096]


@dataclass(frozen=True)
class AccountConfig:
    """Developer console account credentials."""
    user: str
    password: str
    team: Optional[str] = None


@dataclass(frozen=True)
class KeychainConfig:
    """Local keystore used to pair the issued certificate with the RSA key."""
    name: str
    password: str = ""
    backend: str = "file"


@dataclass(frozen=True)
class PathsConfig:
    """Directories the run reads from and writes to."""
    download_dir: str
    cert_dir: str
    work_dir: str = field(default_factory=tempfile.gettempdir)
    downloaded_cert_name: str = DEFAULT_DOWNLOADED_CERT_NAME


@dataclass(frozen=True)
class SelectionConfig:
    """Which catalog entries are processed.

    - app_filter: identifier suffix an app must end with (empty matches all)
    - refresh_certs: renew certificates that are already enabled
    """
    app_filter: str = ""
    refresh_certs: bool = False


@dataclass(frozen=True)
class Settings:
    """Global settings."""
    country_code: str = "US"
    rsa_key_size: int = 2048
    page_timeout: float = 30.0
    issuance_timeout: float = 180.0
    download_timeout: float = 120.0
    poll_interval: float = 1.0
    continue_on_error: bool = False
    dry_run: bool = False


@dataclass(frozen=True)
class ConsoleConfig:
    """Remote management console settings."""
    catalog_url: str = DEFAULT_CATALOG_URL
    browser: str = "chromium"
    headless: bool = False
    controls: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TeamsNotificationConfig:
    """Teams notification configuration."""
    enabled: bool = False
    webhook_url: Optional[str] = None


@dataclass(frozen=True)
class NotificationsConfig:
    """Notification channels configuration."""
    teams: TeamsNotificationConfig = field(default_factory=TeamsNotificationConfig)


@dataclass(frozen=True)
class Config:
    """Root configuration object."""
    account: AccountConfig
    keychain: KeychainConfig
    paths: PathsConfig
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    settings: Settings = field(default_factory=Settings)
    console: ConsoleConfig = field(default_factory=ConsoleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


def _expand_env_vars(value: Any) -> Any:
    """
    Expand ${VAR_NAME} references in string values.

    Unknown variables are left untouched.

    Args:
        value: Value to expand (string, dict, or list)

    Returns:
        Value with environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"

        def replace(match):
            return os.environ.get(match.group(1), match.group(0))

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1", "on"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "0", "off", ""):
        return False
    raise ConfigurationError(f"'{key}' must be a boolean, got {value!r}")


def _as_positive_number(value: Any, key: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
    if number <= 0:
        raise ConfigurationError(f"'{key}' must be greater than zero")
    return number


def _required(data: Dict[str, Any], key: str, section: str) -> str:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigurationError(f"'{section}.{key}' is required")
    return str(value)


def _parse_account(data: Dict[str, Any]) -> AccountConfig:
    return AccountConfig(
        user=_required(data, "user", "account"),
        password=_required(data, "password", "account"),
        team=data.get("team"),
    )


def _parse_keychain(data: Dict[str, Any]) -> KeychainConfig:
    keychain = KeychainConfig(
        name=_required(data, "name", "keychain"),
        password=str(data.get("password", "") or ""),
        backend=str(data.get("backend", "file")).lower(),
    )

    if keychain.backend not in VALID_KEYSTORE_BACKENDS:
        raise ConfigurationError(
            f"Invalid keychain backend '{keychain.backend}'. "
            f"Must be one of: {', '.join(VALID_KEYSTORE_BACKENDS)}"
        )
    if "/" in keychain.name or "\\" in keychain.name:
        raise ConfigurationError("Keychain name must not contain path separators")

    return keychain


def _parse_paths(data: Dict[str, Any]) -> PathsConfig:
    return PathsConfig(
        download_dir=os.path.expanduser(_required(data, "download_dir", "paths")),
        cert_dir=os.path.expanduser(_required(data, "cert_dir", "paths")),
        work_dir=os.path.expanduser(data.get("work_dir") or tempfile.gettempdir()),
        downloaded_cert_name=data.get("downloaded_cert_name", DEFAULT_DOWNLOADED_CERT_NAME),
    )


def _parse_selection(data: Dict[str, Any]) -> SelectionConfig:
    return SelectionConfig(
        app_filter=str(data.get("app_filter", "") or "").strip(),
        refresh_certs=_as_bool(data.get("refresh_certs", False), "selection.refresh_certs"),
    )


def _parse_settings(data: Dict[str, Any]) -> Settings:
    """
    Parse and validate the settings section.

    Args:
        data: Raw settings data from YAML

    Returns:
        Settings instance
    """
    settings = Settings(
        country_code=str(data.get("country_code", "US")).upper(),
        rsa_key_size=data.get("rsa_key_size", 2048),
        page_timeout=_as_positive_number(data.get("page_timeout", 30), "settings.page_timeout"),
        issuance_timeout=_as_positive_number(
            data.get("issuance_timeout", 180), "settings.issuance_timeout"
        ),
        download_timeout=_as_positive_number(
            data.get("download_timeout", 120), "settings.download_timeout"
        ),
        poll_interval=_as_positive_number(data.get("poll_interval", 1), "settings.poll_interval"),
        continue_on_error=_as_bool(data.get("continue_on_error", False), "settings.continue_on_error"),
        dry_run=_as_bool(data.get("dry_run", False), "settings.dry_run"),
    )

    if not re.fullmatch(r"[A-Z]{2}", settings.country_code):
        raise ConfigurationError(
            f"Invalid country_code '{settings.country_code}'. Must be a two-letter code"
        )
    if settings.rsa_key_size not in VALID_RSA_SIZES:
        raise ConfigurationError(
            f"Invalid rsa_key_size '{settings.rsa_key_size}'. "
            f"Must be one of: {', '.join(map(str, VALID_RSA_SIZES))}"
        )

    return settings


def _parse_console(data: Dict[str, Any]) -> ConsoleConfig:
    console = ConsoleConfig(
        catalog_url=data.get("catalog_url", DEFAULT_CATALOG_URL),
        browser=str(data.get("browser", "chromium")).lower(),
        headless=_as_bool(data.get("headless", False), "console.headless"),
        controls=dict(data.get("controls") or {}),
    )

    if not console.catalog_url.startswith("https://"):
        raise ConfigurationError("console.catalog_url must start with https://")
    if console.browser not in VALID_BROWSERS:
        raise ConfigurationError(
            f"Invalid browser '{console.browser}'. Must be one of: {', '.join(VALID_BROWSERS)}"
        )

    return console


def _parse_notifications(data: Dict[str, Any]) -> NotificationsConfig:
    teams_data = data.get("teams") or {}
    teams = TeamsNotificationConfig(
        enabled=_as_bool(teams_data.get("enabled", False), "notifications.teams.enabled"),
        webhook_url=teams_data.get("webhook_url"),
    )

    if teams.enabled and not teams.webhook_url:
        raise ConfigurationError("notifications.teams.webhook_url is required when Teams is enabled")

    return NotificationsConfig(teams=teams)


def parse_config(data: Dict[str, Any]) -> Config:
    """
    Build a Config from already-loaded YAML data.

    Args:
        data: Raw mapping (environment variables not yet expanded)

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")

    data = _expand_env_vars(data)

    for section in ("account", "keychain", "paths"):
        if section not in data:
            raise ConfigurationError(f"Missing '{section}' section in configuration")

    return Config(
        account=_parse_account(data["account"] or {}),
        keychain=_parse_keychain(data["keychain"] or {}),
        paths=_parse_paths(data["paths"] or {}),
        selection=_parse_selection(data.get("selection") or {}),
        settings=_parse_settings(data.get("settings") or {}),
        console=_parse_console(data.get("console") or {}),
        notifications=_parse_notifications(data.get("notifications") or {}),
    )


def load_config(config_path: str) -> Config:
    """
    Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    logger = get_logger()
    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if path.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            f"Configuration file must be YAML (.yaml or .yml): {config_path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}")

    if not raw_data:
        raise ConfigurationError("Configuration file is empty")

    config = parse_config(raw_data)

    logger.info(f"Loaded configuration from {config_path}")
    logger.info(f"  Account: {config.account.user}")
    logger.info(f"  Keychain: {config.keychain.name} ({config.keychain.backend})")
    logger.info(f"  Certificate directory: {config.paths.cert_dir}")
    logger.info(f"  App filter: {config.selection.app_filter or '(all apps)'}")
    logger.info(f"  Refresh existing: {config.selection.refresh_certs}")
    logger.info(
        "  Notifications: teams" if config.notifications.teams.enabled else "  Notifications: disabled"
    )

    return config
