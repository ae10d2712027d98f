"""
Push notification certificate automation.

This package contains:
- logger: Centralized logging setup
- config_loader: Configuration loading and validation
- waiting: Bounded polling waits
- keystore: Keystore backends and scoped keystore sessions
- artifacts: Key, signing request, bundle and PEM files
- catalog: App catalog scanning
- decision: Per-app action selection
- console: Remote console driver interface
- playwright_driver: Browser implementation of the console driver
- workflow: Configure/renew certificate workflow
- notification: Notification system for configure/renew events
- runner: Run orchestration and summary
"""

from .logger import setup_logger, get_logger, mask_secret
from .config_loader import (
    load_config,
    parse_config,
    Config,
    ConfigurationError,
)
from .waiting import TimedOut, wait_until, wait_for_file
from .keystore import (
    Keystore,
    KeystoreError,
    KeystoreSession,
    FileKeystore,
    MacKeychain,
    open_keystore,
)
from .artifacts import CertificateArtifacts, ArtifactError
from .catalog import App, CatalogRow, PushStatus, classify_status, scan
from .decision import Action, Decision, DecisionReason, decide, plan
from .console import ConsoleDriver, ConsoleError, AuthenticationError
from .workflow import CertificateWorkflow
from .notification import NotificationManager, NotificationContext
from .runner import AppResult, AppStatus, RunSummary, process_catalog

__all__ = [
    # Logger
    "setup_logger",
    "get_logger",
    "mask_secret",
    # Config
    "load_config",
    "parse_config",
    "Config",
    "ConfigurationError",
    # Waiting
    "TimedOut",
    "wait_until",
    "wait_for_file",
    # Keystore
    "Keystore",
    "KeystoreError",
    "KeystoreSession",
    "FileKeystore",
    "MacKeychain",
    "open_keystore",
    # Artifacts
    "CertificateArtifacts",
    "ArtifactError",
    # Catalog and decisions
    "App",
    "CatalogRow",
    "PushStatus",
    "classify_status",
    "scan",
    "Action",
    "Decision",
    "DecisionReason",
    "decide",
    "plan",
    # Console and workflow
    "ConsoleDriver",
    "ConsoleError",
    "AuthenticationError",
    "CertificateWorkflow",
    # Notifications
    "NotificationManager",
    "NotificationContext",
    # Runner
    "AppResult",
    "AppStatus",
    "RunSummary",
    "process_catalog",
]
