"""
Run orchestration.

Opens the catalog, decides every app and executes the configure/renew
workflow for the ones that need it, collecting the outcome of each app
into a RunSummary.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .artifacts import CertificateArtifacts
from .catalog import App, scan
from .config_loader import Config
from .console import ConsoleDriver, ensure_signed_in, ensure_team_selected
from .decision import Action, Decision, DecisionReason, plan
from .keystore import Keystore
from .logger import get_logger
from .notification import NotificationContext, NotificationManager
from .workflow import CertificateWorkflow


class AppStatus(Enum):
    """Outcome of processing one app."""
    CONFIGURED = "configured"
    RENEWED = "renewed"
    SKIPPED = "skipped"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class AppResult:
    """Result of processing one catalog entry."""
    app_id: str
    status: AppStatus
    message: str
    pem_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "app_id": self.app_id,
            "status": self.status.value.upper(),
            "message": self.message,
            "pem_path": self.pem_path,
        }


@dataclass
class RunSummary:
    """Complete summary of a run."""
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    completed_at: Optional[str] = None
    dry_run: bool = False
    success: bool = True
    exit_code: int = 0
    apps_scanned: int = 0
    results: List[AppResult] = field(default_factory=list)
    global_errors: List[str] = field(default_factory=list)

    def add_result(self, result: AppResult) -> None:
        self.results.append(result)
        if result.status == AppStatus.FAILED:
            self.success = False
            self.exit_code = 1

    def add_global_error(self, error: str, exit_code: int = 1) -> None:
        """Add an error raised outside per-app processing."""
        self.global_errors.append(error)
        self.success = False
        self.exit_code = exit_code

    def count(self, status: AppStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    def finalize(self) -> None:
        self.completed_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "dry_run": self.dry_run,
            "success": self.success,
            "exit_code": self.exit_code,
            "summary": {
                "apps_scanned": self.apps_scanned,
                **{f"total_{status.value}": self.count(status) for status in AppStatus},
            },
            "apps": [r.to_dict() for r in self.results],
            "global_errors": self.global_errors,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def get_bundle_password(args_password: Optional[str] = None) -> str:
    """
    Get the identity bundle passphrase.

    Priority:
    1. Command-line argument (--bundle-password)
    2. Environment variable (PUSHCERT_BUNDLE_PASSWORD)
    3. Empty passphrase
    """
    if args_password is not None:
        return args_password
    return os.environ.get("PUSHCERT_BUNDLE_PASSWORD", "")


def open_catalog(console: ConsoleDriver, config: Config) -> List[App]:
    """
    Load the catalog page, signing in and picking the team when asked.

    Returns:
        Apps in table order
    """
    logger = get_logger()

    console.navigate(config.console.catalog_url)
    if ensure_signed_in(console, config.account, config.settings.page_timeout):
        console.navigate(config.console.catalog_url)
    if ensure_team_selected(console, config.account.team):
        console.navigate(config.console.catalog_url)

    apps = scan(console.catalog_rows())
    logger.info(f"Found {len(apps)} app(s) in the catalog")
    return apps


def _skip_result(decision: Decision) -> AppResult:
    logger = get_logger()
    app = decision.app

    if decision.reason == DecisionReason.ALREADY_ENABLED:
        logger.info(f"{app.id} already enabled. Skipping...")
        return AppResult(app.id, AppStatus.SKIPPED, "Already enabled for production")

    if decision.reason == DecisionReason.NOT_CONFIGURABLE:
        logger.debug(f"{app.id} is not configurable for production. Skipping...")
        return AppResult(app.id, AppStatus.SKIPPED, "Not configurable for production")

    logger.debug(f"{app.id} does not match the app filter")
    return AppResult(app.id, AppStatus.IGNORED, "Does not match app filter")


def process_catalog(
    config: Config,
    console: ConsoleDriver,
    keystore: Keystore,
    artifacts: CertificateArtifacts,
    summary: RunSummary,
    notification_manager: Optional[NotificationManager] = None,
) -> RunSummary:
    """
    Process every app in the catalog.

    With continue_on_error disabled, the first failure is recorded and then
    re-raised, aborting the run.

    Args:
        config: Run configuration
        console: Console driver
        keystore: Keystore backend used for each app's session
        artifacts: Shared certificate files
        summary: Summary to record results into
        notification_manager: Optional notification manager

    Returns:
        The summary
    """
    logger = get_logger()
    dry_run = config.settings.dry_run
    summary.dry_run = dry_run

    logger.section("PHASE 1: Preparing signing request")
    if dry_run:
        logger.info("DRY RUN - key and signing request not generated")
    else:
        artifacts.prepare(
            config.account.user,
            config.settings.country_code,
            config.settings.rsa_key_size,
        )

    logger.section("PHASE 2: Scanning app catalog")
    apps = open_catalog(console, config)
    summary.apps_scanned = len(apps)

    decisions = plan(apps, config.selection.refresh_certs, config.selection.app_filter)

    logger.section("PHASE 3: Processing apps")
    workflow = CertificateWorkflow(config, console, keystore, artifacts)

    for decision in decisions:
        app = decision.app

        if decision.action == Action.SKIP:
            summary.add_result(_skip_result(decision))
            continue

        status = AppStatus.CONFIGURED if decision.action == Action.CONFIGURE_NEW else AppStatus.RENEWED

        if dry_run:
            logger.info(f"DRY RUN - would {decision.action.value.replace('_', ' ')} for {app.id}")
            summary.add_result(AppResult(app.id, status, f"Dry run - would {status.value}"))
            continue

        logger.subsection(app.id)
        try:
            pem_path = workflow.execute(app, decision.action)
        except Exception as e:
            logger.failure(f"{app.id}: {e}")
            summary.add_result(AppResult(app.id, AppStatus.FAILED, str(e)))
            if notification_manager:
                notification_manager.notify(NotificationContext(
                    app_id=app.id,
                    action=decision.action.value,
                    status="FAILED",
                    failure_reason=str(e),
                ))
            if not config.settings.continue_on_error:
                raise
            # a failed wizard leaves the console mid-flow
            console.navigate(config.console.catalog_url)
            continue

        logger.success(f"{app.id} -> {pem_path}")
        summary.add_result(AppResult(app.id, status, f"Successfully {status.value}", pem_path))
        if notification_manager:
            notification_manager.notify(NotificationContext(
                app_id=app.id,
                action=decision.action.value,
                status="SUCCESS",
                pem_path=pem_path,
            ))

    return summary
