#!/usr/bin/env python3
"""
Push Notification Certificate Automation - Main Entry Point.

Scans the developer console's app catalog and, for every app matching the
configured filter, either configures a first production push certificate
or renews the existing one, exporting a PEM per app into the certificate
directory.

Usage:
    # Configure every configurable app
    python main.py --config config.yaml

    # Also renew apps that are already enabled
    python main.py --refresh

    # Only look at apps whose identifier ends with "FanFB"
    python main.py --filter FanFB

    # Dry run (scan and report, no changes)
    python main.py --dry-run
"""

import argparse
import dataclasses
import sys
import traceback

from pushcert.artifacts import CertificateArtifacts
from pushcert.config_loader import Config, ConfigurationError, load_config
from pushcert.keystore import open_keystore
from pushcert.logger import get_logger, mask_secret, setup_logger
from pushcert.notification import NotificationManager
from pushcert.runner import (
    AppStatus,
    RunSummary,
    get_bundle_password,
    process_catalog,
)


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Push Notification Certificate Automation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Configure apps that are configurable
  %(prog)s --refresh                # Also renew already enabled apps
  %(prog)s --filter FanFB --dry-run # Report what would happen for *FanFB
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scan the catalog and report decisions without making changes",
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        default=None,
        help="Renew certificates of apps that are already enabled (overrides config)",
    )
    parser.add_argument(
        "--filter",
        type=str,
        default=None,
        dest="app_filter",
        help="Only process apps whose identifier ends with this suffix (overrides config)",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        default=None,
        help="Run the browser without a window (overrides config)",
    )
    parser.add_argument(
        "--bundle-password",
        type=str,
        default=None,
        help="Passphrase for the exported identity bundle "
             "(falls back to PUSHCERT_BUNDLE_PASSWORD env var, then empty)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write log output to this file",
    )
    parser.add_argument(
        "--json-summary",
        action="store_true",
        help="Output machine-readable JSON summary at the end of execution",
    )

    return parser.parse_args(argv)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """
    Return a copy of the configuration with command-line overrides applied.
    """
    logger = get_logger()
    selection = config.selection
    settings = config.settings
    console = config.console

    if args.refresh:
        selection = dataclasses.replace(selection, refresh_certs=True)
        logger.info("Refreshing existing certificates")
    if args.app_filter is not None:
        selection = dataclasses.replace(selection, app_filter=args.app_filter)
        logger.info(f"App filter overridden to: {args.app_filter or '(all apps)'}")
    if args.dry_run:
        settings = dataclasses.replace(settings, dry_run=True)
    if args.headless:
        console = dataclasses.replace(console, headless=True)

    return dataclasses.replace(config, selection=selection, settings=settings, console=console)


def print_run_summary(summary: RunSummary, output_json: bool = False) -> None:
    """
    Print the end-of-run summary block.

    Args:
        summary: RunSummary with all results
        output_json: If True, also output machine-readable JSON
    """
    logger = get_logger()
    separator = "=" * 70

    logger.info("")
    logger.info(separator)
    logger.info("EXECUTION SUMMARY")
    logger.info(separator)

    status_str = "SUCCESS" if summary.success else "FAILED"
    if summary.dry_run:
        status_str += " (DRY RUN)"

    logger.info(f"Status: {status_str}")
    logger.info(f"Started: {summary.started_at}")
    logger.info(f"Completed: {summary.completed_at}")
    logger.info("")
    logger.info(f"  Apps scanned:       {summary.apps_scanned}")
    logger.info(f"  Configured:         {summary.count(AppStatus.CONFIGURED)}")
    logger.info(f"  Renewed:            {summary.count(AppStatus.RENEWED)}")
    logger.info(f"  Skipped:            {summary.count(AppStatus.SKIPPED)}")
    logger.info(f"  Ignored (filtered): {summary.count(AppStatus.IGNORED)}")
    logger.info(f"  Failed:             {summary.count(AppStatus.FAILED)}")

    for result in summary.results:
        if result.status == AppStatus.IGNORED:
            continue
        label = result.status.value.upper()
        if result.status == AppStatus.FAILED:
            logger.error(f"  [{label}] {result.app_id}: {result.message}")
        elif result.pem_path:
            logger.info(f"  [{label}] {result.app_id} -> {result.pem_path}")
        else:
            logger.info(f"  [{label}] {result.app_id}: {result.message}")

    if summary.global_errors:
        logger.error("-" * 40)
        logger.error("GLOBAL ERRORS")
        logger.error("-" * 40)
        for error in summary.global_errors:
            logger.error(f"  - {error}")

    logger.info(separator)
    logger.info(f"Exit Code: {summary.exit_code}")
    logger.info(separator)

    if output_json:
        print(summary.to_json())

    print("PIPELINE_STATUS=SUCCESS" if summary.success else "PIPELINE_STATUS=FAILURE")


def main(argv=None) -> int:
    """
    Main entry point.

    Exit Codes:
        0 - All apps processed successfully
        1 - One or more apps failed, or a fatal error aborted the run
        2 - Configuration error

    Returns:
        Exit code
    """
    args = parse_arguments(argv)

    logger = setup_logger(
        verbose=args.verbose,
        use_colors=not args.no_color,
        log_file=args.log_file,
    )

    logger.info("Let's get this party started.")
    summary = RunSummary(dry_run=args.dry_run)
    console = None

    try:
        config = apply_overrides(load_config(args.config), args)
        bundle_password = get_bundle_password(args.bundle_password)
        for secret in (config.account.password, config.keychain.password, bundle_password):
            mask_secret(secret)

        if config.settings.dry_run:
            logger.warning("DRY RUN MODE - No changes will be made")

        artifacts = CertificateArtifacts.from_config(
            config, bundle_password=bundle_password
        )
        keystore = open_keystore(
            config.keychain.name,
            config.keychain.backend,
            config.paths.work_dir,
            config.keychain.password,
        )
        notification_manager = NotificationManager(config.notifications)

        from pushcert.playwright_driver import PlaywrightConsoleDriver

        console = PlaywrightConsoleDriver(
            config.console,
            download_dir=config.paths.download_dir,
            poll_interval=config.settings.poll_interval,
            download_timeout=config.settings.download_timeout,
            download_name=config.paths.downloaded_cert_name,
        )

        process_catalog(
            config=config,
            console=console,
            keystore=keystore,
            artifacts=artifacts,
            summary=summary,
            notification_manager=notification_manager,
        )
        logger.info("Done.")

    except ConfigurationError as e:
        error_msg = f"Configuration error: {e}"
        logger.error(error_msg)
        summary.add_global_error(error_msg, exit_code=2)

    except Exception as e:
        error_msg = f"Fatal error: {e}"
        logger.error(error_msg)
        summary.add_global_error(error_msg)
        if args.verbose:
            traceback.print_exc()

    finally:
        if console is not None:
            console.close()

    summary.finalize()
    print_run_summary(summary, output_json=args.json_summary)

    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
