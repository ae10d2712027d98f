"""
Centralized logging setup and configuration.

Provides colored console logging and progress narration for the
push certificate renewal run. Account and keystore passwords registered
with mask_secret never reach a handler in clear text.
"""

import logging
import sys
from typing import Optional, Set


MASK = "********"


class ColoredFormatter(logging.Formatter):
    """
    Formatter that colors level names when writing to a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str = None, use_colors: bool = True):
        """
        Initialize the formatter.

        Args:
            fmt: Log message format string
            use_colors: Whether to use colors in output
        """
        super().__init__(fmt or "%(asctime)s [%(levelname)s] %(message)s")
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        original_msg = record.msg

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            reset = self.COLORS["RESET"]
            record.levelname = f"{color}{record.levelname}{reset}"
            if original_levelname in ("WARNING", "ERROR", "CRITICAL"):
                record.msg = f"{color}{record.msg}{reset}"

        result = super().format(record)

        record.levelname = original_levelname
        record.msg = original_msg

        return result


class StructuredLogger(logging.Logger):
    """
    Logger with helpers for the run's section headers and per-app outcomes.
    """

    def section(self, title: str) -> None:
        """Log a section header."""
        self.info("")
        self.info("=" * 60)
        self.info(title)
        self.info("=" * 60)

    def subsection(self, title: str) -> None:
        """Log a subsection header."""
        self.info("")
        self.info(f"--- {title} ---")

    def success(self, message: str) -> None:
        """Log a success message at INFO level."""
        self.info(f"[OK] {message}")

    def failure(self, message: str) -> None:
        """Log a failure message at ERROR level."""
        self.error(f"[FAIL] {message}")


class SecretMaskingFilter(logging.Filter):
    """Replaces registered secret values in log records with a mask."""

    def __init__(self):
        super().__init__()
        self.secrets: Set[str] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        message = record.getMessage()
        for secret in sorted(self.secrets, key=len, reverse=True):
            message = message.replace(secret, MASK)
        record.msg = message
        record.args = None
        return True


_logger: Optional[StructuredLogger] = None
_secret_filter = SecretMaskingFilter()


def setup_logger(
    name: str = "PushCertRenewal",
    verbose: bool = False,
    use_colors: bool = True,
    log_file: Optional[str] = None,
) -> StructuredLogger:
    """
    Setup and configure the global logger.

    Args:
        name: Logger name
        verbose: Enable debug-level logging
        use_colors: Enable colored output
        log_file: Optional file path for log output

    Returns:
        Configured StructuredLogger instance
    """
    global _logger

    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logger.__class__ = StructuredLogger

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    logger.handlers.clear()
    if _secret_filter not in logger.filters:
        logger.addFilter(_secret_filter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s"
        ))
        logger.addHandler(file_handler)

    _logger = logger
    return logger


def get_logger() -> StructuredLogger:
    """
    Get the global logger instance, creating a default one on first use.

    Returns:
        The configured StructuredLogger instance
    """
    global _logger

    if _logger is None:
        _logger = setup_logger()

    return _logger


def mask_secret(value: Optional[str]) -> None:
    """
    Register a value to be masked in all log output.

    Empty values are ignored.
    """
    if value:
        _secret_filter.secrets.add(value)
