"""Centralized logging configuration for CLI commands."""

import logging
import os


def configure_logging(verbose: bool) -> None:
    """Configure logging levels based on verbose flag.

    Call once at CLI startup, before any command runs.

    Args:
        verbose: If True, show INFO+ logs. If False, show only WARNING+ logs.
    """
    # Tests manage their own logging
    if os.getenv("PYTEST_CURRENT_TEST"):
        return

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO if verbose else logging.WARNING,
            format="%(levelname)s: %(message)s",
        )
    else:
        logging.getLogger().setLevel(logging.INFO if verbose else logging.WARNING)

    # Always silence noisy HTTP libraries, even in verbose mode
    for logger_name in ["urllib3", "urllib3.connectionpool", "requests"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    if not verbose:
        logging.getLogger("tensorweave").setLevel(logging.WARNING)
