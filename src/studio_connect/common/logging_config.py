"""
Logging setup for the Studio Connect command line.

INFO (DEBUG with --verbose) goes to stdout; the log file in the config
directory always receives DEBUG records of the last run.
"""

import logging
import sys
from pathlib import Path

from studio_connect.common.config import get_config_dir

LOG_FILENAME = "studio-connect.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """
    Attach console and file handlers to the root logger.

    Args:
        verbose: Show debug output, including aiohttp client logs
        log_file: Log file path (defaults to the config directory)
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return
    root_logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    try:
        file_handler = logging.FileHandler(
            log_file or get_config_dir() / LOG_FILENAME, mode="w", encoding="utf-8"
        )
    except OSError as e:
        print(f"Warning: Could not set up file logging: {e}", file=sys.stderr)
    else:
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(LOG_FORMAT + " [%(filename)s:%(lineno)d]")
        )
        root_logger.addHandler(file_handler)

    # Request-level aiohttp logs only matter when diagnosing connections
    logging.getLogger("aiohttp").setLevel(logging.DEBUG if verbose else logging.WARNING)
