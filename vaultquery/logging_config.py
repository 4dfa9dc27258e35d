"""
Logging configuration for vaultquery.

Quiet by default; ``--verbose`` or VAULTQUERY_VERBOSE=1 switches on debug
output to stderr. Stores also keep a small rotating operations log.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "vaultquery-ops.log"


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose output.

    Args:
        quiet: If True, only warnings and errors are shown. If False, info too.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        logging.getLogger("vaultquery").setLevel(logging.WARNING)
    else:
        logging.getLogger("vaultquery").setLevel(logging.INFO)
    # mcp/httpx are chatty at INFO when the stdio server runs
    logging.getLogger("mcp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and h.stream == sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("vaultquery").setLevel(logging.DEBUG)


def configure_ops_log(store_path):
    """Configure a persistent operations log for a store.

    Writes to {store_path}/vaultquery-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so it can be removed on close().
    """
    store_path = Path(store_path)
    store_path.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(store_path / OPS_LOG_FILENAME),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    vq_logger = logging.getLogger("vaultquery")
    vq_logger.addHandler(handler)
    # Let INFO through to the ops log even in quiet mode
    if vq_logger.level == logging.NOTSET or vq_logger.level > logging.INFO:
        vq_logger.setLevel(logging.INFO)

    return handler
