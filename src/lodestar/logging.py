"""Logging configuration for Lodestar.

Logs go to stderr so stdout stays clean for ``lodestar query --json``.
The level can be set with LODESTAR_LOG_LEVEL (default WARNING).
"""

import logging
import os
import sys

logger = logging.getLogger("lodestar")
logger.setLevel(os.getenv("LODESTAR_LOG_LEVEL", "WARNING").upper())

# Only add handler if not already configured
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        "[lodestar] %(asctime)s %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def set_verbosity(verbose: bool) -> None:
    """Switch the lodestar logger between INFO (verbose) and WARNING."""
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
