"""
Logging setup for the workshop companion backend.

The level comes from COMPANION_LOG_LEVEL unless a caller passes one.
Session tokens must never appear in log messages; log the storage key
(``workshop_<CODE>``) instead.

Usage:
    from companion_backend.logger import get_logger

    logger = get_logger(__name__)
    logger.warning("Failed to parse session data for %s: %s", key, err)
"""

import logging
import sys
from typing import Optional

from .config import load_settings

_configured = False

# requests logs every connection through urllib3 at DEBUG; polling makes that noise.
_QUIET_LOGGERS = ("urllib3",)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once at startup; later calls are no-ops."""
    global _configured
    if _configured:
        return

    if level is None:
        level = load_settings().log_level
    resolved = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
