"""
Logging setup for the coach service.

Modules log through ``logging.getLogger(__name__)``; ``configure_logging`` installs a single
console handler on the ``goal_coach`` logger so repeated app construction (tests, reloads)
does not stack handlers.
"""

import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s - %(message)s"
ROOT_LOGGER_NAME = "goal_coach"

_configured = False


def configure_logging(level: Optional[str] = None, fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    global _configured
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    resolved_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logger.setLevel(resolved_level)
    if not _configured:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(handler)
        logger.propagate = False
        _configured = True
    return logger
