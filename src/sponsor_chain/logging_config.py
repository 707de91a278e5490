"""Logging setup for the sponsor chain service."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Configure the package logger once per process.

    Services log through ``logging.getLogger(__name__)``; this only attaches
    a handler to the ``sponsor_chain`` root logger and sets its level.
    """
    global _configured

    logger = logging.getLogger("sponsor_chain")
    logger.setLevel(level)
    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
