"""Process-wide logging setup."""

from __future__ import annotations

import logging

from backend.app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once; only the first call installs the handler,
    later calls just adjust the level.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
