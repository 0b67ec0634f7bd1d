"""Logging setup for applications embedding pgbrowse."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "WARNING", *, handler: logging.Handler | None = None) -> logging.Logger:
    """Attach a single handler to the ``pgbrowse`` logger and set its level.

    Calling it again replaces the previous handler instead of stacking them.
    """

    logger = logging.getLogger("pgbrowse")
    resolved = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'.")
    for existing in [h for h in logger.handlers if getattr(h, "_pgbrowse", False)]:
        logger.removeHandler(existing)
    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._pgbrowse = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(resolved)
    return logger


__all__ = ["LOG_FORMAT", "configure_logging"]
