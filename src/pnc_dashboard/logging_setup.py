"""Process-wide logging configuration for the app and MCP entry points."""

from __future__ import annotations

import logging

_configured = False


def configure_logging(level: str | int | None = None) -> None:
    """Configure root logging once. Later calls are no-ops."""
    global _configured
    if _configured:
        return

    if level is None:
        from pnc_dashboard.config import get_config
        level = get_config().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    _configured = True
