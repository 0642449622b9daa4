from __future__ import annotations

"""Logging setup for applications embedding the retrieval engine."""

import logging

from ragcore.app.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level_name: str | None = None) -> int:
    """Configure root logging using environment settings and return the level."""
    level_name = (level_name or settings.log_level).strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("ragcore").setLevel(level)
    return level
