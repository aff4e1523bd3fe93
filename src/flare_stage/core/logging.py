"""Logging setup for the API process."""

from __future__ import annotations

import logging

from flare_stage.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once using the configured level."""
    resolved = (level or settings.log_level).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("flare_stage").setLevel(resolved)
