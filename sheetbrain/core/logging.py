from __future__ import annotations

import logging

from sheetbrain.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Idempotent so repeated create_app() calls in tests do not stack handlers.
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_LOG_FORMAT)
    root.setLevel(level)
    # httpx logs every request at INFO; keep provider calls quiet unless debugging.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
