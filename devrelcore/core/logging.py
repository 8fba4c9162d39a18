from __future__ import annotations

import logging

from devrelcore.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Apply one root configuration so library loggers inherit the same level.
    resolved = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved, format=_LOG_FORMAT)
    logging.getLogger().setLevel(resolved)
    # SQLAlchemy echoes every statement at INFO; keep it quiet unless debugging.
    if resolved != "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
