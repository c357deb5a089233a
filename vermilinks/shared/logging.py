"""Logging setup for VermiLinks services."""

import logging
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Transport libraries log every frame at DEBUG
TRANSPORT_LOGGERS = ("asyncio", "aiohttp", "socketio", "engineio")


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    quiet_loggers: Optional[Iterable[str]] = None,
) -> None:
    """Configure root logging for a service.

    Args:
        level: Level name, case-insensitive. Unknown names fall back to INFO.
        format_string: Custom format string for log messages.
        quiet_loggers: Extra logger names held at WARNING along with the
            transport libraries.
    """
    name = str(level).upper()
    log_level = getattr(logging, name, None)
    if not isinstance(log_level, int):
        log_level = None

    logging.basicConfig(level=log_level or logging.INFO, format=format_string or LOG_FORMAT)

    for logger_name in (*TRANSPORT_LOGGERS, *(quiet_loggers or ())):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    if log_level is None:
        logging.getLogger(__name__).warning(f"Unknown log level '{level}', using INFO")
