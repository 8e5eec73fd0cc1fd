"""
Console logging for the service and for uvicorn.

Every record goes through one stdout handler with level colors. The
application logger is ``analysis_worker``; modules log through
``get_logger(__name__)``.
"""

import logging
import re
import sys
from typing import Optional

from analysis_worker.config import settings

APP_LOGGER_NAME = "analysis_worker"

# ANSI Color Codes
BLUE = "\033[0;34m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
BOLD_RED = "\033[1;31m"
RESET = "\033[0m"

LEVEL_COLORS = {
    logging.DEBUG: BLUE,
    logging.INFO: "",
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: BOLD_RED,
}


class ColoredFormatter(logging.Formatter):
    """Colors the whole line by level and highlights failure keywords."""

    FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    DATE_FMT = "%Y-%m-%d %H:%M:%S"

    HIGHLIGHTS = [
        (re.compile(r"\bFAILED\b"), RED),
        (re.compile(r"\bERROR\b"), RED),
        (re.compile(r"\bnot found\b"), YELLOW),
        (re.compile(r"\bCRITICAL\b"), BOLD_RED),
    ]

    def __init__(self) -> None:
        super().__init__(self.FMT, datefmt=self.DATE_FMT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        base = LEVEL_COLORS.get(record.levelno, "")
        for pattern, color in self.HIGHLIGHTS:
            # Resume the level color after each highlighted span
            line = pattern.sub(lambda m: f"{color}{m.group(0)}{RESET}{base}", line)
        return f"{base}{line}{RESET}" if base else line


class PollingAccessFilter(logging.Filter):
    """
    Demote uvicorn access lines for endpoints the UI polls (health checks
    and log tails) to DEBUG so they only show in debug mode.
    """

    QUIET_SUFFIXES = ("/health", "/logs")

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        match = re.search(r'"GET (\S+)', message)
        if match and match.group(1).split("?", 1)[0].endswith(self.QUIET_SUFFIXES):
            record.levelno = logging.DEBUG
            record.levelname = "DEBUG"
            return settings.debug_mode
        return True


def setup_logging(name: Optional[str] = None) -> logging.Logger:
    """
    Install the colored stdout handler on the root and uvicorn loggers.

    Args:
        name: Logger to return; defaults to the application logger.

    Returns:
        The requested logger.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter())

    logging.basicConfig(
        level=logging.DEBUG if settings.debug_mode else logging.INFO,
        handlers=[handler],
        force=True,
    )

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False
    logging.getLogger("uvicorn.access").addFilter(PollingAccessFilter())

    # Team authority client chatter
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logging.getLogger(name or APP_LOGGER_NAME)


def get_logger(name: str) -> logging.Logger:
    """Module logger, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
