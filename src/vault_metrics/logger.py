"""Console logging for vault-metrics."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Driver and HTTP loggers that flood DEBUG output
NOISY_LOGGERS = ("pymongo", "urllib3")

LEVEL_COLORS = {
    "TRACE": "\033[90m",
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}


class ColoredFormatter(logging.Formatter):
    """Formatter that highlights the level name with ANSI colors.

    Colors are skipped when ``use_color`` is false, e.g. when output is
    redirected to a file or captured by a test runner.
    """

    RESET = "\033[0m"
    BOLD = "\033[1m"

    def __init__(self, *args, use_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelname)
        if not self.use_color or color is None:
            return super().format(record)

        levelname = record.levelname
        record.levelname = f"{color}{self.BOLD}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _level_number(log_level: str) -> int:
    if log_level == "TRACE":
        return TRACE
    return logging.getLevelName(log_level) if log_level in LEVEL_COLORS else logging.INFO


def setup_logging(log_level: str = "INFO", stream: TextIO | None = None) -> None:
    """Configure the root logger with a single console handler.

    At DEBUG the pymongo and urllib3 loggers are held at WARNING; TRACE
    opens them up as well.

    Args:
        log_level: Level name (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Destination of log records, stdout by default
    """
    log_level = log_level.upper()
    stream = stream or sys.stdout

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        ColoredFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            use_color=stream.isatty(),
        )
    )
    logging.basicConfig(level=_level_number(log_level), handlers=[handler], force=True)

    if log_level == "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    elif log_level == "TRACE":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(TRACE)


def get_logger(name: str) -> logging.Logger:
    """Module logger, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
