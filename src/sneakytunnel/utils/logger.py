"""
Logging setup built on loguru.

Usage:
    from sneakytunnel.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("...")
"""

import sys
import traceback

from loguru import logger as _logger

from sneakytunnel.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

# Records logged through the bare loguru logger still need extra[name]
_logger.configure(extra={"name": "sneakytunnel"})


def get_logger(name: str):
    """Get a loguru logger bound to a module name."""
    return _logger.bind(name=name)


def configure_logging(level: LogLevel | str = LogLevel.INFO) -> None:
    """
    Replace loguru's default sink with a stderr sink at the given level.

    Args:
        level: LogLevel enum or its string value.
    """
    level = LogLevel(level)
    full = level is LogLevel.FULL

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=_LEVEL_MAP[level],
        format=LOG_FORMAT,
        backtrace=full,
        diagnose=full,
    )


def format_traceback(exc: BaseException) -> str:
    """Format an exception's traceback as a string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
