import logging
import os
from typing import Optional

LOGGER_NAME = "lispcst"
LEVEL_ENV_VAR = "LISPCST_LOGGING_LEVEL"
DEV_LOGGER_ENV_VAR = "LISPCST_USE_DEV_LOGGER"

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"


def get_level() -> str:
    """Return the level named by `LISPCST_LOGGING_LEVEL`, `WARNING` if unset."""
    return os.getenv(LEVEL_ENV_VAR, "WARNING")


def get_handler(
    level: Optional[str] = None, fmt: str = DEFAULT_FORMAT
) -> logging.Handler:
    """Return the handler attached to the package logger.

    Records are discarded unless `LISPCST_USE_DEV_LOGGER` is `true`, which sends
    them to stderr."""
    if os.getenv(DEV_LOGGER_ENV_VAR, "").lower() == "true":
        handler: logging.Handler = logging.StreamHandler()
    else:
        handler = logging.NullHandler()
    handler.setLevel(level or get_level())
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def configure_root_logger(
    level: Optional[str] = None, fmt: str = DEFAULT_FORMAT
) -> None:
    """Set the level of the `lispcst` logger and attach the default handler."""
    level = level or get_level()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.addHandler(get_handler(level, fmt))
