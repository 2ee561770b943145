# core/logging_config.py
import logging

from core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOGGER_NAME = "casebooking"


def setup_logger(level: str = settings.LOG_LEVEL) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)

    # Level can change between app factories; handlers are added once
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if logger.handlers:
        return logger

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child of the service logger, e.g. casebooking.permissions."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


logger = setup_logger()
