"""
Logging for the service and the Telegram bot.

Everything logs under the "flower_market" logger to stdout; modules take a
child logger with get_logger("moderation") and so on.
"""

import logging
import os
import sys

ROOT_LOGGER_NAME = "flower_market"

LOG_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Configure the service logger once; calling again replaces its handler."""
    if level is None:
        level = os.getenv("LOG_LEVEL", "DEBUG").upper()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    # uvicorn configures the root logger; keep our lines single
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


app_logger = setup_logging()
