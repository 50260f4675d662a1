# src/cgpatrack/logging_config.py
import logging
import sys

from cgpatrack.config.settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "") -> logging.Logger:
    """
    Set up logging configuration for the application.
    """
    logger = logging.getLogger()
    logger.setLevel(level or settings.log_level)

    # Only the first call installs the console handler.
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    return logger
