import logging
import os
import sys

LOG_LEVEL_ENV = "CFREC_LOG_LEVEL"


def setup_logger(name: str, level: str | int | None = None) -> logging.Logger:
    """
    Sets up and returns a logger writing to stdout if no handlers exist.

    Parameters:
        name (str): Name of the logger.
        level (str | int | None): Explicit level. Falls back to the `CFREC_LOG_LEVEL`
            environment variable and then to INFO.

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(name)
    level = level or os.environ.get(LOG_LEVEL_ENV, "INFO")
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False  # pipeline modules log once, through their own handler

    return logger
