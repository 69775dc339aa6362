import logging
import sys

LOGGER_NAME = "pdf_service"
FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure(level: str = "INFO") -> logging.Logger:
    """Configure the package logger with a single stdout handler.

    Safe to call more than once; the handler is only installed the first time.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(FORMAT))
        logger.addHandler(handler)
    return logger
