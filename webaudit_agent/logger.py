from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler


_LOG_DIR = os.getenv("WEBAUDIT_LOG_DIR") or os.path.join(os.getcwd(), "logs")
_LOG_FILE = "webaudit.log"
_LOG_LEVEL = os.getenv("WEBAUDIT_LOG_LEVEL", "INFO").upper()


def get_logger(name: str) -> logging.Logger:
    """
    Creates a logger instance that writes to console AND a rotating file.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(_LOG_LEVEL)

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    os.makedirs(_LOG_DIR, exist_ok=True)
    file_handler = RotatingFileHandler(os.path.join(_LOG_DIR, _LOG_FILE), maxBytes=10_000_000, backupCount=5)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
