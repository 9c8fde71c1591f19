# roofguard/core/logging_config.py
"""Logging setup shared by the API and its security layer"""

import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_FILE_NAME = 'roofguard.log'
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 5

QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "redis")


def setup_logging() -> logging.Logger:
    """
    Configure the root logger: console plus a rotating file in $LOG_DIR.

    Safe to call repeatedly, each handler is attached only once.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # Subclasses (pytest's capture handler, file handlers) don't count
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = str((log_dir / LOG_FILE_NAME).resolve())

    has_file_handler = any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == log_file
        for h in root_logger.handlers
    )
    if not has_file_handler:
        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
