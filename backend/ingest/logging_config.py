"""Logging setup shared by every ingestion module.

Records can carry three context fields through ``extra={...}``:
``cycle_id`` (sync cycle), ``message_id`` (Gmail message) and ``provider``
(extractor id). Missing fields render as ``None``.

Output goes to the console and to two size-rotated files in ``LOG_DIR``:
``receipt_sync.log`` (everything) and ``receipt_errors.log`` (ERROR and up).

Usage:
    from ingest.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Fetched page", extra={'cycle_id': cycle_id})
"""

import logging
import os
from logging.handlers import RotatingFileHandler

DEFAULT_LOG_DIR = os.path.join(os.path.expanduser("~"), ".receipt_ledger", "logs")

SYNC_LOG = "receipt_sync.log"
ERROR_LOG = "receipt_errors.log"

CONTEXT_FIELDS = ("cycle_id", "message_id", "provider")

CONSOLE_FORMAT = "[%(levelname)s] [cycle:%(cycle_id)s] %(message)s"
FILE_FORMAT = (
    "[%(asctime)s] [%(levelname)s] [%(name)s] "
    "[cycle:%(cycle_id)s msg:%(message_id)s provider:%(provider)s] %(message)s"
)

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 30


class StructuredFormatter(logging.Formatter):
    """Formatter that guarantees every context field exists on the record."""

    def format(self, record):
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)
        return super().format(record)


def get_log_dir() -> str:
    """Directory for log files, read from ``LOG_DIR`` at call time."""
    return os.getenv("LOG_DIR", DEFAULT_LOG_DIR)


def get_log_file_path(filename: str) -> str:
    """Full path of a log file inside the log directory."""
    return os.path.join(get_log_dir(), filename)


def _rotating_handler(filename: str, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        get_log_file_path(filename),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter(FILE_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name``, attaching handlers on first use.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger with console (INFO), sync file (DEBUG) and error file (ERROR)
        handlers. It does not propagate to the root logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    os.makedirs(get_log_dir(), exist_ok=True)

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(StructuredFormatter(CONSOLE_FORMAT))

    logger.addHandler(console)
    logger.addHandler(_rotating_handler(SYNC_LOG, logging.DEBUG))
    logger.addHandler(_rotating_handler(ERROR_LOG, logging.ERROR))
    return logger
