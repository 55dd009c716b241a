"""Logging configuration for eafutil."""

import logging
import sys
from logging.handlers import RotatingFileHandler
import os
from typing import Optional

from .utils import ensure_dir_exists

DEFAULT_LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
QUIET_LOGGERS = ("numba", "urllib3") # pulled in by whisper, noisy at DEBUG

def _rotating_handler(log_path: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    ensure_dir_exists(os.path.dirname(log_path))
    return RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8')

def setup_logging(
    log_level: int = logging.WARNING,
    log_dir: Optional[str] = None,
    log_file: str = "eafutil.log",
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    max_bytes: int = 10 * 1024 * 1024, # 10 MB
    backup_count: int = 5
) -> None:
    """
    Configures the root logger.

    Reports are printed on stdout, so log records always go to stderr. When
    `log_dir` is given, records are also written to a rotating file there.
    Calling this again replaces the handlers installed by the previous call.

    Args:
        log_level: Minimum level, e.g. logging.INFO.
        log_dir: Directory for the log file. None keeps logging on the console only.
        log_file: Name of the log file inside `log_dir`.
        log_format: Format string for records.
        date_format: Format string for record timestamps.
        max_bytes: Size at which the log file is rotated.
        backup_count: Number of rotated files to keep.
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    root.setLevel(log_level)
    formatter = logging.Formatter(log_format, datefmt=date_format)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(log_level)
    root.addHandler(console)

    if log_dir:
        log_path = os.path.join(log_dir, log_file)
        try:
            file_handler = _rotating_handler(log_path, max_bytes, backup_count)
        except Exception as e:
            # Console logging stays in place
            root.error(f"Could not open log file {log_path}: {e}", exc_info=True)
        else:
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
            root.info(f"Logging to {log_path}")

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
