"""
Logger Utils
Console and rotating-file logging for the updater
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path

APP_LOGGER_NAME = 'wow_addon_updater'
LOG_DIR_NAME = 'logs'

# 5 MB per file, ten files kept
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 10


def setup_logging(log_dir=None, level=logging.INFO):
    """Attach console and file handlers to the process root logger.

    Every module logs through ``logging.getLogger(__name__)`` and
    propagates to the root, so one call here covers the whole app.

    Args:
        log_dir: Optional str/Path - Directory for log files (defaults to ./logs)
        level: int - Minimum level for both handlers

    Returns:
        logging.Logger - The application logger, used to announce the log file
    """
    log_dir = Path(log_dir) if log_dir else Path('.') / LOG_DIR_NAME
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H-%M-%S')
    log_file_path = log_dir / f"wow_addon_updater_{timestamp}.log"

    logger = logging.getLogger(APP_LOGGER_NAME)

    # Calling setup twice must not duplicate output
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, '_wow_addon_updater', False):
            root.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s',
        datefmt='%H:%M:%S',
    ))

    file_handler = logging.handlers.RotatingFileHandler(
        log_file_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding='utf-8'
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        fmt='{asctime} | {levelname} | {name}:{funcName}:{lineno} - {message}',
        datefmt='%Y-%m-%d %H:%M:%S',
        style='{',
    ))

    for handler in (console_handler, file_handler):
        handler._wow_addon_updater = True
        root.addHandler(handler)
    if root.level > level or root.level == logging.NOTSET:
        root.setLevel(level)

    logger.info(f"Logging to {log_file_path}")
    return logger
