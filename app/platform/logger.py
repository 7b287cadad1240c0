import logging
import os
from logging.handlers import RotatingFileHandler

from app.platform.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _log_file_path() -> str:
    log_dir = os.path.join(os.getcwd(), settings.LOG_DIR)
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, settings.LOG_FILE)


def get_logger(name: str) -> logging.Logger:
    """
    Logger for the HTTP layer: console plus a rotating file under LOG_DIR.

    Handlers are attached once per name, so repeated calls are cheap.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        _log_file_path(),
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
    )
    console_handler = logging.StreamHandler()

    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        handler.setLevel(level)
        logger.addHandler(handler)

    # Records already reach the console here; don't repeat them through root
    logger.propagate = False
    return logger
