"""Logging setup shared by every ladder module."""

import logging
import sys
from datetime import date
from pathlib import Path

from ladder.config import Config

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _daily_log_file() -> Path:
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f'ladder_{date.today():%Y%m%d}.log'


def setup_logger(name: str) -> logging.Logger:
    """
    Logger for one ladder module.

    Console output follows Config.DEBUG; the daily file under LOG_DIR (skipped
    when LOG_DIR is empty) always keeps DEBUG records.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    console_level = logging.DEBUG if Config.DEBUG else logging.INFO
    handlers = [(logging.StreamHandler(sys.stdout), console_level)]
    if Config.LOG_DIR:
        handlers.append((logging.FileHandler(_daily_log_file(), encoding='utf-8'), logging.DEBUG))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler, level in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(min(level for _, level in handlers))
    return logger
