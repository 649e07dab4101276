from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler

from .config import Settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_installed: list[logging.Handler] = []


def setup_logging(config: Settings) -> None:
    logger = logging.getLogger()
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    # Reconfiguring replaces what an earlier call installed
    for handler in _installed:
        logger.removeHandler(handler)
        handler.close()
    _installed.clear()

    c_handler = logging.StreamHandler(sys.stdout)
    c_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    _installed.append(c_handler)

    if config.log_file:
        # Max 2MB per file, keep one backup
        f_handler = RotatingFileHandler(config.log_file, maxBytes=2 * 1024 * 1024, backupCount=1, encoding='utf-8')
        f_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        _installed.append(f_handler)

    for handler in _installed:
        logger.addHandler(handler)

    for name in ('uvicorn.access', 'uvicorn.error'):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = list(_installed)
        uvicorn_logger.propagate = False

    logging.getLogger(__name__).info('Logging configured at %s', logging.getLevelName(level))
