"""hostinsight logging configuration.

Centralised logger setup. All modules import from here:
    from hostinsight.log import logger

Writes to <data_dir>/hostinsight.log (rotating, 5 MB max, 3 backups).
Nothing goes to the console: the terminal belongs to the dashboard.
"""

from __future__ import annotations

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler

from hostinsight.config import settings

_logger_lock = threading.Lock()


def _setup_logger() -> logging.Logger:
    """Configure and return the hostinsight logger."""
    log = logging.getLogger("hostinsight")

    with _logger_lock:
        if log.handlers:
            return log

        level = getattr(logging, settings.log_level.upper(), logging.DEBUG)
        log.setLevel(level)
        log.propagate = False

        try:
            settings.data_dir.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                str(settings.log_path),
                maxBytes=5 * 1024 * 1024,  # 5 MB
                backupCount=3,
                encoding="utf-8",
            )
            handler.setLevel(level)
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s [%(levelname)s] %(name)s.%(funcName)s: %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            log.addHandler(handler)
        except OSError:
            log.addHandler(logging.NullHandler())
            sys.stderr.write("hostinsight: WARNING: could not create log file, logging disabled\n")

    return log


logger = _setup_logger()
