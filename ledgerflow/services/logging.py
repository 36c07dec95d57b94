"""Logging setup for the tick driver.

Level and log file come from Settings (LOG_LEVEL / LOG_FILE), so the
driver and the engine agree on one configuration source.
"""

import logging
import sys
from pathlib import Path

from ledgerflow.services.config import Settings, get_settings

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(settings: Settings | None = None) -> logging.Logger:
    """Route every logger to stdout and to the configured log file.

    Calling it again replaces the handlers installed by the previous call.
    SQLAlchemy's engine logger is kept at WARNING unless database_echo is on.

    Args:
        settings: Settings to read log_level and log_file from (default: get_settings())

    Returns:
        The package logger ("ledgerflow")
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level)

    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logging.getLogger("ledgerflow")
