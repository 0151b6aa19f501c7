"""Process-wide logging configuration."""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_NAME = "kpi_engine.stdout"
_NOISY_LOGGERS = ("sqlalchemy", "httpx", "httpcore", "aiosqlite")


def setup_logging(level: int | str = logging.INFO) -> None:
    """Log to stdout; calling again only adjusts the level."""
    root_logger = logging.getLogger()
    if not any(handler.get_name() == _HANDLER_NAME for handler in root_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(handler)
    root_logger.setLevel(level.upper() if isinstance(level, str) else level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
