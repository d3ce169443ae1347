"""
Logging configuration, called once by the CLI before the wizard starts.

The wizard owns the terminal (alternate screen), so records go to a log
file rather than stderr. Every module does
``logger = logging.getLogger(__name__)`` and inherits this setup.

Level precedence: ``--debug``  >  STEEL_LOG_LEVEL env var  >  INFO.
"""

import logging
from pathlib import Path

from platformdirs import user_log_dir

from .config import APP_NAME

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d - %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore")


def default_log_file() -> Path:
    return Path(user_log_dir(APP_NAME, appauthor=False)) / "steel.log"


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> Path:
    """Configure the root logger to write to ``log_file``; returns the path used."""
    numeric_level = _parse_level(level)
    path = Path(log_file) if log_file else default_log_file()
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return path


def _parse_level(level: str) -> int:
    value = getattr(logging, (level or "INFO").upper(), None)
    if not isinstance(value, int):
        return logging.INFO
    return value
