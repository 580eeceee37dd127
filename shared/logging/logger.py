import logging
import os
from datetime import datetime
from pathlib import Path

DEFAULT_LOG_DIR = Path("logs")

_LOGGERS = {}


def _log_dir() -> Path:
    override = os.getenv("UNHEARDPATH_LOG_DIR")
    return Path(override) if override else DEFAULT_LOG_DIR


def get_logger(
    name: str,
    *,
    runtime: str = "unheardpath",
) -> logging.Logger:
    """
    Create or retrieve a named logger.

    Parameters:
    - name: logger namespace (e.g. sse.router, chat.engine)
    - runtime: log file prefix (unheardpath | cli)

    Set UNHEARDPATH_LOG_DIR to redirect the per-run log file.
    """
    cache_key = f"{runtime}:{name}"
    if cache_key in _LOGGERS:
        return _LOGGERS[cache_key]

    logger = logging.getLogger(cache_key)
    logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    # ------------------------------
    # Console handler
    # ------------------------------
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    logger.addHandler(console)

    # ------------------------------
    # File handler (one per run)
    # ------------------------------
    log_dir = _log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    logfile = log_dir / f"{runtime}-{timestamp}.log"

    file_handler = logging.FileHandler(logfile, encoding="utf-8")
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    logger.propagate = False
    _LOGGERS[cache_key] = logger

    return logger
