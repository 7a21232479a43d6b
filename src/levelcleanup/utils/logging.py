import logging
from pathlib import Path
from typing import Optional

LOGGER_NAME = "levelcleanup"
LOG_LEVELS = ("DEBUG", "INFO", "WARN", "WARNING", "ERROR")

CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(message)s"
# the file keeps every record with the module that wrote it
FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def level_number(level: str) -> int:
    name = level.strip().upper()
    if name == "WARN":
        name = "WARNING"
    if name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level '{level}'")
    return logging.getLevelName(name)


def setup_logger(log_path: Optional[Path], level: str = "INFO") -> logging.Logger:
    """
    Configure the ``levelcleanup`` logger for one CLI run.

    The console shows records at ``level``; ``log_path``, when given, receives
    everything down to DEBUG. Handlers of an earlier run in the same process
    are closed, so repeated calls do not leak open log files.
    """
    logger = logging.getLogger(LOGGER_NAME)
    console_level = level_number(level)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    sh = logging.StreamHandler()
    sh.setLevel(console_level)
    sh.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(sh)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_path), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(fh)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(console_level)
    return logger
