# ==================================================
# ================ Logger Utilities ================
# ==================================================
from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# Public API
__all__ = ["LOG_FORMAT", "make_file_handler", "get_logger", "get_error_logger"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _sync_handler_levels(logger: logging.Logger, level: int) -> None:
    """
    Ensure that all existing handlers attached to a logger use the specified log level.

    Parameters
    ----------
    logger : logging.Logger
        Logger instance whose handlers will be updated.
    level : int
        Logging level to apply to all handlers (e.g., logging.INFO, logging.DEBUG).
    """
    for h in logger.handlers:
        h.setLevel(level)


def _has_file_handler(logger: logging.Logger) -> bool:
    return any(isinstance(h, TimedRotatingFileHandler) for h in logger.handlers)


# ====[ Shared rotating file handler generator ]====
def make_file_handler(
    log_path: Union[str, Path],
    level: int,
    when: str = "midnight",
    backupCount: int = 7,
    encoding: str = "utf-8",
    interval: int = 1,
) -> TimedRotatingFileHandler:
    """
    Create a TimedRotatingFileHandler with the package formatter.

    Parameters
    ----------
    log_path : str | Path
        Output log file path. Parent directories are created.
    level : int
        Logging level (e.g., logging.INFO).
    when : str, default 'midnight'
        Rotation interval basis per logging.handlers.TimedRotatingFileHandler.
    backupCount : int, default 7
        Number of backup files to keep.
    encoding : str, default 'utf-8'
        File encoding.
    interval : int, default 1
        Rotation interval multiplier.

    Returns
    -------
    TimedRotatingFileHandler
    """
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(path),
        when=when,
        interval=interval,
        backupCount=backupCount,
        encoding=encoding,
        delay=True,  # file opened on first emit
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _attach(
    logger: logging.Logger,
    level: int,
    log_dir: Optional[Union[str, Path]],
    file_stem: str,
    when: str,
    backupCount: int,
    console: bool,
) -> logging.Logger:
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        _sync_handler_levels(logger, level)
    elif console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)
    else:
        # Keeps records away from logging.lastResort (stderr).
        logger.addHandler(logging.NullHandler())

    if log_dir is not None and not _has_file_handler(logger):
        today = datetime.now().strftime("%Y-%m-%d")
        log_path = Path(log_dir) / f"{file_stem}_{today}.log"
        logger.addHandler(make_file_handler(log_path, level, when=when, backupCount=backupCount))

    return logger


# ==================================================
# ================ Logger Factory ==================
# ==================================================

# ====[ Main logger: console (+ file) ]====
def get_logger(
    name: str = "ndvision",
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    when: str = "midnight",
    backupCount: int = 7,
) -> logging.Logger:
    """
    Create and configure a logger with a console handler and, when `log_dir`
    is given, a daily rotating file handler.

    The logger is idempotent: repeated calls with the same `name` do not add
    duplicate handlers, they only resynchronise the levels. Propagation is
    disabled to avoid duplicate messages from the root logger.

    Parameters
    ----------
    name : str, optional
        Name of the logger instance. Default is "ndvision".
    log_dir : str or Path, optional
        Directory for log files. No file output when None.
    level : int, optional
        Logging level (e.g., logging.INFO, logging.DEBUG). Default is logging.INFO.
    when : str, optional
        Time interval for log file rotation. Default is "midnight".
    backupCount : int, optional
        Number of backup log files to keep. Default is 7.

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    return _attach(logging.getLogger(name), level, log_dir, name, when, backupCount, console=True)


# ====[ Error logger ]====
def get_error_logger(
    name: str = "ndvision.errors",
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.ERROR,
    backupCount: int = 30,
) -> logging.Logger:
    """
    Dedicated error logger used by `log_exceptions`.

    Never writes to the console: ERROR records go to a rotating
    `errors_<date>.log` file when `log_dir` is given (kept 30 days by
    default) and are dropped otherwise. The exception itself still reaches
    the caller.
    """
    return _attach(logging.getLogger(name), level, log_dir, "errors", "midnight", backupCount, console=False)
