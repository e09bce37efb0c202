"""
Logging setup: coloured console output plus an optional log file.

Debug level is enabled through the ``STROKE_DIGITS_DEBUG`` environment
variable (a ``.env`` file in the working directory is honoured). When
``STROKE_DIGITS_LOG_DIR`` is set, a plain-text copy of the log is written to
``stroke_digits.log`` inside that folder.
"""

from __future__ import annotations

import logging
import os
import time
from functools import wraps
from typing import Any, Callable, Optional, Union

import colorlog
from dotenv import load_dotenv

from .constants import ENV_DEBUG, ENV_LOG_DIR, LOGGER_NAME

COLOR_LOG_FORMAT = "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE_NAME = "stroke_digits.log"
COLOR_SCHEME = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def get_env_variable(
    var_name: str, default: Union[str, int, float, bool, None] = None
) -> Union[str, int, float, bool, None]:
    """Read an environment variable, coerced to the type of ``default``."""
    value = os.getenv(var_name)
    if value is None:
        return default
    if isinstance(default, bool):
        return value.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


def setup_logger(
    name: str = LOGGER_NAME,
    debug: Optional[bool] = None,
    log_dir: Optional[str] = None,
) -> logging.Logger:
    """Configure and return the package logger. Safe to call repeatedly."""
    load_dotenv()

    logger = logging.getLogger(name)
    if debug is None:
        debug = bool(get_env_variable(ENV_DEBUG, False))
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False

    # Clear any existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = colorlog.StreamHandler()
    console_handler.setFormatter(
        colorlog.ColoredFormatter(COLOR_LOG_FORMAT, log_colors=COLOR_SCHEME, reset=True, style="%")
    )
    logger.addHandler(console_handler)

    log_dir = log_dir or get_env_variable(ENV_LOG_DIR, None)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, LOG_FILE_NAME), encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(module: str) -> logging.Logger:
    """Child logger for a module, e.g. ``stroke_digits.segmentation``."""
    short = module.rsplit(".", 1)[-1]
    return logging.getLogger(f"{LOGGER_NAME}.{short}")


def log_execution_time(func: Callable[..., Any]) -> Callable[..., Any]:
    """Log the wall-clock time of each call at debug level."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed_ms = (time.perf_counter() - start_time) * 1000.0
        logger.debug(f"{func.__qualname__} executed in {elapsed_ms:.2f} ms")
        return result

    return wrapper


logger = setup_logger()
