"""File logging for the kartpace ingestion engine and its analysis services.

Everything goes to one ``kartpace.engine`` logger writing ``engine.log``
under ``KARTPACE_LOG_DIR`` (``./logs`` when unset). The handler is attached
lazily so importing the package never touches the filesystem.

Two entry points:

* :func:`get_logger` for the warnings raised while ingesting snapshots
  (dropped laps, stale drivers, unreadable records) and by storage and
  retention when saves fail or sessions are evicted.
* :func:`log_service_call`, which wraps the ``LiveTimingEngine`` query and
  maintenance methods with CALL/OK/FAIL lines and timings.
"""

from __future__ import annotations

import functools
import logging
import os
import threading
import time
from typing import Any, Callable, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

LOGGER_NAME = "kartpace.engine"

_LOG_DIR = os.environ.get("KARTPACE_LOG_DIR", os.path.join(os.getcwd(), "logs"))
_LOG_FILE = os.path.join(_LOG_DIR, "engine.log")

_logger: logging.Logger | None = None
_logger_lock = threading.Lock()


def get_logger() -> logging.Logger:
    """The ``kartpace.engine`` logger; creates the log dir and handler on first use."""
    global _logger
    if _logger is not None:
        return _logger

    with _logger_lock:
        if _logger is not None:
            return _logger

        os.makedirs(_LOG_DIR, exist_ok=True)

        _logger = logging.getLogger(LOGGER_NAME)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False

        if not _logger.handlers:
            handler = logging.FileHandler(_LOG_FILE, encoding="utf-8")
            handler.setFormatter(
                logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"),
            )
            _logger.addHandler(handler)

    return _logger


def _describe_result(result: Any) -> str:
    if isinstance(result, (list, tuple, dict)):
        return f"{len(result)} items"
    if result is None:
        return "None"
    return type(result).__name__


def log_service_call(fn: F) -> F:
    """Log a ``LiveTimingEngine`` call, its result size and elapsed time."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        logger = get_logger()
        # Skip 'self'
        arg_parts = [repr(a) for a in args[1:]]
        arg_parts += [f"{k}={v!r}" for k, v in kwargs.items()]
        arg_str = ", ".join(arg_parts)
        logger.info("CALL: %s(%s)", fn.__qualname__, arg_str)

        start = time.monotonic()
        try:
            result = fn(*args, **kwargs)
            elapsed = time.monotonic() - start
            logger.info(
                "OK: %s(%s) -> %s (%.3fs)",
                fn.__qualname__, arg_str, _describe_result(result), elapsed,
            )
            return result
        except Exception as exc:
            elapsed = time.monotonic() - start
            logger.error(
                "FAIL: %s(%s) -> %s: %s (%.3fs)",
                fn.__qualname__, arg_str, type(exc).__name__, exc, elapsed,
            )
            raise

    return wrapper  # type: ignore[return-value]
