"""
Structured logging for the managed reports service.
"""
from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Generator

from managed_reports.core.config import get_settings


def get_logger(name: str) -> logging.Logger:
    settings = get_settings()
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    return logger


@contextmanager
def log_duration(logger: logging.Logger, label: str, *args: Any) -> Generator[dict, None, None]:
    """Time the block and log ``label | <n> ms`` at DEBUG on exit.

    Yields a dict whose ``elapsed_ms`` is filled in once the block exits,
    whether or not it raised.
    """
    stats: dict = {"elapsed_ms": 0}
    start = time.perf_counter()
    try:
        yield stats
    finally:
        stats["elapsed_ms"] = int((time.perf_counter() - start) * 1000)
        logger.debug(label + " | %d ms", *args, stats["elapsed_ms"])
