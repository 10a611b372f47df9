# tripplanner/utils/timers.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — timing utilities
--------------------------------------
Lightweight helpers for measuring execution time and logging it.

Mostly used around model attempts and trip document writes, the two
places a coordinator can be slow.
"""

from __future__ import annotations

import functools
import logging
import time
from contextlib import ContextDecorator
from typing import Callable, Optional, TypeVar

F = TypeVar("F", bound=Callable[..., object])


class Stopwatch(ContextDecorator):
    """
    Simple stopwatch context manager.

    Example:
        with Stopwatch("itinerary generation", logger):
            ...

    This will log something like:
        itinerary generation took 2.371 s
    """

    def __init__(
        self,
        label: str,
        logger: Optional[logging.Logger] = None,
        level: int = logging.INFO,
    ) -> None:
        self.label = label
        self.logger = logger or logging.getLogger(__name__)
        self.level = level
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Stopwatch":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, exc_tb) -> None:  # type: ignore[override]
        self.elapsed = time.perf_counter() - self._start
        self.logger.log(self.level, "%s took %.3f s", self.label, self.elapsed)


def log_duration(
    label: str,
    logger: Optional[logging.Logger] = None,
    level: int = logging.INFO,
) -> Callable[[F], F]:
    """
    Decorator factory to measure and log duration of a function.

    Example:

        @log_duration("FileTripStore.put", logger, level=logging.DEBUG)
        def put(self, trip_id, document):
            ...
    """
    log = logger or logging.getLogger(__name__)

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start
                log.log(level, "%s took %.3f s", label, elapsed)

        return wrapper  # type: ignore[return-value]

    return decorator
