# tripplanner/utils/logging.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — logging utilities
---------------------------------------
One log format for the whole process, with the trip being worked on in
every line:

    2025-01-01 12:00:00 [INFO] tripplanner.runtime_state.coordinator [trip=abc]: ...

The trip id comes from a context variable. The coordinator sets it for
the duration of each command (trip_log_context), so model providers and
the store log under the right trip without passing ids around. Lines
logged outside any trip show "trip=-".
"""

from __future__ import annotations

import contextvars
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [trip=%(trip_id)s]: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NO_TRIP = "-"
_current_trip: contextvars.ContextVar[str] = contextvars.ContextVar("trip_id", default=_NO_TRIP)


def current_trip_id() -> Optional[str]:
    value = _current_trip.get()
    return None if value == _NO_TRIP else value


@contextmanager
def trip_log_context(trip_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with `trip_id`."""
    token = _current_trip.set(trip_id)
    try:
        yield
    finally:
        _current_trip.reset(token)


class TripContextFilter(logging.Filter):
    """Adds `record.trip_id` so LOG_FORMAT works for every logger."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "trip_id"):
            record.trip_id = _current_trip.get()
        return True


def setup_logging(
    *,
    debug: bool = False,
    level: Optional[int] = None,
) -> None:
    """
    Configure root logging for the process.

    Parameters
    ----------
    debug:
        DEBUG when True, INFO otherwise (wired from settings.debug).
    level:
        Explicit level; wins over `debug`.

    Safe to call more than once. If something else (e.g. uvicorn) has
    already installed root handlers, only levels are adjusted and the
    trip filter is added to those handlers.
    """
    base_level = level if level is not None else (logging.DEBUG if debug else logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=base_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    root.setLevel(base_level)
    for handler in root.handlers:
        handler.setLevel(base_level)
        if not any(isinstance(f, TripContextFilter) for f in handler.filters):
            handler.addFilter(TripContextFilter())

    for noisy in ("uvicorn.access", "httpx", "urllib3"):
        logging.getLogger(noisy).setLevel(os.getenv("TRIP_NOISY_LOG_LEVEL", "WARNING"))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
