# tripplanner/utils/__init__.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Utility toolbox
-------------------------------------
Shared helper functions used across the server:

- file_io   : strict JSON read + atomic JSON write for trip documents
- logging   : central logging configuration + per-trip log context
- timers    : small timing/profiling helpers

Import from here when it makes sense, for a clean public API, e.g.:

    from tripplanner.utils import setup_logging, write_json_atomic
"""

from __future__ import annotations

from .file_io import (  # noqa: F401
    read_json,
    write_json_atomic,
)

from .logging import (  # noqa: F401
    setup_logging,
    get_logger,
    current_trip_id,
    trip_log_context,
)

from .timers import (  # noqa: F401
    Stopwatch,
    log_duration,
)
