# tripplanner/core/retry.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Bounded retry for model calls
---------------------------------------------------
Runs one model call up to `max_attempts` times:

- each attempt is bounded by `attempt_timeout_s`; a timeout counts as a
  failed attempt (ModelTimeoutError), never a silent hang
- between attempts we sleep base * 2**(n-1) seconds, capped at max
- only ModelError is retried; anything else propagates immediately
- when the budget is exhausted the last ModelError is raised
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tripplanner.core import errors
from tripplanner.core.config import Settings
from tripplanner.utils import Stopwatch

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    attempt_timeout_s: float = 45.0
    backoff_base_s: float = 0.5
    backoff_max_s: float = 8.0

    @classmethod
    def from_settings(cls, cfg: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, cfg.model_max_attempts),
            attempt_timeout_s=cfg.model_attempt_timeout_s,
            backoff_base_s=cfg.model_backoff_base_s,
            backoff_max_s=cfg.model_backoff_max_s,
        )

    def delay_after(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        if self.backoff_base_s <= 0:
            return 0.0
        return min(self.backoff_base_s * (2 ** (attempt - 1)), self.backoff_max_s)


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str,
    log: Optional[logging.Logger] = None,
) -> T:
    """
    Await `call()` under `policy` and return its result.

    `call` is a zero-argument factory so every attempt gets a fresh
    coroutine.
    """
    log = log or logger
    last_exc: Optional[errors.ModelError] = None

    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            with Stopwatch(f"{label} attempt {attempt}", log, level=logging.DEBUG):
                return await asyncio.wait_for(call(), timeout=policy.attempt_timeout_s)
        except asyncio.TimeoutError:
            last_exc = errors.ModelTimeoutError(
                f"{label} timed out after {policy.attempt_timeout_s:.1f} s"
            )
        except errors.ModelError as exc:
            last_exc = exc

        log.warning(
            "%s attempt %d/%d failed: %s",
            label,
            attempt,
            attempts,
            last_exc,
        )

        if attempt < attempts:
            delay = policy.delay_after(attempt)
            if delay > 0:
                await asyncio.sleep(delay)

    raise last_exc  # type: ignore[misc]
