# tests/fakes.py
"""In-process fakes for the model client and the trip store."""

from __future__ import annotations

import asyncio
import time
from typing import List, Optional, Sequence

from tripplanner.core.errors import ModelError, StoreError
from tripplanner.models.trip import ChatTurn, DayPlan
from tripplanner.runtime_state import MemoryTripStore


def make_plans(days: int) -> List[DayPlan]:
    return [
        DayPlan(day_number=n, summary=f"Day {n} summary", activities=[f"Activity {n}a", f"Activity {n}b"])
        for n in range(1, days + 1)
    ]


class FakeModelClient:
    """
    Deterministic ModelClient.

    itinerary_failures / reply_failures:
        Number of calls that raise ModelError before calls succeed.
    delay_s:
        Sleep inside every call, to force interleaving in concurrency tests.
    """

    def __init__(
        self,
        *,
        itinerary_failures: int = 0,
        reply_failures: int = 0,
        delay_s: float = 0.0,
        wrong_day_count: bool = False,
    ) -> None:
        self.itinerary_failures = itinerary_failures
        self.reply_failures = reply_failures
        self.delay_s = delay_s
        self.wrong_day_count = wrong_day_count
        self.itinerary_calls = 0
        self.reply_calls = 0
        self.seen_transcripts: List[List[str]] = []

    async def generate_itinerary(self, destination: str, duration_days: int) -> List[DayPlan]:
        self.itinerary_calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.itinerary_failures > 0:
            self.itinerary_failures -= 1
            raise ModelError("backend unavailable")
        if self.wrong_day_count:
            return make_plans(duration_days + 1)
        return make_plans(duration_days)

    async def generate_reply(
        self,
        destination: str,
        itinerary: Sequence[DayPlan],
        transcript: Sequence[ChatTurn],
    ) -> str:
        self.reply_calls += 1
        self.seen_transcripts.append([t.text for t in transcript])
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.reply_failures > 0:
            self.reply_failures -= 1
            raise ModelError("backend unavailable")
        return f"Reply to: {transcript[-1].text}"


class FlakyStore(MemoryTripStore):
    """MemoryTripStore whose next `fail_puts` writes raise StoreError."""

    def __init__(self, fail_puts: int = 0) -> None:
        super().__init__()
        self.fail_puts = fail_puts

    def put(self, trip_id, document):
        if self.fail_puts > 0:
            self.fail_puts -= 1
            raise StoreError("disk full", trip_id=trip_id)
        super().put(trip_id, document)


class SlowStore(MemoryTripStore):
    """MemoryTripStore whose put number `slow_put` (1-based) blocks for `delay_s`."""

    def __init__(self, slow_put: int, delay_s: float) -> None:
        super().__init__()
        self.slow_put = slow_put
        self.delay_s = delay_s
        self.puts = 0

    def put(self, trip_id, document):
        self.puts += 1
        if self.puts == self.slow_put:
            time.sleep(self.delay_s)
        super().put(trip_id, document)
