# tripplanner/runtime_state/coordinator.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Session Coordinator
-----------------------------------------

The single authority for one trip id's mutations.

Purpose
~~~~~~~
- Serialize create / chat / get for one trip: they run one at a time in
  submission order (asyncio.Lock wakes waiters FIFO).
- Drive the state machine, call the model client under the retry policy,
  and persist every transition to the Trip Store.
- Hydrate lazily from the Trip Store on first use.

Design notes
~~~~~~~~~~~~
- The persistence write is the last step of every transition. The
  in-memory trip is replaced only after the write succeeded, so a
  StoreError leaves no committed change and the caller may retry.
- After any store failure the in-memory copy is dropped and re-read on
  the next command; the durable record is the source of truth.
- Store calls run on a single worker thread owned by this coordinator,
  in issue order. A write that timed out may still land, but always
  before the re-read that follows it, never on top of newer state. The
  thread is private so slow model calls elsewhere cannot starve it.
- A User turn is persisted before its reply is generated. A durable
  transcript ending in a User turn (process stopped mid-reply) gets its
  reply on the next chat, before the new message is recorded.
- A durable PENDING trip (process stopped mid-generation) resumes
  generation on the next create.
- Only the Session Registry should construct coordinators; it guarantees
  at most one live coordinator per trip id.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from tripplanner.core import errors
from tripplanner.core import state_machine as sm
from tripplanner.core.config import Settings, settings
from tripplanner.core.retry import RetryPolicy, call_with_retry
from tripplanner.core.state_machine import Phase, Trigger
from tripplanner.models.trip import Trip, TripSnapshot, TripStatus, utcnow
from tripplanner.providers.client import ModelClient
from tripplanner.runtime_state.store import TripStore
from tripplanner.utils import Stopwatch, get_logger, trip_log_context

logger = get_logger("tripplanner.runtime_state.coordinator")


class TripCoordinator:
    """
    Single-writer actor for one trip id.

    Parameters
    ----------
    trip_id:
        The trip this coordinator owns.
    store:
        Durable Trip Store shared by all coordinators (partitioned by id).
    model_client:
        Stateless model adapter.
    cfg:
        Settings for limits and timeouts. Defaults to the global settings.
    policy:
        Retry policy for model calls. Defaults to RetryPolicy.from_settings(cfg).
    clock:
        Returns "now" as an aware datetime; injectable for tests.
    """

    def __init__(
        self,
        trip_id: str,
        store: TripStore,
        model_client: ModelClient,
        *,
        cfg: Optional[Settings] = None,
        policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.trip_id = trip_id
        self.store = store
        self.model_client = model_client
        self.cfg = cfg or settings
        self.policy = policy or RetryPolicy.from_settings(self.cfg)
        self._clock = clock

        self._lock = asyncio.Lock()
        self._store_executor: Optional[ThreadPoolExecutor] = None
        self._store_futures: Set[Future] = set()
        self._trip: Optional[Trip] = None
        self._hydrated = False
        self.phase: Phase = Phase.PENDING

        # Registry bookkeeping: callers holding this coordinator, last use.
        self.refs = 0
        self.last_used = time.monotonic()

    def __repr__(self) -> str:
        return f"TripCoordinator(trip_id={self.trip_id!r}, phase={self.phase.value})"

    # ------------------------------------------------------------------
    # Registry helpers
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        # A timed-out store write may still be running on the store thread.
        return self.refs > 0 or self._lock.locked() or bool(self._store_futures)

    def touch(self) -> None:
        self.last_used = time.monotonic()

    def idle_for(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.monotonic()) - self.last_used

    # ------------------------------------------------------------------
    # Serialization + store access
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _serialized(self, op: str) -> AsyncIterator[None]:
        async with self._lock:
            with trip_log_context(self.trip_id):
                self.touch()
                logger.debug("[TripCoordinator] trip=%s %s start (phase=%s)", self.trip_id, op, self.phase.value)
                try:
                    yield
                except errors.StoreError:
                    self._trip = None
                    self._hydrated = False
                    raise
                finally:
                    # Back to the resting phase of whatever is committed.
                    self.phase = sm.phase_for(self._trip)
                    self.touch()

    def _executor(self) -> ThreadPoolExecutor:
        if self._store_executor is None:
            self._store_executor = ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix=f"trip-store-{self.trip_id}",
            )
        return self._store_executor

    async def _store_call(self, func: Callable[..., Any], *args: Any) -> Any:
        """
        Run a blocking store call on this trip's store thread, bounded by
        store_timeout_s.

        On timeout a call still waiting in the queue is cancelled; one
        already running finishes in the background, ahead of any later
        call for this trip.
        """
        # copy_context keeps the trip id on log lines from the store thread
        future = self._executor().submit(contextvars.copy_context().run, func, *args)
        self._store_futures.add(future)
        future.add_done_callback(self._store_futures.discard)
        try:
            return await asyncio.wait_for(
                asyncio.wrap_future(future),
                timeout=self.cfg.store_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise errors.StoreError(
                f"Trip store timed out after {self.cfg.store_timeout_s:.1f} s",
                trip_id=self.trip_id,
            ) from exc

    def close(self) -> bool:
        """
        Release the store thread once it has no unfinished calls.

        Returns False (and keeps the thread) while a call is still queued
        or running, since a new thread would not be ordered behind it.
        """
        if self._store_futures:
            return False
        if self._store_executor is not None:
            self._store_executor.shutdown(wait=False)
            self._store_executor = None
        return True

    async def _ensure_loaded(self) -> None:
        """Lazy hydration from the Trip Store. A missing record stays unhydrated."""
        if self._hydrated:
            return

        try:
            doc = await self._store_call(self.store.get, self.trip_id)
        except errors.NotFoundError:
            self._trip = None
            return

        try:
            trip = Trip.from_document(doc)
        except PydanticValidationError as exc:
            logger.error("[TripCoordinator] trip=%s has an invalid stored document: %s", self.trip_id, exc)
            raise errors.StoreError("Stored trip document is invalid.", trip_id=self.trip_id) from exc

        if trip.id != self.trip_id:
            raise errors.StoreError(
                f"Stored document belongs to trip {trip.id!r}.", trip_id=self.trip_id
            )

        self._trip = trip
        self._hydrated = True
        self.phase = sm.phase_for(trip)
        logger.info(
            "[TripCoordinator] trip=%s hydrated from store (status=%s, turns=%d)",
            self.trip_id,
            trip.status.value,
            len(trip.transcript),
        )

    async def _commit(self, trip: Trip) -> None:
        """Persist `trip`, then make it the in-memory state."""
        with Stopwatch(f"[TripCoordinator] trip={self.trip_id} persist", logger, level=logging.DEBUG):
            await self._store_call(self.store.put, self.trip_id, trip.to_document())
        self._trip = trip
        self._hydrated = True

    # ------------------------------------------------------------------
    # Model steps
    # ------------------------------------------------------------------

    async def _generate_itinerary(self, trip: Trip) -> Trip:
        """GENERATING: call the model and return the READY or FAILED trip."""
        self.phase = sm.next_phase(self.phase, Trigger.CREATE_TRIP, trip_id=self.trip_id)

        async def attempt():
            plans = await self.model_client.generate_itinerary(trip.destination, trip.duration_days)
            sm.check_itinerary(trip, plans)
            return plans

        try:
            plans = await call_with_retry(
                attempt,
                self.policy,
                label=f"[TripCoordinator] trip={self.trip_id} itinerary",
                log=logger,
            )
        except errors.ModelError as exc:
            self.phase = sm.next_phase(self.phase, Trigger.MODEL_FAILURE, trip_id=self.trip_id)
            logger.error(
                "[TripCoordinator] trip=%s itinerary generation failed after %d attempts: %s",
                self.trip_id,
                self.policy.max_attempts,
                exc,
            )
            return sm.apply_generation_failure(trip, exc.message, self._clock())

        self.phase = sm.next_phase(self.phase, Trigger.MODEL_SUCCESS, trip_id=self.trip_id)
        return sm.apply_itinerary(trip, plans, self._clock())

    async def _reply_to_pending(self) -> None:
        """AWAITING_REPLY: generate the Agent turn for the last User turn and commit it."""
        trip = self._trip
        assert trip is not None and trip.awaiting_reply

        try:
            reply = await call_with_retry(
                lambda: self.model_client.generate_reply(
                    trip.destination, trip.itinerary, trip.transcript
                ),
                self.policy,
                label=f"[TripCoordinator] trip={self.trip_id} reply",
                log=logger,
            )
        except errors.ModelError as exc:
            self.phase = sm.next_phase(self.phase, Trigger.MODEL_FAILURE, trip_id=self.trip_id)
            logger.error(
                "[TripCoordinator] trip=%s reply failed, recording error turn: %s",
                self.trip_id,
                exc,
            )
            updated = sm.append_failed_reply(trip, exc.code, self._clock())
        else:
            self.phase = sm.next_phase(self.phase, Trigger.MODEL_SUCCESS, trip_id=self.trip_id)
            updated = sm.append_agent_turn(trip, reply, self._clock())

        await self._commit(updated)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create(self, destination: str, duration_days: int) -> TripSnapshot:
        """
        Create the trip and generate its itinerary.

        Idempotent: if the trip already exists as READY or FAILED its
        snapshot is returned unchanged and the model is not called.
        """
        destination, duration_days = sm.validate_trip_request(
            destination,
            duration_days,
            max_days=self.cfg.max_trip_days,
            max_destination_chars=self.cfg.max_destination_chars,
        )

        async with self._serialized("create"):
            await self._ensure_loaded()

            trip = self._trip
            if trip is not None and trip.status is not TripStatus.PENDING:
                logger.info(
                    "[TripCoordinator] trip=%s already exists (status=%s); create is a no-op",
                    self.trip_id,
                    trip.status.value,
                )
                return trip.snapshot()

            if trip is None:
                trip = sm.new_trip(self.trip_id, destination, duration_days, self._clock())
                await self._commit(trip)
                logger.info(
                    "[TripCoordinator] trip=%s created (destination=%r, days=%d)",
                    self.trip_id,
                    destination,
                    duration_days,
                )
            else:
                logger.warning(
                    "[TripCoordinator] trip=%s resuming interrupted generation",
                    self.trip_id,
                )

            with Stopwatch(f"[TripCoordinator] trip={self.trip_id} generation", logger):
                updated = await self._generate_itinerary(trip)
            await self._commit(updated)
            return updated.snapshot()

    async def chat(self, message: str) -> TripSnapshot:
        """
        Append a User turn, generate the Agent reply and return the trip.

        Requires a READY trip; otherwise StateConflictError with no
        transcript change. A failed reply is recorded as an error-marked
        Agent turn and the trip stays READY.
        """
        text = sm.validate_message(message, max_chars=self.cfg.max_message_chars)

        async with self._serialized("chat"):
            await self._ensure_loaded()
            if self._trip is None:
                raise errors.NotFoundError("Trip not found.", trip_id=self.trip_id)

            if self.phase is Phase.AWAITING_REPLY:
                logger.warning(
                    "[TripCoordinator] trip=%s has an unanswered message; replying to it first",
                    self.trip_id,
                )
                await self._reply_to_pending()
                self.phase = sm.phase_for(self._trip)

            self.phase = sm.next_phase(self.phase, Trigger.SEND_CHAT_MESSAGE, trip_id=self.trip_id)
            await self._commit(sm.append_user_turn(self._trip, text, self._clock()))

            with Stopwatch(f"[TripCoordinator] trip={self.trip_id} reply", logger):
                await self._reply_to_pending()
            return self._trip.snapshot()

    async def get(self) -> TripSnapshot:
        """Pure read: current state, hydrating from the store if needed."""
        async with self._serialized("get"):
            await self._ensure_loaded()
            if self._trip is None:
                raise errors.NotFoundError("Trip not found.", trip_id=self.trip_id)
            sm.next_phase(self.phase, Trigger.GET_TRIP, trip_id=self.trip_id)
            return self._trip.snapshot()
