# tripplanner/runtime_state/registry.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Session Registry
--------------------------------------

Routes a trip id to its TripCoordinator:

- creates the coordinator lazily on first reference
- guarantees at most one live coordinator per trip id, which is what
  makes "one command at a time per trip" hold across the whole process
- evicts coordinators idle longer than settings.session_idle_timeout_s
  (memory only; the durable record stays in the Trip Store)

Lookup, creation and eviction never await between reading and writing
the coordinator map, so they are atomic on the event loop. A coordinator
that a caller currently holds (refs > 0), that is running a command, or
whose store thread still has a write in flight is never evicted.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List, Optional

from tripplanner.core import errors
from tripplanner.core.config import Settings, settings
from tripplanner.core.retry import RetryPolicy
from tripplanner.models.trip import ChatTurn, TripSnapshot
from tripplanner.providers.client import ModelClient
from tripplanner.runtime_state.coordinator import TripCoordinator
from tripplanner.runtime_state.store import TripStore, is_valid_trip_id
from tripplanner.utils import get_logger

logger = get_logger("tripplanner.runtime_state.registry")


def new_trip_id() -> str:
    return str(uuid.uuid4())


class SessionRegistry:
    """
    In-memory map of trip id → TripCoordinator.

    Parameters
    ----------
    store:
        Trip Store handed to every coordinator.
    model_client:
        Model client handed to every coordinator.
    cfg:
        Settings (idle timeout, sweep interval, limits). Defaults to global.
    policy:
        Optional retry policy override for all coordinators.
    id_factory:
        Generates ids for new trips (uuid4 strings by default).
    """

    def __init__(
        self,
        store: TripStore,
        model_client: ModelClient,
        *,
        cfg: Optional[Settings] = None,
        policy: Optional[RetryPolicy] = None,
        id_factory: Callable[[], str] = new_trip_id,
    ) -> None:
        self.store = store
        self.model_client = model_client
        self.cfg = cfg or settings
        self.policy = policy
        self.id_factory = id_factory

        self._coordinators: Dict[str, TripCoordinator] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._coordinators)

    def __contains__(self, trip_id: object) -> bool:
        return trip_id in self._coordinators

    def active_ids(self) -> List[str]:
        return sorted(self._coordinators)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _acquire(self, trip_id: str) -> TripCoordinator:
        coordinator = self._coordinators.get(trip_id)
        if coordinator is None:
            coordinator = TripCoordinator(
                trip_id,
                self.store,
                self.model_client,
                cfg=self.cfg,
                policy=self.policy,
            )
            self._coordinators[trip_id] = coordinator
            logger.debug("[SessionRegistry] coordinator created for trip=%s", trip_id)
        coordinator.refs += 1
        coordinator.touch()
        return coordinator

    @asynccontextmanager
    async def session(self, trip_id: str) -> AsyncIterator[TripCoordinator]:
        """
        Hold the coordinator for `trip_id` for the duration of the block.

            async with registry.session(trip_id) as coordinator:
                snapshot = await coordinator.get()
        """
        coordinator = self._acquire(trip_id)
        try:
            yield coordinator
        finally:
            coordinator.refs -= 1
            coordinator.touch()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_trip(
        self,
        destination: str,
        duration_days: int,
        *,
        trip_id: Optional[str] = None,
    ) -> TripSnapshot:
        """CreateTrip: new id unless the caller supplies one (idempotent retry)."""
        if trip_id is None:
            trip_id = self.id_factory()
        elif not is_valid_trip_id(trip_id):
            raise errors.ValidationError(
                "Trip id may only contain letters, digits, '-' and '_' (max 128)."
            )

        async with self.session(trip_id) as coordinator:
            return await coordinator.create(destination, duration_days)

    async def send_chat_message(self, trip_id: str, text: str) -> TripSnapshot:
        if not is_valid_trip_id(trip_id):
            raise errors.NotFoundError("Trip not found.", trip_id=trip_id)
        async with self.session(trip_id) as coordinator:
            return await coordinator.chat(text)

    async def get_trip(self, trip_id: str) -> TripSnapshot:
        if not is_valid_trip_id(trip_id):
            raise errors.NotFoundError("Trip not found.", trip_id=trip_id)
        async with self.session(trip_id) as coordinator:
            return await coordinator.get()

    async def get_messages(self, trip_id: str) -> List[ChatTurn]:
        snapshot = await self.get_trip(trip_id)
        return list(snapshot.transcript)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def evict_idle(self, idle_timeout_s: Optional[float] = None) -> int:
        """
        Drop coordinators idle for at least `idle_timeout_s` seconds.

        Returns
        -------
        int
            Number of evicted coordinators.
        """
        timeout = self.cfg.session_idle_timeout_s if idle_timeout_s is None else idle_timeout_s
        now = time.monotonic()

        to_evict = [
            trip_id
            for trip_id, coordinator in self._coordinators.items()
            if not coordinator.busy and coordinator.idle_for(now) >= timeout
        ]
        for trip_id in to_evict:
            logger.info(
                "[SessionRegistry] Evicting idle coordinator for trip=%s (idle %.0f s)",
                trip_id,
                self._coordinators[trip_id].idle_for(now),
            )
            self._coordinators.pop(trip_id).close()
        return len(to_evict)

    async def _sweep_loop(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                self.evict_idle()
            except Exception:  # noqa: BLE001
                logger.exception("[SessionRegistry] idle sweep failed")

    def start(self) -> None:
        """Start the background idle sweeper (needs a running loop)."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        interval = max(0.01, self.cfg.session_sweep_interval_s)
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop(interval))
        logger.info(
            "[SessionRegistry] idle sweeper started (interval=%.0f s, idle_timeout=%.0f s)",
            interval,
            self.cfg.session_idle_timeout_s,
        )

    async def stop(self) -> None:
        """Stop the sweeper and release idle coordinators' store threads."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
            logger.info("[SessionRegistry] idle sweeper stopped")

        for coordinator in self._coordinators.values():
            coordinator.close()
