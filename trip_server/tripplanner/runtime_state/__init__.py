"""
Runtime state package for the trip planner server.

This package owns everything that holds per-trip state:

- store       : durable Trip Store (file-backed / in-memory)
- coordinator : single-writer TripCoordinator per trip id
- registry    : SessionRegistry routing trip ids to coordinators

Typical usage (e.g. in routers/trips.py):

    from tripplanner.runtime_state import SessionRegistry, FileTripStore

    registry = SessionRegistry(FileTripStore(settings.data_dir), LLMModelClient())
    snapshot = await registry.create_trip("Kyoto", 3)
    snapshot = await registry.send_chat_message(snapshot.id, "What should I pack?")
"""

from .store import (
    TripStore,
    FileTripStore,
    MemoryTripStore,
    is_valid_trip_id,
)
from .coordinator import TripCoordinator
from .registry import SessionRegistry, new_trip_id

__all__ = [
    "TripStore",
    "FileTripStore",
    "MemoryTripStore",
    "is_valid_trip_id",
    "TripCoordinator",
    "SessionRegistry",
    "new_trip_id",
]
