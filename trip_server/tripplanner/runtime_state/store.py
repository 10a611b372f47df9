# tripplanner/runtime_state/store.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Trip Store
--------------------------------

Durable key-value persistence keyed by trip id. Each record is the full
serialized Trip document (see Trip.to_document()).

Contract
~~~~~~~~
- put(trip_id, document)  atomic per key, last write wins
- get(trip_id) -> document, NotFoundError if no record exists
- no multi-key transactions

Implementations
~~~~~~~~~~~~~~~
- FileTripStore  : one JSON file per trip under settings.data_dir,
                   written with temp file + rename.
- MemoryTripStore: dict of JSON strings, for tests and local dev.

Both are synchronous; the coordinator calls them off the event loop
with a timeout. Only a trip's own coordinator ever writes its key, so
there is no locking per trip here.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from tripplanner.core import errors
from tripplanner.utils import get_logger, log_duration, read_json, write_json_atomic

logger = get_logger("tripplanner.runtime_state.store")

_TRIP_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$")


def is_valid_trip_id(trip_id: object) -> bool:
    """Trip ids double as file names, so keep them to a safe alphabet."""
    return isinstance(trip_id, str) and bool(_TRIP_ID_RE.match(trip_id))


class TripStore(ABC):
    """Abstract durable store of serialized trip documents."""

    @abstractmethod
    def put(self, trip_id: str, document: Dict[str, Any]) -> None:
        """Atomically write `document` as the record for `trip_id`."""

    @abstractmethod
    def get(self, trip_id: str) -> Dict[str, Any]:
        """Return the record for `trip_id` or raise NotFoundError."""

    @abstractmethod
    def list_ids(self) -> List[str]:
        """Return all stored trip ids (admin / debugging)."""

    def exists(self, trip_id: str) -> bool:
        try:
            self.get(trip_id)
        except errors.NotFoundError:
            return False
        return True


# ---------------------------------------------------------------------------
# File-backed implementation
# ---------------------------------------------------------------------------


class FileTripStore(TripStore):
    """
    One JSON document per trip: <data_dir>/<trip_id>.json

    Parameters
    ----------
    data_dir:
        Directory for trip documents. Created on first write.
    """

    def __init__(self, data_dir: Union[Path, str]) -> None:
        self.data_dir = Path(data_dir)

    def _path_for(self, trip_id: str) -> Path:
        if not is_valid_trip_id(trip_id):
            raise errors.StoreError(f"Refusing to use {trip_id!r} as a trip key.")
        return self.data_dir / f"{trip_id}.json"

    @log_duration("FileTripStore.put", logger, level=logging.DEBUG)
    def put(self, trip_id: str, document: Dict[str, Any]) -> None:
        path = self._path_for(trip_id)
        try:
            write_json_atomic(path, document)
        except (OSError, TypeError, ValueError) as exc:
            raise errors.StoreError(
                f"Failed to write trip document: {exc}", trip_id=trip_id
            ) from exc

    def get(self, trip_id: str) -> Dict[str, Any]:
        if not is_valid_trip_id(trip_id):
            raise errors.NotFoundError("Trip not found.", trip_id=trip_id)

        path = self._path_for(trip_id)
        try:
            return read_json(path)
        except FileNotFoundError as exc:
            raise errors.NotFoundError("Trip not found.", trip_id=trip_id) from exc
        except (OSError, ValueError) as exc:
            logger.error("[FileTripStore] Unreadable document for trip=%s: %s", trip_id, exc)
            raise errors.StoreError(
                f"Failed to read trip document: {exc}", trip_id=trip_id
            ) from exc

    def list_ids(self) -> List[str]:
        if not self.data_dir.is_dir():
            return []
        return sorted(
            p.stem for p in self.data_dir.glob("*.json") if is_valid_trip_id(p.stem)
        )


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class MemoryTripStore(TripStore):
    """
    Keeps serialized JSON text per trip id.

    Documents are stored as text (not dicts) so callers can never share
    mutable state with the store, same as with the file store.
    """

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._records: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.writes = 0
        for trip_id, doc in (initial or {}).items():
            self._records[trip_id] = json.dumps(doc)

    def put(self, trip_id: str, document: Dict[str, Any]) -> None:
        try:
            text = json.dumps(document)
        except (TypeError, ValueError) as exc:
            raise errors.StoreError(
                f"Trip document is not serializable: {exc}", trip_id=trip_id
            ) from exc
        with self._lock:
            self._records[trip_id] = text
            self.writes += 1

    def get(self, trip_id: str) -> Dict[str, Any]:
        with self._lock:
            text = self._records.get(trip_id)
        if text is None:
            raise errors.NotFoundError("Trip not found.", trip_id=trip_id)
        return json.loads(text)

    def list_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._records)
