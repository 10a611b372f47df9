# tripplanner/core/errors.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Error taxonomy
------------------------------------
Every failure the core can report is one of these:

- ValidationError    : bad destination / duration / message, no side effects
- StateConflictError : command not valid for the trip's current status
- NotFoundError      : no durable record for the trip id
- ModelError         : model backend failure (transient, retried internally)
- StoreError         : persistence failure, safe to retry

The transport maps `status_code` / `code` straight onto its responses.
"""

from __future__ import annotations


class TripError(Exception):
    """Base class for all trip planner errors."""

    status_code: int = 500
    code: str = "trip_error"

    def __init__(self, message: str, *, trip_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.trip_id = trip_id

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.trip_id is not None:
            payload["trip_id"] = self.trip_id
        return payload


class ValidationError(TripError):
    status_code = 422
    code = "validation_error"


class StateConflictError(TripError):
    status_code = 409
    code = "state_conflict"


class NotFoundError(TripError):
    status_code = 404
    code = "not_found"


class ModelError(TripError):
    """Raised when a model backend fails in a recoverable way."""

    status_code = 502
    code = "model_error"


class ModelTimeoutError(ModelError):
    """A single model attempt exceeded its timeout."""

    code = "model_timeout"


class StoreError(TripError):
    status_code = 503
    code = "store_error"
