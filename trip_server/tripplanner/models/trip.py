# tripplanner/models/trip.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Trip data model
-------------------------------------
Pydantic models for the unit of session state:

- Trip      : destination, duration, itinerary, transcript, status
- DayPlan   : one day of the itinerary (write-once as a whole)
- ChatTurn  : one User/Agent message in the append-only transcript

These are also the persisted document layout. Unknown fields are
ignored on read so older servers can load newer documents.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Bumped only when the document layout changes incompatibly.
SCHEMA_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TripStatus(str, Enum):
    """Durable lifecycle status of a trip."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class ChatRole(str, Enum):
    USER = "user"
    AGENT = "agent"


class DayPlan(BaseModel):
    """One day's worth of itinerary content."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    day_number: int = Field(..., ge=1)
    summary: str
    activities: List[str] = Field(default_factory=list)


class ChatTurn(BaseModel):
    """
    One turn in the conversation transcript.

    Attributes
    ----------
    role:
        "user" or "agent".
    text:
        Message text. For a failed reply this is a placeholder sentence.
    timestamp:
        Strictly increasing within one transcript.
    error:
        Error marker for an Agent turn whose reply could not be generated
        (e.g. "model_error"). None for normal turns.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    role: ChatRole
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class Trip(BaseModel):
    """
    Full trip state, as held by a coordinator and stored per trip id.

    Attributes
    ----------
    id:
        Opaque unique identifier, the sole external handle to the trip.
    destination / duration_days:
        Set once at creation.
    itinerary:
        One DayPlan per day once status is READY, empty otherwise.
    transcript:
        Append-only User/Agent turns. Only grows while READY.
    status:
        pending → ready | failed.
    failure_reason:
        Last generation error message when status is FAILED.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    destination: str
    duration_days: int = Field(..., ge=1)
    itinerary: List[DayPlan] = Field(default_factory=list)
    transcript: List[ChatTurn] = Field(default_factory=list)
    status: TripStatus = TripStatus.PENDING
    failure_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def awaiting_reply(self) -> bool:
        """True if the last transcript turn is a User turn with no reply yet."""
        return bool(self.transcript) and self.transcript[-1].role is ChatRole.USER

    def snapshot(self) -> "Trip":
        """Return an independent copy safe to hand to callers."""
        return self.model_copy(deep=True)

    def to_document(self) -> dict:
        doc = self.model_dump(mode="json")
        doc["schema_version"] = SCHEMA_VERSION
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "Trip":
        return cls.model_validate(doc)


# Callers only ever see copies; the name documents that.
TripSnapshot = Trip
