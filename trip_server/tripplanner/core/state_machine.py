# tripplanner/core/state_machine.py
# -*- coding: utf-8 -*-
"""
Trip Planner Server — Session state machine
-------------------------------------------
Pure lifecycle logic for one trip. No I/O, no model calls, no locking:
the coordinator drives these functions and persists what they return.

Phases
~~~~~~
    PENDING --create--> GENERATING --model ok--> READY
                                    --model failed--> FAILED

    READY --chat--> AWAITING_REPLY --model ok / model failed--> READY

GENERATING and AWAITING_REPLY exist only while a model call is
outstanding. On disk a trip is PENDING / READY / FAILED, and a READY
transcript ending in a User turn is an AWAITING_REPLY trip whose reply
never completed.

Every trip-transforming function returns a *new* Trip; the input is never
mutated, so the coordinator can drop the result if persisting it fails.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from tripplanner.core import errors
from tripplanner.core.safety import sanitize_user_text
from tripplanner.models.trip import (
    ChatRole,
    ChatTurn,
    DayPlan,
    Trip,
    TripStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

# Placeholder text for an Agent turn whose reply could not be generated.
REPLY_FAILED_TEXT = (
    "Sorry, I could not come up with a reply just now. "
    "Please try asking again in a moment."
)
REPLY_ERROR_MARKER = "model_error"


class Phase(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    AWAITING_REPLY = "awaiting_reply"
    FAILED = "failed"


class Trigger(str, Enum):
    CREATE_TRIP = "create_trip"
    SEND_CHAT_MESSAGE = "send_chat_message"
    GET_TRIP = "get_trip"
    MODEL_SUCCESS = "model_success"
    MODEL_FAILURE = "model_failure"


_TRANSITIONS: Dict[Tuple[Phase, Trigger], Phase] = {
    (Phase.PENDING, Trigger.CREATE_TRIP): Phase.GENERATING,
    (Phase.GENERATING, Trigger.MODEL_SUCCESS): Phase.READY,
    (Phase.GENERATING, Trigger.MODEL_FAILURE): Phase.FAILED,
    (Phase.READY, Trigger.SEND_CHAT_MESSAGE): Phase.AWAITING_REPLY,
    (Phase.AWAITING_REPLY, Trigger.MODEL_SUCCESS): Phase.READY,
    (Phase.AWAITING_REPLY, Trigger.MODEL_FAILURE): Phase.READY,
}


# ---------------------------------------------------------------------------
# Phase transitions
# ---------------------------------------------------------------------------


def phase_for(trip: Optional[Trip]) -> Phase:
    """Derive the resting phase of a committed (or missing) trip."""
    if trip is None or trip.status is TripStatus.PENDING:
        return Phase.PENDING
    if trip.status is TripStatus.FAILED:
        return Phase.FAILED
    if trip.awaiting_reply:
        return Phase.AWAITING_REPLY
    return Phase.READY


def next_phase(phase: Phase, trigger: Trigger, *, trip_id: str | None = None) -> Phase:
    """
    Return the phase reached by applying `trigger` in `phase`.

    GET_TRIP is valid from any phase and never moves. Any other pair not
    in the transition table raises StateConflictError.
    """
    if trigger is Trigger.GET_TRIP:
        return phase

    target = _TRANSITIONS.get((phase, trigger))
    if target is None:
        if trigger is Trigger.SEND_CHAT_MESSAGE:
            message = f"Trip is {phase.value}; chat requires a ready itinerary."
        else:
            message = f"Cannot apply {trigger.value} while trip is {phase.value}."
        raise errors.StateConflictError(message, trip_id=trip_id)
    return target


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def validate_trip_request(
    destination: Optional[str],
    duration_days: object,
    *,
    max_days: int,
    max_destination_chars: int,
) -> Tuple[str, int]:
    """Return the cleaned (destination, duration_days) or raise ValidationError."""
    res = sanitize_user_text(destination, max_destination_chars)
    if res.too_short:
        raise errors.ValidationError("Destination must not be empty.")
    if res.too_long:
        raise errors.ValidationError(
            f"Destination must be at most {max_destination_chars} characters."
        )

    # bool is an int subclass; "True days" is not a duration.
    if isinstance(duration_days, bool) or not isinstance(duration_days, int):
        raise errors.ValidationError("Duration must be a whole number of days.")
    if not 1 <= duration_days <= max_days:
        raise errors.ValidationError(
            f"Duration must be between 1 and {max_days} days."
        )

    return res.sanitized, duration_days


def validate_message(message: Optional[str], *, max_chars: int) -> str:
    res = sanitize_user_text(message, max_chars, collapse_newlines=False)
    if res.too_short:
        raise errors.ValidationError("Message must not be empty.")
    if res.too_long:
        raise errors.ValidationError(f"Message must be at most {max_chars} characters.")
    return res.sanitized


# ---------------------------------------------------------------------------
# Trip transforms
# ---------------------------------------------------------------------------


def _next_timestamp(trip: Trip, now: datetime) -> datetime:
    """Keep transcript timestamps strictly increasing even if the clock is not."""
    if trip.transcript:
        last = trip.transcript[-1].timestamp
        if now <= last:
            return last + timedelta(microseconds=1)
    return now


def new_trip(
    trip_id: str,
    destination: str,
    duration_days: int,
    now: Optional[datetime] = None,
) -> Trip:
    now = now or utcnow()
    return Trip(
        id=trip_id,
        destination=destination,
        duration_days=duration_days,
        status=TripStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


def check_day_plans(
    plans: Sequence[DayPlan],
    duration_days: int,
    *,
    trip_id: str | None = None,
) -> None:
    """Raise ModelError unless `plans` is exactly days 1..duration_days."""
    if len(plans) != duration_days:
        raise errors.ModelError(
            f"Model returned {len(plans)} day plans for a {duration_days}-day trip.",
            trip_id=trip_id,
        )
    numbers = [p.day_number for p in plans]
    if numbers != list(range(1, duration_days + 1)):
        raise errors.ModelError(
            f"Model returned day numbers {numbers}, expected 1..{duration_days}.",
            trip_id=trip_id,
        )


def check_itinerary(trip: Trip, plans: Sequence[DayPlan]) -> None:
    check_day_plans(plans, trip.duration_days, trip_id=trip.id)


def apply_itinerary(
    trip: Trip,
    plans: Sequence[DayPlan],
    now: Optional[datetime] = None,
) -> Trip:
    """GENERATING --model ok--> READY. The itinerary is written exactly once."""
    if trip.status is not TripStatus.PENDING or trip.itinerary:
        raise errors.StateConflictError(
            "Itinerary has already been generated.", trip_id=trip.id
        )
    check_itinerary(trip, plans)
    return trip.model_copy(
        update={
            "itinerary": list(plans),
            "status": TripStatus.READY,
            "failure_reason": None,
            "updated_at": now or utcnow(),
        },
        deep=True,
    )


def apply_generation_failure(
    trip: Trip,
    reason: str,
    now: Optional[datetime] = None,
) -> Trip:
    """GENERATING --model failed--> FAILED."""
    if trip.status is not TripStatus.PENDING:
        raise errors.StateConflictError(
            f"Cannot fail a trip that is {trip.status.value}.", trip_id=trip.id
        )
    return trip.model_copy(
        update={
            "status": TripStatus.FAILED,
            "failure_reason": reason,
            "updated_at": now or utcnow(),
        },
        deep=True,
    )


def append_user_turn(trip: Trip, text: str, now: Optional[datetime] = None) -> Trip:
    """READY --chat--> AWAITING_REPLY: record the User turn before generating."""
    next_phase(phase_for(trip), Trigger.SEND_CHAT_MESSAGE, trip_id=trip.id)
    ts = _next_timestamp(trip, now or utcnow())
    turn = ChatTurn(role=ChatRole.USER, text=text, timestamp=ts)
    return trip.model_copy(
        update={"transcript": [*trip.transcript, turn], "updated_at": ts},
        deep=True,
    )


def _append_agent(trip: Trip, turn_text: str, error: Optional[str], now: datetime) -> Trip:
    if not trip.awaiting_reply:
        raise errors.StateConflictError(
            "No user message is waiting for a reply.", trip_id=trip.id
        )
    ts = _next_timestamp(trip, now)
    turn = ChatTurn(role=ChatRole.AGENT, text=turn_text, timestamp=ts, error=error)
    return trip.model_copy(
        update={"transcript": [*trip.transcript, turn], "updated_at": ts},
        deep=True,
    )


def append_agent_turn(trip: Trip, text: str, now: Optional[datetime] = None) -> Trip:
    """AWAITING_REPLY --model ok--> READY."""
    return _append_agent(trip, text, None, now or utcnow())


def append_failed_reply(
    trip: Trip,
    error: str = REPLY_ERROR_MARKER,
    now: Optional[datetime] = None,
) -> Trip:
    """AWAITING_REPLY --model failed--> READY, with an error-marked Agent turn."""
    return _append_agent(trip, REPLY_FAILED_TEXT, error, now or utcnow())
