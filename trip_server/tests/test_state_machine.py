# tests/test_state_machine.py
from __future__ import annotations

from datetime import timedelta

import pytest

from fakes import make_plans
from tripplanner.core import errors
from tripplanner.core import state_machine as sm
from tripplanner.core.state_machine import Phase, Trigger
from tripplanner.models.trip import ChatRole, TripStatus, utcnow


def ready_trip(days=2):
    return sm.apply_itinerary(sm.new_trip("t1", "Kyoto", days), make_plans(days))


@pytest.mark.parametrize(
    "phase, trigger, expected",
    [
        (Phase.PENDING, Trigger.CREATE_TRIP, Phase.GENERATING),
        (Phase.GENERATING, Trigger.MODEL_SUCCESS, Phase.READY),
        (Phase.GENERATING, Trigger.MODEL_FAILURE, Phase.FAILED),
        (Phase.READY, Trigger.SEND_CHAT_MESSAGE, Phase.AWAITING_REPLY),
        (Phase.AWAITING_REPLY, Trigger.MODEL_SUCCESS, Phase.READY),
        (Phase.AWAITING_REPLY, Trigger.MODEL_FAILURE, Phase.READY),
    ],
)
def test_valid_transitions(phase, trigger, expected):
    assert sm.next_phase(phase, trigger) is expected


@pytest.mark.parametrize("phase", list(Phase))
def test_get_trip_never_moves(phase):
    assert sm.next_phase(phase, Trigger.GET_TRIP) is phase


@pytest.mark.parametrize(
    "phase, trigger",
    [
        (Phase.PENDING, Trigger.SEND_CHAT_MESSAGE),
        (Phase.GENERATING, Trigger.SEND_CHAT_MESSAGE),
        (Phase.FAILED, Trigger.SEND_CHAT_MESSAGE),
        (Phase.AWAITING_REPLY, Trigger.SEND_CHAT_MESSAGE),
        (Phase.READY, Trigger.CREATE_TRIP),
        (Phase.READY, Trigger.MODEL_SUCCESS),
        (Phase.FAILED, Trigger.MODEL_FAILURE),
    ],
)
def test_invalid_transitions_are_state_conflicts(phase, trigger):
    with pytest.raises(errors.StateConflictError):
        sm.next_phase(phase, trigger, trip_id="t1")


def test_phase_for_derives_resting_phase():
    trip = sm.new_trip("t1", "Kyoto", 2)
    assert sm.phase_for(None) is Phase.PENDING
    assert sm.phase_for(trip) is Phase.PENDING
    assert sm.phase_for(sm.apply_generation_failure(trip, "boom")) is Phase.FAILED

    ready = sm.apply_itinerary(trip, make_plans(2))
    assert sm.phase_for(ready) is Phase.READY
    assert sm.phase_for(sm.append_user_turn(ready, "hi")) is Phase.AWAITING_REPLY


def test_validate_trip_request_cleans_destination():
    dest, days = sm.validate_trip_request(
        "  New \t York\n ", 3, max_days=14, max_destination_chars=120
    )
    assert dest == "New York"
    assert days == 3


@pytest.mark.parametrize(
    "destination, days",
    [
        ("", 3),
        ("   ", 3),
        (None, 3),
        ("x" * 121, 3),
        ("Kyoto", 0),
        ("Kyoto", 15),
        ("Kyoto", False),
        ("Kyoto", 2.5),
    ],
)
def test_validate_trip_request_rejects(destination, days):
    with pytest.raises(errors.ValidationError):
        sm.validate_trip_request(destination, days, max_days=14, max_destination_chars=120)


def test_validate_message_keeps_line_breaks():
    assert sm.validate_message("line one\n\n  line   two ", max_chars=100) == "line one\nline two"
    with pytest.raises(errors.ValidationError):
        sm.validate_message("x" * 101, max_chars=100)


def test_apply_itinerary_returns_new_trip_and_is_write_once():
    trip = sm.new_trip("t1", "Kyoto", 2)
    ready = sm.apply_itinerary(trip, make_plans(2))

    assert trip.status is TripStatus.PENDING
    assert trip.itinerary == []
    assert ready.status is TripStatus.READY

    with pytest.raises(errors.StateConflictError):
        sm.apply_itinerary(ready, make_plans(2))


@pytest.mark.parametrize("plans", [make_plans(1), make_plans(3)])
def test_apply_itinerary_rejects_wrong_length(plans):
    with pytest.raises(errors.ModelError):
        sm.apply_itinerary(sm.new_trip("t1", "Kyoto", 2), plans)


def test_check_day_plans_rejects_gaps():
    plans = make_plans(3)
    with pytest.raises(errors.ModelError):
        sm.check_day_plans([plans[0], plans[2], plans[2]], 3)


def test_generation_failure_only_from_pending():
    failed = sm.apply_generation_failure(sm.new_trip("t1", "Kyoto", 2), "no backend")
    assert failed.failure_reason == "no backend"
    with pytest.raises(errors.StateConflictError):
        sm.apply_generation_failure(failed, "again")


def test_user_turn_requires_ready_and_no_pending_reply():
    with pytest.raises(errors.StateConflictError):
        sm.append_user_turn(sm.new_trip("t1", "Kyoto", 2), "hi")

    awaiting = sm.append_user_turn(ready_trip(), "hi")
    with pytest.raises(errors.StateConflictError):
        sm.append_user_turn(awaiting, "hello again")


def test_agent_turn_requires_pending_user_turn():
    with pytest.raises(errors.StateConflictError):
        sm.append_agent_turn(ready_trip(), "unprompted")


def test_failed_reply_is_marked():
    trip = sm.append_failed_reply(sm.append_user_turn(ready_trip(), "hi"), "model_timeout")
    last = trip.transcript[-1]
    assert last.role is ChatRole.AGENT
    assert last.error == "model_timeout"
    assert last.text == sm.REPLY_FAILED_TEXT
    assert trip.status is TripStatus.READY


def test_timestamps_stay_strictly_increasing_when_clock_goes_back():
    now = utcnow()
    trip = sm.append_user_turn(ready_trip(), "hi", now=now)
    trip = sm.append_agent_turn(trip, "hello", now=now - timedelta(seconds=5))
    trip = sm.append_user_turn(trip, "more", now=now)

    stamps = [t.timestamp for t in trip.transcript]
    assert stamps[0] < stamps[1] < stamps[2]
