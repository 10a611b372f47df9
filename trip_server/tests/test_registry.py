# tests/test_registry.py
from __future__ import annotations

import asyncio

import pytest

from fakes import FakeModelClient, SlowStore
from tripplanner.core import errors
from tripplanner.models.trip import TripStatus
from tripplanner.runtime_state import MemoryTripStore, SessionRegistry


def make_registry(cfg, policy, *, store=None, model=None, ids=None):
    kwargs = {}
    if ids is not None:
        it = iter(ids)
        kwargs["id_factory"] = lambda: next(it)
    return SessionRegistry(
        store if store is not None else MemoryTripStore(),
        model if model is not None else FakeModelClient(),
        cfg=cfg,
        policy=policy,
        **kwargs,
    )


def test_create_assigns_fresh_ids(cfg, policy):
    registry = make_registry(cfg, policy, ids=["first", "second"])

    async def scenario():
        a = await registry.create_trip("Kyoto", 2)
        b = await registry.create_trip("Kyoto", 2)
        return a, b

    a, b = asyncio.run(scenario())
    assert (a.id, b.id) == ("first", "second")
    assert registry.active_ids() == ["first", "second"]


def test_default_ids_are_unique(cfg, policy):
    registry = make_registry(cfg, policy)

    async def scenario():
        return [await registry.create_trip("Kyoto", 1) for _ in range(3)]

    trips = asyncio.run(scenario())
    assert len({t.id for t in trips}) == 3


def test_client_supplied_id_makes_create_idempotent(cfg, policy):
    model = FakeModelClient()
    registry = make_registry(cfg, policy, model=model)

    async def scenario():
        first = await registry.create_trip("Kyoto", 2, trip_id="my-trip")
        second = await registry.create_trip("Kyoto", 2, trip_id="my-trip")
        return first, second

    first, second = asyncio.run(scenario())
    assert first == second
    assert model.itinerary_calls == 1


def test_invalid_client_id_is_a_validation_error(cfg, policy):
    registry = make_registry(cfg, policy)

    async def scenario():
        with pytest.raises(errors.ValidationError):
            await registry.create_trip("Kyoto", 2, trip_id="../etc/passwd")

    asyncio.run(scenario())
    assert len(registry) == 0


@pytest.mark.parametrize("trip_id", ["missing", "../bad id"])
def test_unknown_or_malformed_ids_are_not_found(cfg, policy, trip_id):
    registry = make_registry(cfg, policy)

    async def scenario():
        with pytest.raises(errors.NotFoundError):
            await registry.get_trip(trip_id)
        with pytest.raises(errors.NotFoundError):
            await registry.send_chat_message(trip_id, "hello")
        with pytest.raises(errors.NotFoundError):
            await registry.get_messages(trip_id)

    asyncio.run(scenario())


def test_one_coordinator_per_trip_id(cfg, policy):
    registry = make_registry(cfg, policy, ids=["t1"])

    async def scenario():
        await registry.create_trip("Kyoto", 2)
        async with registry.session("t1") as a:
            async with registry.session("t1") as b:
                assert a is b
                assert a.refs == 2
        return a

    coord = asyncio.run(scenario())
    assert coord.refs == 0
    assert len(registry) == 1


def test_concurrent_chats_through_registry_are_serialized(cfg, policy):
    model = FakeModelClient(delay_s=0.01)
    registry = make_registry(cfg, policy, model=model, ids=["t1"])

    async def scenario():
        await registry.create_trip("Kyoto", 2)
        await asyncio.gather(
            *(registry.send_chat_message("t1", f"q{i}") for i in range(4))
        )
        return await registry.get_messages("t1")

    messages = asyncio.run(scenario())
    texts = [m.text for m in messages]
    assert texts == [
        "q0", "Reply to: q0",
        "q1", "Reply to: q1",
        "q2", "Reply to: q2",
        "q3", "Reply to: q3",
    ]


def test_trips_are_isolated(cfg, policy):
    registry = make_registry(cfg, policy, ids=["a", "b"])

    async def scenario():
        await registry.create_trip("Kyoto", 2)
        await registry.create_trip("Lisbon", 3)
        await registry.send_chat_message("a", "only for a")
        return await registry.get_trip("a"), await registry.get_trip("b")

    a, b = asyncio.run(scenario())
    assert len(a.transcript) == 2
    assert b.transcript == []
    assert b.destination == "Lisbon"


def test_evicted_trip_rehydrates_from_store(cfg, policy):
    store = MemoryTripStore()
    registry = make_registry(cfg, policy, store=store, ids=["t1"])

    async def scenario():
        await registry.create_trip("Kyoto", 2)
        await registry.send_chat_message("t1", "hello")
        evicted = registry.evict_idle(idle_timeout_s=0)
        assert "t1" not in registry
        trip = await registry.get_trip("t1")
        return evicted, trip

    evicted, trip = asyncio.run(scenario())
    assert evicted == 1
    assert trip.status is TripStatus.READY
    assert [t.text for t in trip.transcript] == ["hello", "Reply to: hello"]


def test_busy_coordinators_are_not_evicted(cfg, policy):
    registry = make_registry(cfg, policy, ids=["t1"])

    async def scenario():
        await registry.create_trip("Kyoto", 2)
        async with registry.session("t1"):
            assert registry.evict_idle(idle_timeout_s=0) == 0
            assert "t1" in registry
        return registry.evict_idle(idle_timeout_s=0)

    assert asyncio.run(scenario()) == 1


def test_recently_used_coordinators_are_kept(cfg, policy):
    registry = make_registry(cfg, policy, ids=["t1"])

    async def scenario():
        await registry.create_trip("Kyoto", 2)
        return registry.evict_idle(idle_timeout_s=3600)

    assert asyncio.run(scenario()) == 0
    assert "t1" in registry


def test_sweeper_evicts_in_background(cfg, policy):
    cfg = cfg.model_copy(update={"session_idle_timeout_s": 0.0, "session_sweep_interval_s": 0.01})
    registry = make_registry(cfg, policy, ids=["t1"])

    async def scenario():
        registry.start()
        registry.start()  # second start is a no-op
        await registry.create_trip("Kyoto", 2)
        for _ in range(100):
            if len(registry) == 0:
                break
            await asyncio.sleep(0.01)
        await registry.stop()
        await registry.stop()

    asyncio.run(scenario())
    assert len(registry) == 0


def test_coordinator_with_write_in_flight_is_not_evicted(cfg, policy):
    cfg = cfg.model_copy(update={"store_timeout_s": 0.1})
    registry = make_registry(cfg, policy, store=SlowStore(slow_put=1, delay_s=0.4), ids=["t1"])

    async def scenario():
        with pytest.raises(errors.StoreError):
            await registry.create_trip("Kyoto", 2)
        early = registry.evict_idle(idle_timeout_s=0)
        await asyncio.sleep(0.5)
        return early, registry.evict_idle(idle_timeout_s=0)

    assert asyncio.run(scenario()) == (0, 1)
