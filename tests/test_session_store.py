import asyncio

import pytest

from deliveryline.session_store import SessionStore
from deliveryline.states import Step


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(ttl_seconds=900, clock=clock)


class TestBasicOperations:
    def test_get_missing_returns_none(self, store):
        assert store.get("CA1") is None

    def test_get_or_create_creates_once(self, store):
        first = store.get_or_create("CA1", caller_number="+15125551234")
        second = store.get_or_create("CA1")
        assert first is second
        assert first.caller_number == "+15125551234"
        assert len(store) == 1

    def test_get_or_create_accepts_step(self, store):
        session = store.get_or_create("CA1", step=Step.AWAIT_ADDRESS)
        assert session.step == Step.AWAIT_ADDRESS

    def test_put_and_get(self, store):
        session = store.get_or_create("CA1")
        session.address = "123 Main Street"
        store.put("CA1", session)
        assert store.get("CA1").address == "123 Main Street"
        assert "CA1" in store

    def test_remove_leaves_tombstone(self, store):
        store.get_or_create("CA1")
        store.remove("CA1", "<Response><Hangup/></Response>")
        assert store.get("CA1") is None
        assert store.finished_response("CA1") == "<Response><Hangup/></Response>"

    def test_unfinished_call_has_no_tombstone(self, store):
        store.get_or_create("CA1")
        assert store.finished_response("CA1") is None

    def test_new_session_clears_tombstone(self, store):
        store.get_or_create("CA1")
        store.remove("CA1", "final")
        store.get_or_create("CA1")
        assert store.finished_response("CA1") is None


class TestExpiry:
    def test_idle_session_expires_on_access(self, store, clock):
        store.get_or_create("CA1")
        clock.now += 901
        assert store.get("CA1") is None

    def test_put_refreshes_ttl(self, store, clock):
        session = store.get_or_create("CA1")
        clock.now += 800
        store.put("CA1", session)
        clock.now += 800
        assert store.get("CA1") is session

    def test_evict_expired_returns_ids(self, store, clock):
        store.get_or_create("CA1")
        clock.now += 500
        store.get_or_create("CA2")
        clock.now += 500
        assert store.evict_expired() == ["CA1"]
        assert store.get("CA2") is not None

    def test_tombstones_expire(self, store, clock):
        store.get_or_create("CA1")
        store.remove("CA1", "final")
        clock.now += 901
        store.evict_expired()
        assert store.finished_response("CA1") is None


class TestLocks:
    def test_same_call_same_lock(self, store):
        assert store.lock("CA1") is store.lock("CA1")

    def test_different_calls_different_locks(self, store):
        assert store.lock("CA1") is not store.lock("CA2")

    @pytest.mark.asyncio
    async def test_lock_serialises_same_call(self, store):
        order = []

        async def turn(label):
            async with store.lock("CA1"):
                order.append(f"{label}-start")
                await asyncio.sleep(0.01)
                order.append(f"{label}-end")

        await asyncio.gather(turn("a"), turn("b"))
        assert order in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )
