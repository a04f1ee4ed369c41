"""In-process store of live call sessions.

One mutable CallSession per in-progress call, keyed by the carrier's call id.
Webhook turns for the same call are serialised with a per-call asyncio.Lock;
different calls never contend. Sessions that stop receiving turns are evicted
after an inactivity TTL, and finished calls leave a tombstone so that late or
retried deliveries replay the final response instead of starting over.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from deliveryline.session import CallSession

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 900.0


@dataclass
class _Tombstone:
    response: str
    finished_at: float


class SessionStore:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, CallSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._finished: dict[str, _Tombstone] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: str) -> bool:
        return self.get(call_id) is not None

    def lock(self, call_id: str) -> asyncio.Lock:
        """Return the lock guarding read-modify-write for one call."""
        lock = self._locks.get(call_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[call_id] = lock
        return lock

    def get(self, call_id: str) -> CallSession | None:
        session = self._sessions.get(call_id)
        if session is None:
            return None
        if self._is_expired(session.updated_at):
            logger.info("Session %s expired after %.0fs idle", call_id, self.ttl_seconds)
            self._sessions.pop(call_id, None)
            return None
        return session

    def get_or_create(self, call_id: str, **defaults) -> CallSession:
        session = self.get(call_id)
        if session is None:
            session = CallSession(call_id=call_id, **defaults)
            session.touch(self._clock())
            self._sessions[call_id] = session
            self._finished.pop(call_id, None)
            logger.debug("Session created for %s at %s", call_id, session.step.value)
        return session

    def put(self, call_id: str, session: CallSession) -> None:
        session.touch(self._clock())
        self._sessions[call_id] = session

    def remove(self, call_id: str, final_response: str = "") -> None:
        """Drop a finished call, keeping its final response for replays."""
        self._sessions.pop(call_id, None)
        self._finished[call_id] = _Tombstone(final_response, self._clock())

    def finished_response(self, call_id: str) -> str | None:
        """Final response of a finished call, or None if the call is not finished."""
        tombstone = self._finished.get(call_id)
        if tombstone is None:
            return None
        if self._is_expired(tombstone.finished_at):
            self._finished.pop(call_id, None)
            return None
        return tombstone.response

    def evict_expired(self) -> list[str]:
        """Drop idle sessions and old tombstones. Returns the evicted call ids."""
        evicted = [
            call_id for call_id, session in self._sessions.items()
            if self._is_expired(session.updated_at)
        ]
        for call_id in evicted:
            self._sessions.pop(call_id, None)
        for call_id in [
            cid for cid, t in self._finished.items() if self._is_expired(t.finished_at)
        ]:
            self._finished.pop(call_id, None)
        for call_id in [
            cid for cid, lock in self._locks.items()
            if cid not in self._sessions and not lock.locked()
        ]:
            self._locks.pop(call_id, None)
        if evicted:
            logger.info("Evicted %d idle session(s): %s", len(evicted), ", ".join(evicted))
        return evicted

    def _is_expired(self, stamp: float) -> bool:
        return (self._clock() - stamp) >= self.ttl_seconds
