"""Per-session mutual exclusion.

At most one holder per session id; other acquirers queue FIFO and resume only
after the holder releases. `clear()` exists for shutdown: it wakes every
waiter without raising, so callers blocked on a lock are never left hanging.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

Release = Callable[[], None]


class SessionLock:
    def __init__(self) -> None:
        self._held: set[str] = set()
        self._waiters: dict[str, deque[asyncio.Future[None]]] = {}
        # Bumped by clear(); release handles from an older generation are no-ops.
        self._generation = 0

    def is_locked(self, session_id: str) -> bool:
        return session_id in self._held

    def waiting(self, session_id: str) -> int:
        return len(self._waiters.get(session_id, ()))

    async def acquire(self, session_id: str) -> Release:
        """Wait for the lock on `session_id` and return its release handle.

        The handle is idempotent: calling it more than once releases once.
        """

        if session_id in self._held:
            future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.setdefault(session_id, deque()).append(future)
            queued_generation = self._generation
            try:
                await future
            except asyncio.CancelledError:
                self._abandon(session_id, future, queued_generation)
                raise
            # Ownership was handed over by _release (or wiped by clear()).
        self._held.add(session_id)

        generation = self._generation
        released = False

        def release() -> None:
            nonlocal released
            if released or generation != self._generation:
                released = True
                return
            released = True
            self._release(session_id)

        return release

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        release = await self.acquire(session_id)
        try:
            yield
        finally:
            release()

    def clear(self) -> None:
        """Drop every holder and wake every waiter. Shutdown only."""

        waiter_count = sum(len(queue) for queue in self._waiters.values())
        self._generation += 1
        self._held.clear()
        waiters, self._waiters = self._waiters, {}
        for queue in waiters.values():
            for future in queue:
                if not future.done():
                    future.set_result(None)
        if waiter_count:
            logger.info("Released session lock waiters", extra={"waiters": waiter_count})

    def _release(self, session_id: str) -> None:
        queue = self._waiters.get(session_id)
        while queue:
            future = queue.popleft()
            if not future.done():
                # Hand the lock straight to the next waiter; it stays held.
                future.set_result(None)
                if not queue:
                    del self._waiters[session_id]
                return
        self._waiters.pop(session_id, None)
        self._held.discard(session_id)

    def _abandon(
        self, session_id: str, future: asyncio.Future[None], generation: int
    ) -> None:
        queue = self._waiters.get(session_id)
        if queue is not None and future in queue:
            queue.remove(future)
            if not queue:
                del self._waiters[session_id]
        elif future.done() and not future.cancelled() and generation == self._generation:
            # Ownership was handed to us just before cancellation; pass it on.
            # A wake-up from clear() carries no ownership.
            self._release(session_id)
