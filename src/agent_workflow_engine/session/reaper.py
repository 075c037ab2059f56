"""Background sweep that removes idle sessions."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable

from agent_workflow_engine.session.store import SessionStore

logger = logging.getLogger(__name__)


class SessionReaper:
    """Delete every session idle longer than the timeout, whatever its status.

    A slow caller can lose its session this way; its next continuation then
    fails with SessionNotFound instead of resuming stale state.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        idle_timeout_seconds: float,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self.idle_timeout_seconds = idle_timeout_seconds
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep(self) -> list[str]:
        cutoff = self._clock() - self.idle_timeout_seconds
        removed = self._store.delete_where(lambda session: session.last_updated < cutoff)
        if removed:
            logger.info(
                "Reaped idle sessions",
                extra={"count": len(removed), "session_ids": removed},
            )
        return removed

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="workflow-session-reaper"
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("Session sweep failed")
