"""
Sync coordinator: keeps the remote store mirroring local state.

- Nothing is saved until the first successful load ("hydration"). A failed load leaves
  the coordinator unhydrated until the caller retries.
- Every state change restarts a quiet-period timer; when it expires the latest snapshot
  is written with a full overwrite. Only the last state of a burst is sent.
- A load replaces any snapshot still waiting to be saved. If the load rolled tasks
  over, the rolled-over set is scheduled for saving like any other change.
- Save failures are logged and forgotten: the next debounced save carries the full set
  again, so the remote mirror converges without a queue.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import date, datetime
from typing import Protocol

from errors import StoreConnectionError, StoreParseError
from models import Task
from recurrence import reset_tasks

logger = logging.getLogger("sync")

DEFAULT_DEBOUNCE_SECONDS = 2.0


class TaskStore(Protocol):
    async def load_tasks(self) -> list[Task]: ...

    async def save_tasks(self, tasks: Sequence[Task]) -> None: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Source of cancelable delayed callbacks. Tests substitute a manual clock."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class SyncCoordinator:
    def __init__(
        self,
        store: TaskStore,
        *,
        on_hydrate: Callable[[tuple[Task, ...]], None],
        scheduler: Scheduler | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.store = store
        self.on_hydrate = on_hydrate
        self.scheduler = scheduler or AsyncioScheduler()
        self.debounce_seconds = debounce_seconds
        self.hydrated = False
        self.last_load_error: str | None = None
        self.last_save_error: str | None = None
        self.saves_completed = 0
        self._timer: TimerHandle | None = None
        self._pending: tuple[Task, ...] | None = None
        self._in_flight: set[asyncio.Task[None]] = set()

    @property
    def save_pending(self) -> bool:
        return self._timer is not None

    async def load(self, now: date | datetime) -> tuple[Task, ...]:
        """
        Fetch the authoritative set, roll over stale recurring tasks and hand the result
        to on_hydrate. Raises StoreConnectionError (also for unparsable payloads) and
        leaves hydration unchanged on failure.
        """
        try:
            loaded = await self.store.load_tasks()
        except StoreConnectionError as e:
            self.last_load_error = str(e)
            logger.error("Load failed, sync disabled until retry: %s", e)
            raise
        except StoreParseError as e:
            self.last_load_error = str(e)
            logger.error("Load returned an unusable payload, sync disabled until retry: %s", e)
            raise StoreConnectionError(str(e)) from e
        # A queued snapshot predates the loaded set and must not overwrite it
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None
        tasks = reset_tasks(loaded, now)
        self.on_hydrate(tasks)
        self.hydrated = True
        self.last_load_error = None
        logger.info("Hydrated with %d task(s)", len(tasks))
        if any(old is not new for old, new in zip(loaded, tasks)):
            self.on_state_change(tasks)
        return tasks

    async def retry(self, now: date | datetime) -> tuple[Task, ...]:
        """Explicit, caller-driven retry of load()."""
        logger.info("Retrying load")
        return await self.load(now)

    def on_state_change(self, tasks: Sequence[Task]) -> None:
        """Record the latest snapshot and (re)start the quiet-period timer."""
        if not self.hydrated:
            logger.debug("Ignoring state change before hydration")
            return
        self._pending = tuple(tasks)
        if self._timer is not None:
            self._timer.cancel()
            logger.debug("Debounce restarted")
        self._timer = self.scheduler.call_later(self.debounce_seconds, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return
        task = asyncio.get_running_loop().create_task(self._save(snapshot))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _save(self, snapshot: tuple[Task, ...]) -> None:
        try:
            await self.store.save_tasks(snapshot)
        except StoreConnectionError as e:
            self.last_save_error = str(e)
            logger.warning("Save failed, next change will retry with the full set: %s", e)
            return
        self.last_save_error = None
        self.saves_completed += 1

    async def drain(self) -> None:
        """Wait for saves that are already in flight."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight))

    async def close(self, *, flush: bool = True) -> None:
        """Cancel the timer; optionally write a pending snapshot now instead of dropping it."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        snapshot, self._pending = self._pending, None
        if flush and snapshot is not None and self.hydrated:
            await self._save(snapshot)
        await self.drain()
