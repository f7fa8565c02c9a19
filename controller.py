"""
Task controller: the single owner of task state.
All mutations go through dispatch(); the sync coordinator only ever sees snapshots.
Create one per process (web app lifespan), start() it, and close() it on shutdown.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any

from config import AppConfig
from date_utils import as_date, today_in_tz
from errors import StoreConnectionError, TaskNotFoundError, TaskValidationError
from interpreter import CommandInterpreter, OllamaInterpreter
from models import Task
from ollama_client import OllamaClient
from ordering import due_today, pending_count, visible_tasks
from recurrence import reset_tasks
from reducer import (
    Action,
    AddSubtaskAction,
    CreateAction,
    DeleteAction,
    QueryAction,
    TaskState,
    UpdateAction,
    apply_action,
    parse_action,
)
from sheet_store import SheetStore
from sync import Scheduler, SyncCoordinator, TaskStore

logger = logging.getLogger("controller")


@dataclass(frozen=True)
class CommandResult:
    ok: bool
    message: str
    kind: str | None = None


def _describe(action: Action, before: TaskState, after: TaskState) -> str:
    """Short user-facing confirmation for an applied action."""
    if isinstance(action, CreateAction):
        task = after.tasks[-1]
        return f"Task created: {task.title} [{task.type.value}], due {task.due_date.isoformat()}."
    if isinstance(action, DeleteAction):
        gone = before.get(action.task_id)
        return f"Task deleted: {gone.title}." if gone else "Nothing to delete."
    if isinstance(action, QueryAction):
        flt = after.active_filter
        if flt is None:
            return "Showing all tasks."
        parts = [p.value for p in (flt.status, flt.type) if p is not None]
        return f"Showing {' '.join(parts)} tasks."
    if isinstance(action, AddSubtaskAction):
        return f"Subtask added: {action.title.strip()}."
    task_id = action.task.id if isinstance(action, UpdateAction) else action.task_id
    task = after.get(task_id or "")
    return f"Task updated: {task.title}." if task else "Task updated."


class TaskController:
    def __init__(
        self,
        store: TaskStore,
        interpreter: CommandInterpreter | None = None,
        *,
        tz_name: str = "UTC",
        scheduler: Scheduler | None = None,
        debounce_seconds: float = 2.0,
        clock: Callable[[], date] | None = None,
    ):
        self.store = store
        self.interpreter = interpreter
        self.tz_name = tz_name
        self._clock = clock or (lambda: today_in_tz(tz_name))
        self._state = TaskState()
        self._closers: list[Callable[[], Awaitable[None]]] = []
        self.sync = SyncCoordinator(
            store,
            on_hydrate=self._replace_tasks,
            scheduler=scheduler,
            debounce_seconds=debounce_seconds,
        )

    @classmethod
    def from_config(cls, config: AppConfig, *, scheduler: Scheduler | None = None) -> "TaskController":
        store = SheetStore(
            config.sheet_url,
            tz_name=config.user_timezone,
            timeout=config.store_timeout_seconds,
            max_attempts=config.store_max_attempts,
            backoff_seconds=config.store_backoff_seconds,
        )
        interpreter = OllamaInterpreter(
            OllamaClient(config.ollama_base_url, timeout=config.interpreter_timeout_seconds),
            config.model,
        )
        controller = cls(
            store,
            interpreter,
            tz_name=config.user_timezone,
            scheduler=scheduler,
            debounce_seconds=config.sync_debounce_seconds,
        )
        controller._closers.append(store.aclose)
        return controller

    # --- lifecycle ---

    async def start(self) -> bool:
        """Initial load. Returns False (and stays unhydrated) if the remote store is unavailable."""
        try:
            await self.sync.load(self.today())
        except StoreConnectionError:
            return False
        return True

    async def retry_load(self) -> None:
        """Manual retry after a failed load. Raises StoreConnectionError if it fails again."""
        await self.sync.retry(self.today())

    async def close(self) -> None:
        await self.sync.close(flush=True)
        for closer in self._closers:
            await closer()
        self._closers.clear()

    # --- state ---

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def hydrated(self) -> bool:
        return self.sync.hydrated

    def today(self) -> date:
        return self._clock()

    def _replace_tasks(self, tasks: tuple[Task, ...]) -> None:
        self._state = replace(self._state, tasks=tasks)

    def _commit(self, new_state: TaskState) -> None:
        old = self._state
        if new_state is old:
            return
        self._state = new_state
        if new_state.tasks is not old.tasks:
            self.sync.on_state_change(new_state.tasks)

    def dispatch(self, raw: Any) -> TaskState:
        """
        Validate and apply one action envelope. Raises TaskValidationError or
        TaskNotFoundError with the state untouched.
        """
        action = parse_action(raw)
        self._commit(apply_action(self._state, action, today=self.today()))
        return self._state

    def refresh(self, now: date | datetime | None = None) -> bool:
        """Roll over recurring tasks that went stale while the app was in the background."""
        current = self._state.tasks
        rolled = reset_tasks(current, as_date(now) if now is not None else self.today())
        if all(a is b for a, b in zip(current, rolled)):
            return False
        self._commit(replace(self._state, tasks=rolled))
        return True

    async def handle_command(self, text: str) -> CommandResult:
        """Free text -> interpreter -> reducer. Interpreter output is never trusted."""
        if self.interpreter is None:
            return CommandResult(ok=False, message="No command interpreter is configured.")
        flt = self._state.active_filter
        result = await self.interpreter.interpret(
            text,
            self._state.tasks,
            flt.type if flt else None,
            today=self.today(),
        )
        if isinstance(result, str):
            return CommandResult(ok=False, message=result)
        try:
            action = parse_action(result)
            before = self._state
            self._commit(apply_action(before, action, today=self.today()))
        except (TaskValidationError, TaskNotFoundError) as e:
            logger.warning("Rejected interpreter action %s: %s", result, e)
            return CommandResult(ok=False, message=str(e))
        return CommandResult(ok=True, message=_describe(action, before, self._state), kind=action.kind)

    # --- views ---

    def visible_tasks(self) -> list[Task]:
        return visible_tasks(self._state.tasks, self._state.active_filter, self.today())

    def due_today(self) -> list[Task]:
        return due_today(self._state.tasks, self.today())

    def status(self) -> dict[str, Any]:
        return {
            "hydrated": self.sync.hydrated,
            "task_count": len(self._state.tasks),
            "pending_count": pending_count(self._state.tasks),
            "save_pending": self.sync.save_pending,
            "last_load_error": self.sync.last_load_error,
            "last_save_error": self.sync.last_save_error,
            "active_filter": self._state.active_filter.model_dump(mode="json") if self._state.active_filter else None,
        }
