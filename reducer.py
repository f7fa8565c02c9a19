"""
Command reducer: applies one structured action to the task state and returns the next
state. Actions usually come from the natural-language interpreter, so envelopes are
treated as untrusted and validated in full before anything is applied.

apply_action is pure: no I/O, no clock, no randomness. `today` is passed in and new ids
are derived deterministically from the action and the current set.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Collection
from dataclasses import dataclass, replace
from datetime import date
from typing import Annotated, Any, Literal, Union, assert_never

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from date_utils import resolve_relative_date
from errors import TaskNotFoundError, TaskValidationError
from models import Priority, Subtask, Task, TaskStatus, TaskType, ViewFilter, lower_enum_value

logger = logging.getLogger("reducer")

_ID_NAMESPACE = uuid.UUID("6f1c7c52-3b8e-4d55-9a57-2f0c1d7e8a14")

# Envelope shape emitted by older interpreter prompts: {"db_action": ..., "task": ...}
_LEGACY_KINDS = frozenset({"create", "update", "delete", "query"})


@dataclass(frozen=True)
class TaskState:
    """Task set plus view state. Replaced, never mutated."""

    tasks: tuple[Task, ...] = ()
    active_filter: ViewFilter | None = None

    def get(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def index_of(self, task_id: str) -> int | None:
        for i, t in enumerate(self.tasks):
            if t.id == task_id:
                return i
        return None


# --- Action payloads (untrusted input) ---


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class SubtaskDraft(_Payload):
    id: str | None = None
    title: str | None = None
    is_completed: bool = Field(default=False, alias="isCompleted")


class TaskDraft(_Payload):
    """Task fields as supplied by a caller; completeness is checked by the reducer."""

    id: str | None = None
    title: str | None = None
    type: TaskType | None = None
    due_date: str | None = None
    status: TaskStatus | None = None
    priority: Priority | None = None
    subtasks: tuple[SubtaskDraft, ...] | None = None

    @field_validator("type", "status", "priority", mode="before")
    @classmethod
    def _normalize_enum(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return lower_enum_value(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_to_str(cls, v: Any) -> Any:
        if isinstance(v, date):
            return v.isoformat()
        return v


def _task_id_field() -> Any:
    return Field(min_length=1, validation_alias=AliasChoices("task_id", "id"))


class CreateAction(_Payload):
    kind: Literal["create"]
    task: TaskDraft


class UpdateAction(_Payload):
    kind: Literal["update"]
    task: TaskDraft


class DeleteAction(_Payload):
    kind: Literal["delete"]
    task_id: str = _task_id_field()


class QueryAction(_Payload):
    kind: Literal["query"]
    filters: ViewFilter | None = None


class ToggleStatusAction(_Payload):
    kind: Literal["toggle_status"]
    task_id: str = _task_id_field()


class SetDueDateAction(_Payload):
    kind: Literal["set_due_date"]
    task_id: str = _task_id_field()
    due_date: str

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_to_str(cls, v: Any) -> Any:
        if isinstance(v, date):
            return v.isoformat()
        return v


class SetPriorityAction(_Payload):
    kind: Literal["set_priority"]
    task_id: str = _task_id_field()
    priority: Priority

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_enum(cls, v: Any) -> Any:
        return lower_enum_value(v)


class AddSubtaskAction(_Payload):
    kind: Literal["add_subtask"]
    task_id: str = _task_id_field()
    title: str
    subtask_id: str | None = None


class ToggleSubtaskAction(_Payload):
    kind: Literal["toggle_subtask"]
    task_id: str = _task_id_field()
    subtask_id: str = Field(min_length=1)


Action = Annotated[
    Union[
        CreateAction,
        UpdateAction,
        DeleteAction,
        QueryAction,
        ToggleStatusAction,
        SetDueDateAction,
        SetPriorityAction,
        AddSubtaskAction,
        ToggleSubtaskAction,
    ],
    Field(discriminator="kind"),
]

_ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)

ACTION_KINDS = frozenset(
    {
        "create", "update", "delete", "query",
        "toggle_status", "set_due_date", "set_priority", "add_subtask", "toggle_subtask",
    }
)


def _describe_errors(exc: PydanticValidationError, *, tagged: bool = True) -> str:
    parts = []
    for err in exc.errors():
        # First loc element is the union tag
        loc = ".".join(str(p) for p in err.get("loc", ())[1 if tagged else 0 :])
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def _from_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    """Translate {db_action, task, task_id, filters, error} into a flat action dict."""
    if raw.get("error"):
        raise TaskValidationError(f"Interpreter reported an error: {raw['error']}")
    kind = raw.get("db_action")
    if kind not in _LEGACY_KINDS:
        raise TaskValidationError(f"db_action must be one of {sorted(_LEGACY_KINDS)}")
    data: dict[str, Any] = {"kind": kind}
    if kind in ("create", "update"):
        data["task"] = raw.get("task")
    elif kind == "delete":
        data["task_id"] = raw.get("task_id")
    else:
        data["filters"] = raw.get("filters")
    return data


def parse_action(raw: Any) -> Action:
    """
    Validate an action envelope. Accepts {"kind": ..., "payload": {...}} and the legacy
    {"db_action": ...} shape. Raises TaskValidationError on anything malformed.
    """
    if isinstance(raw, BaseModel) and getattr(raw, "kind", None) in ACTION_KINDS:
        return raw  # already parsed
    if not isinstance(raw, dict):
        raise TaskValidationError("action envelope must be an object")
    if "db_action" in raw and "kind" not in raw:
        data = _from_legacy(raw)
    else:
        kind = raw.get("kind")
        if not kind or not isinstance(kind, str):
            raise TaskValidationError("action envelope is missing 'kind'")
        kind = kind.strip().lower()
        if kind not in ACTION_KINDS:
            raise TaskValidationError(f"unknown action kind {kind!r}; expected one of {sorted(ACTION_KINDS)}")
        payload = raw.get("payload")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise TaskValidationError("action payload must be an object")
        data = {**payload, "kind": kind}
    try:
        return _ACTION_ADAPTER.validate_python(data)
    except PydanticValidationError as e:
        raise TaskValidationError(f"Invalid {data.get('kind')} action: {_describe_errors(e)}") from e


# --- Reducer ---


def _fresh_id(seed: str, taken: Collection[str]) -> str:
    attempt = 0
    while True:
        candidate = str(uuid.uuid5(_ID_NAMESPACE, f"{seed}#{attempt}"))
        if candidate not in taken:
            return candidate
        attempt += 1


def _resolve_due_date(value: str | None, today: date) -> date:
    resolved = resolve_relative_date(value, today)
    if resolved is None:
        if value is None or not str(value).strip():
            raise TaskValidationError("due_date is required")
        raise TaskValidationError(f"due_date must be a date (YYYY-MM-DD), got {value!r}")
    return date.fromisoformat(resolved)


def _build_subtasks(drafts: tuple[SubtaskDraft, ...] | None, task_id: str) -> tuple[Subtask, ...]:
    out: list[Subtask] = []
    seen: set[str] = set()
    for i, draft in enumerate(drafts or ()):
        title = (draft.title or "").strip()
        if not title:
            raise TaskValidationError(f"subtasks[{i}].title is required")
        sid = (draft.id or "").strip()
        if not sid or sid in seen:
            sid = _fresh_id(f"{task_id}|subtask|{i}|{title}", seen)
        seen.add(sid)
        out.append(Subtask(id=sid, title=title, is_completed=draft.is_completed))
    return tuple(out)


def _build_task(draft: TaskDraft, task_id: str, today: date, *, creating: bool) -> Task:
    title = (draft.title or "").strip()
    if not title:
        raise TaskValidationError("title is required")
    if draft.type is None:
        raise TaskValidationError(f"type must be one of {[t.value for t in TaskType]}")
    if creating and draft.type is TaskType.DAILY:
        # Daily tasks always start today, whatever date the caller supplied.
        due_date = today
        status = TaskStatus.PENDING
    else:
        due_date = _resolve_due_date(draft.due_date, today)
        status = draft.status or TaskStatus.PENDING
    try:
        return Task(
            id=task_id,
            title=title,
            type=draft.type,
            due_date=due_date,
            status=status,
            priority=draft.priority or Priority.MEDIUM,
            subtasks=_build_subtasks(draft.subtasks, task_id),
        )
    except PydanticValidationError as e:
        raise TaskValidationError(f"Invalid task: {_describe_errors(e, tagged=False)}") from e


def _require(state: TaskState, task_id: str) -> int:
    index = state.index_of(task_id)
    if index is None:
        raise TaskNotFoundError(task_id)
    return index


def _with_task(state: TaskState, index: int, task: Task) -> TaskState:
    return replace(state, tasks=state.tasks[:index] + (task,) + state.tasks[index + 1 :])


def _create(state: TaskState, draft: TaskDraft, today: date) -> TaskState:
    taken = {t.id for t in state.tasks}
    task_id = (draft.id or "").strip()
    if not task_id or task_id in taken:
        if task_id:
            logger.info("create: id %s already in use, assigning a new one", task_id)
        task_id = _fresh_id(f"{task_id}|{draft.title}|{len(state.tasks)}", taken)
    task = _build_task(draft, task_id, today, creating=True)
    return replace(state, tasks=state.tasks + (task,))


def _update(state: TaskState, draft: TaskDraft, today: date) -> TaskState:
    task_id = (draft.id or "").strip()
    if not task_id:
        raise TaskValidationError("update requires task.id")
    index = _require(state, task_id)
    return _with_task(state, index, _build_task(draft, task_id, today, creating=False))


def _delete(state: TaskState, task_id: str) -> TaskState:
    remaining = tuple(t for t in state.tasks if t.id != task_id)
    if len(remaining) == len(state.tasks):
        return state
    return replace(state, tasks=remaining)


def _query(state: TaskState, filters: ViewFilter | None) -> TaskState:
    if filters is not None and filters.type is None and filters.status is None:
        filters = None
    return replace(state, active_filter=filters)


def _toggle_status(state: TaskState, task_id: str) -> TaskState:
    index = _require(state, task_id)
    task = state.tasks[index]
    new_status = TaskStatus.DONE if task.status is TaskStatus.PENDING else TaskStatus.PENDING
    return _with_task(state, index, task.model_copy(update={"status": new_status}))


def _set_due_date(state: TaskState, task_id: str, value: str, today: date) -> TaskState:
    index = _require(state, task_id)
    due = _resolve_due_date(value, today)
    return _with_task(state, index, state.tasks[index].model_copy(update={"due_date": due}))


def _set_priority(state: TaskState, task_id: str, priority: Priority) -> TaskState:
    index = _require(state, task_id)
    return _with_task(state, index, state.tasks[index].model_copy(update={"priority": priority}))


def _add_subtask(state: TaskState, action: AddSubtaskAction) -> TaskState:
    index = _require(state, action.task_id)
    task = state.tasks[index]
    title = action.title.strip()
    if not title:
        raise TaskValidationError("subtask title is required")
    taken = {s.id for s in task.subtasks}
    sid = (action.subtask_id or "").strip()
    if not sid or sid in taken:
        sid = _fresh_id(f"{task.id}|subtask|{len(task.subtasks)}|{title}", taken)
    subtask = Subtask(id=sid, title=title, is_completed=False)
    return _with_task(state, index, task.model_copy(update={"subtasks": task.subtasks + (subtask,)}))


def _toggle_subtask(state: TaskState, task_id: str, subtask_id: str) -> TaskState:
    index = _require(state, task_id)
    task = state.tasks[index]
    subtasks = list(task.subtasks)
    for i, s in enumerate(subtasks):
        if s.id == subtask_id:
            subtasks[i] = s.model_copy(update={"is_completed": not s.is_completed})
            break
    else:
        raise TaskNotFoundError(subtask_id, f"Task {task_id!r} has no subtask {subtask_id!r}")
    return _with_task(state, index, task.model_copy(update={"subtasks": tuple(subtasks)}))


def apply_action(state: TaskState, action: Action, *, today: date) -> TaskState:
    """
    Apply one action and return the next state. On TaskValidationError or
    TaskNotFoundError nothing has been applied and `state` is still current.
    """
    match action:
        case CreateAction():
            return _create(state, action.task, today)
        case UpdateAction():
            return _update(state, action.task, today)
        case DeleteAction():
            return _delete(state, action.task_id)
        case QueryAction():
            return _query(state, action.filters)
        case ToggleStatusAction():
            return _toggle_status(state, action.task_id)
        case SetDueDateAction():
            return _set_due_date(state, action.task_id, action.due_date, today)
        case SetPriorityAction():
            return _set_priority(state, action.task_id, action.priority)
        case AddSubtaskAction():
            return _add_subtask(state, action)
        case ToggleSubtaskAction():
            return _toggle_subtask(state, action.task_id, action.subtask_id)
        case _:
            assert_never(action)


def is_mutation(action: Action) -> bool:
    """True if the action can change the task set (query only changes the view)."""
    return not isinstance(action, QueryAction)
