"""
Task and subtask models shared by every part of the state engine.
Models are frozen: every mutation produces a new object, so a state snapshot can be
held by the sync coordinator while the reducer builds the next one.
"""
from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from date_utils import to_date_only


class TaskType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ONETIME = "onetime"


class TaskStatus(StrEnum):
    PENDING = "pending"
    DONE = "done"


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def weight(self) -> int:
        return PRIORITY_WEIGHT[self]


PRIORITY_WEIGHT: dict[Priority, int] = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


def lower_enum_value(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class Subtask(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    title: str
    is_completed: bool = Field(default=False, alias="isCompleted")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("subtask title is required")
        return v


class Task(BaseModel):
    """
    One task as held by the state engine and mirrored in the remote store.
    Unknown keys (e.g. a persisted `color`) are ignored; color is always derived.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str
    type: TaskType
    due_date: date
    status: TaskStatus = TaskStatus.PENDING
    priority: Priority = Priority.MEDIUM
    subtasks: tuple[Subtask, ...] = ()

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title is required")
        return v

    @field_validator("type", "status", mode="before")
    @classmethod
    def _normalize_enum(cls, v: Any) -> Any:
        return lower_enum_value(v)

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return Priority.MEDIUM
        return lower_enum_value(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_only(cls, v: Any) -> date:
        return to_date_only(v)

    @field_validator("subtasks", mode="before")
    @classmethod
    def _default_subtasks(cls, v: Any) -> Any:
        return () if v is None else v

    def is_overdue(self, today: date) -> bool:
        return self.status is TaskStatus.PENDING and self.due_date < today

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the remote store record shape (date-only due_date, isCompleted)."""
        return self.model_dump(mode="json", by_alias=True)


class ViewFilter(BaseModel):
    """Active list filter set by a query action; empty fields match everything."""

    model_config = ConfigDict(frozen=True)

    type: TaskType | None = None
    status: TaskStatus | None = None

    @field_validator("type", "status", mode="before")
    @classmethod
    def _normalize_enum(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return lower_enum_value(v)

    def matches(self, task: Task) -> bool:
        if self.type is not None and task.type is not self.type:
            return False
        if self.status is not None and task.status is not self.status:
            return False
        return True


def task_color(task: Task, today: date) -> str:
    """Display color derived from due date and status; never read from storage."""
    return "red" if task.is_overdue(today) else "green"
