"""Error types raised by the task state engine and its collaborators."""
from __future__ import annotations


class TaskError(Exception):
    """Base class for all taskmind errors."""


class TaskValidationError(TaskError, ValueError):
    """Malformed action envelope or task payload. State is left unchanged."""


class TaskNotFoundError(TaskError, LookupError):
    """An action targeted a task (or subtask) id that is not in the set."""

    def __init__(self, task_id: str, message: str | None = None):
        self.task_id = task_id
        super().__init__(message or f"No task with id {task_id!r}")


class StoreConnectionError(TaskError, ConnectionError):
    """Remote store transport failure. Always retryable by the caller."""

    retryable = True


class StoreParseError(TaskError, ValueError):
    """Remote store returned a payload that cannot be understood."""


class InterpreterError(TaskError, RuntimeError):
    """Natural-language interpreter failed to produce an action."""
