"""
Recurrence rollover: stale daily/weekly/monthly tasks are moved to the current period
and their completion state is cleared. One-time tasks are never touched.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import assert_never

from date_utils import as_date, month_start, week_start
from models import Task, TaskStatus, TaskType

logger = logging.getLogger("recurrence")


def anchor_date(task_type: TaskType, now: date | datetime) -> date | None:
    """Start of the current period for a recurring type; None for one-time tasks."""
    today = as_date(now)
    match task_type:
        case TaskType.DAILY:
            return today
        case TaskType.WEEKLY:
            return week_start(today)
        case TaskType.MONTHLY:
            return month_start(today)
        case TaskType.ONETIME:
            return None
        case _:
            assert_never(task_type)


def is_stale(task: Task, now: date | datetime) -> bool:
    anchor = anchor_date(task.type, now)
    return anchor is not None and task.due_date < anchor


def reset_task(task: Task, now: date | datetime) -> Task:
    """Roll a single task over if it is stale; otherwise return it unchanged."""
    anchor = anchor_date(task.type, now)
    if anchor is None or task.due_date >= anchor:
        return task
    return task.model_copy(
        update={
            "due_date": anchor,
            "status": TaskStatus.PENDING,
            "subtasks": tuple(s.model_copy(update={"is_completed": False}) for s in task.subtasks),
        }
    )


def reset_tasks(tasks: Iterable[Task], now: date | datetime) -> tuple[Task, ...]:
    """Apply rollover to a whole task set. Idempotent for a fixed now."""
    before = tuple(tasks)
    out = tuple(reset_task(t, now) for t in before)
    rolled = sum(1 for old, new in zip(before, out) if old is not new)
    if rolled:
        logger.info("Rolled over %d recurring task(s) for %s", rolled, as_date(now).isoformat())
    return out
