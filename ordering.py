"""
Display ordering and read-only views over the task set.
Nothing here mutates tasks; views are recomputed from the current snapshot.
"""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from functools import cmp_to_key

from models import Task, TaskStatus, TaskType, ViewFilter


def _cmp(x: object, y: object) -> int:
    return (x > y) - (x < y)


def compare_tasks(a: Task, b: Task, today: date) -> int:
    """
    Total order for display. Returns -1 if a sorts first, 1 if b does, 0 on a tie.
    1. pending before done
    2. both done: later due_date first
    3. both pending one-time: higher priority, then earlier due_date
    4. otherwise: overdue first, then higher priority, then earlier due_date
    """
    if a.status is not b.status:
        return -1 if a.status is TaskStatus.PENDING else 1

    if a.status is TaskStatus.DONE:
        return _cmp(b.due_date, a.due_date)

    if a.type is TaskType.ONETIME and b.type is TaskType.ONETIME:
        return _cmp(b.priority.weight, a.priority.weight) or _cmp(a.due_date, b.due_date)

    a_overdue = a.due_date < today
    b_overdue = b.due_date < today
    if a_overdue != b_overdue:
        return -1 if a_overdue else 1
    return _cmp(b.priority.weight, a.priority.weight) or _cmp(a.due_date, b.due_date)


def sort_tasks(tasks: Iterable[Task], today: date) -> list[Task]:
    """Stable sort: ties keep their insertion order."""
    return sorted(tasks, key=cmp_to_key(lambda a, b: compare_tasks(a, b, today)))


def filter_tasks(tasks: Iterable[Task], view_filter: ViewFilter | None) -> list[Task]:
    if view_filter is None:
        return list(tasks)
    return [t for t in tasks if view_filter.matches(t)]


def visible_tasks(tasks: Iterable[Task], view_filter: ViewFilter | None, today: date) -> list[Task]:
    """Filtered and ordered list as shown to the user."""
    return sort_tasks(filter_tasks(tasks, view_filter), today)


def due_today(tasks: Iterable[Task], today: date) -> list[Task]:
    """Pending tasks due today; consumed by whatever decides to notify the user."""
    return [t for t in tasks if t.status is TaskStatus.PENDING and t.due_date == today]


def pending_count(tasks: Iterable[Task]) -> int:
    return sum(1 for t in tasks if t.status is TaskStatus.PENDING)
