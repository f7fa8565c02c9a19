# tests/test_reducer.py

from __future__ import annotations

from datetime import date

import pytest

from errors import TaskNotFoundError, TaskValidationError
from models import Priority, TaskStatus, TaskType, ViewFilter
from reducer import (
    CreateAction,
    DeleteAction,
    QueryAction,
    TaskState,
    apply_action,
    is_mutation,
    parse_action,
)

from .fakes import make_task

TODAY = date(2024, 5, 29)


def _apply(state: TaskState, raw: dict) -> TaskState:
    return apply_action(state, parse_action(raw), today=TODAY)


@pytest.fixture()
def state() -> TaskState:
    return TaskState(
        tasks=(
            make_task(id="a", title="Pay rent", type="monthly", due_date="2024-05-01"),
            make_task(
                id="b",
                title="Clean kitchen",
                type="weekly",
                due_date="2024-05-27",
                subtasks=[{"id": "s1", "title": "Dishes", "isCompleted": False}],
            ),
        )
    )


def test_create_appends_task_with_supplied_id(state: TaskState) -> None:
    out = _apply(
        state,
        {
            "kind": "create",
            "payload": {"task": {"id": "c", "title": "Call mom", "type": "onetime", "due_date": "2024-06-02"}},
        },
    )
    assert [t.id for t in out.tasks] == ["a", "b", "c"]
    created = out.get("c")
    assert created.priority is Priority.MEDIUM
    assert created.status is TaskStatus.PENDING
    assert created.due_date == date(2024, 6, 2)
    assert state.tasks == out.tasks[:2]


def test_create_daily_forces_today_and_pending(state: TaskState) -> None:
    out = _apply(
        state,
        {
            "kind": "create",
            "payload": {
                "task": {"id": "d", "title": "Stretch", "type": "daily", "due_date": "2024-07-01", "status": "done"}
            },
        },
    )
    created = out.get("d")
    assert created.due_date == TODAY
    assert created.status is TaskStatus.PENDING


def test_create_without_id_generates_deterministic_id(state: TaskState) -> None:
    raw = {"kind": "create", "payload": {"task": {"title": "Read", "type": "onetime", "due_date": "tomorrow"}}}
    first = _apply(state, raw)
    second = _apply(state, raw)
    assert first.tasks[-1].id == second.tasks[-1].id
    assert first.tasks[-1].id not in {"a", "b"}
    assert first.tasks[-1].due_date == date(2024, 5, 30)


def test_create_with_colliding_id_gets_a_new_one(state: TaskState) -> None:
    out = _apply(
        state,
        {"kind": "create", "payload": {"task": {"id": "a", "title": "Dup", "type": "onetime", "due_date": "2024-06-01"}}},
    )
    ids = [t.id for t in out.tasks]
    assert len(ids) == len(set(ids)) == 3
    assert out.get("a").title == "Pay rent"


@pytest.mark.parametrize(
    "task",
    [
        {"type": "onetime", "due_date": "2024-06-01"},
        {"title": "   ", "type": "onetime", "due_date": "2024-06-01"},
        {"title": "X", "due_date": "2024-06-01"},
        {"title": "X", "type": "yearly", "due_date": "2024-06-01"},
        {"title": "X", "type": "onetime"},
        {"title": "X", "type": "onetime", "due_date": "someday"},
        {"title": "X", "type": "onetime", "due_date": "2024-06-01", "priority": "urgent"},
    ],
)
def test_create_rejects_incomplete_or_invalid_tasks(state: TaskState, task: dict) -> None:
    with pytest.raises(TaskValidationError):
        _apply(state, {"kind": "create", "payload": {"task": task}})


def test_update_replaces_task_in_place(state: TaskState) -> None:
    out = _apply(
        state,
        {
            "kind": "update",
            "payload": {
                "task": {
                    "id": "b",
                    "title": "Deep clean kitchen",
                    "type": "weekly",
                    "due_date": "2024-05-27",
                    "status": "done",
                    "priority": "High",
                }
            },
        },
    )
    assert [t.id for t in out.tasks] == ["a", "b"]
    updated = out.get("b")
    assert updated.title == "Deep clean kitchen"
    assert updated.status is TaskStatus.DONE
    assert updated.priority is Priority.HIGH
    assert updated.subtasks == ()


def test_update_missing_id_raises_not_found(state: TaskState) -> None:
    raw = {"kind": "update", "payload": {"task": {"id": "zzz", "title": "X", "type": "onetime", "due_date": "2024-06-01"}}}
    with pytest.raises(TaskNotFoundError) as info:
        _apply(state, raw)
    assert info.value.task_id == "zzz"


def test_update_without_id_is_invalid(state: TaskState) -> None:
    with pytest.raises(TaskValidationError):
        _apply(state, {"kind": "update", "payload": {"task": {"title": "X", "type": "onetime", "due_date": "2024-06-01"}}})


def test_delete_removes_task(state: TaskState) -> None:
    out = _apply(state, {"kind": "delete", "payload": {"task_id": "a"}})
    assert [t.id for t in out.tasks] == ["b"]


def test_delete_missing_id_returns_identical_state(state: TaskState) -> None:
    assert _apply(state, {"kind": "delete", "payload": {"id": "zzz"}}) is state


def test_query_sets_and_clears_filter(state: TaskState) -> None:
    filtered = _apply(state, {"kind": "query", "payload": {"filters": {"type": "Weekly"}}})
    assert filtered.active_filter == ViewFilter(type=TaskType.WEEKLY)
    assert filtered.tasks is state.tasks

    cleared = _apply(filtered, {"kind": "query", "payload": {"filters": {"type": "", "status": ""}}})
    assert cleared.active_filter is None
    assert _apply(filtered, {"kind": "query"}).active_filter is None


def test_toggle_status_round_trips(state: TaskState) -> None:
    once = _apply(state, {"kind": "toggle_status", "payload": {"task_id": "a"}})
    assert once.get("a").status is TaskStatus.DONE
    twice = _apply(once, {"kind": "toggle_status", "payload": {"task_id": "a"}})
    assert twice.get("a").status is TaskStatus.PENDING


def test_set_due_date_accepts_relative_words(state: TaskState) -> None:
    out = _apply(state, {"kind": "set_due_date", "payload": {"task_id": "a", "due_date": "next week"}})
    assert out.get("a").due_date == date(2024, 6, 5)
    with pytest.raises(TaskValidationError):
        _apply(state, {"kind": "set_due_date", "payload": {"task_id": "a", "due_date": "eventually"}})


def test_set_priority(state: TaskState) -> None:
    out = _apply(state, {"kind": "set_priority", "payload": {"task_id": "a", "priority": "LOW"}})
    assert out.get("a").priority is Priority.LOW


def test_subtasks_add_and_toggle(state: TaskState) -> None:
    added = _apply(state, {"kind": "add_subtask", "payload": {"task_id": "b", "title": "Mop floor"}})
    subtasks = added.get("b").subtasks
    assert [s.title for s in subtasks] == ["Dishes", "Mop floor"]
    assert subtasks[1].id != "s1"

    toggled = _apply(added, {"kind": "toggle_subtask", "payload": {"task_id": "b", "subtask_id": "s1"}})
    assert toggled.get("b").subtasks[0].is_completed is True
    assert toggled.get("b").subtasks[1].is_completed is False


def test_toggle_unknown_subtask_raises_not_found(state: TaskState) -> None:
    with pytest.raises(TaskNotFoundError):
        _apply(state, {"kind": "toggle_subtask", "payload": {"task_id": "b", "subtask_id": "nope"}})


@pytest.mark.parametrize(
    "raw",
    [
        "delete everything",
        {},
        {"payload": {"task_id": "a"}},
        {"kind": "explode"},
        {"kind": "delete", "payload": "a"},
        {"kind": "delete", "payload": {}},
    ],
)
def test_parse_action_rejects_malformed_envelopes(raw) -> None:
    with pytest.raises(TaskValidationError):
        parse_action(raw)


def test_parse_action_accepts_legacy_envelope() -> None:
    action = parse_action({"db_action": "delete", "task_id": "a"})
    assert action == DeleteAction(kind="delete", task_id="a")

    create = parse_action(
        {"db_action": "create", "task": {"title": "Nap", "type": "daily", "due_date": "2024-05-29"}}
    )
    assert isinstance(create, CreateAction)
    assert create.task.type is TaskType.DAILY

    with pytest.raises(TaskValidationError, match="not about tasks"):
        parse_action({"db_action": "query", "error": "not about tasks"})


def test_parse_action_passes_through_parsed_actions() -> None:
    action = QueryAction(kind="query")
    assert parse_action(action) is action
    assert not is_mutation(action)
    assert is_mutation(DeleteAction(kind="delete", task_id="a"))


def test_failed_action_leaves_state_untouched(state: TaskState) -> None:
    snapshot = state.tasks
    with pytest.raises(TaskNotFoundError):
        _apply(state, {"kind": "toggle_status", "payload": {"task_id": "ghost"}})
    assert state.tasks is snapshot
    assert state.get("a").status is TaskStatus.PENDING
