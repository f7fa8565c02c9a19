# tests/conftest.py

from __future__ import annotations

from datetime import date

import pytest

from controller import TaskController

from .fakes import FakeInterpreter, FakeStore, ManualScheduler, make_task

# Wednesday
TODAY = date(2024, 5, 29)


@pytest.fixture()
def today() -> date:
    return TODAY


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore(
        [
            make_task(id="w1", title="Water plants", type="weekly", due_date="2024-05-27"),
            make_task(id="o1", title="Book dentist", type="onetime", due_date="2024-06-03", priority="high"),
        ]
    )


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def interpreter() -> FakeInterpreter:
    return FakeInterpreter()


@pytest.fixture()
def controller(store: FakeStore, scheduler: ManualScheduler, interpreter: FakeInterpreter) -> TaskController:
    """
    Controller wired with deterministic fakes: fixed clock, manual debounce timer,
    in-memory store and a canned interpreter.
    """
    return TaskController(
        store,
        interpreter,
        scheduler=scheduler,
        debounce_seconds=2.0,
        clock=lambda: TODAY,
    )
