"""HTTP API for taskmind: task views, structured actions, natural-language commands, sync control."""
from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from fastapi import APIRouter, Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config import AppConfig, load as load_config
from controller import TaskController
from errors import InterpreterError, StoreConnectionError, TaskNotFoundError, TaskValidationError
from models import Task, TaskStatus, TaskType, ViewFilter, task_color
from ollama_client import OllamaClient
from ordering import visible_tasks

logger = logging.getLogger("taskmind.api")

router = APIRouter(prefix="/api")


# --- API schemas ---


class CommandBody(BaseModel):
    text: str


class DueDateBody(BaseModel):
    due_date: str


class PriorityBody(BaseModel):
    priority: str


class SubtaskBody(BaseModel):
    title: str


def _controller(request: Request) -> TaskController:
    return request.app.state.controller


def _task_view(task: Task, today: date) -> dict[str, Any]:
    """Wire record plus values derived for display."""
    out = task.to_wire()
    out["color"] = task_color(task, today)
    out["overdue"] = task.is_overdue(today)
    return out


def _tasks_response(controller: TaskController, tasks: list[Task]) -> dict[str, Any]:
    today = controller.today()
    return {
        "today": today.isoformat(),
        "hydrated": controller.hydrated,
        "tasks": [_task_view(t, today) for t in tasks],
    }


# --- API routes ---


@router.get("/tasks")
async def get_tasks(request: Request, type: TaskType | None = None, status: TaskStatus | None = None) -> dict[str, Any]:
    """Ordered task list. Query params override the active filter set by the last query action."""
    c = _controller(request)
    if type is None and status is None:
        tasks = c.visible_tasks()
    else:
        tasks = visible_tasks(c.state.tasks, ViewFilter(type=type, status=status), c.today())
    return _tasks_response(c, tasks)


@router.get("/tasks/due-today")
async def get_due_today(request: Request) -> dict[str, Any]:
    c = _controller(request)
    return _tasks_response(c, c.due_today())


@router.post("/actions")
async def post_action(request: Request, body: dict[str, Any] = Body(...)) -> dict[str, Any]:
    """Apply a structured action envelope ({"kind": ..., "payload": {...}})."""
    c = _controller(request)
    c.dispatch(body)
    return _tasks_response(c, c.visible_tasks())


@router.post("/command")
async def post_command(request: Request, body: CommandBody) -> dict[str, Any]:
    """Free-text command routed through the interpreter."""
    c = _controller(request)
    result = await c.handle_command(body.text)
    out = _tasks_response(c, c.visible_tasks())
    out.update({"ok": result.ok, "message": result.message, "kind": result.kind})
    return out


@router.post("/tasks/{task_id}/toggle")
async def toggle_task(request: Request, task_id: str) -> dict[str, Any]:
    c = _controller(request)
    c.dispatch({"kind": "toggle_status", "payload": {"task_id": task_id}})
    return _task_view(c.state.get(task_id), c.today())


@router.put("/tasks/{task_id}/due-date")
async def set_due_date(request: Request, task_id: str, body: DueDateBody) -> dict[str, Any]:
    c = _controller(request)
    c.dispatch({"kind": "set_due_date", "payload": {"task_id": task_id, "due_date": body.due_date}})
    return _task_view(c.state.get(task_id), c.today())


@router.put("/tasks/{task_id}/priority")
async def set_priority(request: Request, task_id: str, body: PriorityBody) -> dict[str, Any]:
    c = _controller(request)
    c.dispatch({"kind": "set_priority", "payload": {"task_id": task_id, "priority": body.priority}})
    return _task_view(c.state.get(task_id), c.today())


@router.post("/tasks/{task_id}/subtasks")
async def add_subtask(request: Request, task_id: str, body: SubtaskBody) -> dict[str, Any]:
    c = _controller(request)
    c.dispatch({"kind": "add_subtask", "payload": {"task_id": task_id, "title": body.title}})
    return _task_view(c.state.get(task_id), c.today())


@router.post("/tasks/{task_id}/subtasks/{subtask_id}/toggle")
async def toggle_subtask(request: Request, task_id: str, subtask_id: str) -> dict[str, Any]:
    c = _controller(request)
    c.dispatch({"kind": "toggle_subtask", "payload": {"task_id": task_id, "subtask_id": subtask_id}})
    return _task_view(c.state.get(task_id), c.today())


@router.delete("/tasks/{task_id}")
async def delete_task(request: Request, task_id: str) -> dict[str, str]:
    c = _controller(request)
    c.dispatch({"kind": "delete", "payload": {"task_id": task_id}})
    return {"status": "deleted", "id": task_id}


@router.post("/sync/retry")
async def retry_sync(request: Request) -> dict[str, Any]:
    """Manual retry of the initial load after a connection failure."""
    c = _controller(request)
    await c.retry_load()
    return c.status()


@router.post("/visibility")
async def regained_visibility(request: Request) -> dict[str, Any]:
    """Client came back to the foreground: roll over tasks that went stale meanwhile."""
    c = _controller(request)
    return {"rolled_over": c.refresh()}


@router.get("/status")
async def get_status(request: Request) -> dict[str, Any]:
    return _controller(request).status()


@router.get("/config", response_model=AppConfig)
async def get_config(request: Request) -> AppConfig:
    return request.app.state.config


@router.put("/config")
async def put_config(request: Request, body: AppConfig) -> dict[str, str]:
    """Persist config. Store, interpreter and timezone changes apply on next start."""
    body.save()
    request.app.state.config = body
    return {"status": "saved"}


@router.get("/models")
async def list_models(request: Request) -> list[dict[str, str]]:
    c = request.app.state.config
    try:
        models = await OllamaClient(c.ollama_base_url).list_models()
    except InterpreterError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return [{"name": m.name} for m in models]


# --- app ---


def create_app(
    config: AppConfig | None = None,
    controller_factory: Callable[[AppConfig], TaskController] | None = None,
) -> FastAPI:
    """Build the app. The controller is created in the lifespan and closed on shutdown."""
    factory = controller_factory or TaskController.from_config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = app.state.config = config or load_config()
        controller = app.state.controller = factory(cfg)
        if not await controller.start():
            logger.warning("Remote store unavailable; running unhydrated until POST /api/sync/retry succeeds")
        try:
            yield
        finally:
            await controller.close()

    app = FastAPI(title="TaskMind", version="1.0", lifespan=lifespan)
    app.include_router(router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """When config.debug is True, log API request method and path."""
        cfg = getattr(request.app.state, "config", None)
        debug = bool(cfg and cfg.debug)
        if debug:
            qs = request.url.query
            logger.warning("[API] %s %s%s", request.method, request.url.path, "?" + qs if qs else "")
        response = await call_next(request)
        if debug:
            logger.warning("[API] %s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(TaskValidationError)
    async def _validation_error(request: Request, exc: TaskValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(TaskNotFoundError)
    async def _not_found(request: Request, exc: TaskNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc), "id": exc.task_id})

    @app.exception_handler(StoreConnectionError)
    async def _store_unavailable(request: Request, exc: StoreConnectionError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc), "retryable": exc.retryable})

    return app


app = create_app()
