"""
Remote task store backed by a spreadsheet web app (Google Apps Script).

Read:  GET  <url>?t=<ms>              -> {"status": "success", "data": [task, ...]}
                                         {"status": "error", "message": "..."}
Write: POST <url> {"action": "sync", "tasks": [...]}  (full overwrite of the sheet)

Writes are sent as text/plain so the endpoint never sees a CORS preflight; Apps Script
web apps cannot answer OPTIONS. Both calls follow the script's redirect.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError as PydanticValidationError

from date_utils import to_date_only
from errors import StoreConnectionError, StoreParseError
from models import Subtask, Task

logger = logging.getLogger("sheet_store")

T = TypeVar("T")

# Backoff ceiling between attempts, seconds
_MAX_BACKOFF = 30.0


def _cell_text(value: Any) -> Any:
    """Sheets hand back numeric-looking cells as numbers; turn them back into text."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


def _parse_subtasks(raw: Any) -> list[dict[str, Any]]:
    """Subtasks arrive as a list or as the JSON string stored in the sheet cell."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreParseError(f"subtasks is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise StoreParseError(f"subtasks must be a list, got {type(raw).__name__}")
    out = []
    for item in raw:
        if isinstance(item, dict):
            item = {**item, "id": _cell_text(item.get("id")), "title": _cell_text(item.get("title"))}
        try:
            out.append(Subtask.model_validate(item).model_dump(by_alias=True))
        except PydanticValidationError as e:
            raise StoreParseError(f"invalid subtask {item!r}") from e
    return out


def parse_task_record(record: Any, tz_name: str = "UTC") -> Task | None:
    """
    Sanitize one remote record into a Task. A malformed subtasks field degrades to an
    empty list; a record that is unusable otherwise is skipped (None) with a warning.
    """
    if not isinstance(record, dict):
        logger.warning("Skipping non-object task record: %r", record)
        return None
    data = dict(record)
    data["id"] = _cell_text(data.get("id"))
    data["title"] = _cell_text(data.get("title"))
    try:
        data["subtasks"] = _parse_subtasks(data.get("subtasks"))
    except StoreParseError as e:
        logger.warning("Task %s: %s; using an empty subtask list", data.get("id"), e)
        data["subtasks"] = []
    try:
        data["due_date"] = to_date_only(data.get("due_date"), tz_name)
    except ValueError:
        logger.warning("Skipping task %s: unusable due_date %r", data.get("id"), data.get("due_date"))
        return None
    try:
        return Task.model_validate(data)
    except PydanticValidationError as e:
        logger.warning("Skipping malformed task record %s: %s", data.get("id"), e.errors())
        return None


class SheetStore:
    """Async client for the spreadsheet web app."""

    def __init__(
        self,
        url: str,
        *,
        tz_name: str = "UTC",
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = (url or "").strip()
        self.tz_name = tz_name
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_seconds = max(0.0, float(backoff_seconds))
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _require_url(self) -> str:
        if not self.url:
            raise StoreConnectionError("sheet_url is not configured")
        return self.url

    async def _with_retry(self, op_name: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run call, retrying connection failures with exponential backoff. Parse errors are not retried."""
        attempt = 1
        while True:
            try:
                return await call()
            except StoreConnectionError as e:
                if attempt >= self.max_attempts:
                    raise
                delay = min(_MAX_BACKOFF, self.backoff_seconds * (2 ** (attempt - 1)))
                logger.warning("%s failed (attempt %d/%d): %s; retrying in %.1fs", op_name, attempt, self.max_attempts, e, delay)
                await asyncio.sleep(delay)
                attempt += 1

    async def load_tasks(self) -> list[Task]:
        """Fetch every task. Raises StoreConnectionError or StoreParseError; never returns partial junk."""
        url = self._require_url()
        return await self._with_retry("load", lambda: self._load_once(url))

    async def _load_once(self, url: str) -> list[Task]:
        try:
            # Cache buster: script responses are cached aggressively otherwise
            r = await self._client.get(url, params={"t": int(time.time() * 1000)})
        except httpx.HTTPError as e:
            raise StoreConnectionError(f"Failed to reach remote store: {e}") from e
        if r.status_code >= 400:
            raise StoreConnectionError(f"Remote store returned HTTP {r.status_code}")
        try:
            body = r.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Invalid JSON from remote store: %r", r.text[:500])
            raise StoreParseError("Invalid response from remote store. Check the script deployment.") from e
        if not isinstance(body, dict):
            raise StoreParseError("Remote store response is not an object")
        status = body.get("status")
        if status == "error":
            raise StoreConnectionError(body.get("message") or "Unknown error from remote store")
        if status != "success" or not isinstance(body.get("data"), list):
            raise StoreParseError(f"Unexpected remote store response (status={status!r})")
        tasks: list[Task] = []
        seen: set[str] = set()
        for record in body["data"]:
            task = parse_task_record(record, self.tz_name)
            if task is None:
                continue
            if task.id in seen:
                logger.warning("Skipping duplicate task id %s from remote store", task.id)
                continue
            seen.add(task.id)
            tasks.append(task)
        logger.info("Loaded %d task(s) from remote store", len(tasks))
        return tasks

    async def save_tasks(self, tasks: Sequence[Task]) -> None:
        """Overwrite the remote mirror with tasks."""
        url = self._require_url()
        payload = json.dumps({"action": "sync", "tasks": [t.to_wire() for t in tasks]})
        await self._with_retry("save", lambda: self._save_once(url, payload))
        logger.info("Saved %d task(s) to remote store", len(tasks))

    async def _save_once(self, url: str, payload: str) -> None:
        try:
            r = await self._client.post(
                url,
                content=payload.encode("utf-8"),
                headers={"Content-Type": "text/plain;charset=utf-8"},
            )
        except httpx.HTTPError as e:
            raise StoreConnectionError(f"Failed to reach remote store: {e}") from e
        if r.status_code >= 400:
            raise StoreConnectionError(f"Remote store returned HTTP {r.status_code}")
        try:
            ack = r.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Non-JSON acknowledgement from remote store; treating as success")
            return
        if isinstance(ack, dict) and ack.get("status") == "error":
            raise StoreConnectionError(ack.get("message") or "Remote store rejected the sync")
