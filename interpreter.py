"""
Natural-language interpreter: turns free text into one action envelope using an Ollama
model. The model never touches state; its output goes through reducer.parse_action like
any other untrusted envelope.
"""
from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from datetime import date
from typing import Any, Protocol

from errors import InterpreterError
from models import Task, TaskType
from ollama_client import OllamaClient

logger = logging.getLogger("interpreter")

SYSTEM_PROMPT = """You manage a personal task list. Today is {current_date}.
{view_context}

Existing tasks (JSON, one per line):
{tasks}

Turn the user's request into exactly one action. Respond ONLY with a single JSON object of the form
{{"kind": "<kind>", "payload": {{...}}}} and no other text. Never explain the JSON to the user.

Kinds:
- create: {{"task": {{"title": "...", "type": "daily|weekly|monthly|onetime", "due_date": "YYYY-MM-DD", "priority": "low|medium|high", "subtasks": [{{"title": "..."}}]}}}}
  Only title and type are required. Daily tasks always start today. If the user is looking at one type of task and does not say otherwise, use that type. due_date may be a phrase such as "tomorrow", "friday" or "in 3 days".
- update: {{"task": {{...the complete task, including its id and all unchanged fields...}}}}
- delete: {{"task_id": "..."}}
- toggle_status: {{"task_id": "..."}} to mark a task done or pending again.
- set_due_date: {{"task_id": "...", "due_date": "YYYY-MM-DD"}}
- set_priority: {{"task_id": "...", "priority": "low|medium|high"}}
- add_subtask: {{"task_id": "...", "title": "..."}}
- toggle_subtask: {{"task_id": "...", "subtask_id": "..."}}
- query: {{"filters": {{"type": "daily|weekly|monthly|onetime", "status": "pending|done"}}}} to change what is shown; {{"filters": null}} shows everything.

Refer to existing tasks only by the ids listed above. Do NOT invent ids for update, delete or toggles.
If the request is not about tasks, respond with {{"error": "<short reason>"}}.
"""


class CommandInterpreter(Protocol):
    async def interpret(
        self,
        text: str,
        tasks: Sequence[Task],
        active_type: TaskType | None = None,
        *,
        today: date,
    ) -> dict[str, Any] | str: ...


def _extract_json_object(text: str) -> dict | None:
    """Find first balanced {...} in text and parse as JSON."""
    text = text.strip()
    if "```" in text:
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text).strip()
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start : i + 1])
                except json.JSONDecodeError:
                    return None
    return None


def _format_tasks(tasks: Sequence[Task]) -> str:
    if not tasks:
        return "No tasks currently."
    return "\n".join(json.dumps(t.to_wire(), ensure_ascii=False) for t in tasks)


def _view_context(active_type: TaskType | None) -> str:
    if active_type is None:
        return "User is viewing all tasks."
    return f'User is currently looking at "{active_type.value}" tasks.'


def build_system_prompt(tasks: Sequence[Task], active_type: TaskType | None, today: date) -> str:
    return SYSTEM_PROMPT.format(
        current_date=today.isoformat(),
        view_context=_view_context(active_type),
        tasks=_format_tasks(tasks),
    )


class OllamaInterpreter:
    """CommandInterpreter backed by a local Ollama model."""

    def __init__(self, client: OllamaClient, model: str):
        self.client = client
        self.model = model

    async def interpret(
        self,
        text: str,
        tasks: Sequence[Task],
        active_type: TaskType | None = None,
        *,
        today: date,
    ) -> dict[str, Any] | str:
        """Return an action envelope, or a plain error string to show the user."""
        message = (text or "").strip()
        if not message:
            return "Say what you want to do with your tasks."
        system = build_system_prompt(tasks, active_type, today)
        logger.info(
            "LLM request model=%s system_len=%d user_msg=%s",
            self.model, len(system), repr(message[:300] + ("..." if len(message) > 300 else "")),
        )
        try:
            response_text = await self.client.generate(self.model, message, system=system, json_mode=True)
        except InterpreterError as e:
            logger.exception("LLM request failed")
            return f"Error calling the model: {e}"
        logger.info(
            "LLM response len=%d response=%s",
            len(response_text),
            repr(response_text[:1000] + ("..." if len(response_text) > 1000 else "")),
        )
        envelope = _extract_json_object(response_text)
        if envelope is None:
            return "I didn't understand. Try: \"Add a daily workout task\" or \"Show pending weekly tasks\"."
        if envelope.get("error") and "kind" not in envelope and "db_action" not in envelope:
            return str(envelope["error"])
        return envelope
