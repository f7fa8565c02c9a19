"""Configuration load/save for taskmind."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

CONFIG_PATH = Path(os.environ.get("TASKMIND_CONFIG") or Path(__file__).resolve().parent / "config.json")

# Environment variables that override sheet_url, first match wins
_SHEET_URL_ENV = ("TASKMIND_SHEET_URL", "GOOGLE_SHEET_URL")


class AppConfig(BaseModel):
    """Persisted application configuration."""

    sheet_url: str = Field(default="", description="Deployed spreadsheet web app URL (remote task store)")
    ollama_url: str = Field(default="http://localhost", description="Ollama base URL (no path)")
    ollama_port: int = Field(default=11434, ge=1, le=65535)
    model: str = Field(default="llama3.2", description="Ollama model name")
    user_timezone: str = Field(default="UTC", description="IANA timezone that defines 'today' for due dates and rollover")
    web_ui_port: int = Field(default=8081, ge=1, le=65535, description="Port for the HTTP API")
    debug: bool = Field(default=False, description="Log every API request and response status")
    sync_debounce_seconds: float = Field(default=2.0, gt=0, description="Quiet period before local changes are written to the remote store")
    # Retry policy for remote store calls
    store_timeout_seconds: float = Field(default=30.0, gt=0)
    store_max_attempts: int = Field(default=3, ge=1, le=10)
    store_backoff_seconds: float = Field(default=0.5, ge=0, description="First retry delay; doubles per attempt, capped at 30s")
    interpreter_timeout_seconds: float = Field(default=120.0, gt=0)

    @property
    def ollama_base_url(self) -> str:
        base = self.ollama_url.rstrip("/")
        if ":" in base.split("//")[-1]:
            return base
        return f"{base}:{self.ollama_port}"

    def to_save_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def load(cls, path: Path | None = None) -> "AppConfig":
        path = path or CONFIG_PATH
        raw: dict[str, Any] = {}
        if path.exists():
            raw = json.loads(path.read_text() or "{}")
        for name in _SHEET_URL_ENV:
            value = os.environ.get(name, "").strip()
            if value:
                raw["sheet_url"] = value
                break
        return cls.model_validate(raw)

    def save(self, path: Path | None = None) -> None:
        (path or CONFIG_PATH).write_text(json.dumps(self.to_save_dict(), indent=2))


def load() -> AppConfig:
    """Load config from disk. Convenience alias for AppConfig.load()."""
    return AppConfig.load()
