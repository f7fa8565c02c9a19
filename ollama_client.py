"""Ollama API client: list models and generate completions."""
from __future__ import annotations

import httpx
from pydantic import BaseModel

from errors import InterpreterError


class OllamaModel(BaseModel):
    name: str
    modified_at: str = ""


class OllamaClient:
    """Async client for Ollama API."""

    def __init__(self, base_url: str, timeout: float = 120.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)

    async def list_models(self) -> list[OllamaModel]:
        """Return list of available model names from Ollama."""
        try:
            if self._client is not None:
                r = await self._client.get(f"{self.base_url}/api/tags", timeout=10.0)
            else:
                async with httpx.AsyncClient() as client:
                    r = await client.get(f"{self.base_url}/api/tags", timeout=10.0)
            r.raise_for_status()
            data = r.json()
            models = data.get("models") or []
            return [OllamaModel(name=m.get("name", "").split(":")[0], modified_at=m.get("modified_at", "")) for m in models]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise InterpreterError(f"Failed to list Ollama models: {e}") from e

    async def generate(self, model: str, prompt: str, system: str | None = None, json_mode: bool = False) -> str:
        """Send prompt to Ollama and return full response text (non-streaming)."""
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
        }
        if system:
            payload["system"] = system
        if json_mode:
            payload["format"] = "json"
        try:
            r = await self._post("/api/generate", payload)
            r.raise_for_status()
            data = r.json()
            return data.get("response", "")
        except (httpx.HTTPError, ValueError) as e:
            raise InterpreterError(f"Ollama generate failed: {e}") from e
