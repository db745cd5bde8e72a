"""Local adapter: Ollama /api/generate protocol, no credential."""

from __future__ import annotations

import json
import logging

from tracequery.backends.base import BackendAdapter, CancelToken
from tracequery.errors import ModelNotInstalled, ProtocolError
from tracequery.models import OLLAMA_DEFAULT_MODEL, OLLAMA_DEFAULT_URL

logger = logging.getLogger("tracequery.backends.ollama")


class OllamaAdapter(BackendAdapter):
    """Usage:
        adapter = OllamaAdapter(base_url="http://localhost:11434", model="llama2")
        text = await adapter.complete("Parse this question ...")
    """

    backend_name = "Ollama"

    def __init__(
        self,
        base_url: str = OLLAMA_DEFAULT_URL,
        model: str = OLLAMA_DEFAULT_MODEL,
        **kwargs,
    ):
        super().__init__(base_url=base_url or OLLAMA_DEFAULT_URL, model=model or OLLAMA_DEFAULT_MODEL, **kwargs)

    async def complete(self, prompt: str, token: CancelToken | None = None) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "temperature": self.temperature,
        }
        response = await self._post("/api/generate", payload, token=token)

        if not response.is_success:
            upstream = self._error_message(response.text)
            message = upstream or self._status_line(response)
            if _is_model_absent(message):
                logger.warning(f"Ollama model '{self.model}' is not installed")
                raise ModelNotInstalled(self.model, status_code=response.status_code, upstream_message=upstream)
            raise ProtocolError(
                f"Ollama API error: {message}",
                status_code=response.status_code,
                upstream_message=upstream,
            )

        data = self._json_body(response)
        return data.get("response") or ""

    @staticmethod
    def _error_message(body: str) -> str | None:
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, TypeError):
            return None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return None


def _is_model_absent(message: str) -> bool:
    lowered = message.lower()
    return "model" in lowered and "not found" in lowered
