"""Hosted adapter: OpenAI chat-completions protocol with a bearer credential."""

from __future__ import annotations

import logging

from tracequery.backends.base import BackendAdapter, CancelToken
from tracequery.errors import ProtocolError
from tracequery.models import OPENAI_BASE_URL

logger = logging.getLogger("tracequery.backends.openai")

DEFAULT_MAX_TOKENS = 500


class OpenAIAdapter(BackendAdapter):
    """Usage:
        adapter = OpenAIAdapter(api_key="sk-...", model="gpt-3.5-turbo")
        text = await adapter.complete("Parse this question ...")
    """

    backend_name = "OpenAI"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: str = OPENAI_BASE_URL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        **kwargs,
    ):
        super().__init__(base_url=base_url, model=model, **kwargs)
        self.api_key = api_key
        self.max_tokens = max_tokens

    async def complete(self, prompt: str, token: CancelToken | None = None) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        response = await self._post(
            "/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            token=token,
        )

        if not response.is_success:
            upstream = self._error_message(response)
            message = upstream or self._status_line(response)
            raise ProtocolError(
                f"OpenAI API error: {message}",
                status_code=response.status_code,
                upstream_message=upstream,
            )

        data = self._json_body(response)
        choices = data.get("choices") or []
        if not choices:
            # An empty choice list is a valid-but-useless reply, not a fault.
            logger.info(f"OpenAI returned no choices for model {self.model}")
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    @staticmethod
    def _error_message(response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return None
