"""ModelGateway: one ``query(config, prompt)`` contract over both backends.

Config preconditions are checked before any adapter is built, so a hosted
model without a credential never reaches the network. Every call runs under
a deadline; on expiry the adapter's cancel token is tripped and the late
reply, if any, is dropped.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from nfo.decorators import log_call

from tracequery.backends import BackendAdapter, CancelToken, OllamaAdapter, OpenAIAdapter
from tracequery.errors import ConfigurationError, RequestTimeoutError
from tracequery.models import (
    DEFAULT_TIMEOUT_SECONDS,
    ClientConfig,
    CompletionResult,
    ModelIdentity,
    OLLAMA_DEFAULT_MODEL,
)

logger = logging.getLogger("tracequery.gateway")


class ModelGateway:
    """Usage:
        gateway = ModelGateway(timeout=10)
        result = await gateway.query(ClientConfig(model="ollama-free"), prompt)
        print(result.text)
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.transport = transport

    def validate(self, config: ClientConfig) -> None:
        """Local precondition checks; raises ConfigurationError, never touches the network."""
        if not isinstance(config.model, ModelIdentity):
            raise ConfigurationError(f"Unknown model: {config.model}")
        if config.model.is_hosted and not config.has_credential:
            raise ConfigurationError("OpenAI API key is required")

    def adapter_for(self, config: ClientConfig) -> BackendAdapter:
        """Build the adapter for ``config.model``."""
        if config.model in (ModelIdentity.OPENAI_GPT4, ModelIdentity.OPENAI_GPT35):
            return OpenAIAdapter(
                api_key=config.api_key.get_secret_value(),
                model=config.model.upstream_model,
                base_url=config.endpoint,
                transport=self.transport,
            )
        if config.model == ModelIdentity.OLLAMA_FREE:
            return OllamaAdapter(
                base_url=config.endpoint,
                model=config.local_model or OLLAMA_DEFAULT_MODEL,
                transport=self.transport,
            )
        raise ConfigurationError(f"Unknown model: {config.model}")

    @log_call
    async def query(self, config: ClientConfig, prompt: str) -> CompletionResult:
        """Send ``prompt`` to the backend selected by ``config``.

        Raises:
            ConfigurationError: missing credential or unknown model (no network call made).
            RequestTimeoutError: no reply within ``self.timeout`` seconds.
            BackendUnreachable, ProtocolError, ModelNotInstalled: from the adapter.
        """
        self.validate(config)
        adapter = self.adapter_for(config)
        token = CancelToken()

        logger.debug(f"Querying {adapter.backend_name} ({adapter.model}) at {adapter.base_url}")
        task = asyncio.ensure_future(adapter.complete(prompt, token=token))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            token.cancel("caller cancelled")
            task.cancel()
            raise

        if task not in done:
            # Abandon the call: whatever it produces from now on is dropped.
            token.cancel(f"timed out after {self.timeout:g}s")
            task.cancel()
            task.add_done_callback(_discard_late_result)
            logger.warning(f"{adapter.backend_name} did not answer within {self.timeout:g}s")
            raise RequestTimeoutError(self.timeout)

        return CompletionResult(text=task.result(), model=config.model)


def _discard_late_result(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Discarded late failure from timed-out call: {error!r}")
    else:
        logger.debug("Discarded late reply from timed-out call")
