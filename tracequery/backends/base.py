"""BackendAdapter: one LLM wire protocol behind ``complete(prompt) -> text``."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from tracequery.errors import BackendUnreachable, ProtocolError

logger = logging.getLogger("tracequery.backends")

DEFAULT_TEMPERATURE = 0.7


class CancelToken:
    """Cooperative cancellation flag shared by the gateway and one adapter call.

    Once cancelled, the adapter must not return a result; the gateway has
    already reported a timeout for this call.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError(self.reason)


class BackendAdapter(ABC):
    """Base for the hosted and local adapters.

    Each call opens its own ``httpx.AsyncClient``; ``transport`` lets tests
    plug in ``httpx.MockTransport``. No client-side timeout is set here, the
    gateway owns the deadline.
    """

    backend_name = "backend"

    def __init__(
        self,
        base_url: str,
        model: str,
        temperature: float = DEFAULT_TEMPERATURE,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.transport = transport

    @abstractmethod
    async def complete(self, prompt: str, token: CancelToken | None = None) -> str:
        """Send ``prompt`` and return the model's plain-text completion."""
        raise NotImplementedError

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        token: CancelToken | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        try:
            async with httpx.AsyncClient(timeout=None, transport=self.transport) as client:
                response = await client.post(url, json=payload, headers=request_headers)
        except httpx.TransportError as e:
            logger.warning(f"{self.backend_name} unreachable at {self.base_url}: {e}")
            raise BackendUnreachable(self.base_url, backend=self.backend_name, detail=str(e)) from e

        if token is not None:
            token.raise_if_cancelled()
        logger.debug(f"{self.backend_name} POST {path} -> {response.status_code}")
        return response

    def _json_body(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(
                f"{self.backend_name} returned a non-JSON body",
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise ProtocolError(
                f"{self.backend_name} returned an unexpected body",
                status_code=response.status_code,
            )
        return data

    @staticmethod
    def _status_line(response: httpx.Response) -> str:
        return response.reason_phrase or f"HTTP {response.status_code}"
