"""End-to-end tests for QueryOrchestrator with mocked backends."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from tracequery.backends import OllamaAdapter
from tracequery.errors import (
    BackendUnreachable,
    ConfigurationError,
    ModelNotInstalled,
    ParseError,
    ProtocolError,
    RequestInProgressError,
    RequestTimeoutError,
)
from tracequery.gateway import ModelGateway
from tracequery.models import ClientConfig, QueryStatus, RequestState
from tracequery.orchestrator import QueryOrchestrator
from tracequery.storage import MemoryStore, QueryHistory

SLOW_USER = (
    '{"service": "user", "operation": "", "minDuration": "500ms", "maxDuration": "", '
    '"tags": {}, "status": "all", "reasoning": "User service, slow means > 500ms"}'
)
PAYMENT_ERRORS = (
    '{"service": "payment", "operation": "", "minDuration": "", "maxDuration": "", '
    '"tags": {"http.status_code": "5xx"}, "status": "error", "reasoning": "Payment failures"}'
)


def _openai_reply(content: str):
    return lambda request: httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def _ollama_reply(content: str):
    return lambda request: httpx.Response(200, json={"response": content})


def _orchestrator(handler=None, captured: list | None = None, **kwargs) -> QueryOrchestrator:
    def _handle(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return handler(request)

    transport = httpx.MockTransport(_handle) if handler else None
    kwargs.setdefault("history", QueryHistory(MemoryStore()))
    return QueryOrchestrator(gateway=ModelGateway(transport=transport), **kwargs)


class TestAskSuccess:
    @pytest.mark.asyncio
    async def test_slow_user_requests_via_hosted_model(self):
        captured: list[httpx.Request] = []
        orch = _orchestrator(_openai_reply(SLOW_USER), captured)
        question = "Show me slow requests to the user service"

        filters = await orch.ask(question, ClientConfig(model="openai-gpt3.5", api_key="sk-test"))

        assert filters == {"service": "user", "minDuration": "500ms"}
        assert len(captured) == 1
        body = json.loads(captured[0].content)
        assert body["model"] == "gpt-3.5-turbo"
        assert question in body["messages"][0]["content"]
        assert [e.question for e in orch.history.entries()] == [question]
        assert orch.state == RequestState.DONE
        assert orch.last_outcome.succeeded

    @pytest.mark.asyncio
    async def test_payment_errors_via_local_model_in_fence(self):
        reply = f"Here is the query:\n```json\n{PAYMENT_ERRORS}\n```"
        orch = _orchestrator(_ollama_reply(reply))

        result = await orch.run("Find errors in payment processing", ClientConfig(model="ollama-free"))

        assert result.filters == {
            "service": "payment",
            "tags": 'http.status_code="5xx" otel.status_code="ERROR"',
        }
        assert result.query.status == QueryStatus.ERROR
        assert result.query.original_question == "Find errors in payment processing"
        assert result.search_request["service"] == "payment"
        assert result.search_request["operation"] == "-"
        assert result.search_request["limit"] == "20"

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self):
        orch = _orchestrator(_ollama_reply('{"service": "user"}'))
        config = ClientConfig(model="ollama-free")
        await orch.ask("first", config)
        await orch.ask("second", config)
        assert [e.question for e in orch.history.entries()] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_sync_search_service_receives_request(self):
        search = MagicMock()
        orch = _orchestrator(_ollama_reply('{"service": "user"}'), search_service=search, lookback="2h", limit=50)

        await orch.ask("user traces", ClientConfig(model="ollama-free"))

        search.search_traces.assert_called_once()
        request = search.search_traces.call_args.args[0]
        assert request["service"] == "user"
        assert request["lookback"] == "2h"
        assert request["limit"] == "50"

    @pytest.mark.asyncio
    async def test_async_search_service_is_awaited(self):
        search = MagicMock()
        search.search_traces = AsyncMock()
        orch = _orchestrator(_ollama_reply('{"service": "user"}'), search_service=search)

        await orch.ask("user traces", ClientConfig(model="ollama-free"))

        search.search_traces.assert_awaited_once()


class TestAskFailures:
    @pytest.mark.asyncio
    async def test_search_failure_is_classified_and_not_recorded(self):
        search = MagicMock()
        search.search_traces.side_effect = RuntimeError("search down")
        orch = _orchestrator(_ollama_reply('{"service": "user"}'), search_service=search)

        with pytest.raises(ProtocolError, match="Trace search failed: search down"):
            await orch.ask("user traces", ClientConfig(model="ollama-free"))

        outcome = orch.last_outcome
        assert outcome.error_kind == "ProtocolError"
        assert not outcome.succeeded
        assert outcome.filters is None
        assert orch.history.entries() == []
        assert not orch.busy

    @pytest.mark.asyncio
    async def test_async_search_failure_is_classified(self):
        search = MagicMock()
        search.search_traces = AsyncMock(side_effect=ConnectionError("refused"))
        orch = _orchestrator(_ollama_reply('{"service": "user"}'), search_service=search)

        with pytest.raises(ProtocolError):
            await orch.ask("user traces", ClientConfig(model="ollama-free"))

        assert orch.last_outcome.error_kind == "ProtocolError"
        assert orch.history.entries() == []

    def test_invalid_lookback_rejected_before_any_request(self):
        with pytest.raises(ConfigurationError, match="Invalid lookback"):
            QueryOrchestrator(lookback="soon")

    @pytest.mark.asyncio
    async def test_empty_question_makes_no_network_call(self):
        captured: list[httpx.Request] = []
        orch = _orchestrator(_ollama_reply("{}"), captured)

        with pytest.raises(ConfigurationError, match="Please enter a question"):
            await orch.ask("   ", ClientConfig(model="ollama-free"))

        assert captured == []
        assert orch.history.entries() == []
        assert orch.last_outcome.error_kind == "ConfigurationError"

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_network_call(self):
        captured: list[httpx.Request] = []
        orch = _orchestrator(_openai_reply(SLOW_USER), captured)

        with pytest.raises(ConfigurationError, match="OpenAI API key is required"):
            await orch.ask("slow requests", ClientConfig(model="openai-gpt4"))

        assert captured == []
        assert orch.history.entries() == []
        assert orch.state == RequestState.DONE

    @pytest.mark.asyncio
    async def test_prose_reply_is_parse_error(self):
        orch = _orchestrator(_ollama_reply("Sorry, I can't help with that."))

        with pytest.raises(ParseError):
            await orch.ask("slow requests", ClientConfig(model="ollama-free"))

        outcome = orch.last_outcome
        assert outcome.error_kind == "ParseError"
        assert outcome.filters is None
        assert orch.history.entries() == []

    @pytest.mark.asyncio
    async def test_model_not_installed_is_reported(self):
        orch = _orchestrator(lambda r: httpx.Response(404, json={"error": "model 'llama2' not found"}))

        with pytest.raises(ModelNotInstalled):
            await orch.ask("slow requests", ClientConfig(model="ollama-free"))

        assert orch.last_outcome.error_kind == "ModelNotInstalled"

    @pytest.mark.asyncio
    async def test_unreachable_backend_is_reported(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        orch = _orchestrator(refuse)

        with pytest.raises(BackendUnreachable):
            await orch.ask("slow requests", ClientConfig(model="ollama-free"))

        assert orch.last_outcome.error_kind == "BackendUnreachable"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_wrapped(self):
        orch = _orchestrator()
        with patch.object(OllamaAdapter, "complete", new=AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(ProtocolError, match="boom"):
                await orch.ask("slow requests", ClientConfig(model="ollama-free"))
        assert orch.last_outcome.error_kind == "ProtocolError"

    @pytest.mark.asyncio
    async def test_late_reply_after_timeout_is_not_applied(self):
        release = asyncio.Event()

        async def stubborn(self, prompt, token=None):
            while not release.is_set():
                try:
                    await release.wait()
                except asyncio.CancelledError:
                    continue
            return '{"service": "late"}'

        orch = QueryOrchestrator(gateway=ModelGateway(timeout=0.05), history=QueryHistory(MemoryStore()))
        with patch.object(OllamaAdapter, "complete", new=stubborn):
            with pytest.raises(RequestTimeoutError):
                await orch.ask("slow requests", ClientConfig(model="ollama-free"))
            release.set()
            await asyncio.sleep(0.01)

        outcome = orch.last_outcome
        assert outcome.error_kind == "TimeoutError"
        assert outcome.query is None
        assert outcome.filters is None
        assert orch.history.entries() == []
        assert not orch.busy


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_second_request_is_rejected_while_busy(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def held(self, prompt, token=None):
            started.set()
            await release.wait()
            return '{"service": "user"}'

        orch = _orchestrator()
        config = ClientConfig(model="ollama-free")
        with patch.object(OllamaAdapter, "complete", new=held):
            first = asyncio.ensure_future(orch.ask("first", config))
            await started.wait()
            assert orch.busy

            with pytest.raises(RequestInProgressError):
                await orch.ask("second", config)

            release.set()
            filters = await first

        assert filters == {"service": "user"}
        assert [e.question for e in orch.history.entries()] == ["first"]
        assert not orch.busy

    @pytest.mark.asyncio
    async def test_orchestrator_is_reusable_after_failure(self):
        orch = _orchestrator(_ollama_reply('{"service": "user"}'))
        with pytest.raises(ConfigurationError):
            await orch.ask("", ClientConfig(model="ollama-free"))
        assert await orch.ask("user traces", ClientConfig(model="ollama-free")) == {"service": "user"}
