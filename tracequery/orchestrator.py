"""QueryOrchestrator: question in, compiled trace-search filters out.

Per request:
    Idle → Validating → AwaitingModel → Extracting → Compiling → Done

Only one request runs at a time per orchestrator; a second ``ask`` while one
is outstanding is rejected, not queued. The search hand-off is part of the
request: history is appended only once it has succeeded.
"""

from __future__ import annotations

import inspect
import logging

from tracequery.compiler import compile_filters
from tracequery.errors import ConfigurationError, ProtocolError, RequestInProgressError, TraceQueryError
from tracequery.extractor import extract_structured_query
from tracequery.gateway import ModelGateway
from tracequery.models import AskResult, ClientConfig, FilterSet, QueryOutcome, RequestState
from tracequery.prompt_registry import PromptRegistry, build_question_prompt
from tracequery.search import DEFAULT_LIMIT, DEFAULT_LOOKBACK, SearchService, build_search_request, parse_lookback
from tracequery.storage import QueryHistory

logger = logging.getLogger("tracequery.orchestrator")


class QueryOrchestrator:
    """Sequences prompt → gateway → extraction → compilation for one question.

    Usage:
        orchestrator = QueryOrchestrator(history=QueryHistory(JsonFileStore()))
        filters = await orchestrator.ask(
            "Find errors in payment processing",
            ClientConfig(model="ollama-free"),
        )
    """

    def __init__(
        self,
        gateway: ModelGateway | None = None,
        history: QueryHistory | None = None,
        prompts: PromptRegistry | None = None,
        search_service: SearchService | None = None,
        lookback: str = DEFAULT_LOOKBACK,
        limit: int = DEFAULT_LIMIT,
    ):
        self.gateway = gateway or ModelGateway()
        self.history = history
        self.prompts = prompts or PromptRegistry()
        self.search_service = search_service
        parse_lookback(lookback)
        self.lookback = lookback
        self.limit = limit
        self._busy = False
        self._outcome = QueryOutcome()

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def state(self) -> RequestState:
        return self._outcome.state

    @property
    def last_outcome(self) -> QueryOutcome:
        return self._outcome.model_copy()

    async def ask(self, question: str, config: ClientConfig) -> FilterSet:
        """Translate ``question`` into a FilterSet, or raise one TraceQueryError kind."""
        result = await self.run(question, config)
        return result.filters

    async def run(self, question: str, config: ClientConfig) -> AskResult:
        """Like ``ask`` but returns the parsed query, raw completion and search request too."""
        if self._busy:
            raise RequestInProgressError()
        self._busy = True
        try:
            return await self._run(question, config)
        finally:
            self._busy = False

    async def _run(self, question: str, config: ClientConfig) -> AskResult:
        self._outcome = QueryOutcome(state=RequestState.VALIDATING, question=question or "")
        try:
            if not isinstance(question, str) or not question.strip():
                raise ConfigurationError("Please enter a question")
            self.gateway.validate(config)
            prompt = build_question_prompt(question, self.prompts)

            self._transition(RequestState.AWAITING_MODEL)
            completion = await self.gateway.query(config, prompt)

            self._transition(RequestState.EXTRACTING)
            query = extract_structured_query(completion.text, question)
            self._outcome.query = query

            self._transition(RequestState.COMPILING)
            filters = compile_filters(query)
            search_request = build_search_request(filters, lookback=self.lookback, limit=self.limit)

            await self._hand_off(search_request)
            if self.history is not None:
                self.history.append(question)
        except TraceQueryError as e:
            self._fail(e)
            raise
        except Exception as e:
            wrapped = ProtocolError(f"Unexpected backend failure: {e}")
            self._fail(wrapped)
            raise wrapped from e

        self._outcome.filters = filters
        self._transition(RequestState.DONE)
        logger.info(f"Compiled filters for {question!r}: {filters}")
        return AskResult(query=query, filters=filters, completion=completion, search_request=search_request)

    async def _hand_off(self, search_request: dict) -> None:
        if self.search_service is None:
            return
        try:
            handed_off = self.search_service.search_traces(search_request)
            if inspect.isawaitable(handed_off):
                await handed_off
        except TraceQueryError:
            raise
        except Exception as e:
            raise ProtocolError(f"Trace search failed: {e}") from e

    def _transition(self, state: RequestState) -> None:
        logger.debug(f"{self._outcome.state.value} -> {state.value}")
        self._outcome.state = state

    def _fail(self, error: TraceQueryError) -> None:
        logger.warning(f"Query failed in {self._outcome.state.value} ({error.kind}): {error}")
        self._outcome.state = RequestState.DONE
        self._outcome.error_kind = error.kind
        self._outcome.error_message = str(error)
