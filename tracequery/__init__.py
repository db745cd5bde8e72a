"""tracequery: natural-language questions to distributed-trace search filters.

Usage:
    from tracequery import ClientConfig, QueryOrchestrator

    orchestrator = QueryOrchestrator()
    filters = await orchestrator.ask(
        "Find errors in payment processing",
        ClientConfig(model="ollama-free"),
    )
    # {"service": "payment", "tags": 'http.status_code="5xx" otel.status_code="ERROR"'}
"""

__version__ = "0.1.0"

from tracequery.backends import BackendAdapter, CancelToken, OllamaAdapter, OpenAIAdapter
from tracequery.compiler import compile_filters
from tracequery.errors import (
    BackendUnreachable,
    ConfigurationError,
    ModelNotInstalled,
    ParseError,
    ProtocolError,
    RequestInProgressError,
    RequestTimeoutError,
    TraceQueryError,
)
from tracequery.extractor import extract_structured_query
from tracequery.gateway import ModelGateway
from tracequery.models import (
    AskResult,
    ClientConfig,
    CompletionResult,
    FilterSet,
    HistoryEntry,
    ModelIdentity,
    QueryOutcome,
    QueryStatus,
    RequestState,
    StructuredQuery,
)
from tracequery.orchestrator import QueryOrchestrator
from tracequery.prompt_registry import PromptRegistry
from tracequery.search import SearchService, build_search_request
from tracequery.storage import JsonFileStore, KeyValueStore, MemoryStore, QueryHistory, SettingsStore

# Logging
from tracequery.logging_setup import setup_logging, get_logger

__all__ = [
    # Orchestration
    "QueryOrchestrator",
    "ModelGateway",
    "PromptRegistry",
    "extract_structured_query",
    "compile_filters",
    "build_search_request",
    "SearchService",
    # Backends
    "BackendAdapter",
    "CancelToken",
    "OllamaAdapter",
    "OpenAIAdapter",
    # Models
    "AskResult",
    "ClientConfig",
    "CompletionResult",
    "FilterSet",
    "HistoryEntry",
    "ModelIdentity",
    "QueryOutcome",
    "QueryStatus",
    "RequestState",
    "StructuredQuery",
    # Errors
    "TraceQueryError",
    "ConfigurationError",
    "RequestInProgressError",
    "BackendUnreachable",
    "ProtocolError",
    "ModelNotInstalled",
    "RequestTimeoutError",
    "ParseError",
    # Storage
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "QueryHistory",
    "SettingsStore",
    # Logging
    "setup_logging",
    "get_logger",
]
