"""Backend adapters, one per supported LLM wire protocol."""

from tracequery.backends.base import BackendAdapter, CancelToken
from tracequery.backends.ollama import OllamaAdapter
from tracequery.backends.openai import OpenAIAdapter

__all__ = [
    "BackendAdapter",
    "CancelToken",
    "OllamaAdapter",
    "OpenAIAdapter",
]
