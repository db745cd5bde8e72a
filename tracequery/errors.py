"""Error taxonomy: every failed request ends in exactly one of these kinds."""

from __future__ import annotations

EXCERPT_LIMIT = 200


def excerpt(text: str, limit: int = EXCERPT_LIMIT) -> str:
    """Bounded, single-line preview of raw model output for error messages."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."


class TraceQueryError(Exception):
    """Base class for all tracequery failures."""

    kind = "TraceQueryError"


class ConfigurationError(TraceQueryError):
    """Missing credential, empty question or unknown model identity."""

    kind = "ConfigurationError"


class RequestInProgressError(ConfigurationError):
    """Raised when a request is issued while another one is still outstanding."""

    def __init__(self, message: str = "A query is already in progress"):
        super().__init__(message)


class BackendUnreachable(TraceQueryError):
    """Transport-level connection failure."""

    kind = "BackendUnreachable"

    def __init__(self, endpoint: str, backend: str = "backend", detail: str = ""):
        self.endpoint = endpoint
        self.backend = backend
        self.detail = detail
        msg = f"Unable to connect to {backend} at {endpoint}. Make sure {backend} is running and reachable."
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class ProtocolError(TraceQueryError):
    """Non-success status from a reachable backend."""

    kind = "ProtocolError"

    def __init__(self, message: str, status_code: int | None = None, upstream_message: str | None = None):
        self.status_code = status_code
        self.upstream_message = upstream_message
        super().__init__(message)


class ModelNotInstalled(ProtocolError):
    """The local backend does not have the requested model pulled."""

    kind = "ModelNotInstalled"

    def __init__(self, model: str, status_code: int | None = None, upstream_message: str | None = None):
        self.model = model
        self.install_hint = f"ollama pull {model}"
        super().__init__(
            f"Ollama model '{model}' not found. Install it with: {self.install_hint}",
            status_code=status_code,
            upstream_message=upstream_message,
        )


class RequestTimeoutError(TraceQueryError):
    """The backend did not answer within the configured deadline."""

    kind = "TimeoutError"

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"LLM request timed out after {timeout:g}s")


class ParseError(TraceQueryError):
    """The model's reply held no usable JSON object."""

    kind = "ParseError"

    def __init__(self, reason: str, raw_text: str = ""):
        self.reason = reason
        self.excerpt = excerpt(raw_text)
        msg = f"Failed to parse LLM response as JSON: {reason}"
        if self.excerpt:
            msg += f" (response: {self.excerpt!r})"
        super().__init__(msg)
