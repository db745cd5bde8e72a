"""Data models for tracequery: all inputs/outputs are Pydantic v2 validated.

StructuredQuery normalizes whatever the model returned at construction time,
so downstream code never sees empty strings or empty tag mappings.
"""

from __future__ import annotations

import enum
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from tracequery.errors import ConfigurationError


# ============================================================
# Model identity
# ============================================================

class ModelIdentity(str, enum.Enum):
    """Closed set of supported backend variants."""
    OPENAI_GPT4 = "openai-gpt4"
    OPENAI_GPT35 = "openai-gpt3.5"
    OLLAMA_FREE = "ollama-free"

    @property
    def is_hosted(self) -> bool:
        return self in (ModelIdentity.OPENAI_GPT4, ModelIdentity.OPENAI_GPT35)

    @property
    def upstream_model(self) -> str:
        """Model name sent on the wire to the hosted backend."""
        return _HOSTED_MODEL_NAMES.get(self, "")


_HOSTED_MODEL_NAMES: dict[ModelIdentity, str] = {
    ModelIdentity.OPENAI_GPT4: "gpt-4",
    ModelIdentity.OPENAI_GPT35: "gpt-3.5-turbo",
}

OPENAI_BASE_URL = "https://api.openai.com/v1"
OLLAMA_DEFAULT_URL = "http://localhost:11434"
OLLAMA_DEFAULT_MODEL = "llama2"
DEFAULT_TIMEOUT_SECONDS = 10.0


class QueryStatus(str, enum.Enum):
    ERROR = "error"
    SUCCESS = "success"
    ALL = "all"


class RequestState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    AWAITING_MODEL = "awaiting_model"
    EXTRACTING = "extracting"
    COMPILING = "compiling"
    DONE = "done"


# Compiled filter-name -> value mapping handed to the search service.
FilterSet = dict[str, str]


# ============================================================
# Client config
# ============================================================

class ClientConfig(BaseModel):
    """Which backend to ask and how to reach it.

    Credential presence is checked by the gateway, not here, so that a
    hosted config without a key can still be built and rejected without
    any network activity.
    """
    model_config = ConfigDict(frozen=True)

    model: ModelIdentity = ModelIdentity.OLLAMA_FREE
    api_key: SecretStr | None = None
    base_url: str | None = None
    local_model: str | None = None

    @field_validator("model", mode="before")
    @classmethod
    def _known_model(cls, value: Any) -> Any:
        if isinstance(value, ModelIdentity):
            return value
        try:
            return ModelIdentity(value)
        except ValueError:
            raise ConfigurationError(f"Unknown model: {value}") from None

    @property
    def has_credential(self) -> bool:
        return self.api_key is not None and bool(self.api_key.get_secret_value().strip())

    @property
    def endpoint(self) -> str:
        """Base URL the selected backend will be called on."""
        if self.model.is_hosted:
            return OPENAI_BASE_URL
        return (self.base_url or OLLAMA_DEFAULT_URL).rstrip("/")


class CompletionResult(BaseModel):
    """Plain-text reply of one successful gateway call."""
    model_config = ConfigDict(frozen=True)

    text: str
    model: ModelIdentity


# ============================================================
# Structured query
# ============================================================

class StructuredQuery(BaseModel):
    """Normalized intent recovered from the model's reply.

    Accepts the camelCase keys the model is prompted to emit
    (``minDuration``, ``originalQuestion``) as well as the field names.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service: str | None = None
    operation: str | None = None
    min_duration: str | None = Field(default=None, alias="minDuration")
    max_duration: str | None = Field(default=None, alias="maxDuration")
    tags: dict[str, str] | None = None
    status: QueryStatus = QueryStatus.ALL
    original_question: str = Field(alias="originalQuestion")

    @field_validator("service", "operation", "min_duration", "max_duration", mode="before")
    @classmethod
    def _non_empty_string(cls, value: Any) -> str | None:
        if not isinstance(value, str) or not value.strip():
            return None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _non_empty_mapping(cls, value: Any) -> dict[str, str] | None:
        if not isinstance(value, dict) or not value:
            return None
        return {
            str(key): item if isinstance(item, str) else json.dumps(item)
            for key, item in value.items()
        }

    @field_validator("status", mode="before")
    @classmethod
    def _soft_status(cls, value: Any) -> QueryStatus:
        if isinstance(value, QueryStatus):
            return value
        if isinstance(value, str):
            try:
                return QueryStatus(value.strip().lower())
            except ValueError:
                pass
        return QueryStatus.ALL


# ============================================================
# History and per-request outcome
# ============================================================

class HistoryEntry(BaseModel):
    question: str
    timestamp: int = 0  # epoch milliseconds


class QueryOutcome(BaseModel):
    """Terminal (or current) state of the orchestrator's latest request."""
    state: RequestState = RequestState.IDLE
    question: str = ""
    error_kind: str | None = None
    error_message: str | None = None
    query: StructuredQuery | None = None
    filters: FilterSet | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == RequestState.DONE and self.error_kind is None


class AskResult(BaseModel):
    """Everything a successful ``ask`` produced."""
    query: StructuredQuery
    filters: FilterSet = Field(default_factory=dict)
    completion: CompletionResult
    search_request: dict[str, Any] | None = None
