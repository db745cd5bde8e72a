"""Environment configuration: .env loading plus TRACEQUERY_* variables.

Usage:
    from tracequery.env_config import get_env_config

    env = get_env_config()
    config = env.client_config()        # ClientConfig for the orchestrator
    print(env.timeout, env.lookback)    # 10.0 "1h"
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from tracequery.errors import ConfigurationError
from tracequery.models import (
    DEFAULT_TIMEOUT_SECONDS,
    OLLAMA_DEFAULT_MODEL,
    OLLAMA_DEFAULT_URL,
    ClientConfig,
    ModelIdentity,
)
from tracequery.storage import SettingsStore

logger = logging.getLogger("tracequery.env_config")


@dataclass
class EnvConfig:
    """Resolved environment configuration."""
    model: str = ModelIdentity.OLLAMA_FREE.value
    openai_api_key: str | None = None
    ollama_url: str | None = None
    ollama_model: str = OLLAMA_DEFAULT_MODEL

    timeout: float = DEFAULT_TIMEOUT_SECONDS
    lookback: str = "1h"
    limit: int = 20
    store_path: str = ".tracequery/store.json"

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"

    def client_config(
        self,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        local_model: str | None = None,
        settings: SettingsStore | None = None,
    ) -> ClientConfig:
        """Build a ClientConfig: explicit args > env vars > saved settings > defaults."""
        key = api_key or self.openai_api_key or (settings.api_key if settings else None)
        url = base_url or self.ollama_url or (settings.ollama_url if settings else None) or OLLAMA_DEFAULT_URL
        return ClientConfig(
            model=model or self.model,
            api_key=key,
            base_url=url,
            local_model=local_model or self.ollama_model,
        )


def load_dotenv_if_available(path: str | Path | None = None) -> None:
    """Load .env file if it exists. Existing environment variables win."""
    candidates = [path] if path else [".env", Path.home() / ".tracequery" / ".env"]

    for candidate in candidates:
        if candidate and Path(candidate).is_file():
            logger.debug(f"Loading .env from {candidate}")
            with open(candidate) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, _, value = line.partition("=")
                    key = key.strip()
                    value = value.strip().strip("'\"")
                    if key and value and key not in os.environ:
                        os.environ[key] = value
            return


def get_env_config(dotenv_path: str | Path | None = None) -> EnvConfig:
    """Read all config from environment variables.

    Priority: CLI args > env vars > .env file > defaults
    """
    load_dotenv_if_available(dotenv_path)

    return EnvConfig(
        model=os.getenv("TRACEQUERY_MODEL", ModelIdentity.OLLAMA_FREE.value),
        openai_api_key=os.getenv("OPENAI_API_KEY", None) or None,
        ollama_url=os.getenv("OLLAMA_API_BASE", None) or None,
        ollama_model=os.getenv("TRACEQUERY_OLLAMA_MODEL", OLLAMA_DEFAULT_MODEL),
        timeout=_env_number("TRACEQUERY_TIMEOUT", DEFAULT_TIMEOUT_SECONDS, float),
        lookback=os.getenv("TRACEQUERY_LOOKBACK", "1h"),
        limit=_env_number("TRACEQUERY_LIMIT", 20, int),
        store_path=os.getenv("TRACEQUERY_STORE", ".tracequery/store.json"),
        host=os.getenv("TRACEQUERY_HOST", "0.0.0.0"),
        port=_env_number("TRACEQUERY_PORT", 8080, int),
        log_level=os.getenv("TRACEQUERY_LOG_LEVEL", "info"),
    )


def _env_number(name: str, default, cast):
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
