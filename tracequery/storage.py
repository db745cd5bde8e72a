"""Key-value persistence for settings and the bounded question history.

The store is a plain string -> string mapping (what a browser's localStorage
offers). ``JsonFileStore`` keeps it as one JSON object on disk.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from threading import RLock
from typing import Protocol, runtime_checkable

from tracequery.models import OLLAMA_DEFAULT_URL, HistoryEntry

logger = logging.getLogger("tracequery.storage")

OPENAI_KEY = "jaeger-ai-openai-key"
OLLAMA_URL_KEY = "jaeger-ai-ollama-url"
HISTORY_KEY = "jaeger-ai-history"

HISTORY_LIMIT = 10

_DEFAULT_STORE_PATH = ".tracequery/store.json"


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """In-process store; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store persisted as a single JSON object, rewritten on every change.

    Usage:
        store = JsonFileStore(".tracequery/store.json")
        store.set("jaeger-ai-ollama-url", "http://gpu-box:11434")
    """

    def __init__(self, path: str | Path = _DEFAULT_STORE_PATH):
        self.path = Path(path)
        self._data: dict[str, str] = {}
        self._lock = RLock()
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load store {self.path}: {e}")
            return
        if isinstance(raw, dict):
            self._data = {str(k): str(v) for k, v in raw.items()}

    def get(self, key: str) -> str | None:
        with self._lock:
            self._ensure_loaded()
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._ensure_loaded()
            self._data[key] = value
            self._persist()

    def delete(self, key: str) -> None:
        with self._lock:
            self._ensure_loaded()
            if self._data.pop(key, None) is not None:
                self._persist()

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2))


class QueryHistory:
    """Most recent questions, newest first, capped at ``limit`` entries."""

    def __init__(self, store: KeyValueStore, limit: int = HISTORY_LIMIT, key: str = HISTORY_KEY):
        self.store = store
        self.limit = limit
        self.key = key
        self._lock = RLock()

    def entries(self) -> list[HistoryEntry]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring corrupt history under '{self.key}': {e}")
            return []
        if not isinstance(items, list):
            return []
        entries = []
        for item in items:
            if isinstance(item, dict) and isinstance(item.get("question"), str):
                entries.append(HistoryEntry(question=item["question"], timestamp=int(item.get("timestamp") or 0)))
        return entries

    def append(self, question: str, timestamp: int | None = None) -> HistoryEntry:
        """Insert ``question`` at the front and drop anything past the cap."""
        entry = HistoryEntry(question=question, timestamp=timestamp if timestamp is not None else _now_ms())
        with self._lock:
            updated = [entry, *self.entries()][: self.limit]
            self.store.set(self.key, json.dumps([e.model_dump() for e in updated]))
        return entry

    def clear(self) -> None:
        with self._lock:
            self.store.delete(self.key)


class SettingsStore:
    """Persisted backend settings: OpenAI key and Ollama URL."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @property
    def api_key(self) -> str | None:
        return self.store.get(OPENAI_KEY) or None

    @property
    def ollama_url(self) -> str:
        return self.store.get(OLLAMA_URL_KEY) or OLLAMA_DEFAULT_URL

    def save(self, api_key: str | None = None, ollama_url: str | None = None) -> None:
        if api_key is not None:
            self.store.set(OPENAI_KEY, api_key)
        if ollama_url is not None:
            self.store.set(OLLAMA_URL_KEY, ollama_url)
        logger.info("Settings saved")


def _now_ms() -> int:
    return int(time.time() * 1000)
