"""PromptRegistry: loads prompts from YAML and renders them with Jinja2.

The prompt that turns a trace question into the JSON query shape lives in
``tracequery/configs/prompts.yaml``; a different file can be passed in.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from tracequery.errors import ConfigurationError

logger = logging.getLogger("tracequery.prompt_registry")

_DEFAULT_PROMPTS_PATH = Path(__file__).parent / "configs" / "prompts.yaml"

PARSE_QUESTION = "parse_question"
REQUIRED_PROMPTS = {PARSE_QUESTION}


class PromptNotFoundError(ConfigurationError):
    """Raised when a prompt name is not found in the registry."""


class PromptRenderError(ConfigurationError):
    """Raised when a prompt template fails to render."""


class PromptEntry:
    """Single prompt entry: template text plus a version number."""

    __slots__ = ("name", "template", "version")

    def __init__(self, name: str, template: str, version: int = 1):
        self.name = name
        self.template = template
        self.version = version

    def __repr__(self) -> str:
        return f"PromptEntry(name={self.name!r}, version={self.version})"


class PromptRegistry:
    """Usage:
        registry = PromptRegistry()
        prompt = registry.get("parse_question", question="Find errors in payment processing")
    """

    def __init__(self, prompts_path: Path | str | None = None):
        self._path = Path(prompts_path) if prompts_path else _DEFAULT_PROMPTS_PATH
        self._entries: dict[str, PromptEntry] = {}
        self._jinja_env = Environment(loader=BaseLoader(), undefined=StrictUndefined, keep_trailing_newline=False)
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._load()

    def _load(self) -> None:
        """Load prompts from the YAML file."""
        if not self._path.exists():
            logger.warning(f"Prompts file not found: {self._path}, using empty registry")
            self._loaded = True
            return

        with open(self._path) as f:
            raw = yaml.safe_load(f) or {}

        for name, data in (raw.get("prompts") or {}).items():
            if isinstance(data, dict):
                self._entries[name] = PromptEntry(
                    name=name,
                    template=data.get("template", ""),
                    version=int(data.get("version", 1)),
                )
            elif isinstance(data, str):
                self._entries[name] = PromptEntry(name=name, template=data)

        self._loaded = True
        logger.debug(f"Loaded {len(self._entries)} prompts from {self._path}")

    def get(self, prompt_name: str, **variables: Any) -> str:
        """Render a prompt by name.

        Raises:
            PromptNotFoundError: If the prompt name doesn't exist.
            PromptRenderError: If a variable is missing or the template is invalid.
        """
        return self._render(self.get_entry(prompt_name).template, variables)

    def get_entry(self, name: str) -> PromptEntry:
        self._ensure_loaded()
        entry = self._entries.get(name)
        if entry is None:
            raise PromptNotFoundError(f"Prompt '{name}' not found in registry. Available: {self.list_prompts()}")
        return entry

    def list_prompts(self) -> list[str]:
        self._ensure_loaded()
        return sorted(self._entries.keys())

    def validate(self) -> list[str]:
        """Check required prompts exist and parse. Returns a list of error messages."""
        self._ensure_loaded()
        errors: list[str] = []

        missing = REQUIRED_PROMPTS - set(self._entries)
        if missing:
            errors.append(f"Missing required prompts: {sorted(missing)}")

        for name, entry in self._entries.items():
            if not entry.template.strip():
                errors.append(f"Prompt '{name}' has empty template")
            try:
                self._jinja_env.parse(entry.template)
            except TemplateSyntaxError as e:
                errors.append(f"Prompt '{name}' has invalid Jinja2 syntax: {e}")

        return errors

    def register(self, name: str, template: str, version: int = 1) -> None:
        """Register a prompt programmatically."""
        self._ensure_loaded()
        self._entries[name] = PromptEntry(name=name, template=template, version=version)

    def _render(self, template_str: str, variables: dict[str, Any]) -> str:
        try:
            return self._jinja_env.from_string(template_str).render(**variables)
        except UndefinedError as e:
            raise PromptRenderError(f"Missing template variable: {e}") from e
        except TemplateSyntaxError as e:
            raise PromptRenderError(f"Invalid template syntax: {e}") from e


def build_question_prompt(question: str, registry: PromptRegistry | None = None) -> str:
    """Full prompt asking the model to turn ``question`` into the JSON query shape."""
    return (registry or PromptRegistry()).get(PARSE_QUESTION, question=question)
