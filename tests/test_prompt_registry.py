"""Tests for PromptRegistry: YAML prompt loading and Jinja2 rendering."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from tracequery.errors import ConfigurationError
from tracequery.prompt_registry import (
    PARSE_QUESTION,
    PromptNotFoundError,
    PromptRegistry,
    PromptRenderError,
    build_question_prompt,
)


@pytest.fixture
def sample_prompts_yaml(tmp_path: Path) -> Path:
    data = {
        "prompts": {
            PARSE_QUESTION: {"template": 'Question: "{{ question }}"', "version": 3},
            "short": "Hello {{ name }}",
        }
    }
    path = tmp_path / "prompts.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def registry(sample_prompts_yaml: Path) -> PromptRegistry:
    return PromptRegistry(prompts_path=sample_prompts_yaml)


class TestDefaultPrompts:
    def test_bundled_prompts_are_valid(self):
        assert PromptRegistry().validate() == []

    def test_question_prompt_embeds_question_and_schema(self):
        prompt = build_question_prompt("Find errors in payment processing")
        assert prompt.endswith('Now parse this question: "Find errors in payment processing"')
        assert "Jaeger distributed tracing query assistant" in prompt
        assert '"minDuration"' in prompt
        assert '"status": "error|success|all"' in prompt

    def test_question_is_not_template_expanded(self):
        prompt = build_question_prompt("what about {{ secrets }}?")
        assert "{{ secrets }}" in prompt


class TestPromptRegistry:
    def test_loads_entries(self, registry: PromptRegistry):
        assert registry.list_prompts() == ["parse_question", "short"]
        assert registry.get_entry(PARSE_QUESTION).version == 3
        assert registry.get_entry("short").version == 1

    def test_render(self, registry: PromptRegistry):
        assert registry.get("short", name="traces") == "Hello traces"

    def test_missing_prompt(self, registry: PromptRegistry):
        with pytest.raises(PromptNotFoundError, match="nope"):
            registry.get("nope")

    def test_missing_variable(self, registry: PromptRegistry):
        with pytest.raises(PromptRenderError):
            registry.get("short")

    def test_errors_are_configuration_errors(self):
        assert issubclass(PromptNotFoundError, ConfigurationError)
        assert issubclass(PromptRenderError, ConfigurationError)

    def test_register_overrides(self, registry: PromptRegistry):
        registry.register(PARSE_QUESTION, "Q={{ question }}", version=4)
        assert build_question_prompt("x", registry) == "Q=x"

    def test_missing_file_gives_empty_registry(self, tmp_path: Path):
        registry = PromptRegistry(prompts_path=tmp_path / "absent.yaml")
        assert registry.list_prompts() == []
        assert any("Missing required prompts" in e for e in registry.validate())

    def test_validate_reports_bad_syntax(self, registry: PromptRegistry):
        registry.register("broken", "{% if %}")
        assert any("broken" in e for e in registry.validate())
