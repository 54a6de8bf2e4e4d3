"""Tests for LLMClient provider abstraction."""

import logging
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from langoustine.common.llm_client import LLMClient, LLMResponseError
from langoustine.intake.classifier import RuleGenerationResponse


def _openai_completion(parsed=None, refusal=None):
    message = SimpleNamespace(parsed=parsed, refusal=refusal, content=None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _anthropic_message(text):
    return SimpleNamespace(content=[SimpleNamespace(text=text)])


class TestLLMClientInit:
    def test_missing_openai_key_logs_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="langoustine.common.llm_client"):
            client = LLMClient(provider="openai")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_missing_anthropic_key_logs_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="langoustine.common.llm_client"):
            client = LLMClient(provider="anthropic")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="langoustine.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz", openai_api_key="sk-test")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_openai_client_built_with_key(self):
        client = LLMClient(provider="openai", model="gpt-5-mini-2025-08-07", openai_api_key="sk-test")
        assert client.is_available

    def test_provider_name_is_case_insensitive(self):
        client = LLMClient(provider="OpenAI", openai_api_key="sk-test")
        assert client.provider == "openai"


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        client = LLMClient(provider="openai")
        with pytest.raises(RuntimeError, match="not available"):
            client.generate("test")

    def test_structured_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            client.generate_structured("test", RuleGenerationResponse)

    def test_openai_generate_passes_system_message(self):
        client = LLMClient(provider="openai", model="m", openai_api_key="sk-test")
        client._client = Mock()
        client._client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="  hello  "))]
        )

        assert client.generate("hi", system="be brief") == "hello"
        messages = client._client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "be brief"}
        assert messages[1] == {"role": "user", "content": "hi"}

    def test_anthropic_generate_uses_system_kwarg(self):
        client = LLMClient(provider="anthropic", model="claude", anthropic_api_key="sk-ant")
        client._client = Mock()
        client._client.messages.create.return_value = _anthropic_message("answer")

        assert client.generate("hi", system="sys") == "answer"
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]


class TestGenerateStructured:
    def test_openai_returns_parsed_model(self):
        client = LLMClient(provider="openai", model="m", openai_api_key="sk-test")
        client._client = Mock()
        parsed = RuleGenerationResponse(rule=None, reason="one-off")
        client._client.chat.completions.parse.return_value = _openai_completion(parsed=parsed)

        result = client.generate_structured("prompt", RuleGenerationResponse, system="sys")

        assert result is parsed
        kwargs = client._client.chat.completions.parse.call_args.kwargs
        assert kwargs["response_format"] is RuleGenerationResponse

    def test_openai_refusal_is_response_error(self):
        client = LLMClient(provider="openai", model="m", openai_api_key="sk-test")
        client._client = Mock()
        client._client.chat.completions.parse.return_value = _openai_completion(refusal="I can't help with that")

        with pytest.raises(LLMResponseError, match="I can't help with that"):
            client.generate_structured("prompt", RuleGenerationResponse)

    def test_openai_transport_error_propagates_unchanged(self):
        client = LLMClient(provider="openai", model="m", openai_api_key="sk-test")
        client._client = Mock()
        client._client.chat.completions.parse.side_effect = ConnectionError("reset")

        with pytest.raises(ConnectionError):
            client.generate_structured("prompt", RuleGenerationResponse)

    def test_anthropic_json_is_validated(self):
        client = LLMClient(provider="anthropic", model="claude", anthropic_api_key="sk-ant")
        client._client = Mock()
        client._client.messages.create.return_value = _anthropic_message(
            '```json\n{"rule": {"rule_text": "Use PascalCase for component names.", '
            '"category": "naming"}, "reason": null}\n```'
        )

        result = client.generate_structured("prompt", RuleGenerationResponse)
        assert result.rule.rule_text == "Use PascalCase for component names."
        assert result.rule.category.value == "naming"

    def test_anthropic_invalid_category_is_response_error(self):
        client = LLMClient(provider="anthropic", model="claude", anthropic_api_key="sk-ant")
        client._client = Mock()
        client._client.messages.create.return_value = _anthropic_message(
            '{"rule": {"rule_text": "Do things", "category": "vibes"}, "reason": null}'
        )

        with pytest.raises(LLMResponseError):
            client.generate_structured("prompt", RuleGenerationResponse)

    def test_anthropic_non_json_is_response_error(self):
        client = LLMClient(provider="anthropic", model="claude", anthropic_api_key="sk-ant")
        client._client = Mock()
        client._client.messages.create.return_value = _anthropic_message("Sure! That sounds good.")

        with pytest.raises(LLMResponseError, match="No JSON object"):
            client.generate_structured("prompt", RuleGenerationResponse)
