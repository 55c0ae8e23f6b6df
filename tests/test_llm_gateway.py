"""
Tests for the language-model gateway: mock mode, provider calls and
error wrapping. No network access; the provider client is faked.
"""
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from app.core.config import Settings
from app.core.errors import UpstreamCallError
from app.services.llm_gateway import (
    CONTENT_ANALYSIS_MARKER,
    DEFAULT_MOCK_FALLBACK,
    MOCK_CALL_HISTORY,
    LLMGateway,
    build_gateway,
)


class FakeCompletions:
    def __init__(self, content="hello", error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))],
            usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3, total_tokens=15),
        )


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestMockMode:
    def test_marker_selects_canned_response(self):
        gateway = LLMGateway(mock=True)
        response = gateway.call_model([{"role": "user", "content": CONTENT_ANALYSIS_MARKER}])
        assert "Reflective Journal Session" in response.content
        assert response.token_usage.total_tokens == 150

    def test_fallback_for_unmatched_message(self):
        gateway = LLMGateway(mock=True)
        assert gateway.call_model([{"role": "user", "content": "I had a day."}]).content == DEFAULT_MOCK_FALLBACK

    def test_calls_are_recorded(self):
        gateway = LLMGateway(mock=True, mock_responses=[("ping", "pong")])
        assert gateway.call_model([{"role": "user", "content": "ping?"}]).content == "pong"
        assert list(gateway.calls) == [[{"role": "user", "content": "ping?"}]]

    def test_call_history_is_bounded(self):
        gateway = LLMGateway(mock=True)
        for i in range(MOCK_CALL_HISTORY + 10):
            gateway.call_model([{"role": "user", "content": f"message {i}"}])
        assert len(gateway.calls) == MOCK_CALL_HISTORY
        assert gateway.calls[-1] == [{"role": "user", "content": f"message {MOCK_CALL_HISTORY + 9}"}]

    def test_client_required_outside_mock_mode(self):
        with pytest.raises(ValueError):
            LLMGateway()


class TestProviderCalls:
    def test_success_passes_parameters(self):
        completions = FakeCompletions(content="Tell me more.")
        gateway = LLMGateway(client=_client(completions), model="gpt-test", temperature=0.5)

        response = gateway.call_model([{"role": "user", "content": "hi"}], max_tokens=100)
        assert response.content == "Tell me more."
        assert response.token_usage.total_tokens == 15
        assert completions.kwargs["model"] == "gpt-test"
        assert completions.kwargs["temperature"] == 0.5
        assert completions.kwargs["max_tokens"] == 100

    def test_explicit_temperature_wins(self):
        completions = FakeCompletions()
        gateway = LLMGateway(client=_client(completions))
        gateway.call_model([{"role": "user", "content": "hi"}], temperature=0.0)
        assert completions.kwargs["temperature"] == 0.0

    def test_provider_error_is_wrapped(self):
        gateway = LLMGateway(client=_client(FakeCompletions(error=OpenAIError("rate limited"))))
        with pytest.raises(UpstreamCallError) as exc_info:
            gateway.call_model([{"role": "user", "content": "hi"}])
        assert exc_info.value.http_status == 502
        assert "rate limited" in exc_info.value.message


class TestBuildGateway:
    def test_mock_mode_from_settings(self):
        gateway = build_gateway(Settings(LLM_MOCK_MODE=True))
        assert gateway.mock is True

    def test_no_key_outside_production_falls_back_to_mock(self):
        gateway = build_gateway(Settings(LLM_MOCK_MODE=False, OPENAI_API_KEY="", APP_ENV="development"))
        assert gateway.mock is True

    def test_real_client_with_key(self):
        gateway = build_gateway(
            Settings(LLM_MOCK_MODE=False, OPENAI_API_KEY="sk-test", APP_ENV="production", LLM_MODEL="gpt-test")
        )
        assert gateway.mock is False
        assert gateway.client is not None
        assert gateway.model == "gpt-test"
