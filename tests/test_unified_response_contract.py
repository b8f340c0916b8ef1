"""
Tests for the UnifiedResponse contract.

Every client must return UnifiedResponse, report failures as NormalizedError
instead of raising, and honour json_mode for the extraction/analysis prompts.
"""

from unittest.mock import Mock, patch

import pytest

from api.base_client import BaseAIClient
from api.deepseek_client import DeepSeekClient
from api.factory import create_ai_client
from api.google_gemini_client import GeminiClient
from api.openai_client import OpenAIClient
from config.config import Config
from models.search_models import AIConfig
from models.unified_response import NormalizedError, TokenUsage, UnifiedResponse


def _chat_response(text="{}"):
    mock_response = Mock()
    mock_response.choices = [Mock(message=Mock(content=text), finish_reason="stop")]
    mock_response.usage = Mock(prompt_tokens=10, completion_tokens=20, total_tokens=30)
    return mock_response


class TestUnifiedResponse:
    def test_error_response_flags(self):
        error = NormalizedError(code="timeout", message="Request timed out", provider="test", retryable=True)
        response = UnifiedResponse(
            request_id="r",
            text="",
            provider="test",
            model="m",
            latency_ms=5000,
            token_usage=TokenUsage(),
            finish_reason="error",
            error=error,
        )

        assert response.is_error
        assert not response.is_success
        assert response.token_usage.total_tokens == 0

    def test_token_usage_auto_total(self):
        assert TokenUsage(prompt_tokens=50, completion_tokens=100).total_tokens == 150

    def test_unknown_error_code_becomes_unknown(self):
        assert NormalizedError(code="weird", message="x", provider="t").code == "unknown"

    def test_unknown_finish_reason_is_kept_in_metadata(self):
        response = UnifiedResponse(
            request_id="r",
            text="t",
            provider="p",
            model="m",
            latency_ms=1,
            token_usage=TokenUsage(),
            finish_reason="recitation",
        )
        assert response.finish_reason is None
        assert response.metadata["provider_finish_reason"] == "recitation"


    def test_truncated_reply_and_preview(self):
        response = UnifiedResponse(
            request_id="r",
            text="x" * 500,
            provider="p",
            model="m",
            latency_ms=1,
            token_usage=TokenUsage(prompt_tokens=1, completion_tokens=2),
            purpose="analysis",
            finish_reason="length",
        )

        assert response.truncated
        assert response.to_dict()["text"] == "x" * 200 + "..."
        assert response.log_fields()["purpose"] == "analysis"
        assert response.log_fields()["tokens"] == 3
        assert "error_code" not in response.log_fields()


class TestProviderContractCompliance:
    @patch("openai.OpenAI")
    def test_openai_returns_unified_response(self, mock_openai):
        mock_openai.return_value.chat.completions.create.return_value = _chat_response('{"a": 1}')

        client = OpenAIClient(api_key="test-key", model_name="gpt-4o-mini")
        response = client.get_completion("Extract", json_mode=True, purpose="extraction")

        assert isinstance(response, UnifiedResponse)
        assert response.provider == "openai"
        assert response.text == '{"a": 1}'
        assert response.purpose == "extraction"
        assert response.token_usage.total_tokens == 30
        assert response.finish_reason == "stop"
        request = mock_openai.return_value.chat.completions.create.call_args.kwargs
        assert request["response_format"] == {"type": "json_object"}
        assert request["temperature"] == 0.0

    @patch("openai.OpenAI")
    def test_openai_handles_errors_gracefully(self, mock_openai):
        mock_openai.return_value.chat.completions.create.side_effect = Exception("API Error")

        response = OpenAIClient(api_key="test-key").get_completion("Test prompt")

        assert response.is_error
        assert response.finish_reason == "error"
        assert response.text == ""

    @patch("openai.OpenAI")
    def test_deepseek_uses_compatible_endpoint(self, mock_openai):
        mock_openai.return_value.chat.completions.create.return_value = _chat_response()

        response = DeepSeekClient(api_key="test-key").get_completion("Test prompt")

        assert response.provider == "deepseek"
        assert response.is_success
        assert mock_openai.call_args.kwargs["base_url"] == DeepSeekClient.base_url

    @patch("google.genai.Client")
    def test_gemini_returns_unified_response(self, mock_genai):
        mock_response = Mock()
        mock_response.text = '{"results": []}'
        mock_response.usage_metadata = Mock(
            prompt_token_count=10, candidates_token_count=20, total_token_count=30
        )
        mock_response.candidates = [Mock(finish_reason="STOP")]
        mock_genai.return_value.models.generate_content.return_value = mock_response

        client = GeminiClient(api_key="test-key", model_name="gemini-2.5-flash-lite")
        response = client.get_completion(
            messages=[{"role": "system", "content": "be strict"}, {"role": "user", "content": "go"}],
            json_mode=True,
        )

        assert response.provider == "gemini"
        assert response.text == '{"results": []}'
        assert response.is_success

    @patch("google.genai.Client")
    def test_gemini_receives_sdk_timeout(self, mock_genai):
        GeminiClient(api_key="test-key", timeout_s=12.5)

        assert mock_genai.call_args.kwargs["http_options"].timeout == 12500


class TestErrorHandlingContract:
    @pytest.mark.parametrize(
        "message, code, retryable",
        [
            ("Request timed out", "timeout", True),
            ("401 Unauthorized", "auth", False),
            ("429 Too Many Requests", "rate_limit", True),
            ("503 Service Unavailable", "provider_error", True),
            ("400 Bad Request", "bad_request", False),
            ("something odd", "unknown", False),
        ],
    )
    @patch("openai.OpenAI")
    def test_errors_normalized(self, mock_openai, message, code, retryable):
        mock_openai.return_value.chat.completions.create.side_effect = Exception(message)

        response = OpenAIClient(api_key="test-key").get_completion("Test")

        assert response.error.code == code
        assert response.error.retryable is retryable

    @patch("openai.OpenAI")
    def test_empty_input_is_an_error_response(self, mock_openai):
        response = OpenAIClient(api_key="test-key").get_completion(messages=None)

        assert response.is_error
        mock_openai.return_value.chat.completions.create.assert_not_called()


class TestFactory:
    @patch("openai.OpenAI")
    def test_creates_client_for_configured_provider(self, mock_openai, mock_env):
        client = create_ai_client(AIConfig(provider="openai", model=""), Config())

        assert isinstance(client, OpenAIClient)
        assert client.model_name == "gpt-4o-mini"

    def test_unknown_provider_raises(self, mock_env):
        with pytest.raises(ValueError):
            create_ai_client(AIConfig(provider="acme"), Config())

    @patch("google.genai.Client")
    def test_gemini_client_gets_configured_timeout(self, mock_genai, mock_env, monkeypatch):
        monkeypatch.setenv("GOOGLE_GEMINI_API_KEY", "test-gemini-key")
        create_ai_client(AIConfig(provider="gemini", model="", ai_timeout_s=7.0), Config())

        assert mock_genai.call_args.kwargs["http_options"].timeout == 7000

    def test_missing_api_key_raises(self, mock_env, monkeypatch):
        monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
        with pytest.raises(ValueError):
            create_ai_client(AIConfig(provider="deepseek"), Config())


def test_base_client_requires_implementation():
    with pytest.raises(TypeError):
        BaseAIClient(api_key="x")
