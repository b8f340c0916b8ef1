import time

import openai

from models.unified_response import TokenUsage, UnifiedResponse
from utils.logger import get_logger

from .base_client import BaseAIClient

logger = get_logger(__name__)


class OpenAIClient(BaseAIClient):
    """
    OpenAI chat completions client returning UnifiedResponse.

    Also serves as the base for OpenAI-compatible endpoints (see DeepSeekClient):
    subclasses only change ``provider_name``, ``base_url`` and the default model.
    """

    provider_name = "openai"
    base_url: str | None = None

    def __init__(self, api_key: str, model_name: str = "gpt-4o-mini", timeout_s: float | None = None, **kwargs):
        """
        Initialize the client.

        Args:
            api_key: The API key
            model_name: The name of the model to use
            timeout_s: SDK level request timeout; the orchestrator applies its own as well
            **kwargs: Additional keyword arguments
        """
        super().__init__(api_key, model_name=model_name, **kwargs)
        client_kwargs = {"api_key": api_key}
        if self.base_url:
            client_kwargs["base_url"] = self.base_url
        if timeout_s:
            client_kwargs["timeout"] = timeout_s
        self.client = openai.OpenAI(**client_kwargs)
        self.model_name = model_name

    def get_completion(
        self,
        prompt: str | None = None,
        *,
        messages: list | None = None,
        save_full: bool = False,
        **kwargs,
    ) -> UnifiedResponse:
        """
        Get a completion from the chat completions API.

        Args:
            prompt: Single string prompt - converted to messages format
            messages: List of message dicts with 'role' and 'content' keys
            save_full: If True, include the raw provider response in response.raw
            **kwargs: Additional parameters:
                - model: Override the default model for this call
                - temperature: Controls randomness (default 0.0 for curation work)
                - max_tokens: Maximum number of tokens to generate
                - json_mode: Ask the API for a JSON object response
                - purpose: Tag copied onto the response for logging

        Returns:
            UnifiedResponse: Normalized response object

        IMPORTANT: Never raises exceptions - returns UnifiedResponse with error instead
        """
        request_id = self._generate_request_id()
        start_time = time.time()

        model = kwargs.get("model", self.model_name)
        temperature = kwargs.get("temperature", 0.0)
        max_tokens = kwargs.get("max_tokens", 2048)
        purpose = kwargs.get("purpose")

        try:
            normalized_messages = self._normalize_input(prompt=prompt, messages=messages)

            request = {
                "model": model,
                "messages": normalized_messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
            if kwargs.get("json_mode"):
                request["response_format"] = {"type": "json_object"}

            response = self.client.chat.completions.create(**request)
            latency_ms = self._measure_latency(start_time)

            text = ""
            if response.choices:
                text = response.choices[0].message.content or ""
            usage = getattr(response, "usage", None)
            token_usage = TokenUsage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
                total_tokens=getattr(usage, "total_tokens", 0) or 0,
            )
            finish_reason = self._normalize_finish_reason(
                response.choices[0].finish_reason if response.choices else None,
                provider=self.provider_name,
            )

            raw = response.model_dump() if save_full and hasattr(response, "model_dump") else None

            logger.info(
                f"{self.provider_name} completion successful",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model,
                        "purpose": purpose,
                        "latency_ms": latency_ms,
                        "tokens": token_usage.total_tokens,
                    }
                },
            )

            return UnifiedResponse(
                request_id=request_id,
                text=text,
                provider=self.provider_name,
                model=model,
                latency_ms=latency_ms,
                token_usage=token_usage,
                purpose=purpose,
                finish_reason=finish_reason,
                error=None,
                metadata={},
                raw=raw,
            )

        except Exception as e:
            latency_ms = self._measure_latency(start_time)
            error = self._normalize_error(e, provider=self.provider_name)

            logger.error(
                f"{self.provider_name} completion failed: {error.code}",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model,
                        "purpose": purpose,
                        "error_code": error.code,
                        "error_message": error.message,
                        "retryable": error.retryable,
                    }
                },
            )

            return self._create_error_response(
                request_id=request_id, error=error, latency_ms=latency_ms, model=model, purpose=purpose
            )

    @classmethod
    def list_available_models(cls, api_key: str = None, **kwargs) -> list[str]:
        if not api_key:
            logger.warning(f"API key not provided for listing {cls.provider_name} models")
            return []
        try:
            client_kwargs = {"api_key": api_key}
            if cls.base_url:
                client_kwargs["base_url"] = cls.base_url
            models = openai.OpenAI(**client_kwargs).models.list()
            return sorted(model.id for model in models.data)
        except Exception as e:
            logger.error(
                f"Error listing available {cls.provider_name} models: {e!s}",
                extra={"extra_fields": {"error_type": type(e).__name__}},
            )
            return []
