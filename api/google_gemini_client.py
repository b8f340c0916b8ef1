import time

from google import genai
from google.genai import types

from models.unified_response import TokenUsage, UnifiedResponse
from utils.logger import get_logger

from .base_client import BaseAIClient

logger = get_logger(__name__)


class GeminiClient(BaseAIClient):
    """
    A client for the Google Gemini API using the google.genai package.
    Returns UnifiedResponse like every other client.
    """

    provider_name = "gemini"

    def __init__(
        self, api_key: str, model_name: str = "gemini-2.5-flash-lite", timeout_s: float | None = None, **kwargs
    ):
        """
        Initialize the Gemini client.

        Args:
            api_key: The Google Gemini API key
            model_name: The name of the model to use
            timeout_s: SDK level request timeout in seconds
            **kwargs: Additional keyword arguments
        """
        super().__init__(api_key, model_name=model_name, **kwargs)

        if not api_key:
            raise ValueError("API key is required for Gemini")

        http_options = types.HttpOptions(timeout=int(timeout_s * 1000)) if timeout_s else None
        self.client = genai.Client(api_key=api_key, http_options=http_options)
        self.model_name = model_name

    def _to_contents(self, messages: list[dict[str, str]]) -> tuple[str | None, list[dict]]:
        """Split chat messages into a system instruction and Gemini contents."""
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m["role"] != "system"
        ]
        return ("\n\n".join(system_parts) or None), contents

    def get_completion(
        self,
        prompt: str | None = None,
        *,
        messages: list | None = None,
        **kwargs,
    ) -> UnifiedResponse:
        """
        Get a completion from the Gemini API.

        Args:
            prompt: Single string prompt
            messages: Chat messages; system messages become the system instruction
            **kwargs: Additional parameters for the API call
                - model: Override the default model for this call
                - temperature: Controls randomness (default 0.0)
                - max_tokens: Maximum number of tokens to generate
                - json_mode: Request application/json output
                - purpose: Tag copied onto the response for logging

        Returns:
            UnifiedResponse (never raises)
        """
        request_id = self._generate_request_id()
        start_time = time.time()

        model_name = kwargs.get('model', self.model_name)
        purpose = kwargs.get('purpose')

        try:
            normalized = self._normalize_input(prompt=prompt, messages=messages)
            system_instruction, contents = self._to_contents(normalized)

            config = {
                'temperature': kwargs.get('temperature', 0.0),
                'max_output_tokens': kwargs.get('max_tokens', 2048),
            }
            if system_instruction:
                config['system_instruction'] = system_instruction
            if kwargs.get('json_mode'):
                config['response_mime_type'] = 'application/json'

            response = self.client.models.generate_content(
                model=model_name,
                contents=contents,
                config=config,
            )
            latency_ms = self._measure_latency(start_time)

            text = getattr(response, 'text', None) or ""
            usage_metadata = getattr(response, 'usage_metadata', None)
            token_usage = TokenUsage(
                prompt_tokens=getattr(usage_metadata, 'prompt_token_count', 0) or 0,
                completion_tokens=getattr(usage_metadata, 'candidates_token_count', 0) or 0,
                total_tokens=getattr(usage_metadata, 'total_token_count', 0) or 0,
            )

            finish_reason = None
            candidates = getattr(response, 'candidates', None) or []
            if candidates:
                finish_reason = self._normalize_finish_reason(
                    getattr(candidates[0], 'finish_reason', None), provider=self.provider_name
                )

            logger.info(
                "Gemini completion successful",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model_name,
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
                model=model_name,
                latency_ms=latency_ms,
                token_usage=token_usage,
                purpose=purpose,
                finish_reason=finish_reason,
                error=None,
                metadata={},
            )

        except Exception as e:
            latency_ms = self._measure_latency(start_time)
            error = self._normalize_error(e, provider=self.provider_name)
            logger.error(
                f"Gemini completion failed: {error.code}",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model_name,
                        "purpose": purpose,
                        "error_code": error.code,
                        "error_message": error.message,
                    }
                },
            )
            return self._create_error_response(
                request_id=request_id, error=error, latency_ms=latency_ms, model=model_name, purpose=purpose
            )

    @classmethod
    def list_available_models(cls, api_key: str = None, **kwargs) -> list[str]:
        if not api_key:
            return []
        try:
            client = genai.Client(api_key=api_key)
            return sorted(model.name for model in client.models.list() if getattr(model, 'name', None))
        except Exception as e:
            logger.error(
                f"Error listing available Gemini models: {e!s}",
                extra={"extra_fields": {"error_type": type(e).__name__}},
            )
            return []
