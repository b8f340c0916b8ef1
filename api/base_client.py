import time
import uuid
from abc import ABC, abstractmethod
from typing import Any

from models.unified_response import NormalizedError, TokenUsage, UnifiedResponse


class BaseAIClient(ABC):
    """
    Abstract base class for AI model clients.

    Clients back the extraction and analysis stages. get_completion must never
    raise: failures come back as a UnifiedResponse carrying a NormalizedError.
    """

    provider_name: str = "unknown"

    @abstractmethod
    def __init__(self, api_key: str, **kwargs):
        """
        Initialize the AI client.

        Args:
            api_key: API key for the AI service
            **kwargs: Additional model-specific parameters
        """
        self.api_key = api_key
        self.model_name = kwargs.get('model_name')

    @abstractmethod
    def get_completion(
        self,
        prompt: str | None = None,
        *,
        messages: list | None = None,
        **kwargs,
    ) -> UnifiedResponse:
        """
        Get a completion from the AI model.

        Args:
            prompt: Single user prompt (converted to a one-message conversation)
            messages: Full message list with 'role' and 'content' keys
            **kwargs: Additional parameters for the API call
                - temperature, max_tokens, json_mode, purpose

        Returns:
            UnifiedResponse; error responses instead of exceptions
        """

    @classmethod
    def list_available_models(cls, api_key: str = None, **kwargs) -> list[str]:
        """List model ids available to this key. Optional for clients."""
        return []

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _generate_request_id(self) -> str:
        return str(uuid.uuid4())

    def _measure_latency(self, start_time: float) -> int:
        return int((time.time() - start_time) * 1000)

    def _normalize_input(
        self, prompt: str | None = None, messages: list | None = None
    ) -> list[dict[str, str]]:
        """Turn either input style into a chat message list."""
        if messages:
            normalized = []
            for message in messages:
                if not isinstance(message, dict) or "role" not in message or "content" not in message:
                    raise ValueError("Each message must be a dict with 'role' and 'content'")
                normalized.append({"role": message["role"], "content": str(message["content"])})
            return normalized
        if prompt is None or not str(prompt).strip():
            raise ValueError("Either prompt or messages must be provided")
        return [{"role": "user", "content": str(prompt)}]

    def _normalize_finish_reason(self, reason: Any, provider: str) -> str | None:
        if reason is None:
            return None
        value = str(getattr(reason, "name", reason)).lower()
        if value in {"stop", "end_turn", "finish_reason_stop"}:
            return "stop"
        if value in {"length", "max_tokens"}:
            return "length"
        if value in {"content_filter", "safety"}:
            return "content_filter"
        return value

    def _normalize_error(self, exc: Exception, provider: str) -> NormalizedError:
        """
        Map SDK / transport exceptions onto the NormalizedError codes.

        Uses the exception type first and then falls back to status codes or
        phrases in the message, since the SDKs do not share a hierarchy.
        """
        type_name = type(exc).__name__.lower()
        message = str(exc)
        lowered = message.lower()
        details = {"exception_type": type(exc).__name__}

        if isinstance(exc, TimeoutError) or "timeout" in type_name or "timed out" in lowered:
            return NormalizedError("timeout", message or "Request timed out", provider, True, details)
        if "ratelimit" in type_name or "429" in lowered or "rate limit" in lowered or "too many requests" in lowered:
            return NormalizedError("rate_limit", message, provider, True, details)
        if (
            "authentication" in type_name
            or "permissiondenied" in type_name
            or "401" in lowered
            or "403" in lowered
            or "unauthorized" in lowered
            or "api key" in lowered
        ):
            return NormalizedError("auth", message, provider, False, details)
        if "badrequest" in type_name or "400" in lowered or "bad request" in lowered:
            return NormalizedError("bad_request", message, provider, False, details)
        if (
            "connection" in type_name
            or "internalserver" in type_name
            or any(code in lowered for code in ("500", "502", "503", "504"))
            or "unavailable" in lowered
            or "overloaded" in lowered
        ):
            return NormalizedError("provider_error", message, provider, True, details)
        return NormalizedError("unknown", message or type(exc).__name__, provider, False, details)

    def _create_error_response(
        self,
        request_id: str,
        error: NormalizedError,
        latency_ms: int,
        model: str | None = None,
        purpose: str | None = None,
    ) -> UnifiedResponse:
        return UnifiedResponse(
            request_id=request_id,
            text="",
            provider=self.provider_name,
            model=model or self.model_name or "unknown",
            latency_ms=latency_ms,
            token_usage=TokenUsage(),
            purpose=purpose,
            finish_reason="error",
            error=error,
            metadata={},
        )
