"""
Provider-neutral AI call results.

Clients never raise; every call ends as a UnifiedResponse and failures carry
a NormalizedError whose ``code`` the extraction and analysis stages map onto
their own error kinds.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

FinishReason = Optional[Literal["stop", "length", "content_filter", "error"]]

ERROR_CODES = frozenset({"timeout", "auth", "rate_limit", "bad_request", "provider_error", "unknown"})
FINISH_REASONS = frozenset({"stop", "length", "content_filter", "error", None})

# Reply text is echoed into logs and error details; keep it short
TEXT_PREVIEW_CHARS = 200


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self):
        if self.total_tokens == 0 and (self.prompt_tokens > 0 or self.completion_tokens > 0):
            object.__setattr__(self, "total_tokens", self.prompt_tokens + self.completion_tokens)

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class NormalizedError:
    code: str
    message: str
    provider: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.code not in ERROR_CODES:
            object.__setattr__(self, "code", "unknown")

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "provider": self.provider,
            "retryable": self.retryable,
            "details": self.details,
        }


@dataclass(frozen=True)
class UnifiedResponse:
    """Result of one extraction or analysis completion call."""

    request_id: str
    text: str
    provider: str
    model: str
    latency_ms: int
    token_usage: TokenUsage

    purpose: str | None = None  # extraction/analysis
    finish_reason: FinishReason = None
    error: NormalizedError | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] | None = None

    timestamp: str = field(default_factory=_utc_timestamp)

    def __post_init__(self):
        if self.finish_reason not in FINISH_REASONS:
            md = dict(self.metadata)
            md.setdefault("provider_finish_reason", self.finish_reason)
            object.__setattr__(self, "metadata", md)
            object.__setattr__(self, "finish_reason", None)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def truncated(self) -> bool:
        """The model stopped at max_tokens, so JSON replies are likely cut off."""
        return self.finish_reason == "length"

    @property
    def text_preview(self) -> str:
        if len(self.text) <= TEXT_PREVIEW_CHARS:
            return self.text
        return self.text[:TEXT_PREVIEW_CHARS] + "..."

    def log_fields(self) -> dict[str, Any]:
        """Context for ``extra_fields`` when a stage logs about this call."""
        fields: dict[str, Any] = {
            "request_id": self.request_id,
            "provider": self.provider,
            "model": self.model,
            "purpose": self.purpose,
            "latency_ms": self.latency_ms,
            "tokens": self.token_usage.total_tokens,
            "finish_reason": self.finish_reason,
        }
        if self.error is not None:
            fields["error_code"] = self.error.code
        return fields

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "text": self.text_preview,
            "provider": self.provider,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "token_usage": self.token_usage.to_dict(),
            "purpose": self.purpose,
            "finish_reason": self.finish_reason,
            "error": self.error.to_dict() if self.error else None,
            "timestamp": self.timestamp,
        }
