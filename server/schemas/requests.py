"""Pydantic request models for FastAPI endpoints."""

from typing import Any, Optional, List

from pydantic import BaseModel, Field, field_validator

from models.search_models import AIConfig, EngineConfig, EngineKind


class SearchRequest(BaseModel):
    keyword: str = Field(..., min_length=1, max_length=500)
    max_pages: int = Field(1, ge=1, le=50)

    @field_validator("keyword")
    @classmethod
    def keyword_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("keyword must not be blank")
        return value.strip()


class AnalyzeRequest(BaseModel):
    ids: Optional[List[str]] = None
    retry_failed: bool = False


class EngineRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(..., min_length=1, max_length=200)
    kind: EngineKind
    endpoint_template: str = Field(..., min_length=1)
    enabled: bool = True
    options: dict[str, Any] = Field(default_factory=dict)

    def to_engine(self) -> EngineConfig:
        return EngineConfig(
            id=self.id,
            name=self.name,
            kind=self.kind,
            endpoint_template=self.endpoint_template,
            enabled=self.enabled,
            options=self.options,
        )


class EngineListRequest(BaseModel):
    engines: List[EngineRequest]


class EnginePatchRequest(BaseModel):
    enabled: bool


class AISettingsRequest(BaseModel):
    provider: Optional[str] = Field(None, pattern="^(openai|gemini|deepseek)$")
    model: Optional[str] = None
    extraction_max_payload_bytes: Optional[int] = Field(None, ge=1)
    extraction_concurrency: Optional[int] = Field(None, ge=1, le=32)
    analysis_batch_size: Optional[int] = Field(None, ge=1, le=100)
    analysis_max_concurrent_batches: Optional[int] = Field(None, ge=1, le=16)
    provider_timeout_s: Optional[float] = Field(None, gt=0, le=300)
    ai_timeout_s: Optional[float] = Field(None, gt=0, le=600)

    def apply_to(self, current: AIConfig) -> AIConfig:
        overrides = self.model_dump(exclude_none=True)
        if overrides.get("provider", current.provider) != current.provider and "model" not in overrides:
            # empty model selects the provider default
            overrides["model"] = ""
        return current.merged(overrides)


class SettingsRequest(BaseModel):
    ai: Optional[AISettingsRequest] = None
    priority_keywords: Optional[List[str]] = None
