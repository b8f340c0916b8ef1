"""Pydantic response models (DTOs) for FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class ErrorDTO(BaseModel):
    kind: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class AnalysisDTO(BaseModel):
    cleaned_title: str
    tags: list[str]
    purity_score: int


class SearchResultDTO(BaseModel):
    id: str
    title: str
    magnet_link: str
    size_bytes: int | None = None
    source_url: str
    engine_id: str
    extracted_at: str
    analysis_status: str
    analysis: AnalysisDTO | None = None
    analysis_error: str | None = None


class SessionDTO(BaseModel):
    id: str
    keyword: str
    max_pages: int
    status: str
    started_at: str
    finished_at: str | None = None
    engines: list[str]
    failures: dict[str, ErrorDTO] = Field(default_factory=dict)
    dropped_items: dict[str, int] = Field(default_factory=dict)
    result_count: int
    results: list[SearchResultDTO] | None = None

    @classmethod
    def from_session(cls, session, include_results: bool = True):
        """Convert SearchSession to DTO."""
        return cls(**session.to_dict(include_results=include_results))


class AnalysisReportDTO(BaseModel):
    analyzed_ids: list[str]
    failed: dict[str, str]
    unknown_ids: list[str]
    batch_errors: list[dict[str, Any]]

    @classmethod
    def from_report(cls, report):
        return cls(**report.to_dict())


class EngineDTO(BaseModel):
    id: str
    name: str
    kind: str
    endpoint_template: str
    enabled: bool
    options: dict[str, Any] = Field(default_factory=dict)


class SettingsDTO(BaseModel):
    ai: dict[str, Any]
    priority_keywords: list[str]


class HealthResponseDTO(BaseModel):
    status: str
    timestamp: str
    version: str = "1.0.0"
    state_store: str = "ok"
    engine_count: int | None = None
