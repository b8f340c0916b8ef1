"""
Core records of a search session.

EngineConfig/AIConfig describe what to run, RawResult is what a provider
page fetch yields, SearchResult is the normalized record shown to the
consumer and AnalysisResult the AI enrichment attached to it later.
SearchSession owns every SearchResult produced during one keyword search.
"""

import hashlib
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from models.errors import ProviderError


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def compute_result_id(magnet_link: str) -> str:
    """Stable record id derived from the magnet link."""
    return hashlib.sha256(magnet_link.encode("utf-8")).hexdigest()[:16]


class EngineKind(str, Enum):
    STRUCTURED = "structured"
    EXTRACTION = "extraction"


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PARTIALLY_FAILED = "partially_failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {
            SessionStatus.PARTIALLY_FAILED,
            SessionStatus.COMPLETED,
            SessionStatus.CANCELLED,
        }


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    ANALYZED = "analyzed"
    FAILED = "failed"


@dataclass(frozen=True)
class EngineConfig:
    id: str
    name: str
    kind: EngineKind
    endpoint_template: str
    enabled: bool = True
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("Engine id must not be empty")
        if not isinstance(self.kind, EngineKind):
            object.__setattr__(self, "kind", EngineKind(self.kind))
        object.__setattr__(self, "options", dict(self.options or {}))

    def with_enabled(self, enabled: bool) -> "EngineConfig":
        return replace(self, enabled=enabled)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "endpoint_template": self.endpoint_template,
            "enabled": self.enabled,
            "options": dict(self.options),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            kind=EngineKind(data["kind"]),
            endpoint_template=str(data["endpoint_template"]),
            enabled=bool(data.get("enabled", True)),
            options=dict(data.get("options") or {}),
        )


@dataclass(frozen=True)
class AIConfig:
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    extraction_max_payload_bytes: int = 12000
    extraction_concurrency: int = 3
    analysis_batch_size: int = 10
    analysis_max_concurrent_batches: int = 2
    provider_timeout_s: float = 20.0
    ai_timeout_s: float = 60.0

    def __post_init__(self):
        for name in (
            "extraction_max_payload_bytes",
            "extraction_concurrency",
            "analysis_batch_size",
            "analysis_max_concurrent_batches",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.provider_timeout_s <= 0 or self.ai_timeout_s <= 0:
            raise ValueError("timeouts must be positive")

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "model": self.model,
            "extraction_max_payload_bytes": self.extraction_max_payload_bytes,
            "extraction_concurrency": self.extraction_concurrency,
            "analysis_batch_size": self.analysis_batch_size,
            "analysis_max_concurrent_batches": self.analysis_max_concurrent_batches,
            "provider_timeout_s": self.provider_timeout_s,
            "ai_timeout_s": self.ai_timeout_s,
        }

    def merged(self, overrides: Mapping[str, Any] | None) -> "AIConfig":
        """Copy with stored overrides applied; unknown keys are ignored."""
        if not overrides:
            return self
        known = {k: v for k, v in overrides.items() if k in self.to_dict()}
        return replace(self, **known)


@dataclass(frozen=True)
class RawResult:
    """
    One unit of provider output.

    payload is markup text for extraction engines and a mapping of parsed
    fields for structured engines.
    """

    engine_id: str
    page_index: int
    payload: str | Mapping[str, Any]
    source_url: str = ""

    @property
    def is_structured(self) -> bool:
        return isinstance(self.payload, Mapping)


@dataclass(frozen=True)
class AnalysisResult:
    cleaned_title: str
    tags: frozenset[str]
    purity_score: int

    def __post_init__(self):
        if isinstance(self.purity_score, bool) or not 0 <= int(self.purity_score) <= 100:
            raise ValueError(f"purity_score out of range: {self.purity_score!r}")
        normalized = frozenset(t.strip().lower() for t in self.tags if t and t.strip())
        object.__setattr__(self, "tags", normalized)
        object.__setattr__(self, "purity_score", int(self.purity_score))

    def to_dict(self) -> dict[str, Any]:
        return {
            "cleaned_title": self.cleaned_title,
            "tags": sorted(self.tags),
            "purity_score": self.purity_score,
        }


@dataclass
class SearchResult:
    title: str
    magnet_link: str
    source_url: str
    engine_id: str
    size_bytes: int | None = None
    extracted_at: datetime = field(default_factory=_utc_now)
    id: str = ""

    analysis: AnalysisResult | None = None
    analysis_status: AnalysisStatus = AnalysisStatus.PENDING
    analysis_error: str | None = None

    def __post_init__(self):
        self.magnet_link = self.magnet_link.strip()
        if not self.id:
            self.id = compute_result_id(self.magnet_link)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "magnet_link": self.magnet_link,
            "size_bytes": self.size_bytes,
            "source_url": self.source_url,
            "engine_id": self.engine_id,
            "extracted_at": _iso(self.extracted_at),
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "analysis_status": self.analysis_status.value,
            "analysis_error": self.analysis_error,
        }


@dataclass
class SearchSession:
    """
    State of one keyword search.

    ``results`` is keyed by magnet link and only ever grows; all mutation
    goes through the locked helpers below.
    """

    keyword: str
    max_pages: int
    engine_snapshot: tuple[EngineConfig, ...] = ()
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=_utc_now)
    finished_at: datetime | None = None
    status: SessionStatus = SessionStatus.IDLE
    results: dict[str, SearchResult] = field(default_factory=dict)
    failures: dict[str, ProviderError] = field(default_factory=dict)
    dropped_items: dict[str, int] = field(default_factory=dict)
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)

    def __post_init__(self):
        self._lock = threading.Lock()
        self._by_id: dict[str, SearchResult] = {}

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def insert_if_absent(self, result: SearchResult) -> bool:
        """Insert unless the magnet link is already present. First writer wins."""
        with self._lock:
            if result.magnet_link in self.results:
                return False
            self.results[result.magnet_link] = result
            self._by_id[result.id] = result
            return True

    def get_by_id(self, result_id: str) -> SearchResult | None:
        with self._lock:
            return self._by_id.get(result_id)

    def snapshot(self) -> list[SearchResult]:
        with self._lock:
            return list(self.results.values())

    def record_failure(self, engine_id: str, error: ProviderError) -> None:
        with self._lock:
            self.failures[engine_id] = error

    def record_dropped(self, engine_id: str) -> None:
        with self._lock:
            self.dropped_items[engine_id] = self.dropped_items.get(engine_id, 0) + 1

    def attach_analysis(self, result_id: str, analysis: AnalysisResult) -> bool:
        with self._lock:
            result = self._by_id.get(result_id)
            if result is None:
                return False
            result.analysis = analysis
            result.analysis_status = AnalysisStatus.ANALYZED
            result.analysis_error = None
            return True

    def mark_analysis_failed(self, result_id: str, reason: str) -> bool:
        with self._lock:
            result = self._by_id.get(result_id)
            if result is None:
                return False
            result.analysis = None
            result.analysis_status = AnalysisStatus.FAILED
            result.analysis_error = reason
            return True

    def to_dict(self, include_results: bool = True) -> dict[str, Any]:
        with self._lock:
            data = {
                "id": self.id,
                "keyword": self.keyword,
                "max_pages": self.max_pages,
                "status": self.status.value,
                "started_at": _iso(self.started_at),
                "finished_at": _iso(self.finished_at),
                "engines": [engine.id for engine in self.engine_snapshot],
                "result_count": len(self.results),
                "failures": {k: v.to_dict() for k, v in self.failures.items()},
                "dropped_items": dict(self.dropped_items),
            }
            if include_results:
                data["results"] = [r.to_dict() for r in self.results.values()]
            return data
