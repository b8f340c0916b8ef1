"""
Models package: search records, error taxonomy and AI response objects.
"""

from .errors import (
    AnalysisError,
    AnalysisErrorKind,
    CuratorError,
    ExtractionError,
    ExtractionErrorKind,
    PersistenceError,
    PersistenceErrorKind,
    ProviderError,
    ProviderErrorKind,
)
from .search_models import (
    AIConfig,
    AnalysisResult,
    AnalysisStatus,
    EngineConfig,
    EngineKind,
    RawResult,
    SearchResult,
    SearchSession,
    SessionStatus,
)
from .unified_response import NormalizedError, TokenUsage, UnifiedResponse

__all__ = [
    "AIConfig",
    "AnalysisError",
    "AnalysisErrorKind",
    "AnalysisResult",
    "AnalysisStatus",
    "CuratorError",
    "EngineConfig",
    "EngineKind",
    "ExtractionError",
    "ExtractionErrorKind",
    "NormalizedError",
    "PersistenceError",
    "PersistenceErrorKind",
    "ProviderError",
    "ProviderErrorKind",
    "RawResult",
    "SearchResult",
    "SearchSession",
    "SessionStatus",
    "TokenUsage",
    "UnifiedResponse",
]
