"""
Error taxonomy for the search and curation pipeline.

Every error carries a ``kind`` so callers can branch on the failure class
without string matching, plus a message and optional details for display.
Provider, extraction and analysis errors are contained by the orchestrator;
only PersistenceError is meant to reach the user as a hard failure.
"""

from enum import Enum
from typing import Any


class ProviderErrorKind(str, Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    MALFORMED_RESPONSE = "malformed_response"
    RATE_LIMITED = "rate_limited"


class ExtractionErrorKind(str, Enum):
    SCHEMA_INVALID = "schema_invalid"
    SERVICE_UNAVAILABLE = "service_unavailable"


class AnalysisErrorKind(str, Enum):
    SCHEMA_INVALID = "schema_invalid"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"


class PersistenceErrorKind(str, Enum):
    IO_FAILURE = "io_failure"
    CORRUPT = "corrupt"


class CuratorError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, kind: Enum, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.kind.value!r}, {self.message!r})"


class ProviderError(CuratorError):
    """A search provider could not deliver (more) results."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        engine_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(kind, message, details)
        self.engine_id = engine_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["engine_id"] = self.engine_id
        return data


class ExtractionError(CuratorError):
    """The AI extraction call for a single raw item failed or returned garbage."""

    def __init__(self, kind: ExtractionErrorKind, message: str, details: dict[str, Any] | None = None):
        super().__init__(kind, message, details)


class AnalysisError(CuratorError):
    """A whole analysis batch failed."""

    def __init__(self, kind: AnalysisErrorKind, message: str, details: dict[str, Any] | None = None):
        super().__init__(kind, message, details)


class PersistenceError(CuratorError):
    """Configuration could not be loaded from or saved to the state store."""

    def __init__(self, kind: PersistenceErrorKind, message: str, details: dict[str, Any] | None = None):
        super().__init__(kind, message, details)
