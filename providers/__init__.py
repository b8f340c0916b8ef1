"""Search providers for MagnetCurator."""

from .base import BaseProvider, validate_query
from .extraction import ExtractionProvider
from .factory import create_provider
from .fetcher import PageFetcher
from .structured import StructuredProvider

__all__ = [
    "BaseProvider",
    "ExtractionProvider",
    "PageFetcher",
    "StructuredProvider",
    "create_provider",
    "validate_query",
]
