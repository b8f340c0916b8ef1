"""Factory for building providers from engine configuration."""

from models.search_models import EngineConfig, EngineKind
from utils.logger import get_logger

from .base import BaseProvider
from .extraction import ExtractionProvider
from .fetcher import PageFetcher
from .structured import StructuredProvider

logger = get_logger(__name__)

_PROVIDER_CLASSES: dict[EngineKind, type[BaseProvider]] = {
    EngineKind.STRUCTURED: StructuredProvider,
    EngineKind.EXTRACTION: ExtractionProvider,
}


def create_provider(engine: EngineConfig, fetcher: PageFetcher) -> BaseProvider:
    """
    Build the provider variant matching ``engine.kind``.

    Raises:
        ValueError: For an unknown engine kind or an engine without endpoint
    """
    if not engine.endpoint_template:
        raise ValueError(f"Engine {engine.id} has no endpoint template")
    try:
        provider_cls = _PROVIDER_CLASSES[engine.kind]
    except KeyError:
        raise ValueError(f"Unsupported engine kind: {engine.kind}") from None

    logger.debug(
        "Provider created",
        extra={"extra_fields": {"engine_id": engine.id, "kind": engine.kind.value}},
    )
    return provider_cls(engine, fetcher)
