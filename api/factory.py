"""Factory for the AI client backing extraction and analysis."""

from config.config import Config, ModelType
from models.search_models import AIConfig
from utils.logger import get_logger

from .base_client import BaseAIClient

logger = get_logger(__name__)


def create_ai_client(ai_config: AIConfig, config: Config | None = None) -> BaseAIClient:
    """
    Build the client selected by ``ai_config.provider``.

    API keys always come from the environment; the stored AI settings only
    choose provider and model.

    Raises:
        ValueError: If the provider is unsupported or its API key is missing
    """
    config = config or Config()
    provider = (ai_config.provider or "").lower()
    api_key = config.api_key_for(provider)
    if provider not in {e.value for e in ModelType}:
        raise ValueError(
            f"Unsupported AI provider: {provider}. Must be one of: "
            f"{', '.join(e.value for e in ModelType)}"
        )
    if not api_key:
        raise ValueError(f"No API key configured for AI provider '{provider}'")

    model_name = ai_config.model or config.model_for(provider)

    if provider == ModelType.OPENAI.value:
        from api.openai_client import OpenAIClient

        client = OpenAIClient(api_key=api_key, model_name=model_name, timeout_s=ai_config.ai_timeout_s)
    elif provider == ModelType.DEEPSEEK.value:
        from api.deepseek_client import DeepSeekClient

        client = DeepSeekClient(api_key=api_key, model_name=model_name, timeout_s=ai_config.ai_timeout_s)
    else:
        from api.google_gemini_client import GeminiClient

        client = GeminiClient(api_key=api_key, model_name=model_name, timeout_s=ai_config.ai_timeout_s)

    logger.info(
        "AI client initialized",
        extra={"extra_fields": {"provider": provider, "model": model_name}},
    )
    return client


def list_models(provider: str, config: Config | None = None) -> list[str]:
    """Model ids the configured key for ``provider`` can use (empty on any failure)."""
    config = config or Config()
    provider = (provider or "").lower()
    api_key = config.api_key_for(provider)

    if provider == ModelType.GEMINI.value:
        from api.google_gemini_client import GeminiClient

        return GeminiClient.list_available_models(api_key)
    if provider == ModelType.DEEPSEEK.value:
        from api.deepseek_client import DeepSeekClient

        return DeepSeekClient.list_available_models(api_key)
    if provider == ModelType.OPENAI.value:
        from api.openai_client import OpenAIClient

        return OpenAIClient.list_available_models(api_key)
    return []
