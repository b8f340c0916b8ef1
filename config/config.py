import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from models.search_models import AIConfig


class ModelType(Enum):
    """Supported AI providers for extraction and analysis."""
    OPENAI = "openai"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"


DEFAULT_MODELS = {
    ModelType.OPENAI.value: "gpt-4o-mini",
    ModelType.GEMINI.value: "gemini-2.5-flash-lite",
    ModelType.DEEPSEEK.value: "deepseek-chat",
}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Config:
    """Configuration management for the application."""

    def __init__(self):
        """Initialize configuration with environment variables."""
        env_path = Path(__file__).parent.parent / '.env'
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)

        # API keys
        self.OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
        self.GOOGLE_GEMINI_API_KEY = os.getenv('GOOGLE_GEMINI_API_KEY')
        self.DEEPSEEK_API_KEY = os.getenv('DEEPSEEK_API_KEY')

        # AI provider selection
        self.AI_PROVIDER = os.getenv('AI_PROVIDER', ModelType.OPENAI.value).lower()
        self.DEFAULT_OPENAI_MODEL = os.getenv('DEFAULT_OPENAI_MODEL')
        self.DEFAULT_GEMINI_MODEL = os.getenv('DEFAULT_GEMINI_MODEL')
        self.DEFAULT_DEEPSEEK_MODEL = os.getenv('DEFAULT_DEEPSEEK_MODEL')
        self.DEFAULT_MODEL = self.model_for(self.AI_PROVIDER)

        # Curation pipeline limits
        self.EXTRACTION_MAX_PAYLOAD_BYTES = _int_env('EXTRACTION_MAX_PAYLOAD_BYTES', 12000)
        self.EXTRACTION_CONCURRENCY = _int_env('EXTRACTION_CONCURRENCY', 3)
        self.ANALYSIS_BATCH_SIZE = _int_env('ANALYSIS_BATCH_SIZE', 10)
        self.ANALYSIS_MAX_CONCURRENT_BATCHES = _int_env('ANALYSIS_MAX_CONCURRENT_BATCHES', 2)
        self.PROVIDER_TIMEOUT_S = _float_env('PROVIDER_TIMEOUT_S', 20.0)
        self.AI_TIMEOUT_S = _float_env('AI_TIMEOUT_S', 60.0)
        self.WORKER_THREADS = _int_env('WORKER_THREADS', 16)

        # Infrastructure
        self.STATE_DATABASE_URL = os.getenv('STATE_DATABASE_URL', 'sqlite:///magnet_curator.db')
        self.HTTP_USER_AGENT = os.getenv(
            'HTTP_USER_AGENT', 'Mozilla/5.0 (X11; Linux x86_64) MagnetCurator/1.0'
        )

    def model_for(self, provider: str) -> str:
        """Default model name for a provider, honouring per-provider overrides."""
        overrides = {
            ModelType.OPENAI.value: self.DEFAULT_OPENAI_MODEL,
            ModelType.GEMINI.value: self.DEFAULT_GEMINI_MODEL,
            ModelType.DEEPSEEK.value: self.DEFAULT_DEEPSEEK_MODEL,
        }
        return overrides.get(provider) or os.getenv('DEFAULT_MODEL') or DEFAULT_MODELS.get(
            provider, DEFAULT_MODELS[ModelType.OPENAI.value]
        )

    def api_key_for(self, provider: str) -> str | None:
        return {
            ModelType.OPENAI.value: self.OPENAI_API_KEY,
            ModelType.GEMINI.value: self.GOOGLE_GEMINI_API_KEY,
            ModelType.DEEPSEEK.value: self.DEEPSEEK_API_KEY,
        }.get(provider)

    def validate(self, provider: str | None = None) -> bool:
        """
        Validate that an AI provider (default: AI_PROVIDER) is known and has an API key.

        Returns:
            bool: True if configuration is valid, False otherwise
        """
        provider = (provider or self.AI_PROVIDER).lower()
        known = [e.value for e in ModelType]
        if provider not in known:
            print(f"Error: Unknown AI provider '{provider}'. Must be one of: {', '.join(known)}")
            return False
        if not self.api_key_for(provider):
            print(f"Error: no API key configured for AI provider '{provider}'. Set it in the .env file.")
            return False
        return True

    def default_ai_config(self) -> AIConfig:
        """AI settings used when the state store holds no overrides."""
        return AIConfig(
            provider=self.AI_PROVIDER,
            model=self.DEFAULT_MODEL,
            extraction_max_payload_bytes=self.EXTRACTION_MAX_PAYLOAD_BYTES,
            extraction_concurrency=self.EXTRACTION_CONCURRENCY,
            analysis_batch_size=self.ANALYSIS_BATCH_SIZE,
            analysis_max_concurrent_batches=self.ANALYSIS_MAX_CONCURRENT_BATCHES,
            provider_timeout_s=self.PROVIDER_TIMEOUT_S,
            ai_timeout_s=self.AI_TIMEOUT_S,
        )

    def get_model_info(self) -> str:
        names = {
            ModelType.OPENAI.value: "OpenAI",
            ModelType.GEMINI.value: "Google Gemini",
            ModelType.DEEPSEEK.value: "DeepSeek",
        }
        return f"{names.get(self.AI_PROVIDER, 'Unknown')} ({self.DEFAULT_MODEL})"
