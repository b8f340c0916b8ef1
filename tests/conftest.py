import pytest
from dotenv import load_dotenv

from config.config import Config
from db.engine import create_db_engine
from db.gateway import StateGateway
from tests.fakes import FakeAIClient

# Load environment variables from .env file for tests
load_dotenv()


@pytest.fixture
def mock_env(monkeypatch):
    """Fixture to mock environment variables for testing."""
    env_vars = {
        "AI_PROVIDER": "openai",
        "OPENAI_API_KEY": "test-api-key",
        "DEFAULT_OPENAI_MODEL": "gpt-4o-mini",
        "API_KEYS": "dev-key-1,dev-key-2",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def gateway(mock_env):
    """StateGateway on a private in-memory SQLite database."""
    return StateGateway(engine=create_db_engine("sqlite://"), config=Config())


@pytest.fixture
def fake_ai():
    return FakeAIClient()
