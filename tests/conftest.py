import pytest

from config import settings
from helpers import FakeClock, ManualFrames
from imagelingo.generations.feed import InMemoryGenerationFeed
from imagelingo.storage.generations import GenerationStore

# Fixtures


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def frames():
    return ManualFrames()


@pytest.fixture
def feed():
    return InMemoryGenerationFeed()


@pytest.fixture
def store(tmp_path):
    return GenerationStore(str(tmp_path / "generations.db"))


@pytest.fixture(autouse=True)
def mock_config(monkeypatch):
    """Point every test at a throwaway database and a fake API host.

    `settings` is built at import time, so its fields are patched directly;
    the env vars cover tests that construct a fresh `Settings()`.
    """
    overrides = {
        "api_base_url": "http://testserver",
        "database_path": ":memory:",
        "log_level": "ERROR",
    }
    for name, value in overrides.items():
        monkeypatch.setattr(settings, name, value)
        monkeypatch.setenv(name.upper(), value)
    return settings
