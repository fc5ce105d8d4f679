"""
Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database and in-process fakes
for the Gemini text and embedding services, so the suite needs no
network access or API keys.
"""

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.database import create_db_engine, create_session_factory, init_database
from app.core.identity import StaticTokenIdentityProvider
from app.main import create_app
from app.services.memory_service import build_memory_service
from app.services.memory_store import MemoryStore
from tests.fakes import FakeEmbeddingBackend, FakeTextService

TEST_DIMENSION = 8

GYM_ENHANCEMENT = {
    "enhanced_text": (
        "I set a new personal record on deadlifts at the gym, lifting 315 pounds for 5 reps. "
        "It was a big strength milestone."
    ),
    "key_entities": ["gym", "deadlifts", "315 pounds", "5 reps"],
    "emotional_tone": "proud",
}
GYM_SUMMARY = "Deadlift personal record of 315 lbs for 5 reps at the gym, a proud milestone."

AUTH_ALICE = {"Authorization": "Bearer token-alice"}
AUTH_BOB = {"Authorization": "Bearer token-bob"}


@pytest.fixture
def test_settings():
    """Settings for an isolated, fast test run."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        gemini_api_key="test-key",
        embedding_dimension=TEST_DIMENSION,
        retry_max_attempts=3,
        retry_backoff_multiplier=0,
        retry_backoff_max=0,
        ingestion_workers=1,
        llm_timeout_seconds=2,
        embedding_timeout_seconds=2,
        timezone="UTC",
    )


@pytest.fixture
def engine(test_settings):
    """Fresh in-memory database with the schema created."""
    engine = create_db_engine(test_settings)
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    """Persistence gateway over the test database."""
    return MemoryStore(create_session_factory(engine))


@pytest.fixture
def text_service():
    """Fake LLM answering with the gym memory enhancement and summary."""
    return FakeTextService(enhancement=GYM_ENHANCEMENT, summary=GYM_SUMMARY)


@pytest.fixture
def embedding_backend():
    """Fake topic-axis embedding backend."""
    return FakeEmbeddingBackend(dimension=TEST_DIMENSION)


@pytest.fixture
def memory_service(test_settings, text_service, embedding_backend, engine):
    """Fully wired memory service backed by fakes."""
    return build_memory_service(
        test_settings,
        text_service=text_service,
        embedding_backend=embedding_backend,
        engine=engine,
    )


@pytest.fixture
def identity():
    """Two users, alice and bob."""
    return StaticTokenIdentityProvider({"token-alice": "alice", "token-bob": "bob"})


@pytest.fixture
def client(memory_service, identity):
    """Test client with the application lifespan running."""
    app = create_app(service=memory_service, identity=identity)
    with TestClient(app) as test_client:
        yield test_client
