"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

import leadcapture.models  # noqa: F401 - registers tables on Base.metadata
from leadcapture.config import Settings
from leadcapture.database import Base


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    """In-memory SQLite database for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_settings(tmp_path):
    """Real Settings with every external service switched off and the backup under tmp_path."""
    settings = Settings(
        app_env="test",
        openai_api_key="sk-test",
        anthropic_api_key="",
        knowledge_base_url="",
        knowledge_base_key="",
        sheet_webhook_url="",
        sendgrid_api_key="",
        notification_recipient="admin@example.com",
        database_url="sqlite+aiosqlite:///:memory:",
        submission_backup_path=str(tmp_path / "submissions.jsonl"),
    )
    with patch("leadcapture.config.get_settings", return_value=settings):
        yield settings


@pytest.fixture
def primary_store(session_factory):
    """Route the submission pipeline's database writes to the in-memory database."""
    with patch("leadcapture.services.submission.async_session_factory", session_factory):
        yield session_factory


@pytest.fixture
def mock_ai():
    """Mock for async generate_response - prevents real AI API calls in tests."""
    with patch("leadcapture.agents.generation.generate_response", new_callable=AsyncMock) as mock:
        mock.return_value = {
            "content": "Thanks for reaching out! What's the best email to reach you on?",
            "provider": "openai",
            "model": "gpt-4o",
            "latency_ms": 500,
            "cost_usd": 0.001,
            "input_tokens": 100,
            "output_tokens": 50,
            "error": None,
        }
        yield mock


@pytest.fixture
def no_side_channels():
    """Stub out the fallback webhook and admin notification."""
    with (
        patch("leadcapture.services.submission.notify_high_value_lead", new_callable=AsyncMock) as notify,
        patch("leadcapture.services.submission.get_sheet_webhook", return_value=None) as webhook,
    ):
        notify.return_value = True
        yield {"notify": notify, "webhook": webhook}

