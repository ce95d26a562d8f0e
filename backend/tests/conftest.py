import asyncio
import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import database
import feedback


ADMIN_TOKEN = "test-admin-token"


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("RETELL_API_KEY", "retell-test-key")
    monkeypatch.setenv("RETELL_AGENT_ID", "agent_default")
    monkeypatch.setenv("ADMIN_API_TOKEN", ADMIN_TOKEN)
    monkeypatch.setenv("LLM_PROVIDER", "gemini")
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-test-key")
    for name in ("RETELL_TAILOR_AGENT", "SMTP_USER", "SMTP_PASSWORD"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def db(monkeypatch, tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    database.configure_sqlite(engine)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "async_session", session_factory)
    asyncio.run(database.init_db())
    try:
        yield session_factory
    finally:
        asyncio.run(engine.dispose())


@pytest.fixture
def run_db(db):
    """Run ``fn(session)`` in a fresh session and return its result."""
    def _run(fn):
        async def _inner():
            async with db() as session:
                return await fn(session)
        return asyncio.run(_inner())
    return _run


@pytest.fixture
def fake_llm(monkeypatch):
    calls = []

    async def _generate(transcript, job_role):
        calls.append({"transcript": transcript, "job_role": job_role})
        return f"Overall score: 7/10. Feedback #{len(calls)} for {job_role}."

    monkeypatch.setattr(feedback, "generate_feedback", _generate)
    return calls


@pytest.fixture
def client():
    import main

    return TestClient(main.app)


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
