"""
Shared pytest fixtures.

Uses a file-backed SQLite database so no Postgres is required for tests.
The language model runs in mock mode; tests that need specific model
output build their own gateway with make_gateway().
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_journal.db")
os.environ.setdefault("LLM_MOCK_MODE", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.db.base import Base, get_db
from app.main import app
from app.models.character_stat import CharacterStat
from app.models.family_member import FamilyMember
from app.models.user import Character, Goal, User
from app.services.llm_gateway import (
    CONTENT_ANALYSIS_MARKER,
    CONTEXT_ANALYSIS_MARKER,
    NARRATIVE_SUMMARY_MARKER,
    PERIOD_SUMMARY_MARKER,
    LLMGateway,
    get_llm_gateway,
)

SQLITE_URL = "sqlite:///./test_journal.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})


# pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy
# emit BEGIN itself so begin_nested() works as it does on Postgres.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_gateway(content=None, context=None, summary=None, period=None, fallback=None) -> LLMGateway:
    """Mock gateway with canned answers for the structured prompts."""
    responses = []
    if content is not None:
        responses.append((CONTENT_ANALYSIS_MARKER, content if isinstance(content, str) else json.dumps(content)))
    if context is not None:
        responses.append((CONTEXT_ANALYSIS_MARKER, context if isinstance(context, str) else json.dumps(context)))
    if summary is not None:
        responses.append((NARRATIVE_SUMMARY_MARKER, summary))
    if period is not None:
        responses.append((PERIOD_SUMMARY_MARKER, period if isinstance(period, str) else json.dumps(period)))

    gateway = LLMGateway(mock=True)
    # Keep the defaults for anything not overridden.
    gateway.mock_responses = responses + gateway.mock_responses
    if fallback is not None:
        gateway.mock_fallback = fallback
    return gateway


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def user(db):
    """A user with a character, one goal, two stats and one family member."""
    u = User(name="Sam", tone_preference="playful")
    db.add(u)
    db.flush()
    db.add_all([
        Character(user_id=u.id, character_class="Ranger", backstory="Grew up by the sea.", motto="Keep going"),
        Goal(user_id=u.id, title="Run a half marathon", description="Before October"),
        Goal(user_id=u.id, title="Old goal", archived=True),
        CharacterStat(
            user_id=u.id, name="Strength", description="Physical power",
            example_activities=[{"description": "Deadlift session", "suggestedXp": 20}],
        ),
        CharacterStat(user_id=u.id, name="Wisdom", description="Insight", example_activities=["Reading"]),
        FamilyMember(user_id=u.id, name="Alice", relationship="sister", likes="hiking"),
    ])
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture()
def headers(user):
    return {"X-User-Id": str(user.id)}


@pytest.fixture()
def gateway():
    return make_gateway()


@pytest.fixture()
def client(db, gateway):
    # Requests share the test session: one SQLite connection, no lock waits,
    # and the test sees every commit the app makes.
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_llm_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def use_gateway(client):
    """Install a mock gateway with canned answers for the rest of the test."""
    def _use(**canned) -> LLMGateway:
        gw = make_gateway(**canned)
        app.dependency_overrides[get_llm_gateway] = lambda: gw
        return gw
    return _use
