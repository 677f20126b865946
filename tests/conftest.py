import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("DELAYED_QUEUE_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import leadflow.models  # noqa: F401
from leadflow.config import Settings
from leadflow.database import Base
from tests.fakes import FakeSender


@pytest.fixture
def session_factory():
    """In-memory SQLite shared across sessions of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        evolution_instance="TestInstance",
        admin_whatsapp="351900000000",
        human_handler_name="Rafa",
        upload_base_url="https://upload.example.com",
        question_reminder_seconds=60,
        max_questions_per_contact=20,
        navigation_reminder_every=3,
        welcome_step_offsets="15,20,90,110",
        welcome_audio_path="audio/boas-vindas.ogg",
        handoff_auto_release_hours=24,
    )
