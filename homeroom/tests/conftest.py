"""
Shared fixtures: in-memory database, fake AI providers, sample rows.
"""
import pytest
from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from homeroom.core.config import Settings
from homeroom.core.database.connection import enable_sqlite_savepoints
from homeroom.core.database.models import Base, Email, ChildProfile
from homeroom.tests.fakes import FakeProvider
from homeroom.core.ai.registry import ProviderRegistry
from homeroom.core.ai.extraction_schema import (
    ExtractionResult, ExtractedEvent, ExtractedTodo, HumanAnalysis,
)


@pytest.fixture
def settings():
    """Settings isolated from any local .env, with no batch delay."""
    return Settings(_env_file=None, database_url="sqlite://", analysis_delay_seconds=0)


@pytest.fixture
def session_factory():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_openai():
    return FakeProvider("openai")


@pytest.fixture
def fake_anthropic():
    return FakeProvider("anthropic")


@pytest.fixture
def registry(fake_openai, fake_anthropic):
    registry = ProviderRegistry(default="openai")
    registry.register("openai", fake_openai)
    registry.register("anthropic", fake_anthropic)
    return registry


@pytest.fixture
def make_email(db):
    """Factory for stored emails."""
    def _make(owner_id="parent-1", subject="PE kit reminder", body_text="PE is every Tuesday.",
              date=datetime(2024, 3, 4, 8, 30), **kwargs):
        count = db.query(Email).count()
        email = Email(
            owner_id=owner_id,
            gmail_message_id=kwargs.pop("gmail_message_id", f"msg-{count + 1}"),
            from_address=kwargs.pop("from_address", "office@school.example"),
            from_name=kwargs.pop("from_name", "School Office"),
            subject=subject,
            snippet=kwargs.pop("snippet", body_text[:100] if body_text else ""),
            body_text=body_text,
            date=date,
            **kwargs,
        )
        db.add(email)
        db.commit()
        return email
    return _make


@pytest.fixture
def make_child(db):
    """Factory for child profiles."""
    def _make(real_name, owner_id="parent-1", year_group="Year 7", school_name="Hillside School", is_active=True):
        child = ChildProfile(
            owner_id=owner_id,
            real_name=real_name,
            display_name=real_name.split()[0],
            year_group=year_group,
            school_name=school_name,
            is_active=is_active,
        )
        db.add(child)
        db.commit()
        return child
    return _make


@pytest.fixture
def sample_extraction():
    """Extraction with one event and one todo."""
    return ExtractionResult(
        human_analysis=HumanAnalysis(
            email_summary="PE moves to Tuesdays.",
            email_tone="informative",
            email_intent="reminder",
            implicit_context="Assumes the child already has a PE kit.",
        ),
        events=[
            ExtractedEvent(
                title="PE lesson",
                date="2024-03-05T00:00:00",
                confidence=0.9,
                recurring=True,
                recurrence_pattern="weekly on Tuesdays",
                time_of_day="morning",
            ),
        ],
        todos=[
            ExtractedTodo(
                description="Pack PE kit",
                type="PACK",
                due_date="2024-03-05T09:00:00",
                confidence=0.8,
                recurring=True,
                recurrence_pattern="every Tuesday",
                inferred=True,
            ),
        ],
        emails_analyzed=1,
    )
