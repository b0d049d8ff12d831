import os
from datetime import date, datetime, timedelta

# Keep the app's own engine off disk; tests use test_engine below
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from dojo_tournaments.database import get_session  # noqa: E402
from dojo_tournaments.main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables are dropped after each test so ids and rows never leak
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

EVENT_DATE = date(2026, 6, 13)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from dojo_tournaments.models.bracket import Bracket  # noqa: F401
    from dojo_tournaments.models.event import Event  # noqa: F401
    from dojo_tournaments.models.match import Match  # noqa: F401
    from dojo_tournaments.models.participant import Participant  # noqa: F401
    from dojo_tournaments.models.result import Result  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration, so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def event(session: Session):
    from dojo_tournaments.models.event import Event

    event = Event(name="Spring Open", location="Main Dojo", start_date=EVENT_DATE, end_date=EVENT_DATE)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


def birth_date_for(age: int) -> date:
    """A date of birth giving exactly *age* on EVENT_DATE."""
    return EVENT_DATE.replace(year=EVENT_DATE.year - age) - timedelta(days=1)


@pytest.fixture
def add_participants(session: Session):
    """Factory: add n approved participants to an event, in registration order.

    Defaults place everyone in "18-35, 60-70kg, Open".
    """
    from dojo_tournaments.models.participant import Participant

    def _add(event, n, age=25, weight_kg=65.0, belt_rank="Blue", dojo_names=None, prefix="P"):
        base = datetime(2026, 5, 1, 9, 0, 0)
        existing = len(event.participants) if event.participants else 0
        people = []
        for i in range(n):
            p = Participant(
                event_id=event.id,
                user_id=f"{prefix}-{existing + i + 1}",
                name=f"{prefix}{existing + i + 1}",
                dojo_name=(dojo_names[i % len(dojo_names)] if dojo_names else "Central Dojo"),
                date_of_birth=birth_date_for(age),
                weight_kg=weight_kg,
                belt_rank=belt_rank,
                registered_at=base + timedelta(minutes=existing + i),
            )
            session.add(p)
            people.append(p)
        session.commit()
        for p in people:
            session.refresh(p)
        session.refresh(event)
        return people

    return _add
