import os

# The app's own engine is only touched by the startup hook; keep it in memory
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from app import app, get_directory  # noqa: E402
from db import get_session  # noqa: E402
from directory import StaticDirectory  # noqa: E402
from models import Administrator, Registration  # noqa: E402
from settings import Settings, get_settings  # noqa: E402

FALLBACK_ADMIN = "IBK\\fallback"
ADMIN = "IBK\\boss"
USER = "IBK\\jdoe"
OTHER_USER = "IBK\\asmith"


def headers(principal):
    return {"X-Remote-User": principal}


@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def test_session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def settings():
    return Settings(fallback_admin=FALLBACK_ADMIN, domain_prefix="IBK", timezone="UTC")


@pytest.fixture
def directory():
    return StaticDirectory(
        {
            "jdoe": {"display_name": "Jane Doe", "org_unit": "IT-afdelingen"},
            "asmith": {"display_name": "Adam Smith", "org_unit": "Skoleafdelingen"},
            "boss": {"display_name": "Big Boss", "org_unit": "Fælles"},
            "newadmin": {"display_name": "New Admin"},
        }
    )


@pytest.fixture
def admin_row(test_session):
    """An active administrator besides the fallback identity."""
    administrator = Administrator(login=ADMIN, display_name="Big Boss", active=True)
    test_session.add(administrator)
    test_session.commit()
    test_session.refresh(administrator)
    return administrator


@pytest.fixture
def add_registration(test_session):
    """Insert a registration directly, with full control over the entry date."""

    def _add(
        department="IT-afdelingen",
        minutes=30,
        login=USER,
        display_name="Jane Doe",
        org_unit="IT-afdelingen",
        recorded_at=None,
        case_number=None,
        notes=None,
    ):
        registration = Registration(
            recorded_at=recorded_at or datetime.now(UTC),
            minutes=minutes,
            department=department,
            login=login,
            display_name=display_name,
            org_unit=org_unit,
            case_number=case_number,
            notes=notes,
        )
        test_session.add(registration)
        test_session.commit()
        test_session.refresh(registration)
        return registration

    return _add


@pytest.fixture(scope="function")
def client(test_session, settings, directory):
    """Create a test client with dependency overrides."""

    def get_test_session():
        yield test_session

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_directory] = lambda: directory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
