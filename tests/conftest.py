"""
Shared pytest fixtures for the Compliance Orchestration Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization_id: Organisation used by directory / task fixtures
    - directory_users: Three candidate assignees in that organisation
    - fixed_now / service: OrchestrationService on the SQL stores with a frozen clock
"""

from datetime import datetime, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.directory import DirectoryUser
from app.services.orchestration_service import OrchestrationService

TEST_ORGANIZATION_ID = 1
FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def organization_id():
    return TEST_ORGANIZATION_ID


@pytest.fixture()
def directory_users(organization_id):
    """Ana (NIST skills), Ben (no skills), Cem (inactive). Ordered by id."""
    users = [
        DirectoryUser(
            organization_id=organization_id, email="ana@example.com",
            first_name="Ana", last_name="Kaya",
            skill_tags=["NIST 800-171", "AC"], weekly_capacity_hours=40, availability=90,
            completion_rate=95, quality_score=4.5, on_time_rate=90,
        ),
        DirectoryUser(
            organization_id=organization_id, email="ben@example.com",
            first_name="Ben", last_name="Ito",
            skill_tags=[], weekly_capacity_hours=40, availability=90,
        ),
        DirectoryUser(
            organization_id=organization_id, email="cem@example.com",
            first_name="Cem", last_name="Oz", is_active=False,
        ),
    ]
    _db.session.add_all(users)
    _db.session.commit()
    return users


@pytest.fixture()
def fixed_now():
    return FIXED_NOW


@pytest.fixture()
def service(app, fixed_now):
    """Service wired to the SQL stores with a frozen clock."""
    return OrchestrationService.from_config(app.config, clock=lambda: fixed_now)
