import os
import tempfile

_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")

import subprocess
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

_sqlite_path = os.path.join(tempfile.mkdtemp(prefix="time-tracking-tests-"), "test.db")
TEST_DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_sqlite_path}")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from time_tracking import database
from time_tracking.core.authorization import Actor, Role
from time_tracking.models import TimeEntry, TimeEntryStatus, TimeSettings
from time_tracking.services.collaborators import default_collaborators
from time_tracking.services.time_calculation import utc_now
from time_tracking.tests.helpers import COMPANY_ID, OTHER_COMPANY_ID


def _is_postgresql(database_url: str) -> bool:
    return make_url(database_url).drivername.startswith("postgresql")


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    database.configure_database()

    if _is_postgresql(TEST_DATABASE_URL):
        _ensure_database_exists(TEST_DATABASE_URL)

        env = os.environ.copy()
        env["DATABASE_URL"] = TEST_DATABASE_URL

        subprocess.run(
            ["alembic", "upgrade", "head"],
            check=True,
            cwd=Path(__file__).resolve().parents[2],
            env=env,
        )
    else:
        database.Base.metadata.create_all(bind=database.engine)


def _clear_tables() -> None:
    with database.engine.begin() as conn:
        for table in reversed(database.Base.metadata.sorted_tables):
            conn.execute(table.delete())
    default_collaborators().settings.clear_cache()


@pytest.fixture(scope="function", autouse=True)
def _clear_tables_between_tests():
    _clear_tables()
    yield
    _clear_tables()


@pytest.fixture
def employee() -> Actor:
    return Actor(user_id="user-1", company_id=COMPANY_ID, role=Role.EMPLOYEE)


@pytest.fixture
def other_employee() -> Actor:
    return Actor(user_id="user-2", company_id=COMPANY_ID, role=Role.EMPLOYEE)


@pytest.fixture
def manager() -> Actor:
    return Actor(user_id="manager-1", company_id=COMPANY_ID, role=Role.MANAGER)


@pytest.fixture
def outsider_manager() -> Actor:
    return Actor(user_id="manager-9", company_id=OTHER_COMPANY_ID, role=Role.MANAGER)


@pytest.fixture
def entry_factory():
    """Insert a committed, stopped DRAFT entry directly, bypassing the services."""

    def _create(
        user_id: str = "user-1",
        company_id: int = COMPANY_ID,
        start_time: datetime = None,
        minutes: int = 60,
        **overrides,
    ) -> TimeEntry:
        start = start_time or (utc_now() - timedelta(hours=2))
        values = dict(
            company_id=company_id,
            user_id=user_id,
            created_by_id=user_id,
            description="Seeded entry",
            start_time=start,
            end_time=start + timedelta(minutes=minutes),
            duration_minutes=minutes,
            is_running=False,
            is_billable=True,
            currency="PLN",
            status=TimeEntryStatus.DRAFT.value,
            is_locked=False,
            is_active=True,
        )
        values.update(overrides)
        if values.get("status") is not None and isinstance(values["status"], TimeEntryStatus):
            values["status"] = values["status"].value

        db = database.SessionLocal()
        try:
            row = TimeEntry(**values)
            db.add(row)
            db.commit()
            db.refresh(row)
            return row
        finally:
            db.close()

    return _create


@pytest.fixture
def settings_factory():
    def _create(company_id: int = COMPANY_ID, **values) -> TimeSettings:
        db = database.SessionLocal()
        try:
            row = TimeSettings(company_id=company_id, **values)
            db.add(row)
            db.commit()
            db.refresh(row)
        finally:
            db.close()
        default_collaborators().settings.clear_cache()
        return row

    return _create
