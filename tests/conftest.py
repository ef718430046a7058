"""
Pytest configuration and shared fixtures for Metapel tests.
"""

import os
import sys
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.models.base import Base  # noqa: E402
from src.models.patient import Patient  # noqa: E402
from src.models.session import Session as ClinicSession, SessionStatus  # noqa: E402
from src.models.task import Task, TaskStatus  # noqa: E402
from src.models.therapist import Therapist  # noqa: E402

# Import all models to register with Base.metadata
import src.models  # noqa: E402, F401


# Monday 2025-03-03 08:00 UTC
FIXED_NOW = datetime(2025, 3, 3, 8, 0)


@pytest.fixture(autouse=True)
def change_to_project_root():
    """Run every test from the project root."""
    original_dir = os.getcwd()
    os.chdir(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    yield
    os.chdir(original_dir)


# =============================================================================
# Database
# =============================================================================

@pytest.fixture()
def engine():
    """In-memory SQLite engine shared by every connection of one test."""
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def sf(engine):
    """Session factory bound to the in-memory engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def clock():
    """Fixed clock for services."""
    return lambda: FIXED_NOW


# =============================================================================
# Seed data
# =============================================================================

@pytest.fixture()
def therapist_id(sf):
    """A therapist who owns the patients under test."""
    therapist_id = uuid4()
    with sf() as db:
        db.add(Therapist(id=therapist_id, email=f"{therapist_id}@clinic.test", display_name="Dr. Levi"))
        db.commit()
    return therapist_id


@pytest.fixture()
def other_therapist_id(sf):
    """A second, unrelated therapist."""
    therapist_id = uuid4()
    with sf() as db:
        db.add(Therapist(id=therapist_id, email=f"{therapist_id}@clinic.test", display_name="Dr. Cohen"))
        db.commit()
    return therapist_id


@pytest.fixture()
def make_patient(sf):
    """Factory that inserts a patient and returns its id."""
    counter = {"n": 0}

    def _make(owner_user_id, **fields):
        counter["n"] += 1
        patient_id = fields.pop("id", uuid4())
        with sf() as db:
            db.add(Patient(
                id=patient_id,
                owner_user_id=owner_user_id,
                internal_code=fields.pop("internal_code", f"P-{counter['n']:03d}-{patient_id.hex[:6]}"),
                first_name=fields.pop("first_name", "Dana"),
                last_name=fields.pop("last_name", "Katz"),
                default_session_fee_nis=fields.pop("default_session_fee_nis", Decimal("350.00")),
                **fields,
            ))
            db.commit()
        return patient_id

    return _make


@pytest.fixture()
def make_session(sf):
    """Factory that inserts a session and returns its id."""

    def _make(patient_id, scheduled_at, status=SessionStatus.SCHEDULED, **fields):
        session_id = fields.pop("id", uuid4())
        with sf() as db:
            db.add(ClinicSession(
                id=session_id,
                patient_id=patient_id,
                scheduled_at=scheduled_at,
                status=status,
                **fields,
            ))
            db.commit()
        return session_id

    return _make


@pytest.fixture()
def make_task(sf):
    """Factory that inserts a task and returns its id."""

    def _make(owner_user_id, status=TaskStatus.OPEN, **fields):
        task_id = fields.pop("id", uuid4())
        if status == TaskStatus.DONE:
            fields.setdefault("completed_at", FIXED_NOW)
        with sf() as db:
            db.add(Task(
                id=task_id,
                owner_user_id=owner_user_id,
                title=fields.pop("title", "Send summary letter"),
                status=status,
                **fields,
            ))
            db.commit()
        return task_id

    return _make
