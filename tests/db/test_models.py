"""
Database Model Tests

Tests verify:
1. All tables can be created
2. Foreign keys and cascades are enforced
3. Check constraints (weekday range, completed_at iff DONE)
4. Unique internal codes
5. Derived patient status
6. The transaction helper commits or rolls back
7. Pydantic schemas validate correctly
"""

from datetime import datetime
from uuid import uuid4

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from src.models.base import transaction
from src.models.lifecycle_event import LifecycleEventType, PatientLifecycleEvent
from src.models.patient import Patient, PatientCreate, PatientStatus, PatientUpdate
from src.models.session import SessionStatus
from src.models.task import Task, TaskStatus
from src.models.therapist import Therapist


class TestSchema:

    def test_all_tables_created(self, engine):
        tables = set(inspect(engine).get_table_names())

        assert {"therapists", "patients", "sessions", "tasks", "patient_lifecycle_events"} <= tables


class TestConstraints:

    def test_patient_requires_existing_owner(self, sf):
        with sf() as db:
            db.add(Patient(owner_user_id=uuid4(), internal_code="X-1", first_name="Noa"))
            with pytest.raises(IntegrityError):
                db.commit()

    def test_internal_code_unique(self, sf, make_patient, therapist_id, other_therapist_id):
        make_patient(therapist_id, internal_code="MP-001")

        with pytest.raises(IntegrityError):
            make_patient(other_therapist_id, internal_code="MP-001")

    def test_fixed_day_range(self, sf, therapist_id):
        with sf() as db:
            db.add(Patient(owner_user_id=therapist_id, internal_code="X-2", first_name="Noa", fixed_session_day=7))
            with pytest.raises(IntegrityError):
                db.commit()

    def test_done_task_requires_completed_at(self, sf, therapist_id):
        with sf() as db:
            db.add(Task(owner_user_id=therapist_id, title="t", status=TaskStatus.DONE, completed_at=None))
            with pytest.raises(IntegrityError):
                db.commit()

    def test_open_task_rejects_completed_at(self, sf, therapist_id):
        with sf() as db:
            db.add(Task(owner_user_id=therapist_id, title="t", status=TaskStatus.OPEN, completed_at=datetime(2025, 3, 3)))
            with pytest.raises(IntegrityError):
                db.commit()

    def test_lifecycle_events_follow_patient(self, sf, make_patient, therapist_id):
        patient_id = make_patient(therapist_id)
        with sf() as db:
            db.add(PatientLifecycleEvent(
                patient_id=patient_id,
                actor_user_id=therapist_id,
                event_type=LifecycleEventType.SET_INACTIVE,
                occurred_at=datetime(2025, 3, 10),
                metadata_json={"canceled_sessions_count": 2},
            ))
            db.commit()

            event = db.query(PatientLifecycleEvent).one()
            assert event.metadata_json == {"canceled_sessions_count": 2}


class TestPatientModel:

    def test_status_derived_from_archived_at(self, sf, make_patient, therapist_id):
        active_id = make_patient(therapist_id)
        inactive_id = make_patient(therapist_id, archived_at=datetime(2025, 3, 1))

        with sf() as db:
            assert db.get(Patient, active_id).status == PatientStatus.ACTIVE
            assert db.get(Patient, inactive_id).status == PatientStatus.INACTIVE
            assert db.get(Patient, inactive_id).is_active is False

    def test_relationships(self, sf, make_patient, make_session, make_task, therapist_id):
        patient_id = make_patient(therapist_id)
        make_session(patient_id, datetime(2025, 3, 4, 10, 0))
        make_task(therapist_id, patient_id=patient_id)

        with sf() as db:
            patient = db.get(Patient, patient_id)
            assert len(patient.sessions) == 1
            assert len(patient.tasks) == 1
            assert patient.owner.id == therapist_id


class TestTransactionHelper:

    def test_commits_on_success(self, sf):
        therapist_id = uuid4()
        with transaction(sf) as db:
            db.add(Therapist(id=therapist_id, email="a@clinic.test"))

        with sf() as db:
            assert db.get(Therapist, therapist_id) is not None

    def test_rolls_back_on_error(self, sf):
        therapist_id = uuid4()
        with pytest.raises(RuntimeError):
            with transaction(sf) as db:
                db.add(Therapist(id=therapist_id, email="b@clinic.test"))
                db.flush()
                raise RuntimeError("boom")

        with sf() as db:
            assert db.get(Therapist, therapist_id) is None


class TestSchemas:

    def test_patient_create_accepts_sunday(self):
        data = PatientCreate(internal_code="MP-1", first_name="Noa", fixed_session_day=0, fixed_session_time="")

        assert data.fixed_session_day == 0
        assert data.fixed_session_time is None

    def test_patient_update_tracks_set_fields(self):
        data = PatientUpdate(phone="")

        assert data.model_fields_set == {"phone"}

    def test_patient_update_rejects_text_day(self):
        with pytest.raises(ValueError):
            PatientUpdate(fixed_session_day="Tuesday")

    def test_patient_update_rejects_negative_fee(self):
        with pytest.raises(ValueError):
            PatientUpdate(default_session_fee_nis=-5)

    def test_session_status_values(self):
        assert {s.value for s in SessionStatus} == {
            "SCHEDULED", "COMPLETED", "CANCELED_LATE", "CANCELED", "UNDOCUMENTED",
        }


class TestPackageExports:

    def test_every_export_resolves(self):
        import src.models as models

        for name in models.__all__:
            assert getattr(models, name) is not None
