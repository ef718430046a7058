"""
Clinic Service

Owner-scoped CRUD around the lifecycle core:
- Patients: create, profile edit, active and archived listings
- Sessions: create for active patients, edit, delete
- Tasks: create, edit (keeping ``completed_at`` in step with status), delete

Archived patients are never accepted as the target of a new session or task.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import uuid4

from src.models.base import transaction, utcnow
from src.models.patient import Patient, PatientCreate, PatientOption, PatientRead, PatientUpdate
from src.models.session import Session, SessionCreate, SessionRead, SessionStatus, SessionUpdate
from src.models.task import Task, TaskCreate, TaskRead, TaskStatus, TaskUpdate
from src.services.errors import ConflictError, ValidationError
from src.services.repository import OwnerScope
from src.services.validation import parse_datetime, to_naive_utc, to_uuid


def format_patient_name(first_name: str, last_name: Optional[str]) -> str:
    return " ".join(part for part in (first_name.strip(), (last_name or "").strip()) if part)


def _positive_fee(fee: Optional[Decimal]) -> Optional[Decimal]:
    if fee is None or fee <= 0:
        return None
    return fee


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class ClinicService:
    """
    Patient, session and task management for one therapist at a time.

    Args:
        session_factory: SQLAlchemy session factory.
        clock: Returns the current naive-UTC time. Injected for tests.
    """

    def __init__(self, session_factory, clock: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        self._clock = clock or utcnow

    # =========================================================================
    # Patients
    # =========================================================================

    def create_patient(self, actor_user_id: str, data: PatientCreate) -> PatientRead:
        """Create a patient owned by the caller.

        Raises:
            ConflictError: If the internal code is already in use.
        """
        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            code = data.internal_code.strip()
            if scope.internal_code_taken(code):
                raise ConflictError(f"Internal code already in use: {code}", "INTERNAL_CODE_TAKEN")

            patient = Patient(
                id=uuid4(),
                owner_user_id=scope.owner_user_id,
                internal_code=code,
                first_name=data.first_name.strip(),
                last_name=data.last_name.strip(),
                phone=_blank_to_none(data.phone),
                email=_blank_to_none(data.email),
                fixed_session_day=data.fixed_session_day,
                fixed_session_time=data.fixed_session_time,
                default_session_fee_nis=data.default_session_fee_nis,
            )
            db.add(patient)
            db.flush()
            return PatientRead.model_validate(patient)

    def get_patient(self, actor_user_id: str, patient_id: str) -> PatientRead:
        with transaction(self._session_factory) as db:
            patient = OwnerScope(db, actor_user_id).get_patient(patient_id)
            return PatientRead.model_validate(patient)

    def update_patient(self, actor_user_id: str, patient_id: str, data: PatientUpdate) -> PatientRead:
        """Apply a profile edit. Omitted fields are untouched."""
        fields = data.model_fields_set

        with transaction(self._session_factory) as db:
            patient = OwnerScope(db, actor_user_id).get_patient(patient_id)

            if "first_name" in fields and data.first_name is not None:
                patient.first_name = data.first_name.strip()
            if "last_name" in fields and data.last_name is not None:
                patient.last_name = data.last_name.strip()
            if "phone" in fields:
                patient.phone = _blank_to_none(data.phone)
            if "email" in fields:
                patient.email = _blank_to_none(data.email)
            if "fixed_session_day" in fields:
                patient.fixed_session_day = None if data.fixed_session_day in ("", None) else data.fixed_session_day
            if "fixed_session_time" in fields:
                patient.fixed_session_time = _blank_to_none(data.fixed_session_time)
            if "default_session_fee_nis" in fields:
                fee = data.default_session_fee_nis
                patient.default_session_fee_nis = None if fee in ("", None) else fee

            patient.updated_at = utcnow()
            db.flush()
            return PatientRead.model_validate(patient)

    def list_patient_options(self, actor_user_id: str) -> list[PatientOption]:
        """Active patients, alphabetically, for pickers."""
        with transaction(self._session_factory) as db:
            patients = OwnerScope(db, actor_user_id).list_patients(active=True)
            return [
                PatientOption(
                    id=p.id,
                    name=format_patient_name(p.first_name, p.last_name),
                    default_session_fee_nis=p.default_session_fee_nis,
                )
                for p in patients
            ]

    def list_archived_patients(self, actor_user_id: str) -> list[PatientRead]:
        """Inactive patients, most recently archived first."""
        with transaction(self._session_factory) as db:
            patients = OwnerScope(db, actor_user_id).list_patients(active=False)
            return [PatientRead.model_validate(p) for p in patients]

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(self, actor_user_id: str, data: SessionCreate) -> SessionRead:
        """Schedule a session for an active patient.

        A session created with a note for a time already past is recorded as
        COMPLETED; otherwise it is SCHEDULED.
        """
        scheduled_at = to_naive_utc(data.scheduled_at)
        note = _blank_to_none(data.note)

        with transaction(self._session_factory) as db:
            patient = OwnerScope(db, actor_user_id).require_active_patient(data.patient_id)
            status = (
                SessionStatus.COMPLETED
                if note is not None and scheduled_at <= self._clock()
                else SessionStatus.SCHEDULED
            )
            session = Session(
                id=uuid4(),
                patient_id=patient.id,
                scheduled_at=scheduled_at,
                status=status,
                location=_blank_to_none(data.location),
                fee_nis=_positive_fee(data.fee_nis),
                note=note,
                is_recurring_template=False,
            )
            db.add(session)
            db.flush()
            return SessionRead.model_validate(session)

    def update_session(self, actor_user_id: str, session_id: str, data: SessionUpdate) -> SessionRead:
        """Edit a session's status, time, location, fee or note."""
        fields = data.model_fields_set

        with transaction(self._session_factory) as db:
            session = OwnerScope(db, actor_user_id).get_session(session_id)

            if "status" in fields and data.status is not None:
                session.status = data.status
                if data.status in (SessionStatus.CANCELED, SessionStatus.CANCELED_LATE):
                    session.canceled_at = session.canceled_at or self._clock()
                else:
                    session.canceled_at = None
                    session.cancellation_reason = None
            if "scheduled_at" in fields and data.scheduled_at is not None:
                session.scheduled_at = to_naive_utc(data.scheduled_at)
            if "location" in fields:
                session.location = _blank_to_none(data.location)
            if "fee_nis" in fields:
                if data.fee_nis in ("", None):
                    session.fee_nis = None
                elif isinstance(data.fee_nis, str):
                    raise ValidationError("fee_nis must be a number or empty string", "INVALID_FEE")
                else:
                    session.fee_nis = _positive_fee(data.fee_nis)
            if "note" in fields:
                session.note = data.note if data.note is None or data.note.strip() else None

            session.updated_at = utcnow()
            db.flush()
            return SessionRead.model_validate(session)

    def delete_session(self, actor_user_id: str, session_id: str) -> None:
        with transaction(self._session_factory) as db:
            session = OwnerScope(db, actor_user_id).get_session(session_id)
            for task in list(session.tasks):
                task.session_id = None
            db.delete(session)

    # =========================================================================
    # Tasks
    # =========================================================================

    def create_task(self, actor_user_id: str, data: TaskCreate) -> TaskRead:
        """Create an OPEN task, optionally linked to an active patient or session."""
        title = data.title.strip()
        if not title:
            raise ValidationError("Task title is required", "MISSING_TITLE")

        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            patient_id = None
            session_id = None

            if data.patient_id is not None:
                patient_id = scope.require_active_patient(data.patient_id).id
            if data.session_id is not None:
                session = scope.get_session(data.session_id)
                if patient_id is not None and session.patient_id != patient_id:
                    raise ValidationError("Session belongs to a different patient", "SESSION_PATIENT_MISMATCH")
                scope.require_active_patient(session.patient_id)
                session_id = session.id

            task = Task(
                id=uuid4(),
                owner_user_id=scope.owner_user_id,
                title=title,
                details=data.details,
                status=TaskStatus.OPEN,
                patient_id=patient_id,
                session_id=session_id,
                due_at=to_naive_utc(data.due_at) if data.due_at else None,
                reminder_at=to_naive_utc(data.reminder_at) if data.reminder_at else None,
            )
            db.add(task)
            db.flush()
            return TaskRead.model_validate(task)

    def update_task(self, actor_user_id: str, task_id: str, data: TaskUpdate) -> TaskRead:
        """Edit a task.

        Moving to DONE stamps ``completed_at``; moving to OPEN or CANCELED
        clears it.
        """
        fields = data.model_fields_set

        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            task = scope.get_task(task_id)

            if "title" in fields and data.title is not None:
                title = data.title.strip()
                if not title:
                    raise ValidationError("Task title is required", "MISSING_TITLE")
                task.title = title
            if "details" in fields:
                task.details = data.details
            if "status" in fields and data.status is not None:
                if data.status == TaskStatus.DONE:
                    if task.status != TaskStatus.DONE:
                        task.completed_at = self._clock()
                else:
                    task.completed_at = None
                task.status = data.status
            if "patient_id" in fields:
                if data.patient_id in ("", None):
                    task.patient_id = None
                else:
                    task.patient_id = scope.require_active_patient(to_uuid(data.patient_id, "patient id")).id
            if "due_at" in fields:
                task.due_at = self._optional_date(data.due_at, "due_at")
            if "reminder_at" in fields:
                task.reminder_at = self._optional_date(data.reminder_at, "reminder_at")

            task.updated_at = utcnow()
            db.flush()
            return TaskRead.model_validate(task)

    def delete_task(self, actor_user_id: str, task_id: str) -> None:
        with transaction(self._session_factory) as db:
            task = OwnerScope(db, actor_user_id).get_task(task_id)
            db.delete(task)

    def list_tasks(self, actor_user_id: str, status: Optional[TaskStatus] = None) -> list[TaskRead]:
        with transaction(self._session_factory) as db:
            tasks = OwnerScope(db, actor_user_id).list_tasks(status=status)
            return [TaskRead.model_validate(t) for t in tasks]

    @staticmethod
    def _optional_date(value, field_label: str) -> Optional[datetime]:
        if value is None or value == "":
            return None
        return parse_datetime(value, field_label)
