"""
Owner-scoped data access.

``OwnerScope`` is built once per unit of work from the caller's id and is the
only path through which services read patients, sessions and tasks. Every
query it issues carries the owner filter, so tenant isolation is enforced here
instead of at each call site.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session as DBSession

from src.models.patient import Patient
from src.models.session import Session, SessionStatus
from src.models.task import Task, TaskStatus
from src.services.errors import NotFoundError, ValidationError
from src.services.validation import to_uuid


class OwnerScope:
    """
    Repository bound to one therapist within one database session.

    Args:
        db: Open SQLAlchemy session (the caller owns the transaction).
        owner_user_id: UUID (or UUID string) of the acting therapist.
    """

    def __init__(self, db: DBSession, owner_user_id):
        self.db = db
        self.owner_user_id: UUID = to_uuid(owner_user_id, "user id")

    # =========================================================================
    # Patients
    # =========================================================================

    def get_patient(self, patient_id, *, for_update: bool = False) -> Patient:
        """Load an owned patient.

        Args:
            patient_id: UUID (or string) of the patient.
            for_update: Lock the row until the transaction ends.

        Raises:
            NotFoundError: If the patient is absent or belongs to another owner.
        """
        stmt = select(Patient).where(
            Patient.id == to_uuid(patient_id, "patient id"),
            Patient.owner_user_id == self.owner_user_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        patient = self.db.execute(stmt).scalar_one_or_none()
        if patient is None:
            raise NotFoundError("Patient not found", "PATIENT_NOT_FOUND")
        return patient

    def require_active_patient(self, patient_id) -> Patient:
        """Load an owned patient that can receive new sessions or tasks.

        Raises:
            NotFoundError: If the patient is absent or not owned.
            ValidationError: If the patient is inactive.
        """
        patient = self.get_patient(patient_id)
        if not patient.is_active:
            raise ValidationError(
                "Cannot link to an inactive patient",
                "PATIENT_INACTIVE",
            )
        return patient

    def list_patients(self, active: bool = True, limit: int = 500) -> list[Patient]:
        stmt = select(Patient).where(Patient.owner_user_id == self.owner_user_id)
        if active:
            stmt = stmt.where(Patient.archived_at.is_(None)).order_by(Patient.first_name, Patient.last_name)
        else:
            stmt = stmt.where(Patient.archived_at.is_not(None)).order_by(Patient.archived_at.desc())
        return list(self.db.execute(stmt.limit(limit)).scalars())

    def internal_code_taken(self, internal_code: str) -> bool:
        # Codes are unique across the whole table, not per owner
        stmt = select(Patient.id).where(Patient.internal_code == internal_code)
        return self.db.execute(stmt).first() is not None

    # =========================================================================
    # Sessions
    # =========================================================================

    def get_session(self, session_id) -> Session:
        """Load a session whose patient is owned by the caller.

        Raises:
            NotFoundError: If the session is absent or not owned.
        """
        stmt = (
            select(Session)
            .join(Patient, Session.patient_id == Patient.id)
            .where(
                Session.id == to_uuid(session_id, "session id"),
                Patient.owner_user_id == self.owner_user_id,
            )
        )
        session = self.db.execute(stmt).scalar_one_or_none()
        if session is None:
            raise NotFoundError("Session not found", "SESSION_NOT_FOUND")
        return session

    def sessions_for_patient(
        self,
        patient_id,
        *,
        start: Optional[datetime] = None,
        after: Optional[datetime] = None,
        end: Optional[datetime] = None,
        statuses: Optional[tuple[SessionStatus, ...]] = None,
    ) -> list[Session]:
        """List an owned patient's sessions ordered by time.

        Args:
            patient_id: UUID of the patient.
            start: Inclusive lower bound on ``scheduled_at``.
            after: Exclusive lower bound on ``scheduled_at``.
            end: Inclusive upper bound on ``scheduled_at``.
            statuses: Optional status filter.
        """
        stmt = (
            select(Session)
            .join(Patient, Session.patient_id == Patient.id)
            .where(
                Session.patient_id == to_uuid(patient_id, "patient id"),
                Patient.owner_user_id == self.owner_user_id,
            )
        )
        if start is not None:
            stmt = stmt.where(Session.scheduled_at >= start)
        if after is not None:
            stmt = stmt.where(Session.scheduled_at > after)
        if end is not None:
            stmt = stmt.where(Session.scheduled_at <= end)
        if statuses:
            stmt = stmt.where(Session.status.in_(statuses))
        return list(self.db.execute(stmt.order_by(Session.scheduled_at)).scalars())

    # =========================================================================
    # Tasks
    # =========================================================================

    def _task_visibility(self):
        """Task is owned directly, via its patient, or via its session's patient."""
        owned_patients = select(Patient.id).where(Patient.owner_user_id == self.owner_user_id)
        owned_sessions = select(Session.id).where(Session.patient_id.in_(owned_patients))
        return or_(
            Task.owner_user_id == self.owner_user_id,
            Task.patient_id.in_(owned_patients),
            Task.session_id.in_(owned_sessions),
        )

    def get_task(self, task_id) -> Task:
        """Load a task visible to the caller.

        Raises:
            NotFoundError: If the task is absent or not visible.
        """
        stmt = select(Task).where(
            Task.id == to_uuid(task_id, "task id"),
            self._task_visibility(),
        )
        task = self.db.execute(stmt).scalar_one_or_none()
        if task is None:
            raise NotFoundError("Task not found", "TASK_NOT_FOUND")
        return task

    def list_tasks(self, status: Optional[TaskStatus] = None) -> list[Task]:
        stmt = select(Task).where(self._task_visibility())
        if status is not None:
            stmt = stmt.where(Task.status == status)
        stmt = stmt.order_by(Task.due_at.is_(None), Task.due_at, Task.created_at)
        return list(self.db.execute(stmt).scalars())

    def open_tasks_for_patient(self, patient_id) -> list[Task]:
        """OPEN tasks linked to the patient directly or through its sessions."""
        _patient_id = to_uuid(patient_id, "patient id")
        patient_sessions = select(Session.id).where(Session.patient_id == _patient_id)
        stmt = select(Task).where(
            Task.status == TaskStatus.OPEN,
            or_(Task.patient_id == _patient_id, Task.session_id.in_(patient_sessions)),
            self._task_visibility(),
        )
        return list(self.db.execute(stmt).scalars())
