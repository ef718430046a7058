"""
Patient Status Service

Moves patients between ACTIVE and INACTIVE:
- Set inactive, optionally canceling upcoming sessions and closing open tasks
- Reactivate with a mandatory written reason
- Lifecycle timeline of past transitions

Each transition runs in one transaction. The patient row is re-read and
locked inside that transaction, so of two concurrent transitions the second
sees the first one's result and fails with a conflict.
"""

from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select

from src.models.base import transaction, utcnow
from src.models.lifecycle_event import LifecycleEventRead, LifecycleEventType, PatientLifecycleEvent
from src.models.patient import Patient, PatientStatus
from src.models.session import SessionStatus, UPCOMING_STATUSES
from src.models.task import TaskStatus
from src.services.errors import ConflictError, ValidationError
from src.services.repository import OwnerScope
from src.services.validation import normalize_reason, parse_required_date, to_uuid


INACTIVE_CANCELLATION_REASON = "Patient set to inactive"


class SetInactiveResult(BaseModel):
    """Outcome of a set-inactive transition."""
    status: PatientStatus = PatientStatus.INACTIVE
    patient_id: str
    canceled_sessions_count: int = Field(0, ge=0)
    closed_tasks_count: int = Field(0, ge=0)


class ReactivateResult(BaseModel):
    """Outcome of a reactivation."""
    status: PatientStatus = PatientStatus.ACTIVE
    patient_id: str


class PatientStatusService:
    """
    Patient lifecycle state machine.

    Args:
        session_factory: SQLAlchemy session factory.
        clock: Returns the current naive-UTC time. Injected for tests.
    """

    def __init__(self, session_factory, clock: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        self._clock = clock or utcnow

    def set_patient_inactive(
        self,
        patient_id: str,
        actor_user_id: str,
        inactive_at,
        reason: Optional[str] = None,
        cancel_future_sessions: bool = False,
        close_open_tasks: bool = False,
    ) -> SetInactiveResult:
        """Set an active patient inactive.

        Args:
            patient_id: UUID string of the patient.
            actor_user_id: UUID string of the acting therapist.
            inactive_at: Effective moment (datetime or ISO string).
            reason: Optional free-text reason.
            cancel_future_sessions: Cancel SCHEDULED/UNDOCUMENTED sessions
                strictly after ``inactive_at``.
            close_open_tasks: Cancel OPEN tasks linked to the patient or to
                one of its sessions.

        Returns:
            SetInactiveResult with the cascade counts.

        Raises:
            ValidationError: If ``inactive_at`` is missing or malformed.
            NotFoundError: If the patient is absent or not owned.
            ConflictError: If the patient is already inactive.
        """
        effective_at = parse_required_date(inactive_at, "Inactive date")
        _patient_id = to_uuid(patient_id, "patient id")

        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            patient = scope.get_patient(_patient_id, for_update=True)
            if not patient.is_active:
                raise ConflictError("Patient is already inactive", "ALREADY_INACTIVE")

            canceled_sessions_count = 0
            closed_tasks_count = 0

            if cancel_future_sessions:
                canceled_sessions_count = self._cancel_upcoming_sessions(scope, patient, effective_at)

            if close_open_tasks:
                closed_tasks_count = self._close_open_tasks(scope, patient)

            patient.archived_at = effective_at

            db.add(PatientLifecycleEvent(
                patient_id=patient.id,
                actor_user_id=scope.owner_user_id,
                event_type=LifecycleEventType.SET_INACTIVE,
                occurred_at=effective_at,
                reason=normalize_reason(reason),
                metadata_json={
                    "cancel_future_sessions": bool(cancel_future_sessions),
                    "close_open_tasks": bool(close_open_tasks),
                    "canceled_sessions_count": canceled_sessions_count,
                    "closed_tasks_count": closed_tasks_count,
                },
            ))

            return SetInactiveResult(
                patient_id=str(patient.id),
                canceled_sessions_count=canceled_sessions_count,
                closed_tasks_count=closed_tasks_count,
            )

    def reactivate_patient(
        self,
        patient_id: str,
        actor_user_id: str,
        reactivated_at,
        reason: Optional[str],
    ) -> ReactivateResult:
        """Return an inactive patient to active care.

        Previously canceled sessions and tasks stay canceled.

        Raises:
            ValidationError: If the reason is blank or the date malformed.
            NotFoundError: If the patient is absent or not owned.
            ConflictError: If the patient is already active.
        """
        normalized_reason = normalize_reason(reason)
        if normalized_reason is None:
            raise ValidationError("A reason is required to reactivate a patient", "MISSING_REASON")
        effective_at = parse_required_date(reactivated_at, "Reactivation date")
        _patient_id = to_uuid(patient_id, "patient id")

        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            patient = scope.get_patient(_patient_id, for_update=True)
            if patient.is_active:
                raise ConflictError("Patient is already active", "ALREADY_ACTIVE")

            previously_inactive_at = patient.archived_at
            patient.archived_at = None

            db.add(PatientLifecycleEvent(
                patient_id=patient.id,
                actor_user_id=scope.owner_user_id,
                event_type=LifecycleEventType.REACTIVATED,
                occurred_at=effective_at,
                reason=normalized_reason,
                metadata_json={"previously_inactive_at": previously_inactive_at.isoformat()},
            ))

            return ReactivateResult(patient_id=str(patient.id))

    def get_lifecycle_timeline(self, patient_id: str, actor_user_id: str) -> list[LifecycleEventRead]:
        """List a patient's lifecycle events, oldest first."""
        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            patient = scope.get_patient(patient_id)
            events = db.execute(
                select(PatientLifecycleEvent)
                .where(PatientLifecycleEvent.patient_id == patient.id)
                .order_by(PatientLifecycleEvent.occurred_at, PatientLifecycleEvent.created_at)
            ).scalars()
            return [LifecycleEventRead.model_validate(event) for event in events]

    # =========================================================================
    # Cascade steps
    # =========================================================================

    def _cancel_upcoming_sessions(self, scope: OwnerScope, patient: Patient, effective_at: datetime) -> int:
        sessions = scope.sessions_for_patient(
            patient.id,
            after=effective_at,
            statuses=UPCOMING_STATUSES,
        )
        canceled_at = self._clock()
        for session in sessions:
            session.status = SessionStatus.CANCELED
            session.canceled_at = canceled_at
            session.cancellation_reason = INACTIVE_CANCELLATION_REASON
        return len(sessions)

    def _close_open_tasks(self, scope: OwnerScope, patient: Patient) -> int:
        tasks = scope.open_tasks_for_patient(patient.id)
        for task in tasks:
            task.status = TaskStatus.CANCELED
            task.completed_at = None
        return len(tasks)
