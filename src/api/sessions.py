"""
Sessions API Endpoints

Provides endpoints for scheduling:
- Create, edit and delete sessions
- Generate upcoming sessions from a patient's fixed weekly slot
- Merge suggestions for a candidate time
- Merge two sessions of the same patient
"""

from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Header
from pydantic import BaseModel, Field

from src.models.base import get_session_factory
from src.models.session import SessionCreate, SessionRead, SessionUpdate
from src.services.clinic import ClinicService
from src.services.errors import ValidationError
from src.services.recurring_sessions import MergeSuggestion, RecurringCreateResult, RecurringSessionService
from src.services.session_merge import MergeResult, SessionMergeService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


# =============================================================================
# Request/Response Models
# =============================================================================

class RecurringRequest(BaseModel):
    """Request to fill a patient's upcoming fixed-slot sessions."""
    patient_id: Optional[str] = Field(None, description="Patient to generate sessions for")


class MergeSuggestionRequest(BaseModel):
    """Candidate session time to check against existing sessions."""
    patient_id: Optional[str] = None
    date: Optional[str] = Field(None, description="Candidate date (ISO-8601)")
    hour: Optional[Any] = Field(None, description="0-23")
    minute: Optional[Any] = Field(None, description="0-59")
    exclude_session_id: Optional[str] = Field(None, description="Session being edited, if any")


class MergeRequest(BaseModel):
    """Session to fold into the one named in the path."""
    merge_with_id: Optional[str] = None


# =============================================================================
# Module-level services (for dependency injection)
# =============================================================================

_clinic_service: Optional[ClinicService] = None
_recurring_service: Optional[RecurringSessionService] = None
_merge_service: Optional[SessionMergeService] = None


def get_clinic_service() -> ClinicService:
    """Get or create clinic service."""
    global _clinic_service
    if _clinic_service is None:
        _clinic_service = ClinicService(session_factory=get_session_factory())
    return _clinic_service


def set_clinic_service(service: Optional[ClinicService]) -> None:
    """Set clinic service (for testing)."""
    global _clinic_service
    _clinic_service = service


def get_recurring_service() -> RecurringSessionService:
    """Get or create recurring session service."""
    global _recurring_service
    if _recurring_service is None:
        _recurring_service = RecurringSessionService(session_factory=get_session_factory())
    return _recurring_service


def set_recurring_service(service: Optional[RecurringSessionService]) -> None:
    """Set recurring session service (for testing)."""
    global _recurring_service
    _recurring_service = service


def get_merge_service() -> SessionMergeService:
    """Get or create session merge service."""
    global _merge_service
    if _merge_service is None:
        _merge_service = SessionMergeService(session_factory=get_session_factory())
    return _merge_service


def set_merge_service(service: Optional[SessionMergeService]) -> None:
    """Set session merge service (for testing)."""
    global _merge_service
    _merge_service = service


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=SessionRead)
async def create_session(
    data: SessionCreate,
    x_user_id: str = Header(...),
) -> SessionRead:
    """Schedule a session for an active patient."""
    session = get_clinic_service().create_session(x_user_id, data)
    logger.info(
        "session_created",
        session_id=str(session.id),
        patient_id=str(session.patient_id),
        status=session.status.value,
    )
    return session


@router.post("/recurring", response_model=RecurringCreateResult)
async def create_recurring_sessions(
    request: RecurringRequest,
    x_user_id: str = Header(...),
) -> RecurringCreateResult:
    """
    Create the missing sessions implied by the patient's fixed weekly slot.

    Running it twice creates nothing the second time.
    """
    if not request.patient_id:
        raise ValidationError("patient_id is required", "MISSING_PATIENT_ID")

    result = get_recurring_service().create_upcoming_sessions(request.patient_id, x_user_id)
    logger.info(
        "recurring_sessions_created",
        patient_id=request.patient_id,
        created=result.created,
    )
    return result


@router.post("/merge-suggestion", response_model=MergeSuggestion)
async def suggest_merge(
    request: MergeSuggestionRequest,
    x_user_id: str = Header(...),
) -> MergeSuggestion:
    """Advise whether the candidate time duplicates an existing session."""
    if not request.patient_id:
        raise ValidationError("patient_id is required", "MISSING_PATIENT_ID")
    if request.hour is None or request.minute is None:
        raise ValidationError("hour and minute are required", "INVALID_TIME")

    return get_recurring_service().suggest_merge(
        actor_user_id=x_user_id,
        patient_id=request.patient_id,
        new_date=request.date,
        hour=request.hour,
        minute=request.minute,
        exclude_session_id=request.exclude_session_id,
    )


@router.patch("/{session_id}", response_model=SessionRead)
async def update_session(
    session_id: UUID,
    data: SessionUpdate,
    x_user_id: str = Header(...),
) -> SessionRead:
    session = get_clinic_service().update_session(x_user_id, str(session_id), data)
    logger.info("session_updated", session_id=str(session_id), fields=sorted(data.model_fields_set))
    return session


@router.delete("/{session_id}")
async def delete_session(
    session_id: UUID,
    x_user_id: str = Header(...),
) -> dict:
    """Delete a session. Linked tasks are kept and lose their session link."""
    get_clinic_service().delete_session(x_user_id, str(session_id))
    logger.info("session_deleted", session_id=str(session_id))
    return {"ok": True}


@router.post("/{session_id}/merge", response_model=MergeResult)
async def merge_session(
    session_id: UUID,
    request: MergeRequest,
    x_user_id: str = Header(...),
) -> MergeResult:
    """Keep the path session and delete ``merge_with_id``."""
    result = get_merge_service().merge_sessions(str(session_id), request.merge_with_id, x_user_id)
    logger.info("sessions_merged", kept=result.kept, deleted=result.deleted)
    return result
