"""
Patients API Endpoints

Provides endpoints for patient records and lifecycle:
- Create, read and edit patients
- List active patients (picker options) and archived patients
- Set inactive / reactivate, with optional cascades
- Lifecycle timeline
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Header
from pydantic import BaseModel, Field

from src.models.base import get_session_factory, utcnow
from src.models.lifecycle_event import LifecycleEventRead
from src.models.patient import PatientCreate, PatientOption, PatientRead, PatientUpdate
from src.services.clinic import ClinicService
from src.services.errors import ValidationError
from src.services.patient_status import PatientStatusService, ReactivateResult, SetInactiveResult

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/patients", tags=["patients"])

ARCHIVE_REACTIVATION_REASON = "Reactivated from the archive"


# =============================================================================
# Request/Response Models
# =============================================================================

class StatusChangeRequest(BaseModel):
    """Request to move a patient between ACTIVE and INACTIVE."""
    action: str = Field(..., description="set_inactive | reactivate")
    inactive_at: Optional[str] = Field(None, description="Effective date for set_inactive")
    reactivated_at: Optional[str] = Field(None, description="Effective date for reactivate")
    reason: Optional[str] = Field(None, description="Optional for set_inactive, required for reactivate")
    cancel_future_sessions: bool = False
    close_open_tasks: bool = False


class PatientListResponse(BaseModel):
    patients: list[PatientRead]


class PatientOptionsResponse(BaseModel):
    patients: list[PatientOption]


# =============================================================================
# Module-level services (for dependency injection)
# =============================================================================

_clinic_service: Optional[ClinicService] = None
_status_service: Optional[PatientStatusService] = None


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


def get_status_service() -> PatientStatusService:
    """Get or create patient status service."""
    global _status_service
    if _status_service is None:
        _status_service = PatientStatusService(session_factory=get_session_factory())
    return _status_service


def set_status_service(service: Optional[PatientStatusService]) -> None:
    """Set patient status service (for testing)."""
    global _status_service
    _status_service = service


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=PatientRead)
async def create_patient(
    data: PatientCreate,
    x_user_id: str = Header(...),
) -> PatientRead:
    """Create a patient owned by the caller."""
    patient = get_clinic_service().create_patient(x_user_id, data)
    logger.info("patient_created", patient_id=str(patient.id), user_id=x_user_id)
    return patient


@router.get("/options", response_model=PatientOptionsResponse)
async def list_patient_options(x_user_id: str = Header(...)) -> PatientOptionsResponse:
    """Active patients for pickers. Inactive patients are never offered."""
    return PatientOptionsResponse(patients=get_clinic_service().list_patient_options(x_user_id))


@router.get("/archived", response_model=PatientListResponse)
async def list_archived_patients(x_user_id: str = Header(...)) -> PatientListResponse:
    """Inactive patients, most recently archived first."""
    return PatientListResponse(patients=get_clinic_service().list_archived_patients(x_user_id))


@router.get("/{patient_id}", response_model=PatientRead)
async def get_patient(
    patient_id: UUID,
    x_user_id: str = Header(...),
) -> PatientRead:
    return get_clinic_service().get_patient(x_user_id, str(patient_id))


@router.patch("/{patient_id}", response_model=PatientRead)
async def update_patient(
    patient_id: UUID,
    data: PatientUpdate,
    x_user_id: str = Header(...),
) -> PatientRead:
    """Edit a patient's profile, including the fixed weekly slot."""
    patient = get_clinic_service().update_patient(x_user_id, str(patient_id), data)
    logger.info(
        "patient_updated",
        patient_id=str(patient_id),
        fields=sorted(data.model_fields_set),
    )
    return patient


@router.delete("/{patient_id}")
async def deactivate_patient(
    patient_id: UUID,
    x_user_id: str = Header(...),
) -> dict:
    """
    Set a patient inactive as of now, without cascades.

    Patients are never hard-deleted.
    """
    result = get_status_service().set_patient_inactive(
        patient_id=str(patient_id),
        actor_user_id=x_user_id,
        inactive_at=utcnow(),
        reason=None,
        cancel_future_sessions=False,
        close_open_tasks=False,
    )
    logger.info("patient_set_inactive", patient_id=result.patient_id, cascades=False)
    return {"ok": True, "inactive": True}


@router.patch("/{patient_id}/status", response_model=None)
async def change_patient_status(
    patient_id: UUID,
    request: StatusChangeRequest,
    x_user_id: str = Header(...),
) -> SetInactiveResult | ReactivateResult:
    """
    Set a patient inactive or reactivate them.

    ``set_inactive`` can cancel upcoming sessions and close open tasks in
    the same transaction. ``reactivate`` requires a written reason.
    """
    service = get_status_service()
    action = request.action.strip()

    if action == "set_inactive":
        result = service.set_patient_inactive(
            patient_id=str(patient_id),
            actor_user_id=x_user_id,
            inactive_at=request.inactive_at,
            reason=request.reason,
            cancel_future_sessions=request.cancel_future_sessions,
            close_open_tasks=request.close_open_tasks,
        )
        logger.info(
            "patient_set_inactive",
            patient_id=result.patient_id,
            canceled_sessions_count=result.canceled_sessions_count,
            closed_tasks_count=result.closed_tasks_count,
        )
        return result

    if action == "reactivate":
        result = service.reactivate_patient(
            patient_id=str(patient_id),
            actor_user_id=x_user_id,
            reactivated_at=request.reactivated_at,
            reason=request.reason,
        )
        logger.info("patient_reactivated", patient_id=result.patient_id)
        return result

    raise ValidationError(f"Unsupported action: {action}", "UNSUPPORTED_ACTION")


@router.post("/{patient_id}/unarchive")
async def unarchive_patient(
    patient_id: UUID,
    x_user_id: str = Header(...),
) -> dict:
    """Reactivate a patient from the archive list as of now."""
    result = get_status_service().reactivate_patient(
        patient_id=str(patient_id),
        actor_user_id=x_user_id,
        reactivated_at=utcnow(),
        reason=ARCHIVE_REACTIVATION_REASON,
    )
    logger.info("patient_reactivated", patient_id=result.patient_id, source="archive")
    return {"ok": True, "reactivated": True}


@router.get("/{patient_id}/lifecycle", response_model=list[LifecycleEventRead])
async def get_lifecycle(
    patient_id: UUID,
    x_user_id: str = Header(...),
) -> list[LifecycleEventRead]:
    """Lifecycle timeline, oldest event first."""
    return get_status_service().get_lifecycle_timeline(str(patient_id), x_user_id)
