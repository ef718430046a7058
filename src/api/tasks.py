"""
Tasks API Endpoints

Provides endpoints for the therapist's task list:
- Create tasks, optionally linked to a patient or session
- List tasks, filtered by status
- Edit and delete tasks
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Header, Query
from pydantic import BaseModel

from src.models.base import get_session_factory
from src.models.task import TaskCreate, TaskRead, TaskStatus, TaskUpdate
from src.services.clinic import ClinicService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskListResponse(BaseModel):
    tasks: list[TaskRead]


# =============================================================================
# Module-level service (for dependency injection)
# =============================================================================

_clinic_service: Optional[ClinicService] = None


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


# =============================================================================
# Endpoints
# =============================================================================

@router.post("", response_model=TaskRead)
async def create_task(
    data: TaskCreate,
    x_user_id: str = Header(...),
) -> TaskRead:
    task = get_clinic_service().create_task(x_user_id, data)
    logger.info("task_created", task_id=str(task.id), patient_id=str(task.patient_id) if task.patient_id else None)
    return task


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    status: Optional[TaskStatus] = Query(None, description="Filter by status"),
    x_user_id: str = Header(...),
) -> TaskListResponse:
    """Tasks visible to the caller, soonest due first."""
    return TaskListResponse(tasks=get_clinic_service().list_tasks(x_user_id, status=status))


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: UUID,
    data: TaskUpdate,
    x_user_id: str = Header(...),
) -> TaskRead:
    task = get_clinic_service().update_task(x_user_id, str(task_id), data)
    logger.info("task_updated", task_id=str(task_id), status=task.status.value)
    return task


@router.delete("/{task_id}")
async def delete_task(
    task_id: UUID,
    x_user_id: str = Header(...),
) -> dict:
    get_clinic_service().delete_task(x_user_id, str(task_id))
    logger.info("task_deleted", task_id=str(task_id))
    return {"ok": True}
