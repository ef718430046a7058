"""
Task model - Therapist to-do items, optionally tied to a patient or session.

``completed_at`` is set exactly when the task is DONE.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import CheckConstraint, Column, DateTime, Enum as SQLEnum, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from src.models.base import Base, utcnow


# =============================================================================
# Enums
# =============================================================================

class TaskStatus(str, Enum):
    """Status of a task."""
    OPEN = "OPEN"
    DONE = "DONE"
    CANCELED = "CANCELED"


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class Task(Base):
    """SQLAlchemy model for tasks table."""

    __tablename__ = "tasks"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_user_id = Column(PG_UUID(as_uuid=True), ForeignKey("therapists.id", ondelete="RESTRICT"), nullable=False)
    title = Column(String(500), nullable=False)
    details = Column(Text, nullable=True)
    status = Column(SQLEnum(TaskStatus), nullable=False, default=TaskStatus.OPEN)
    patient_id = Column(PG_UUID(as_uuid=True), ForeignKey("patients.id", ondelete="SET NULL"), nullable=True)
    session_id = Column(PG_UUID(as_uuid=True), ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True)
    due_at = Column(DateTime(timezone=True), nullable=True)
    reminder_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "(status = 'DONE') = (completed_at IS NOT NULL)",
            name="completed_at_iff_done"
        ),
        Index("ix_tasks_owner_status", "owner_user_id", "status"),
        Index("ix_tasks_patient_id", "patient_id"),
    )

    # Relationships
    owner = relationship("Therapist", back_populates="tasks")
    patient = relationship("Patient", back_populates="tasks")
    session = relationship("Session", back_populates="tasks")

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, status={self.status}, patient_id={self.patient_id})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class TaskCreate(BaseModel):
    """Schema for creating a new task."""
    title: str = Field(..., max_length=500, description="Task title")
    details: Optional[str] = None
    patient_id: Optional[UUID] = Field(None, description="Optional active patient")
    session_id: Optional[UUID] = Field(None, description="Optional session")
    due_at: Optional[datetime] = None
    reminder_at: Optional[datetime] = None


class TaskUpdate(BaseModel):
    """Schema for editing a task.

    Omitted fields are left alone; an empty string clears the patient link
    or a date.
    """
    title: Optional[str] = Field(None, max_length=500)
    details: Optional[str] = None
    status: Optional[TaskStatus] = None
    patient_id: Optional[UUID | str] = None
    due_at: Optional[datetime | str] = None
    reminder_at: Optional[datetime | str] = None


class TaskRead(BaseModel):
    """Schema for reading task data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_user_id: UUID
    title: str
    details: Optional[str] = None
    status: TaskStatus
    patient_id: Optional[UUID] = None
    session_id: Optional[UUID] = None
    due_at: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
