"""
Session model - Scheduled or completed clinical appointments.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from src.models.base import Base, utcnow


# =============================================================================
# Enums
# =============================================================================

class SessionStatus(str, Enum):
    """Status of a therapy session."""
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELED_LATE = "CANCELED_LATE"
    CANCELED = "CANCELED"
    UNDOCUMENTED = "UNDOCUMENTED"


# Statuses that still describe an appointment expected to happen
UPCOMING_STATUSES = (SessionStatus.SCHEDULED, SessionStatus.UNDOCUMENTED)


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class Session(Base):
    """SQLAlchemy model for sessions table."""

    __tablename__ = "sessions"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    patient_id = Column(PG_UUID(as_uuid=True), ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.SCHEDULED)
    fee_nis = Column(Numeric(10, 2), nullable=True)
    location = Column(String(255), nullable=True)
    note = Column(Text, nullable=True)
    is_recurring_template = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_sessions_patient_scheduled", "patient_id", "scheduled_at"),
    )

    # Relationships
    patient = relationship("Patient", back_populates="sessions")
    tasks = relationship("Task", back_populates="session")

    def __repr__(self) -> str:
        return f"<Session(id={self.id}, patient_id={self.patient_id}, status={self.status})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class SessionCreate(BaseModel):
    """Schema for creating a new session."""
    patient_id: UUID = Field(..., description="ID of the patient")
    scheduled_at: datetime = Field(..., description="Scheduled date/time of session")
    location: Optional[str] = Field(None, max_length=255)
    fee_nis: Optional[Decimal] = Field(None, description="Fee; non-positive values are stored as empty")
    note: Optional[str] = Field(None, description="Session note; a note on a past session marks it completed")


class SessionUpdate(BaseModel):
    """Schema for editing a session.

    Omitted fields are left alone; an empty string clears location or fee.
    """
    status: Optional[SessionStatus] = None
    scheduled_at: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    fee_nis: Optional[Decimal | str] = None
    note: Optional[str] = None


class SessionRead(BaseModel):
    """Schema for reading session data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    patient_id: UUID
    scheduled_at: datetime
    status: SessionStatus
    fee_nis: Optional[Decimal] = None
    location: Optional[str] = None
    note: Optional[str] = None
    is_recurring_template: bool = False
    canceled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
