"""
PatientLifecycleEvent model - Timeline of patient status transitions.

One row per transition, written inside the transaction that performs it.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from src.models.base import Base, JSONType, utcnow


# =============================================================================
# Enums
# =============================================================================

class LifecycleEventType(str, Enum):
    """Kind of patient lifecycle transition."""
    SET_INACTIVE = "SET_INACTIVE"
    REACTIVATED = "REACTIVATED"


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class PatientLifecycleEvent(Base):
    """SQLAlchemy model for patient_lifecycle_events table."""

    __tablename__ = "patient_lifecycle_events"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    patient_id = Column(PG_UUID(as_uuid=True), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_user_id = Column(PG_UUID(as_uuid=True), ForeignKey("therapists.id", ondelete="RESTRICT"), nullable=False)
    event_type = Column(SQLEnum(LifecycleEventType), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    reason = Column(Text, nullable=True)
    metadata_json = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="lifecycle_events")

    def __repr__(self) -> str:
        return f"<PatientLifecycleEvent(id={self.id}, patient_id={self.patient_id}, event_type={self.event_type})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

class LifecycleEventRead(BaseModel):
    """Schema for reading a lifecycle event."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    patient_id: UUID
    actor_user_id: UUID
    event_type: LifecycleEventType
    occurred_at: datetime
    reason: Optional[str] = None
    metadata_json: Optional[dict[str, Any]] = None
    created_at: datetime
