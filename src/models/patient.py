"""
Patient model - Therapy patients owned by a single therapist.

A patient is never hard-deleted. ``archived_at`` doubles as the lifecycle
marker: null means the patient is active, a timestamp means the patient was
set inactive at that moment.
"""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from src.models.base import Base, utcnow


FIXED_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


# =============================================================================
# Enums
# =============================================================================

class PatientStatus(str, Enum):
    """Lifecycle status, derived from ``archived_at``."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class Patient(Base):
    """SQLAlchemy model for patients table."""

    __tablename__ = "patients"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_user_id = Column(PG_UUID(as_uuid=True), ForeignKey("therapists.id", ondelete="RESTRICT"), nullable=False, index=True)
    internal_code = Column(String(64), unique=True, nullable=False)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False, default="")
    phone = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    fixed_session_day = Column(Integer, nullable=True)  # 0=Sunday .. 6=Saturday
    fixed_session_time = Column(String(5), nullable=True)  # "HH:MM"
    default_session_fee_nis = Column(Numeric(10, 2), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "fixed_session_day IS NULL OR (fixed_session_day >= 0 AND fixed_session_day <= 6)",
            name="fixed_session_day_range"
        ),
    )

    # Relationships
    owner = relationship("Therapist", back_populates="patients")
    sessions = relationship("Session", back_populates="patient")
    tasks = relationship("Task", back_populates="patient")
    lifecycle_events = relationship(
        "PatientLifecycleEvent",
        back_populates="patient",
        order_by="PatientLifecycleEvent.occurred_at",
    )

    @property
    def status(self) -> PatientStatus:
        return PatientStatus.ACTIVE if self.archived_at is None else PatientStatus.INACTIVE

    @property
    def is_active(self) -> bool:
        return self.archived_at is None

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, owner_user_id={self.owner_user_id}, status={self.status.value})>"


# =============================================================================
# Pydantic Schemas
# =============================================================================

def _validate_fixed_day(v: Optional[int]) -> Optional[int]:
    if v is not None and not 0 <= v <= 6:
        raise ValueError("fixed_session_day must be between 0 (Sunday) and 6 (Saturday)")
    return v


def _validate_fixed_time(v: Optional[str]) -> Optional[str]:
    if v is not None and v != "" and not FIXED_TIME_PATTERN.match(v):
        raise ValueError("fixed_session_time must be HH:MM")
    return v


class PatientBase(BaseModel):
    """Base schema for patient data."""
    internal_code: str = Field(..., min_length=1, max_length=64, description="Human-readable unique code")
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field("", max_length=255)
    phone: Optional[str] = Field(None, max_length=64)
    email: Optional[str] = Field(None, max_length=255)
    fixed_session_day: Optional[int] = Field(None, description="Standing weekday, 0=Sunday")
    fixed_session_time: Optional[str] = Field(None, description="Standing time, HH:MM")
    default_session_fee_nis: Optional[Decimal] = Field(None, ge=0)

    @field_validator("fixed_session_day")
    @classmethod
    def check_day(cls, v: Optional[int]) -> Optional[int]:
        return _validate_fixed_day(v)

    @field_validator("fixed_session_time")
    @classmethod
    def check_time(cls, v: Optional[str]) -> Optional[str]:
        if v == "":
            return None
        return _validate_fixed_time(v)


class PatientCreate(PatientBase):
    """Schema for creating a new patient."""
    pass


class PatientUpdate(BaseModel):
    """Schema for a profile edit.

    Omitted fields are left alone. For the optional fields an empty string
    clears the stored value.
    """
    first_name: Optional[str] = Field(None, min_length=1, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=64)
    email: Optional[str] = Field(None, max_length=255)
    fixed_session_day: Optional[int | str] = None
    fixed_session_time: Optional[str] = None
    default_session_fee_nis: Optional[Decimal | str] = None

    @field_validator("fixed_session_day")
    @classmethod
    def check_day(cls, v):
        if v == "":
            return v
        if isinstance(v, str):
            raise ValueError("fixed_session_day must be an integer or empty string")
        return _validate_fixed_day(v)

    @field_validator("fixed_session_time")
    @classmethod
    def check_time(cls, v: Optional[str]) -> Optional[str]:
        return _validate_fixed_time(v)

    @field_validator("default_session_fee_nis")
    @classmethod
    def check_fee(cls, v):
        if v == "":
            return v
        if isinstance(v, str):
            raise ValueError("default_session_fee_nis must be a number or empty string")
        if v is not None and v < 0:
            raise ValueError("default_session_fee_nis must not be negative")
        return v


class PatientRead(PatientBase):
    """Schema for reading patient data."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_user_id: UUID
    status: PatientStatus
    archived_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PatientOption(BaseModel):
    """Compact patient entry for pickers."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    default_session_fee_nis: Optional[Decimal] = None
