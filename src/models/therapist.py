"""
Therapist model - The account that owns patients, sessions and tasks.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from src.models.base import Base, utcnow


# =============================================================================
# SQLAlchemy Model
# =============================================================================

class Therapist(Base):
    """SQLAlchemy model for therapists table."""

    __tablename__ = "therapists"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    patients = relationship("Patient", back_populates="owner")
    tasks = relationship("Task", back_populates="owner")

    def __repr__(self) -> str:
        return f"<Therapist(id={self.id}, email={self.email})>"

