# Metapel Models Package
# SQLAlchemy ORM models with Pydantic schemas

from src.models.base import Base, get_engine, transaction, utcnow
from src.models.therapist import Therapist
from src.models.patient import Patient, PatientCreate, PatientRead, PatientUpdate, PatientOption, PatientStatus
from src.models.session import Session, SessionCreate, SessionRead, SessionUpdate, SessionStatus, UPCOMING_STATUSES
from src.models.task import Task, TaskCreate, TaskRead, TaskUpdate, TaskStatus
from src.models.lifecycle_event import PatientLifecycleEvent, LifecycleEventRead, LifecycleEventType

__all__ = [
    # Base
    "Base",
    "get_engine",
    "transaction",
    "utcnow",
    # Therapist
    "Therapist",
    # Patient
    "Patient",
    "PatientCreate",
    "PatientRead",
    "PatientUpdate",
    "PatientOption",
    "PatientStatus",
    # Session
    "Session",
    "SessionCreate",
    "SessionRead",
    "SessionUpdate",
    "SessionStatus",
    "UPCOMING_STATUSES",
    # Task
    "Task",
    "TaskCreate",
    "TaskRead",
    "TaskUpdate",
    "TaskStatus",
    # Lifecycle Event
    "PatientLifecycleEvent",
    "LifecycleEventRead",
    "LifecycleEventType",
]
