"""
Session Merge Service

Collapses two sessions that describe the same real appointment. The primary
session is kept as-is and the secondary is deleted. Tasks that pointed at the
secondary lose their session link; nothing is moved onto the primary.
"""

from typing import Optional

from pydantic import BaseModel

from src.models.base import transaction
from src.services.errors import ValidationError
from src.services.repository import OwnerScope
from src.services.validation import to_uuid


class MergeResult(BaseModel):
    """Outcome of a merge."""
    merged: bool = True
    kept: str
    deleted: str


class SessionMergeService:
    """
    Deletes the secondary of two same-patient sessions.

    Args:
        session_factory: SQLAlchemy session factory.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def merge_sessions(self, primary_id: str, secondary_id: Optional[str], actor_user_id: str) -> MergeResult:
        """Merge ``secondary_id`` into ``primary_id``.

        Raises:
            ValidationError: If an id is missing or malformed, both ids are
                the same, or the sessions belong to different patients.
            NotFoundError: If either session is absent or not owned.
        """
        if not primary_id or not secondary_id:
            raise ValidationError("Both session ids are required", "MISSING_SESSION_ID")
        _primary_id = to_uuid(primary_id, "session id")
        _secondary_id = to_uuid(secondary_id, "session id")
        if _primary_id == _secondary_id:
            raise ValidationError("Cannot merge a session with itself", "SAME_SESSION")

        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            primary = scope.get_session(_primary_id)
            secondary = scope.get_session(_secondary_id)

            if primary.patient_id != secondary.patient_id:
                raise ValidationError("Sessions belong to different patients", "DIFFERENT_PATIENTS")

            for task in list(secondary.tasks):
                task.session_id = None
            db.delete(secondary)

            return MergeResult(kept=str(primary.id), deleted=str(secondary.id))
