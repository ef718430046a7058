"""
Recurring Sessions Service

Works from a patient's fixed weekly slot (``fixed_session_day`` and
``fixed_session_time``):
1. Generates the upcoming session dates implied by the slot
2. Detects when a new or edited session is probably the same appointment as
   an existing nearby session and should be merged instead of duplicated

The generator and the detector are pure functions over the patient's existing
sessions; ``RecurringSessionService`` loads those sessions and persists the
generated ones.
"""

import os
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.models.base import transaction, utcnow
from src.models.session import Session, SessionStatus
from src.services.errors import ValidationError
from src.services.repository import OwnerScope
from src.services.validation import parse_datetime, parse_fixed_time, to_naive_utc, to_uuid


RECURRING_HORIZON_DAYS = int(os.getenv("RECURRING_HORIZON_DAYS", "30"))
DEFAULT_SESSION_TIME = os.getenv("DEFAULT_SESSION_TIME", "09:00")
MERGE_DAY_TOLERANCE = int(os.getenv("MERGE_DAY_TOLERANCE", "1"))
MERGE_LOOKBACK_DAYS = int(os.getenv("MERGE_LOOKBACK_DAYS", "7"))

MERGEABLE_STATUSES = (SessionStatus.SCHEDULED, SessionStatus.COMPLETED)


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class SessionSlot:
    """Minimal view of an existing session used by the pure functions.

    ORM ``Session`` rows expose the same attributes and can be passed
    directly.
    """
    id: Any
    scheduled_at: datetime
    status: SessionStatus = SessionStatus.SCHEDULED
    patient_id: Any = None


class GeneratedSessions(BaseModel):
    """Dates the generator wants created."""
    dates: list[datetime] = Field(default_factory=list)
    summary: str


class MergeSuggestion(BaseModel):
    """Advisory merge decision for a candidate session time."""
    has_merge_suggestion: bool
    suggested_session_id: Optional[str] = None
    reason: Optional[str] = Field(None, description="same_day | near_fixed_slot")
    expected_time: Optional[datetime] = Field(None, description="Nearest fixed-slot occurrence")
    time_difference_seconds: Optional[float] = None


class CreatedSession(BaseModel):
    id: str
    scheduled_at: datetime


class RecurringCreateResult(BaseModel):
    """Outcome of persisting generated sessions."""
    created: int
    summary: str
    sessions: list[CreatedSession] = Field(default_factory=list)


# =============================================================================
# Calendar helpers
# =============================================================================

def sunday_based_weekday(value: date) -> int:
    """Weekday with 0=Sunday .. 6=Saturday."""
    return (value.weekday() + 1) % 7


def get_date_of_weekday(start: datetime, weekday: int) -> datetime:
    """Midnight of the next date with the given weekday (0=Sunday).

    If ``start`` already falls on that weekday, the same day is returned
    unless ``start`` is exactly midnight, in which case the following week
    is returned.
    """
    midnight = datetime.combine(start.date(), time.min)
    day_diff = (weekday - sunday_based_weekday(midnight)) % 7

    if day_diff == 0:
        if midnight < start:
            return midnight
        return midnight + timedelta(days=7)
    return midnight + timedelta(days=day_diff)


def _slot_of(patient: Any) -> tuple[Optional[int], Optional[str]]:
    if patient is None:
        return None, None
    return getattr(patient, "fixed_session_day", None), getattr(patient, "fixed_session_time", None)


def _check_weekday(day: Any) -> int:
    if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
        raise ValidationError(f"Invalid fixed session day: {day!r}", "INVALID_DAY")
    return day


# =============================================================================
# Generator
# =============================================================================

def generate_upcoming_sessions(
    patient_id: Any,
    patient: Any,
    existing_sessions: Iterable[Any],
    now: Optional[datetime] = None,
    horizon_days: int = RECURRING_HORIZON_DAYS,
) -> GeneratedSessions:
    """Compute the slot dates in the horizon that have no session yet.

    Args:
        patient_id: ID of the patient the sessions belong to.
        patient: Object exposing ``fixed_session_day`` (0=Sunday) and
            ``fixed_session_time`` ("HH:MM", optional).
        existing_sessions: The patient's sessions in the horizon. Any status
            blocks its day, so canceled occurrences are not regenerated.
        now: Current naive-UTC time.
        horizon_days: Size of the forward window.

    Returns:
        GeneratedSessions with the dates to create, earliest first.
    """
    fixed_day, fixed_time = _slot_of(patient)
    if fixed_day is None:
        return GeneratedSessions(dates=[], summary="No recurring schedule set")

    weekday = _check_weekday(fixed_day)
    hour, minute = parse_fixed_time(fixed_time or DEFAULT_SESSION_TIME)
    now = to_naive_utc(now) if now is not None else utcnow()
    horizon_end = now + timedelta(days=horizon_days)

    booked_days = {
        to_naive_utc(session.scheduled_at).date()
        for session in existing_sessions
        if getattr(session, "patient_id", None) is None or str(session.patient_id) == str(patient_id)
    }

    dates: list[datetime] = []
    current = get_date_of_weekday(now, weekday)
    while current <= horizon_end:
        occurrence = current.replace(hour=hour, minute=minute)
        if occurrence > now and current.date() not in booked_days:
            dates.append(occurrence)
        current += timedelta(days=7)

    if dates:
        summary = (
            f"Generated {len(dates)} upcoming sessions "
            f"from {dates[0].date().isoformat()} to {dates[-1].date().isoformat()}"
        )
    else:
        summary = f"No new sessions needed through {horizon_end.date().isoformat()}"

    return GeneratedSessions(dates=dates, summary=summary)


# =============================================================================
# Merge detector
# =============================================================================

def _check_clock_value(value: Any, label: str, upper: int) -> int:
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= upper:
        raise ValidationError(f"Invalid {label}: {value!r}", "INVALID_TIME")
    return value


def nearest_slot_occurrence(candidate: datetime, weekday: int, hour: int, minute: int) -> datetime:
    """The fixed-slot instant closest to ``candidate`` (either direction)."""
    forward = (weekday - sunday_based_weekday(candidate.date())) % 7
    base = datetime.combine(candidate.date(), time(hour, minute))
    after = base + timedelta(days=forward)
    before = after - timedelta(days=7)
    return min((after, before), key=lambda instant: (abs(instant - candidate), instant))


def detect_potential_merge(
    new_date: Any,
    hour: Any,
    minute: Any,
    patient: Any,
    existing_sessions: Iterable[Any],
    exclude_session_id: Any = None,
    day_tolerance: int = MERGE_DAY_TOLERANCE,
) -> MergeSuggestion:
    """Decide whether a candidate session duplicates an existing one.

    Only sessions of ``patient`` are considered; a session without a
    ``patient_id`` is assumed to belong to it. An existing SCHEDULED or
    COMPLETED session qualifies when it is on the
    candidate's calendar day, or, for a patient with a fixed slot whose
    expected occurrence is within ``day_tolerance`` days of the candidate,
    when it is within ``day_tolerance`` days of the candidate. The closest
    qualifying session wins; ties go to the earliest one.

    Raises:
        ValidationError: If the date, hour or minute is malformed.
    """
    if new_date is None or (isinstance(new_date, str) and not new_date.strip()):
        raise ValidationError("date is required", "MISSING_DATE")
    day = parse_datetime(new_date, "date").date()
    candidate = datetime.combine(
        day,
        time(_check_clock_value(hour, "hour", 23), _check_clock_value(minute, "minute", 59)),
    )
    excluded = str(exclude_session_id) if exclude_session_id is not None else None
    patient_id = getattr(patient, "id", None)

    expected_time = None
    near_slot = False
    fixed_day, fixed_time = _slot_of(patient)
    if fixed_day is not None:
        slot_hour, slot_minute = parse_fixed_time(fixed_time or DEFAULT_SESSION_TIME)
        expected_time = nearest_slot_occurrence(candidate, _check_weekday(fixed_day), slot_hour, slot_minute)
        near_slot = abs((expected_time.date() - candidate.date()).days) <= day_tolerance

    best = None
    for session in existing_sessions:
        if session.status not in MERGEABLE_STATUSES:
            continue
        if excluded is not None and str(session.id) == excluded:
            continue
        if patient_id is not None and getattr(session, "patient_id", None) is not None \
                and str(session.patient_id) != str(patient_id):
            continue

        scheduled_at = to_naive_utc(session.scheduled_at)
        day_gap = abs((scheduled_at.date() - candidate.date()).days)
        if day_gap == 0:
            reason = "same_day"
        elif near_slot and day_gap <= day_tolerance:
            reason = "near_fixed_slot"
        else:
            continue

        distance = abs((scheduled_at - candidate).total_seconds())
        rank = (distance, scheduled_at)
        if best is None or rank < best[0]:
            best = (rank, session, reason)

    if best is None:
        return MergeSuggestion(has_merge_suggestion=False, expected_time=expected_time)

    (distance, _), session, reason = best
    return MergeSuggestion(
        has_merge_suggestion=True,
        suggested_session_id=str(session.id),
        reason=reason,
        expected_time=expected_time,
        time_difference_seconds=distance,
    )


# =============================================================================
# Service
# =============================================================================

class RecurringSessionService:
    """
    Loads and persists the data the generator and detector work on.

    Args:
        session_factory: SQLAlchemy session factory.
        clock: Returns the current naive-UTC time. Injected for tests.
    """

    def __init__(self, session_factory, clock: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        self._clock = clock or utcnow

    def create_upcoming_sessions(self, patient_id: str, actor_user_id: str) -> RecurringCreateResult:
        """Generate and insert the patient's missing slot sessions.

        Raises:
            NotFoundError: If the patient is absent or not owned.
            ValidationError: If the patient is inactive.
        """
        _patient_id = to_uuid(patient_id, "patient id")

        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            patient = scope.require_active_patient(_patient_id)

            now = self._clock()
            window_start = datetime.combine(now.date(), time.min)
            existing = scope.sessions_for_patient(
                patient.id,
                start=window_start,
                end=now + timedelta(days=RECURRING_HORIZON_DAYS + 1),
            )
            generated = generate_upcoming_sessions(patient.id, patient, existing, now=now)

            created = []
            for scheduled_at in generated.dates:
                session = Session(
                    id=uuid4(),
                    patient_id=patient.id,
                    scheduled_at=scheduled_at,
                    status=SessionStatus.SCHEDULED,
                    fee_nis=patient.default_session_fee_nis,
                    is_recurring_template=True,
                )
                db.add(session)
                created.append(CreatedSession(id=str(session.id), scheduled_at=scheduled_at))

            return RecurringCreateResult(
                created=len(created),
                summary=generated.summary,
                sessions=created,
            )

    def suggest_merge(
        self,
        actor_user_id: str,
        patient_id: str,
        new_date: Any,
        hour: Any,
        minute: Any,
        exclude_session_id: Optional[str] = None,
    ) -> MergeSuggestion:
        """Run the merge detector against the patient's nearby sessions.

        Raises:
            ValidationError: If the candidate date or time is malformed.
            NotFoundError: If the patient is absent or not owned.
        """
        if new_date is None or (isinstance(new_date, str) and not new_date.strip()):
            raise ValidationError("date is required", "MISSING_DATE")
        candidate_day = parse_datetime(new_date, "date")
        _patient_id = to_uuid(patient_id, "patient id")

        with transaction(self._session_factory) as db:
            scope = OwnerScope(db, actor_user_id)
            patient = scope.get_patient(_patient_id)
            window_start = datetime.combine(candidate_day.date(), time.min)
            existing = scope.sessions_for_patient(
                patient.id,
                start=window_start - timedelta(days=MERGE_LOOKBACK_DAYS),
                end=window_start + timedelta(days=MERGE_LOOKBACK_DAYS + 1),
                statuses=MERGEABLE_STATUSES,
            )
            return detect_potential_merge(
                candidate_day,
                hour,
                minute,
                patient,
                existing,
                exclude_session_id=exclude_session_id,
            )
