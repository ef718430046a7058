"""
Sessions API Tests

Tests verify:
1. Session create / edit / delete routes
2. Recurring generation endpoint, including repeat calls
3. Merge suggestion endpoint and its input checks
4. Merge endpoint and its error mapping
"""

from datetime import datetime
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.api.app import app
from src.api.sessions import set_clinic_service, set_merge_service, set_recurring_service
from src.models.session import SessionRead, SessionStatus
from src.services.clinic import ClinicService
from src.services.errors import NotFoundError, ValidationError
from src.services.recurring_sessions import MergeSuggestion, RecurringCreateResult, RecurringSessionService
from src.services.session_merge import MergeResult, SessionMergeService


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture()
def client():
    return TestClient(app)


@pytest.fixture()
def mock_clinic():
    mock = MagicMock(spec=ClinicService)
    set_clinic_service(mock)
    yield mock
    set_clinic_service(None)


@pytest.fixture()
def mock_recurring():
    mock = MagicMock(spec=RecurringSessionService)
    set_recurring_service(mock)
    yield mock
    set_recurring_service(None)


@pytest.fixture()
def mock_merge():
    mock = MagicMock(spec=SessionMergeService)
    set_merge_service(mock)
    yield mock
    set_merge_service(None)


@pytest.fixture()
def headers():
    return {"x-user-id": str(uuid4())}


def _session_read(**overrides) -> SessionRead:
    now = datetime(2025, 3, 3, 8, 0)
    fields = dict(
        id=uuid4(),
        patient_id=uuid4(),
        scheduled_at=datetime(2025, 3, 4, 10, 0),
        status=SessionStatus.SCHEDULED,
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return SessionRead(**fields)


# =============================================================================
# CRUD
# =============================================================================

class TestSessionCrud:

    def test_create_session(self, client, mock_clinic, headers):
        session = _session_read()
        mock_clinic.create_session.return_value = session

        response = client.post(
            "/sessions",
            json={"patient_id": str(session.patient_id), "scheduled_at": "2025-03-04T10:00:00"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "SCHEDULED"

    def test_create_for_inactive_patient_is_400(self, client, mock_clinic, headers):
        mock_clinic.create_session.side_effect = ValidationError("Cannot link to an inactive patient", "PATIENT_INACTIVE")

        response = client.post(
            "/sessions",
            json={"patient_id": str(uuid4()), "scheduled_at": "2025-03-04T10:00:00"},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "PATIENT_INACTIVE"

    def test_update_session(self, client, mock_clinic, headers):
        session = _session_read(status=SessionStatus.CANCELED, canceled_at=datetime(2025, 3, 3, 8, 0))
        mock_clinic.update_session.return_value = session

        response = client.patch(f"/sessions/{session.id}", json={"status": "CANCELED"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELED"

    def test_update_unknown_status_rejected(self, client, mock_clinic, headers):
        response = client.patch(f"/sessions/{uuid4()}", json={"status": "MERGED"}, headers=headers)

        assert response.status_code == 422

    def test_delete_session(self, client, mock_clinic, headers):
        session_id = uuid4()

        response = client.delete(f"/sessions/{session_id}", headers=headers)

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        mock_clinic.delete_session.assert_called_once_with(headers["x-user-id"], str(session_id))


# =============================================================================
# Recurring and merge
# =============================================================================

class TestRecurring:

    def test_create_recurring(self, client, mock_recurring, headers):
        mock_recurring.create_upcoming_sessions.return_value = RecurringCreateResult(
            created=0, summary="No new sessions needed through 2025-04-02"
        )
        patient_id = str(uuid4())

        response = client.post("/sessions/recurring", json={"patient_id": patient_id}, headers=headers)

        assert response.status_code == 200
        assert response.json()["created"] == 0
        mock_recurring.create_upcoming_sessions.assert_called_once_with(patient_id, headers["x-user-id"])

    def test_missing_patient_is_400(self, client, mock_recurring, headers):
        response = client.post("/sessions/recurring", json={}, headers=headers)

        assert response.status_code == 400
        mock_recurring.create_upcoming_sessions.assert_not_called()


class TestMergeSuggestion:

    def test_suggestion(self, client, mock_recurring, headers):
        session_id = str(uuid4())
        mock_recurring.suggest_merge.return_value = MergeSuggestion(
            has_merge_suggestion=True, suggested_session_id=session_id, reason="same_day"
        )

        response = client.post(
            "/sessions/merge-suggestion",
            json={"patient_id": str(uuid4()), "date": "2025-03-04", "hour": 10, "minute": 5},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["has_merge_suggestion"] is True
        assert response.json()["suggested_session_id"] == session_id

    def test_missing_hour_is_400(self, client, mock_recurring, headers):
        response = client.post(
            "/sessions/merge-suggestion",
            json={"patient_id": str(uuid4()), "date": "2025-03-04", "minute": 5},
            headers=headers,
        )

        assert response.status_code == 400
        mock_recurring.suggest_merge.assert_not_called()

    def test_malformed_date_is_400(self, client, mock_recurring, headers):
        mock_recurring.suggest_merge.side_effect = ValidationError("date is not a valid date", "INVALID_DATE")

        response = client.post(
            "/sessions/merge-suggestion",
            json={"patient_id": str(uuid4()), "date": "soon", "hour": 10, "minute": 0},
            headers=headers,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_DATE"


class TestMerge:

    def test_merge(self, client, mock_merge, headers):
        primary, secondary = str(uuid4()), str(uuid4())
        mock_merge.merge_sessions.return_value = MergeResult(kept=primary, deleted=secondary)

        response = client.post(f"/sessions/{primary}/merge", json={"merge_with_id": secondary}, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"merged": True, "kept": primary, "deleted": secondary}
        mock_merge.merge_sessions.assert_called_once_with(primary, secondary, headers["x-user-id"])

    def test_different_patients_is_400(self, client, mock_merge, headers):
        mock_merge.merge_sessions.side_effect = ValidationError("Sessions belong to different patients", "DIFFERENT_PATIENTS")

        response = client.post(f"/sessions/{uuid4()}/merge", json={"merge_with_id": str(uuid4())}, headers=headers)

        assert response.status_code == 400
        assert response.json()["code"] == "DIFFERENT_PATIENTS"

    def test_unknown_session_is_404(self, client, mock_merge, headers):
        mock_merge.merge_sessions.side_effect = NotFoundError("Session not found", "SESSION_NOT_FOUND")

        response = client.post(f"/sessions/{uuid4()}/merge", json={"merge_with_id": str(uuid4())}, headers=headers)

        assert response.status_code == 404


# =============================================================================
# Database-backed flow
# =============================================================================

class TestSchedulingWithDatabase:

    @pytest.fixture()
    def wired(self, sf, clock):
        set_clinic_service(ClinicService(session_factory=sf, clock=clock))
        set_recurring_service(RecurringSessionService(session_factory=sf, clock=clock))
        set_merge_service(SessionMergeService(session_factory=sf))
        yield
        set_clinic_service(None)
        set_recurring_service(None)
        set_merge_service(None)

    def test_generate_suggest_and_merge(self, client, wired, make_patient, therapist_id):
        headers = {"x-user-id": str(therapist_id)}
        patient_id = str(make_patient(therapist_id, fixed_session_day=2, fixed_session_time="10:00"))

        first = client.post("/sessions/recurring", json={"patient_id": patient_id}, headers=headers).json()
        second = client.post("/sessions/recurring", json={"patient_id": patient_id}, headers=headers).json()
        assert first["created"] == 5
        assert second["created"] == 0

        generated_id = first["sessions"][0]["id"]
        manual = client.post(
            "/sessions",
            json={"patient_id": patient_id, "scheduled_at": "2025-03-04T10:05:00"},
            headers=headers,
        ).json()

        suggestion = client.post(
            "/sessions/merge-suggestion",
            json={
                "patient_id": patient_id,
                "date": "2025-03-04",
                "hour": 10,
                "minute": 5,
                "exclude_session_id": manual["id"],
            },
            headers=headers,
        ).json()
        assert suggestion["suggested_session_id"] == generated_id

        merged = client.post(
            f"/sessions/{manual['id']}/merge", json={"merge_with_id": generated_id}, headers=headers
        )
        assert merged.status_code == 200
        assert merged.json()["deleted"] == generated_id

        assert client.delete(f"/sessions/{generated_id}", headers=headers).status_code == 404
