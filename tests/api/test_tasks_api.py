"""
Tasks API Tests

Tests verify:
1. Task create / list / edit / delete routes
2. Status filter is passed through
3. Archived patients cannot receive tasks
"""

from datetime import datetime
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from src.api.app import app
from src.api.tasks import set_clinic_service
from src.models.task import TaskRead, TaskStatus
from src.services.clinic import ClinicService
from src.services.errors import NotFoundError


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
def user_id():
    return uuid4()


@pytest.fixture()
def headers(user_id):
    return {"x-user-id": str(user_id)}


def _task_read(owner_user_id, **overrides) -> TaskRead:
    now = datetime(2025, 3, 3, 8, 0)
    fields = dict(
        id=uuid4(),
        owner_user_id=owner_user_id,
        title="Send summary letter",
        status=TaskStatus.OPEN,
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return TaskRead(**fields)


class TestTasksApi:

    def test_create_task(self, client, mock_clinic, headers, user_id):
        mock_clinic.create_task.return_value = _task_read(user_id)

        response = client.post("/tasks", json={"title": "Send summary letter"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "OPEN"

    def test_list_with_status_filter(self, client, mock_clinic, headers, user_id):
        mock_clinic.list_tasks.return_value = [_task_read(user_id)]

        response = client.get("/tasks?status=OPEN", headers=headers)

        assert response.status_code == 200
        assert len(response.json()["tasks"]) == 1
        assert mock_clinic.list_tasks.call_args.kwargs["status"] == TaskStatus.OPEN

    def test_list_rejects_unknown_status(self, client, mock_clinic, headers):
        response = client.get("/tasks?status=ARCHIVED", headers=headers)

        assert response.status_code == 422

    def test_complete_task(self, client, mock_clinic, headers, user_id):
        task = _task_read(user_id, status=TaskStatus.DONE, completed_at=datetime(2025, 3, 3, 8, 0))
        mock_clinic.update_task.return_value = task

        response = client.patch(f"/tasks/{task.id}", json={"status": "DONE"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["completed_at"] is not None

    def test_delete_unknown_task(self, client, mock_clinic, headers):
        mock_clinic.delete_task.side_effect = NotFoundError("Task not found", "TASK_NOT_FOUND")

        response = client.delete(f"/tasks/{uuid4()}", headers=headers)

        assert response.status_code == 404


class TestTasksWithDatabase:

    @pytest.fixture()
    def wired(self, sf, clock):
        set_clinic_service(ClinicService(session_factory=sf, clock=clock))
        yield
        set_clinic_service(None)

    def test_task_lifecycle(self, client, wired, make_patient, therapist_id):
        headers = {"x-user-id": str(therapist_id)}
        patient_id = str(make_patient(therapist_id))

        created = client.post("/tasks", json={"title": "Call parents", "patient_id": patient_id}, headers=headers)
        assert created.status_code == 200
        task_id = created.json()["id"]

        done = client.patch(f"/tasks/{task_id}", json={"status": "DONE"}, headers=headers).json()
        assert done["status"] == "DONE"
        assert done["completed_at"] is not None

        reopened = client.patch(f"/tasks/{task_id}", json={"status": "OPEN"}, headers=headers).json()
        assert reopened["completed_at"] is None

        assert [t["id"] for t in client.get("/tasks?status=OPEN", headers=headers).json()["tasks"]] == [task_id]
        assert client.delete(f"/tasks/{task_id}", headers=headers).json() == {"ok": True}

    def test_archived_patient_rejected(self, client, wired, make_patient, therapist_id):
        patient_id = str(make_patient(therapist_id, archived_at=datetime(2025, 2, 1)))

        response = client.post(
            "/tasks",
            json={"title": "Call parents", "patient_id": patient_id},
            headers={"x-user-id": str(therapist_id)},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "PATIENT_INACTIVE"
