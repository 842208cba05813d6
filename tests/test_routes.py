# ============================================================================
# API ROUTE TESTS
# ============================================================================
# STATUS: Tests - HTTP surface, auth and error mapping
# PURPOSE: Verify api/routes.py and api/auth.py with mocked services
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Route Tests

Uses FastAPI TestClient against main.app without running the lifespan,
so services are injected with set_services() and no pool is opened.

Run with:
    pytest tests/test_routes.py -v
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient

from api.auth import set_auth_settings
from api.routes import set_services
from core.config import AuthDefaults
from core.contracts import JobStatus, StepStatus
from core.models import JobProgress, JobStep, JobWithSteps, WorkflowError
from main import app
from services import (
    Caller,
    InvalidTransition,
    NotFoundOrDenied,
    StepUpdateResult,
    StorageError,
    UserResolutionError,
    ValidationError,
)


SECRET = "test-secret-with-enough-length-for-hs256"


def _token(claims):
    claims = {"exp": datetime.now(timezone.utc) + timedelta(minutes=5), **claims}
    return jwt.encode(claims, SECRET, algorithm="HS256")


USER_HEADERS = {"Authorization": f"Bearer {_token({'sub': 'user-1'})}"}
SERVICE_HEADERS = {"Authorization": f"Bearer {_token({'role': 'service_role'})}"}


def _job(status=JobStatus.PENDING):
    return JobWithSteps(
        id="job-1",
        user_id="user-1",
        workflow_name="Add Resource",
        status=status,
        steps=[JobStep(id="s1", job_id="job-1", step_name="Fetch", step_order=1)],
    )


@pytest.fixture
def services():
    job_service = MagicMock()
    error_service = MagicMock()
    set_services(job_service=job_service, error_service=error_service)
    set_auth_settings(AuthDefaults(jwt_secret=SECRET))
    yield job_service, error_service
    set_services(job_service=None, error_service=None)
    set_auth_settings(None)


@pytest.fixture
def client(services):
    return TestClient(app)


# ============================================================================
# AUTH
# ============================================================================

class TestAuth:

    def test_missing_token(self, client):
        assert client.get("/api/v1/jobs").status_code == 401

    def test_bad_signature(self, client):
        forged = jwt.encode({"sub": "user-1"}, "another-secret-of-sufficient-length", algorithm="HS256")
        response = client.get("/api/v1/jobs", headers={"Authorization": f"Bearer {forged}"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_expired_token(self, client):
        expired = _token({"sub": "user-1", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)})
        response = client.get("/api/v1/jobs", headers={"Authorization": f"Bearer {expired}"})
        assert response.status_code == 401

    def test_token_without_subject(self, client):
        response = client.get("/api/v1/jobs", headers={"Authorization": f"Bearer {_token({'role': 'user'})}"})
        assert response.status_code == 401

    def test_unconfigured_secret(self, client):
        set_auth_settings(AuthDefaults(jwt_secret=""))
        assert client.get("/api/v1/jobs", headers=USER_HEADERS).status_code == 503

    def test_services_not_initialized(self):
        set_services(job_service=None, error_service=None)
        set_auth_settings(AuthDefaults(jwt_secret=SECRET))
        try:
            response = TestClient(app).get("/api/v1/jobs", headers=USER_HEADERS)
        finally:
            set_auth_settings(None)
        assert response.status_code == 503


# ============================================================================
# JOBS
# ============================================================================

class TestCreateJob:

    def test_created(self, client, services):
        job_service, _ = services
        job_service.create_job = AsyncMock(return_value=_job())
        response = client.post(
            "/api/v1/jobs",
            json={"workflow_name": "Add Resource", "steps": [{"name": "Fetch"}]},
            headers=USER_HEADERS,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["id"] == "job-1"
        assert body["steps"][0]["status"] == "pending"
        caller = job_service.create_job.await_args.args[0]
        assert caller == Caller.user("user-1")

    def test_service_role_names_user(self, client, services):
        job_service, _ = services
        job_service.create_job = AsyncMock(return_value=_job())
        client.post(
            "/api/v1/jobs",
            json={"workflow_name": "Add Resource", "steps": [{"name": "Fetch"}], "user_email": "a@b.c"},
            headers=SERVICE_HEADERS,
        )
        kwargs = job_service.create_job.await_args.kwargs
        assert job_service.create_job.await_args.args[0].is_service is True
        assert kwargs["user_email"] == "a@b.c"

    def test_missing_fields(self, client, services):
        job_service, _ = services
        job_service.create_job = AsyncMock(side_effect=ValidationError("workflow_name and steps are required"))
        response = client.post("/api/v1/jobs", json={}, headers=USER_HEADERS)
        assert response.status_code == 400
        assert "required" in response.json()["detail"]

    def test_malformed_body(self, client, services):
        job_service, _ = services
        job_service.create_job = AsyncMock()
        response = client.post("/api/v1/jobs", json={"steps": "not-a-list"}, headers=USER_HEADERS)
        assert response.status_code == 400
        job_service.create_job.assert_not_awaited()

    def test_unresolvable_user(self, client, services):
        job_service, _ = services
        job_service.create_job = AsyncMock(side_effect=UserResolutionError("Unable to determine user"))
        response = client.post(
            "/api/v1/jobs", json={"workflow_name": "W", "steps": [{"name": "A"}]}, headers=SERVICE_HEADERS,
        )
        assert response.status_code == 400

    def test_storage_failure(self, client, services):
        job_service, _ = services
        job_service.create_job = AsyncMock(side_effect=StorageError("Failed to create job steps"))
        response = client.post(
            "/api/v1/jobs", json={"workflow_name": "W", "steps": [{"name": "A"}]}, headers=USER_HEADERS,
        )
        assert response.status_code == 500


class TestUpdateStep:

    def _result(self):
        job = _job(JobStatus.RUNNING)
        step = job.steps[0].model_copy(update={"status": StepStatus.RUNNING})
        return StepUpdateResult(updated_step=step, job=job)

    @pytest.mark.parametrize("method", ["post", "patch"])
    def test_updated(self, client, services, method):
        job_service, _ = services
        job_service.update_step = AsyncMock(return_value=self._result())
        response = getattr(client, method)(
            "/api/v1/jobs/steps/update",
            json={"job_id": "job-1", "step_name": "Fetch", "status": "running"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["updated_step"]["status"] == "running"
        assert body["job"]["status"] == "running"

    def test_not_found(self, client, services):
        job_service, _ = services
        job_service.update_step = AsyncMock(side_effect=NotFoundOrDenied())
        response = client.post(
            "/api/v1/jobs/steps/update",
            json={"job_id": "job-x", "step_name": "Fetch", "status": "running"},
            headers=USER_HEADERS,
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Job not found or access denied"

    def test_invalid_status(self, client, services):
        job_service, _ = services
        job_service.update_step = AsyncMock(side_effect=ValidationError("Invalid step status: exploded"))
        response = client.post(
            "/api/v1/jobs/steps/update",
            json={"job_id": "job-1", "step_name": "Fetch", "status": "exploded"},
            headers=USER_HEADERS,
        )
        assert response.status_code == 400


class TestReadJobs:

    def test_list(self, client, services):
        job_service, _ = services
        job_service.list_jobs = AsyncMock(return_value=[_job()])
        response = client.get("/api/v1/jobs?status=pending&limit=5", headers=USER_HEADERS)
        assert response.status_code == 200
        assert [j["id"] for j in response.json()] == ["job-1"]
        kwargs = job_service.list_jobs.await_args.kwargs
        assert kwargs["status"] == "pending"
        assert kwargs["limit"] == 5

    def test_single_by_query(self, client, services):
        job_service, _ = services
        job_service.get_job = AsyncMock(return_value=_job())
        response = client.get("/api/v1/jobs?job_id=job-1", headers=USER_HEADERS)
        assert response.json()["id"] == "job-1"

    def test_get_by_path(self, client, services):
        job_service, _ = services
        job_service.get_job = AsyncMock(side_effect=NotFoundOrDenied())
        assert client.get("/api/v1/jobs/job-2", headers=USER_HEADERS).status_code == 404

    def test_progress(self, client, services):
        job_service, _ = services
        job_service.get_progress = AsyncMock(return_value=JobProgress(completed=1, total=4))
        body = client.get("/api/v1/jobs/job-1/progress", headers=USER_HEADERS).json()
        assert body == {"completed": 1, "total": 4, "percentage": 25}

    def test_limit_bounds(self, client, services):
        job_service, _ = services
        job_service.list_jobs = AsyncMock(return_value=[])
        assert client.get("/api/v1/jobs?limit=0", headers=USER_HEADERS).status_code == 400


class TestCancelAndCleanup:

    def test_cancel_terminal(self, client, services):
        job_service, _ = services
        job_service.cancel_job = AsyncMock(side_effect=InvalidTransition("Job is already completed"))
        assert client.post("/api/v1/jobs/job-1/cancel", headers=USER_HEADERS).status_code == 409

    def test_cancel(self, client, services):
        job_service, _ = services
        job_service.cancel_job = AsyncMock(return_value=_job(JobStatus.CANCELLED))
        response = client.post("/api/v1/jobs/job-1/cancel", headers=USER_HEADERS)
        assert response.json()["status"] == "cancelled"

    def test_cleanup(self, client, services):
        job_service, _ = services
        job_service.cleanup_old_jobs = AsyncMock(return_value=3)
        response = client.post("/api/v1/jobs/cleanup", json={"days": 7}, headers=USER_HEADERS)
        assert response.json() == {"deleted": 3}
        assert job_service.cleanup_old_jobs.await_args.kwargs["days"] == 7


# ============================================================================
# WORKFLOW ERRORS
# ============================================================================

class TestWorkflowErrors:

    def test_report(self, client, services):
        _, error_service = services
        error_service.report_error = AsyncMock(return_value=WorkflowError(
            id="err-1", user_id="user-1", workflow_name="Add Resource", error_message="boom",
        ))
        response = client.post(
            "/api/v1/workflow-errors",
            json={"workflow_name": "Add Resource", "error_message": "boom", "workflow_execution_id": "exec-1"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 201
        assert response.json()["id"] == "err-1"
        assert error_service.report_error.await_args.kwargs["workflow_execution_id"] == "exec-1"

    def test_report_unresolvable(self, client, services):
        _, error_service = services
        error_service.report_error = AsyncMock(side_effect=UserResolutionError("Unable to determine user"))
        response = client.post(
            "/api/v1/workflow-errors",
            json={"workflow_name": "Add Resource", "error_message": "boom"},
            headers=SERVICE_HEADERS,
        )
        assert response.status_code == 400

    def test_list(self, client, services):
        _, error_service = services
        error_service.list_errors = AsyncMock(return_value=[])
        assert client.get("/api/v1/workflow-errors", headers=USER_HEADERS).json() == []


class TestRoot:

    def test_root(self, client):
        assert client.get("/").json()["service"] == "Job Tracker"

    def test_health_without_pool(self, client):
        assert client.get("/health").status_code == 503
