# ============================================================================
# JOB SERVICE TESTS
# ============================================================================
# STATUS: Tests - Job lifecycle against mocked repositories
# PURPOSE: Verify services/job_service.py and services/identity.py
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Service Tests

Repositories are replaced with AsyncMocks and the transaction helper with
a context manager yielding a dummy connection, so no database is needed.

Run with:
    pytest tests/test_job_service.py -v
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import psycopg
import pytest

from client import ServiceJobReader
from core.config import JobDefaults
from core.contracts import JobStatus, StepStatus, utc_now
from core.models import Job, JobStep, StepDefinition
from services import (
    Caller,
    InvalidTransition,
    JobService,
    NotFoundOrDenied,
    StorageError,
    UserResolutionError,
    ValidationError,
)
from services.identity import IdentityResolver


USER = Caller.user("user-1")
OTHER = Caller.user("user-2")
SERVICE = Caller.service()


def _make_service(defaults=None):
    service = JobService(MagicMock(), defaults or JobDefaults())
    service.job_repo = MagicMock()
    service.step_repo = MagicMock()
    service.user_repo = MagicMock()
    for name in ("create", "get", "list_for_user", "update", "delete", "delete_terminal_before",
                 "find_owner_by_execution_id"):
        setattr(service.job_repo, name, AsyncMock())
    for name in ("create_many", "get_by_name", "list_for_job", "list_for_jobs", "update", "skip_open_steps"):
        setattr(service.step_repo, name, AsyncMock())
    service.user_repo.get_id_by_email = AsyncMock(return_value=None)
    service.identity = IdentityResolver(service.user_repo, service.job_repo)

    conn = MagicMock()

    @asynccontextmanager
    async def transaction():
        yield conn

    service._transaction = transaction
    return service


def _job(status=JobStatus.PENDING, user_id="user-1"):
    return Job(id="job-1", user_id=user_id, workflow_name="Add Resource", status=status)


def _steps(*statuses):
    return [
        JobStep(id=f"s{i}", job_id="job-1", step_name=f"Step {i}", step_order=i, status=status)
        for i, status in enumerate(statuses, start=1)
    ]


# ============================================================================
# CREATE
# ============================================================================

class TestCreateJob:

    def test_creates_pending_job_and_steps(self):
        service = _make_service()
        job = asyncio.run(service.create_job(
            USER,
            workflow_name="Add Resource",
            steps=[{"step_name": "Fetch"}, {"name": "Parse", "type": "http"}, StepDefinition(step_name="Save")],
            metadata={"url": "https://example.com"},
        ))
        assert job.status == JobStatus.PENDING
        assert job.user_id == "user-1"
        assert [(s.step_name, s.step_order) for s in job.steps] == [("Fetch", 1), ("Parse", 2), ("Save", 3)]
        assert all(s.status == StepStatus.PENDING for s in job.steps)
        assert job.steps[1].step_type == "http"
        assert job.metadata == {"url": "https://example.com"}
        service.job_repo.create.assert_awaited_once()
        created_steps = service.step_repo.create_many.await_args.args[0]
        assert {s.job_id for s in created_steps} == {job.id}

    def test_explicit_step_order(self):
        service = _make_service()
        job = asyncio.run(service.create_job(
            USER, "Add Resource", [{"name": "Late", "order": 20}, {"name": "Early", "order": 10}],
        ))
        assert [s.step_name for s in job.steps] == ["Early", "Late"]

    @pytest.mark.parametrize("workflow_name,steps", [
        (None, [{"name": "Fetch"}]),
        ("Add Resource", []),
        ("Add Resource", None),
    ])
    def test_required_fields(self, workflow_name, steps):
        service = _make_service()
        with pytest.raises(ValidationError):
            asyncio.run(service.create_job(USER, workflow_name, steps))
        service.job_repo.create.assert_not_awaited()

    def test_duplicate_step_names_rejected(self):
        service = _make_service()
        with pytest.raises(ValidationError, match="Duplicate step names"):
            asyncio.run(service.create_job(USER, "Add Resource", [{"name": "A"}, {"name": "A"}]))

    def test_malformed_step_rejected(self):
        service = _make_service()
        with pytest.raises(ValidationError, match="index 1"):
            asyncio.run(service.create_job(USER, "Add Resource", [{"name": "A"}, {"type": "http"}]))

    def test_step_insert_failure_deletes_job(self):
        service = _make_service()
        service.step_repo.create_many.side_effect = psycopg.OperationalError("connection lost")
        with pytest.raises(StorageError):
            asyncio.run(service.create_job(USER, "Add Resource", [{"name": "A"}]))
        created = service.job_repo.create.await_args.args[0]
        service.job_repo.delete.assert_awaited_once_with(created.id)

    def test_failed_compensation_still_reports_storage_error(self):
        service = _make_service()
        service.step_repo.create_many.side_effect = psycopg.OperationalError("connection lost")
        service.job_repo.delete.side_effect = psycopg.OperationalError("still down")
        with pytest.raises(StorageError, match="steps"):
            asyncio.run(service.create_job(USER, "Add Resource", [{"name": "A"}]))

    def test_job_insert_failure(self):
        service = _make_service()
        service.job_repo.create.side_effect = psycopg.OperationalError("down")
        with pytest.raises(StorageError):
            asyncio.run(service.create_job(USER, "Add Resource", [{"name": "A"}]))
        service.step_repo.create_many.assert_not_awaited()


class TestIdentityResolution:

    def test_service_caller_by_user_id(self):
        service = _make_service()
        job = asyncio.run(service.create_job(SERVICE, "Add Resource", [{"name": "A"}], user_id="user-7"))
        assert job.user_id == "user-7"

    def test_service_caller_by_email(self):
        service = _make_service()
        service.user_repo.get_id_by_email.return_value = "user-9"
        job = asyncio.run(service.create_job(SERVICE, "Add Resource", [{"name": "A"}], user_email="a@b.c"))
        assert job.user_id == "user-9"

    def test_unknown_email(self):
        service = _make_service()
        with pytest.raises(UserResolutionError):
            asyncio.run(service.create_job(SERVICE, "Add Resource", [{"name": "A"}], user_email="x@y.z"))

    def test_service_caller_must_name_user(self):
        service = _make_service()
        with pytest.raises(UserResolutionError):
            asyncio.run(service.create_job(SERVICE, "Add Resource", [{"name": "A"}]))

    def test_user_caller_ignores_named_user(self):
        service = _make_service()
        job = asyncio.run(service.create_job(USER, "Add Resource", [{"name": "A"}], user_id="user-7"))
        assert job.user_id == "user-1"


# ============================================================================
# STEP UPDATE
# ============================================================================

class TestUpdateStep:

    def _prepare(self, service, job, steps):
        service.job_repo.get.return_value = job
        service.step_repo.get_by_name.side_effect = lambda job_id, name, conn=None: next(
            (s for s in steps if s.step_name == name), None
        )
        service.step_repo.list_for_job.return_value = steps

    def test_first_running_step_starts_job(self):
        service = _make_service()
        job, steps = _job(), _steps(StepStatus.PENDING, StepStatus.PENDING)
        self._prepare(service, job, steps)

        result = asyncio.run(service.update_step(USER, "job-1", "Step 1", "running"))

        assert result.updated_step.status == StepStatus.RUNNING
        assert result.job.status == JobStatus.RUNNING
        assert result.job.started_at is not None
        assert result.transition.old_status == JobStatus.PENDING
        service.step_repo.update.assert_awaited_once()
        service.job_repo.update.assert_awaited_once()
        assert service.job_repo.get.await_args.kwargs["for_update"] is True

    def test_failed_step_fails_job(self):
        service = _make_service()
        job, steps = _job(JobStatus.RUNNING), _steps(StepStatus.COMPLETED, StepStatus.RUNNING, StepStatus.PENDING)
        self._prepare(service, job, steps)

        result = asyncio.run(service.update_step(USER, "job-1", "Step 2", StepStatus.FAILED, error_message="boom"))

        assert result.job.status == JobStatus.FAILED
        assert result.job.completed_at is not None
        assert result.updated_step.error_message == "boom"
        assert result.job.get_step("Step 3").status == StepStatus.PENDING

    def test_no_job_change_skips_job_write(self):
        service = _make_service()
        job, steps = _job(JobStatus.RUNNING), _steps(StepStatus.RUNNING, StepStatus.PENDING)
        self._prepare(service, job, steps)

        result = asyncio.run(service.update_step(USER, "job-1", "Step 1", "completed"))

        assert result.transition is None
        assert result.job.status == JobStatus.RUNNING
        service.job_repo.update.assert_not_awaited()

    def test_resource_id_recorded(self):
        service = _make_service()
        job, steps = _job(JobStatus.RUNNING), _steps(StepStatus.RUNNING, StepStatus.PENDING)
        self._prepare(service, job, steps)

        result = asyncio.run(service.update_step(
            SERVICE, "job-1", "Step 1", "completed", resource_id=42, workflow_execution_id="exec-1",
        ))

        assert result.job.resource_id == 42
        assert result.job.workflow_execution_id == "exec-1"
        service.job_repo.update.assert_awaited_once()

    def test_other_users_job_is_not_found(self):
        service = _make_service()
        self._prepare(service, _job(), _steps(StepStatus.PENDING))
        with pytest.raises(NotFoundOrDenied):
            asyncio.run(service.update_step(OTHER, "job-1", "Step 1", "running"))
        service.step_repo.update.assert_not_awaited()

    def test_unknown_step_is_not_found(self):
        service = _make_service()
        self._prepare(service, _job(), _steps(StepStatus.PENDING))
        with pytest.raises(NotFoundOrDenied):
            asyncio.run(service.update_step(USER, "job-1", "Nope", "running"))

    def test_unknown_job_is_not_found(self):
        service = _make_service()
        service.job_repo.get.return_value = None
        with pytest.raises(NotFoundOrDenied):
            asyncio.run(service.update_step(SERVICE, "job-x", "Step 1", "running"))

    @pytest.mark.parametrize("job_id,step_name,status", [
        (None, "Step 1", "running"),
        ("job-1", "", "running"),
        ("job-1", "Step 1", None),
        ("job-1", "Step 1", "exploded"),
    ])
    def test_invalid_input(self, job_id, step_name, status):
        service = _make_service()
        with pytest.raises(ValidationError):
            asyncio.run(service.update_step(USER, job_id, step_name, status))
        service.job_repo.get.assert_not_awaited()

    def test_storage_failure(self):
        service = _make_service()
        self._prepare(service, _job(), _steps(StepStatus.PENDING))
        service.step_repo.update.side_effect = psycopg.OperationalError("down")
        with pytest.raises(StorageError):
            asyncio.run(service.update_step(USER, "job-1", "Step 1", "running"))


# ============================================================================
# READ
# ============================================================================

class TestRead:

    def test_get_job_scoped_to_owner(self):
        service = _make_service()
        service.job_repo.get.return_value = _job()
        service.step_repo.list_for_job.return_value = _steps(StepStatus.PENDING)
        assert asyncio.run(service.get_job(USER, "job-1")).steps[0].step_name == "Step 1"
        with pytest.raises(NotFoundOrDenied):
            asyncio.run(service.get_job(OTHER, "job-1"))

    def test_service_get_with_mismatched_user(self):
        service = _make_service()
        service.job_repo.get.return_value = _job()
        with pytest.raises(NotFoundOrDenied):
            asyncio.run(service.get_job(SERVICE, "job-1", user_id="user-2"))

    def test_list_jobs_embeds_steps(self):
        service = _make_service()
        service.job_repo.list_for_user.return_value = [_job()]
        service.step_repo.list_for_jobs.return_value = {"job-1": _steps(StepStatus.RUNNING)}
        jobs = asyncio.run(service.list_jobs(USER, limit=500))
        assert len(jobs[0].steps) == 1
        kwargs = service.job_repo.list_for_user.await_args.kwargs
        assert kwargs["limit"] == 100
        assert service.job_repo.list_for_user.await_args.args[0] == "user-1"

    def test_list_jobs_default_limit(self):
        service = _make_service(JobDefaults(list_limit=10))
        service.job_repo.list_for_user.return_value = []
        service.step_repo.list_for_jobs.return_value = {}
        asyncio.run(service.list_jobs(USER))
        assert service.job_repo.list_for_user.await_args.kwargs["limit"] == 10

    def test_list_jobs_validation(self):
        service = _make_service()
        with pytest.raises(ValidationError):
            asyncio.run(service.list_jobs(SERVICE))
        with pytest.raises(ValidationError):
            asyncio.run(service.list_jobs(USER, status="exploded"))
        with pytest.raises(ValidationError):
            asyncio.run(service.list_jobs(USER, limit=0))

    def test_progress(self):
        service = _make_service()
        service.job_repo.get.return_value = _job(JobStatus.RUNNING)
        service.step_repo.list_for_job.return_value = _steps(StepStatus.COMPLETED, StepStatus.SKIPPED, StepStatus.PENDING)
        progress = asyncio.run(service.get_progress(USER, "job-1"))
        assert (progress.completed, progress.total, progress.percentage) == (2, 3, 67)


# ============================================================================
# CANCEL / CLEANUP
# ============================================================================

class TestCancelAndCleanup:

    def test_cancel_running_job(self):
        service = _make_service()
        service.job_repo.get.return_value = _job(JobStatus.RUNNING)
        service.step_repo.skip_open_steps.return_value = 2
        service.step_repo.list_for_job.return_value = _steps(StepStatus.COMPLETED, StepStatus.SKIPPED, StepStatus.SKIPPED)
        job = asyncio.run(service.cancel_job(USER, "job-1"))
        assert job.status == JobStatus.CANCELLED
        assert job.completed_at is not None
        service.step_repo.skip_open_steps.assert_awaited_once()

    def test_cancel_terminal_job(self):
        service = _make_service()
        service.job_repo.get.return_value = _job(JobStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            asyncio.run(service.cancel_job(USER, "job-1"))
        service.job_repo.update.assert_not_awaited()

    def test_cancel_other_users_job(self):
        service = _make_service()
        service.job_repo.get.return_value = _job(JobStatus.RUNNING)
        with pytest.raises(NotFoundOrDenied):
            asyncio.run(service.cancel_job(OTHER, "job-1"))

    def test_cleanup_uses_cutoff(self):
        service = _make_service(JobDefaults(cleanup_days=30))
        service.job_repo.delete_terminal_before.return_value = 4
        before = utc_now()
        deleted = asyncio.run(service.cleanup_old_jobs(USER))
        owner, cutoff = service.job_repo.delete_terminal_before.await_args.args
        assert deleted == 4
        assert owner == "user-1"
        assert before - timedelta(days=30, seconds=5) < cutoff <= utc_now() - timedelta(days=30)

    def test_cleanup_rejects_negative_days(self):
        service = _make_service()
        with pytest.raises(ValidationError):
            asyncio.run(service.cleanup_old_jobs(USER, days=-1))


# ============================================================================
# IN-PROCESS READER
# ============================================================================

class TestServiceJobReader:

    def test_reads_as_user(self):
        service = _make_service()
        service.job_repo.list_for_user.return_value = [_job()]
        service.step_repo.list_for_jobs.return_value = {}
        reader = ServiceJobReader(service, "user-1")
        jobs = asyncio.run(reader.list_jobs(5))
        assert [j.id for j in jobs] == ["job-1"]
        assert service.job_repo.list_for_user.await_args.kwargs["limit"] == 5

    def test_not_owned_is_none(self):
        service = _make_service()
        service.job_repo.get.return_value = _job(user_id="user-2")
        reader = ServiceJobReader(service, "user-1")
        assert asyncio.run(reader.get_job("job-1")) is None
