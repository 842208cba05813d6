# ============================================================================
# JOBS API CLIENT TESTS
# ============================================================================
# STATUS: Tests - Async HTTP client
# PURPOSE: Verify client/jobs_client.py with httpx.MockTransport
# CREATED: 18 OCT 2026
# ============================================================================
"""
Jobs API Client Tests

Run with:
    pytest tests/test_jobs_client.py -v
"""

import asyncio
import json

import httpx
import pytest

from client import JobsApiClient, JobsApiError


JOB = {
    "id": "job-1",
    "user_id": "user-1",
    "workflow_name": "Add Resource",
    "status": "running",
    "created_at": "2026-10-18T09:00:00+00:00",
    "is_terminal": False,
    "steps": [
        {"id": "s2", "job_id": "job-1", "step_name": "Parse", "step_order": 2, "status": "pending"},
        {"id": "s1", "job_id": "job-1", "step_name": "Fetch", "step_order": 1, "status": "running"},
    ],
}


def _client(handler):
    return JobsApiClient("http://jobs.test/", token="tok", transport=httpx.MockTransport(handler))


class TestReads:

    def test_list_jobs(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=[JOB])

        async def run():
            async with _client(handler) as client:
                return await client.list_jobs(limit=5)

        jobs = asyncio.run(run())
        assert seen["url"] == "http://jobs.test/api/v1/jobs?limit=5"
        assert seen["auth"] == "Bearer tok"
        assert [s.step_name for s in jobs[0].steps] == ["Fetch", "Parse"]

    def test_get_job_not_found_is_none(self):
        def handler(request):
            return httpx.Response(404, json={"detail": "Job not found or access denied"})

        async def run():
            async with _client(handler) as client:
                return await client.get_job("job-x")

        assert asyncio.run(run()) is None

    def test_server_error_raises(self):
        def handler(request):
            return httpx.Response(500, json={"detail": "Failed to update job step"})

        async def run():
            async with _client(handler) as client:
                return await client.get_job("job-1")

        with pytest.raises(JobsApiError) as exc_info:
            asyncio.run(run())
        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "Failed to update job step"

    def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        async def run():
            async with _client(handler) as client:
                return await client.list_jobs()

        with pytest.raises(JobsApiError) as exc_info:
            asyncio.run(run())
        assert exc_info.value.detail == "Bad Gateway"


class TestMutations:

    def test_create_job_body(self):
        captured = {}

        def handler(request):
            captured["method"] = request.method
            captured["body"] = json.loads(request.content)
            return httpx.Response(201, json=JOB)

        async def run():
            async with _client(handler) as client:
                return await client.create_job("Add Resource", [{"name": "Fetch"}], user_email="a@b.c")

        job = asyncio.run(run())
        assert captured["method"] == "POST"
        assert captured["body"] == {
            "workflow_name": "Add Resource",
            "steps": [{"name": "Fetch"}],
            "user_email": "a@b.c",
        }
        assert job.id == "job-1"

    def test_update_step(self):
        def handler(request):
            assert request.url.path == "/api/v1/jobs/steps/update"
            return httpx.Response(200, json={"updated_step": JOB["steps"][1], "job": JOB})

        async def run():
            async with _client(handler) as client:
                return await client.update_step("job-1", "Fetch", "running")

        result = asyncio.run(run())
        assert result["updated_step"].step_name == "Fetch"
        assert result["job"].id == "job-1"

    def test_cleanup_returns_count(self):
        def handler(request):
            return httpx.Response(200, json={"deleted": 2})

        async def run():
            async with _client(handler) as client:
                return await client.cleanup(days=7)

        assert asyncio.run(run()) == 2

    def test_report_error(self):
        def handler(request):
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": "err-1", "user_id": "user-1", **body})

        async def run():
            async with _client(handler) as client:
                return await client.report_error("Add Resource", "boom", error_node="HTTP Request3")

        error = asyncio.run(run())
        assert error.error_node == "HTTP Request3"
