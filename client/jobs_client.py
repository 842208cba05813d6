# ============================================================================
# JOBS API HTTP CLIENT
# ============================================================================
# STATUS: Consumer - Async HTTP client for the jobs API
# PURPOSE: Read jobs for the change feed and call the mutation endpoints
# CREATED: 18 OCT 2026
# ============================================================================
"""
Jobs API Client

Async httpx client for the /api/v1 jobs endpoints. It is constructed
explicitly with a base URL and a bearer token and must be closed by its
owner (or used as an async context manager); nothing is created at
import time.

Used by:
- JobMonitor (as the JobReader behind polling and notification lookups)
- tools/simulate_workflow.py (as the workflow engine, with a service token)
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from core.models import JobStep, JobWithSteps, WorkflowError
from .base import JobReader

logger = logging.getLogger(__name__)

# 10s connect, 30s read
DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)


class JobsApiError(Exception):
    """Non-success response from the jobs API."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class JobsApiClient(JobReader):
    """
    Async client for the jobs API.

    Args:
        base_url: Service root, e.g. "http://localhost:8000"
        token: Bearer token (end user or service role)
        timeout: Request timeouts
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/api/v1",
            headers=headers,
            timeout=timeout or DEFAULT_TIMEOUT,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "JobsApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            JobsApiError: status >= 400
            httpx.HTTPError: connection failure or timeout
        """
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        resp = await self._client.request(method, path, json=json_body, params=params)

        if resp.status_code >= 400:
            try:
                detail = resp.json().get("detail", resp.text)
            except ValueError:
                detail = resp.text
            if resp.status_code >= 500:
                logger.error(f"Jobs API error {resp.status_code}: {method} {path} -> {detail}")
            raise JobsApiError(resp.status_code, detail)

        return resp.json()

    # ------------------------------------------------------------------
    # READ (JobReader)
    # ------------------------------------------------------------------

    async def list_jobs(
        self,
        limit: Optional[int] = None,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[JobWithSteps]:
        """GET /jobs"""
        body = await self._request("GET", "/jobs", params={"limit": limit, "status": status, "user_id": user_id})
        return [JobWithSteps.model_validate(item) for item in body]

    async def get_job(self, job_id: str) -> Optional[JobWithSteps]:
        """GET /jobs/{job_id}; None when missing or not owned."""
        try:
            body = await self._request("GET", f"/jobs/{job_id}")
        except JobsApiError as e:
            if e.status_code == 404:
                return None
            raise
        return JobWithSteps.model_validate(body)

    async def get_progress(self, job_id: str) -> Dict[str, Any]:
        """GET /jobs/{job_id}/progress"""
        return await self._request("GET", f"/jobs/{job_id}/progress")

    # ------------------------------------------------------------------
    # MUTATIONS
    # ------------------------------------------------------------------

    async def create_job(
        self,
        workflow_name: str,
        steps: Sequence[Dict[str, Any]],
        **fields: Any,
    ) -> JobWithSteps:
        """POST /jobs"""
        body = {"workflow_name": workflow_name, "steps": list(steps), **fields}
        return JobWithSteps.model_validate(await self._request("POST", "/jobs", json_body=body))

    async def update_step(
        self,
        job_id: str,
        step_name: str,
        status: str,
        **fields: Any,
    ) -> Dict[str, Any]:
        """
        POST /jobs/steps/update

        Returns:
            {"updated_step": JobStep, "job": JobWithSteps}
        """
        body = {"job_id": job_id, "step_name": step_name, "status": status, **fields}
        result = await self._request("POST", "/jobs/steps/update", json_body=body)
        return {
            "updated_step": JobStep.model_validate(result["updated_step"]),
            "job": JobWithSteps.model_validate(result["job"]),
        }

    async def cancel_job(self, job_id: str) -> JobWithSteps:
        """POST /jobs/{job_id}/cancel"""
        return JobWithSteps.model_validate(await self._request("POST", f"/jobs/{job_id}/cancel"))

    async def cleanup(self, days: Optional[int] = None, user_id: Optional[str] = None) -> int:
        """POST /jobs/cleanup"""
        body = await self._request("POST", "/jobs/cleanup", json_body={"days": days, "user_id": user_id})
        return body["deleted"]

    async def report_error(
        self,
        workflow_name: str,
        error_message: str,
        **fields: Any,
    ) -> WorkflowError:
        """POST /workflow-errors"""
        body = {"workflow_name": workflow_name, "error_message": error_message, **fields}
        return WorkflowError.model_validate(await self._request("POST", "/workflow-errors", json_body=body))


__all__ = ["JobsApiClient", "JobsApiError", "DEFAULT_TIMEOUT"]
