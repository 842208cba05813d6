# ============================================================================
# CLIENT MODULE
# ============================================================================
# STATUS: Consumer - Job readers and the jobs API client
# PURPOSE: Owner-scoped job reads over HTTP or in-process
# CREATED: 18 OCT 2026
# ============================================================================
"""
Client Module

Exports:
    JobReader: Owner-scoped read interface used by the consumer side
    JobsApiClient: Async httpx client for the jobs API
    ServiceJobReader: JobReader over an in-process JobService
"""

from .base import JobReader
from .jobs_client import JobsApiClient, JobsApiError
from .local import ServiceJobReader

__all__ = ["JobReader", "JobsApiClient", "JobsApiError", "ServiceJobReader"]
