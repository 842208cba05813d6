# ============================================================================
# CALLER IDENTITY
# ============================================================================
# STATUS: Core - Acting identity for mutations
# PURPOSE: Represent who is calling and resolve whom they act for
# CREATED: 18 OCT 2026
# ============================================================================
"""
Caller Identity

Two caller classes reach the services:

- an end user, scoped to the rows they own
- the service caller (the workflow engine), which acts on behalf of a
  user it names directly (user_id), by email, or implicitly through a
  job or workflow execution it references
"""

from dataclasses import dataclass
from typing import Optional

from repositories import JobRepository, UserRepository
from .errors import UserResolutionError


@dataclass(frozen=True)
class Caller:
    """The authenticated identity behind a request."""
    user_id: Optional[str] = None
    is_service: bool = False

    @classmethod
    def user(cls, user_id: str) -> "Caller":
        return cls(user_id=user_id, is_service=False)

    @classmethod
    def service(cls) -> "Caller":
        return cls(user_id=None, is_service=True)

    def can_access(self, owner_id: str) -> bool:
        return self.is_service or (self.user_id is not None and self.user_id == owner_id)


class IdentityResolver:
    """Resolve the user a request acts for."""

    def __init__(self, user_repo: UserRepository, job_repo: JobRepository):
        self.user_repo = user_repo
        self.job_repo = job_repo

    async def resolve_owner(
        self,
        caller: Caller,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        workflow_execution_id: Optional[str] = None,
    ) -> str:
        """
        Resolve the owning user for a new row.

        End users always act for themselves. The service caller must name
        the user by id, by email, or through a known workflow execution.

        Raises:
            UserResolutionError: no owner could be resolved
        """
        if not caller.is_service:
            if caller.user_id is None:
                raise UserResolutionError("Unable to determine user")
            return caller.user_id

        if user_id:
            return user_id

        if user_email:
            resolved = await self.user_repo.get_id_by_email(user_email)
            if resolved:
                return resolved
            raise UserResolutionError(f"No user found for email {user_email}")

        if workflow_execution_id:
            resolved = await self.job_repo.find_owner_by_execution_id(workflow_execution_id)
            if resolved:
                return resolved

        raise UserResolutionError(
            "Unable to determine user: provide user_id, user_email or a known workflow_execution_id"
        )


__all__ = ["Caller", "IdentityResolver"]
