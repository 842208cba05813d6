# ============================================================================
# SERVICE ERRORS
# ============================================================================
# STATUS: Core - Domain exceptions raised by services
# PURPOSE: One exception per error class the HTTP boundary maps to a status
# CREATED: 18 OCT 2026
# ============================================================================
"""
Service Errors

    ValidationError      -> 400  missing/malformed input, nothing applied
    UserResolutionError  -> 400  service caller named no resolvable user
    NotFoundOrDenied     -> 404  unknown job/step or not owned by the caller
    InvalidTransition    -> 409  e.g. cancelling a terminal job
    StorageError         -> 500  storage write failed

ValidationError subclasses ValueError and NotFoundOrDenied subclasses
KeyError so that callers catching the builtin types keep working.
"""


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(ServiceError, ValueError):
    pass


class UserResolutionError(ValidationError):
    pass


class NotFoundOrDenied(ServiceError, KeyError):
    """Existence is never distinguished from ownership mismatch."""

    def __init__(self, message: str = "Job not found or access denied"):
        super().__init__(message)


class InvalidTransition(ServiceError):
    pass


class StorageError(ServiceError):
    pass


__all__ = [
    "ServiceError",
    "ValidationError",
    "UserResolutionError",
    "NotFoundOrDenied",
    "InvalidTransition",
    "StorageError",
]
