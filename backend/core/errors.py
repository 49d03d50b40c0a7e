# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261016v1
# ---------------------------------------------------------------------------
"""
Domain error taxonomy.

Every failure the service reports is one of the classes below.  Each carries
a stable machine-readable ``kind`` so the frontend can localise messages
without string matching, a short English ``message`` and the HTTP status the
API layer maps it to.  ``main.py`` registers a single handler that renders

    {"detail": "<message>", "kind": "<kind>"[, "reason": "<reason>"]}

Nothing here is retried.
"""

from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class DomainError(Exception):
    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


# -- Session authority -----------------------------------------------------


class InvalidCredentials(DomainError):
    kind = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class InactiveAccount(DomainError):
    kind = "inactive_account"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Account is not active. Please contact an administrator"


class InvalidSession(DomainError):
    kind = "invalid_session"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or expired session"


class RegistrationNotAllowed(DomainError):
    kind = "registration_not_allowed"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Registration not allowed. Contact an administrator to create your account first"


# -- Object lifecycle authority --------------------------------------------


class NotFound(DomainError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Unauthorized(DomainError):
    """The actor has no access relationship with the object."""

    kind = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class EditForbidden(DomainError):
    """Access is granted but the object's status blocks the mutation."""

    kind = "edit_forbidden"
    status_code = status.HTTP_403_FORBIDDEN

    COMPLETED = "completed"
    RELEASED_LOCKED = "released_locked"
    UNDER_REVIEW_LOCKED = "under_review_locked"
    DELETED = "deleted"

    _MESSAGES = {
        COMPLETED: "Object is completed and cannot be edited",
        RELEASED_LOCKED: "Object is released and cannot be edited by users",
        UNDER_REVIEW_LOCKED: "Object is under review and can only be edited by admin",
        DELETED: "Object is deleted and cannot be edited",
    }

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(self._MESSAGES.get(reason, "Object cannot be edited"))

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["reason"] = self.reason
        return body


class RoleRequired(DomainError):
    kind = "role_required"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Admin access required"


# -- Generic ---------------------------------------------------------------


class InvalidRequest(DomainError):
    kind = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(DomainError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class VersionConflict(Conflict):
    kind = "version_conflict"
    default_message = "Object was modified by someone else. Reload and try again"


# ---------------------------------------------------------------------------
# FastAPI glue
# ---------------------------------------------------------------------------


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render any :class:`DomainError` as JSON with its kind."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
