"""
Authorization outcome taxonomy.

Unauthorized, Forbidden and NotFound are routine outcomes of a request and
are never logged as errors. InvalidRole marks an upstream defect (a role value
outside the enumerated sets); the resolver logs it and denies instead of
letting it propagate.
"""

from __future__ import annotations


class AuthorizationError(Exception):
    code = "AUTHORIZATION_ERROR"
    status = 403
    default_message = "Not permitted"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "status": self.status}}


class Unauthorized(AuthorizationError):
    code = "UNAUTHORIZED"
    status = 401
    default_message = "Authentication required"


class Forbidden(AuthorizationError):
    code = "FORBIDDEN"
    status = 403
    default_message = "You do not have permission to perform this action"


class NotFound(AuthorizationError):
    code = "NOT_FOUND"
    status = 404
    default_message = "Record not found"


class InvalidRole(AuthorizationError):
    code = "INVALID_ROLE"
    status = 500
    default_message = "Role value outside the enumerated set"

    def __init__(self, axis: str, value: object):
        self.axis = axis
        self.value = value
        super().__init__(f"Invalid {axis} role: {value!r}")
