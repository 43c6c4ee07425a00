"""
auth/errors.py -- Error taxonomy for the credential and session authority.

Every error the core raises on purpose derives from AuthGuardError. Each class
carries a stable machine-readable code and the HTTP status the route layer
maps it to, so api/main.py needs one exception handler for the whole family.

AuthenticationError and NotFoundError are deliberately vague: the message never
says whether the account, the password, or the ownership check failed.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthGuardError(Exception):
    """Base class for expected, client-facing failures."""

    code = "error"
    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(AuthGuardError):
    """Malformed or out-of-range input, rejected before touching the store."""

    code = "validation_error"
    status_code = 400
    default_message = "Validation failed."


class ConflictError(AuthGuardError):
    """A unique field (username or email) is already taken."""

    code = "conflict"
    status_code = 409
    default_message = "Resource already exists."

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"User with this {field} already exists")


class AuthenticationError(AuthGuardError):
    code = "bad_credentials"
    status_code = 401
    default_message = "Invalid credentials"


class InvalidTokenError(AuthGuardError):
    """Malformed, expired or forged bearer credential."""

    code = "invalid_token"
    status_code = 403
    default_message = "Invalid or expired token"


class NotFoundError(AuthGuardError):
    code = "not_found"
    status_code = 404
    default_message = "Not found."


class InternalError(AuthGuardError):
    """An invariant the core relies on does not hold (e.g. a missing account)."""

    code = "internal_error"
    status_code = 500
    default_message = "An unexpected error occurred."
