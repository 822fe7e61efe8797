"""
Domain exceptions - Semantic error types for the identity lifecycle.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Each exception carries the HTTP status the API layer renders it with.
"""


class IdentityError(Exception):
    """Base class for identity lifecycle domain errors."""

    status_code = 500
    default_detail = "Request failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationFailed(IdentityError):
    """Malformed input, detected before any mutation."""

    status_code = 400
    default_detail = "Validation failed"

    def __init__(self, detail: str | None = None, errors: list[dict] | None = None) -> None:
        super().__init__(detail)
        self.errors = errors or []


class PreconditionFailed(ValidationFailed):
    """A required confirmation (age, terms) was not given."""

    default_detail = "Registration preconditions not met"


class Conflict(IdentityError):
    """A unique identity attribute (email, username) is already taken."""

    status_code = 409
    default_detail = "Resource already exists"


class InvalidState(IdentityError):
    """Registration step requested out of order."""

    status_code = 400
    default_detail = "Invalid user or registration step"


class Unauthorized(IdentityError):
    """Bad credentials or invalid token. Message is deliberately generic."""

    status_code = 401
    default_detail = "Invalid credentials"


class NotFound(IdentityError):
    """Referenced record does not exist."""

    status_code = 404
    default_detail = "Not found"


class InvalidOrExpired(IdentityError):
    """No active challenge matches the supplied code or token."""

    status_code = 400
    default_detail = "Invalid or expired verification code"


class AttemptsExceeded(IdentityError):
    """Correct code supplied after the attempt limit was reached."""

    status_code = 400
    default_detail = "Too many verification attempts. Please request a new code."


class AlreadyFinalized(IdentityError):
    """Gateway tried to assign a code to a used or expired record."""

    status_code = 400
    default_detail = "Record is expired or already used"


class InvalidCode(ValidationFailed):
    """Assigned code is not a numeric string of the configured length."""

    default_detail = "Code must be a 6 digit numeric string"


class DeliveryFailed(IdentityError):
    """Every delivery strategy failed; the issued record was rolled back."""

    status_code = 500
    default_detail = "Failed to send verification code. Please try again."
