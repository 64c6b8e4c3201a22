"""Domain errors raised by the services and rendered by the API layer."""

from typing import Optional


class AppError(Exception):
    """Base error with a stable code and the HTTP status it maps to."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, errors: Optional[dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class InvalidStateError(AppError):
    """Operation attempted on an entity in the wrong lifecycle state."""

    code = "INVALID_STATE"
    status_code = 409


class InvalidInputError(AppError):
    """Field validation failure; ``errors`` maps field names to messages."""

    code = "INVALID_INPUT"
    status_code = 422

    def __init__(self, errors: dict[str, str], message: str = "Invalid input"):
        super().__init__(message, errors=errors)


class InvalidReferenceError(AppError):
    """A referenced entity exists but is not part of the parent (e.g. exam)."""

    code = "INVALID_REFERENCE"
    status_code = 400


class UnauthorizedError(AppError):
    """Caller is authenticated but lacks the role or ownership required."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "You are not authorized to perform this action"):
        super().__init__(message)


class AuthenticationError(AppError):
    code = "UNAUTHENTICATED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)
