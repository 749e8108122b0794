from typing import Any, Optional


class DomainError(Exception):
    """Base class for errors that reach the caller as the JSON error envelope."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class InvalidInput(DomainError):
    code = "invalid_input"
    status_code = 400


class ValidationFailed(DomainError):
    code = "validation_error"
    status_code = 400


class NotFound(DomainError):
    code = "not_found"
    status_code = 404


class Conflict(DomainError):
    code = "conflict"
    status_code = 409


class Internal(DomainError):
    """Storage, serialization or transport failure. The message is never shown to clients."""

    code = "internal_error"
    status_code = 500
