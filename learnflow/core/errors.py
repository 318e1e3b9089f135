from typing import Optional


class AppError(Exception):
    """Base error carrying the HTTP status the routers should answer with."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(AppError):
    def __init__(self, resource: str = "Resource"):
        super().__init__(404, f"{resource} not found", "NOT_FOUND")


class ValidationError(AppError):
    def __init__(self, message: str = "Validation failed"):
        super().__init__(400, message, "VALIDATION_ERROR")


class CollaboratorError(Exception):
    """Raised when the generative-text collaborator fails or returns unusable output.

    Never reaches a caller: the suggestion generator degrades to its rule-based path.
    """
