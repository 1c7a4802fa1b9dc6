from typing import List


class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when the booking backend returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class NotFoundError(ServiceError):
    """Raised when a business or booking cannot be found."""


class ValidationError(ServiceError):
    """Raised when a booking snapshot is malformed."""

    def __init__(self, issues: List[str]):
        super().__init__("Invalid booking data: " + "; ".join(issues))
        self.issues = list(issues)
