"""
Error taxonomy for the platform client.
"""
from typing import Optional


class AptitudeError(Exception):
    """Base class for every error raised by the client."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NetworkError(AptitudeError):
    """Transport failure or timeout; the request never got an HTTP answer."""

    retryable = True


class APIError(AptitudeError):
    """The backend answered with a non-success status."""

    def __init__(self, message: str, status_code: int, payload: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


class NotFoundError(APIError):
    def __init__(self, message: str = "Not found", payload: Optional[dict] = None):
        super().__init__(message, 404, payload)


class AuthenticationError(APIError):
    def __init__(self, message: str = "Session expired", payload: Optional[dict] = None):
        super().__init__(message, 401, payload)


class ValidationError(AptitudeError):
    """A client-side rule was violated before anything was sent."""


class SubmissionError(AptitudeError):
    """The answer batch could not be persisted."""

    def __init__(self, message: str, cause: Optional[AptitudeError] = None):
        super().__init__(message)
        self.cause = cause
        self.retryable = bool(cause and cause.retryable)


class SessionStateError(AptitudeError):
    """Operation not allowed in the session's current state."""
