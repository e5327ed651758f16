from typing import Optional


class FloorPlanError(RuntimeError):
    """Base class for failures surfaced to the user as a single message."""

    user_message = "Failed to analyze floor plan. Please try again."

    def __init__(self, message: Optional[str] = None, details: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)
        self.details = details


class NoFileProvided(FloorPlanError):
    """Raised when an analysis is requested without an image."""

    user_message = "No file provided"


class MalformedImage(FloorPlanError):
    """Raised when the uploaded bytes cannot be decoded as an image."""

    user_message = "Invalid image data"


class ServiceConfigurationError(FloorPlanError):
    """Raised when the detection service credential is missing."""

    user_message = "Detection service is not configured: missing API key."


class ServiceAuthError(FloorPlanError):
    """Raised when the detection service rejects the credential (HTTP 401)."""

    user_message = "Detection service rejected the API key. Please check your API key and try again."


class ServiceAccessDenied(FloorPlanError):
    """Raised when the credential is valid but lacks access or quota (HTTP 403)."""

    user_message = "Access to the detection model was denied or the quota is exhausted."


class ServiceCallFailed(FloorPlanError):
    """Raised on any other non-2xx response or transport failure."""

    user_message = "Detection service call failed"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class MalformedDetectionResult(FloorPlanError):
    """Raised when a detection payload does not match the expected schema."""

    user_message = "Detection service returned an unexpected result."


class SessionNotFound(FloorPlanError):
    """Raised when a request names a session that was never analyzed or was reset."""

    user_message = "Session not found"
