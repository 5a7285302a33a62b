"""Custom HTTP exceptions."""

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Exception raised when a resource is not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} with id '{identifier}' not found",
        )


class BackendAPIError(HTTPException):
    """Exception raised when the console backend returns an error."""

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Backend API error: {detail}",
        )
        self.upstream_status = status_code


class BadRequestError(HTTPException):
    """Exception raised for bad requests."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )


class ConflictError(HTTPException):
    """Exception raised when there's a resource conflict."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class TransportConnectionError(HTTPException):
    """Exception raised when the event stream cannot be (re)established.

    Surfaced to the console as a "disconnected" indicator rather than as a
    per-action failure.
    """

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Event stream error: {detail}",
        )


class ActionFailed(HTTPException):
    """Exception raised when a user action failed and was rolled back."""

    def __init__(self, action: str, detail: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{action} failed: {detail}",
        )
        self.action = action


class ActionValidationError(BadRequestError):
    """Exception raised when an action is rejected before any mutation."""
