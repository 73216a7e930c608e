"""Error taxonomy shared by the lifecycle controller and the HTTP layer.

Every error carries an HTTP status code and a stable machine-readable code
so the API can render a consistent ``{"success": false, "error": {...}}``
body regardless of where the failure was raised.
"""

from typing import Any, Optional


class ApiError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Render the error payload."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return error


class ValidationError(ApiError):
    """Missing or malformed request fields."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(ApiError):
    """Unknown deposit intent."""

    status_code = 404
    code = "NOT_FOUND"


class InvalidStatusError(ApiError):
    """Transition attempted from the wrong state."""

    status_code = 400
    code = "INVALID_STATUS"


class NotApprovedError(ApiError):
    """Trade or withdrawal attempted without approval."""

    status_code = 403
    code = "NOT_APPROVED"


class UnauthorizedError(ApiError):
    """Missing or invalid admin credentials."""

    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(ApiError):
    """Authenticated but not allowed."""

    status_code = 403
    code = "FORBIDDEN"


class GatewayError(ApiError):
    """The exchange gateway failed or timed out."""

    status_code = 502
    code = "GATEWAY_ERROR"


class ConflictError(ApiError):
    """Another operation holds the intent; the caller may retry."""

    status_code = 409
    code = "CONFLICT"
