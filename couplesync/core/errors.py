"""Domain errors and error classification for the task API."""

from enum import Enum

from pydantic import BaseModel

from couplesync.core.config import constants


class UnsupportedPatternError(ValueError):
    """Raised when a recurrence pattern cannot be used to compute a next occurrence."""

    def __init__(self, pattern: str, reason: str | None = None) -> None:
        self.pattern = pattern
        self.reason = reason
        msg = f"Unsupported recurrence pattern: {pattern}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class InvalidTransitionError(ValueError):
    """Raised when a lifecycle transition is not allowed from the task's current state."""


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_UNSUPPORTED_RECURRENCE_PATTERN = "ERR_UNSUPPORTED_RECURRENCE_PATTERN"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_TASK_NOT_FOUND = "ERR_TASK_NOT_FOUND"
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    status_code: int


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised while handling a task request

    Returns:
        ErrorResponse with code, message, suggestion, severity and HTTP status code
    """
    if isinstance(exception, UnsupportedPatternError):
        return ErrorResponse(
            code=ErrorCode.ERR_UNSUPPORTED_RECURRENCE_PATTERN,
            message=str(exception),
            suggestion="Use one of: daily, weekly, biweekly, monthly, quarterly, yearly.",
            severity=ErrorSeverity.LOW,
            status_code=constants.HTTP_BAD_REQUEST,
        )

    if isinstance(exception, InvalidTransitionError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_STATE_TRANSITION,
            message=str(exception),
            suggestion="Reload the task to see its current state and try again.",
            severity=ErrorSeverity.LOW,
            status_code=constants.HTTP_CONFLICT,
        )

    if isinstance(exception, KeyError):
        return ErrorResponse(
            code=ErrorCode.ERR_TASK_NOT_FOUND,
            message="Task not found.",
            suggestion="Check the task ID and try again.",
            severity=ErrorSeverity.LOW,
            status_code=constants.HTTP_NOT_FOUND,
        )

    if isinstance(exception, ValueError):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_INPUT,
            message=str(exception),
            suggestion="Check the request body and try again.",
            severity=ErrorSeverity.LOW,
            status_code=constants.HTTP_BAD_REQUEST,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
        status_code=constants.HTTP_SERVER_ERROR,
    )
