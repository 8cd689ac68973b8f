# =============================================================================
# app/exceptions.py - Custom Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
# Error bodies keep the {success, error} shape the web client already reads,
# plus a machine-readable code and a suggestion on how to fix the problem.
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class PortraitStudioException(Exception):
    """
    Base exception for the Portrait Studio API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "PORTRAIT_STUDIO_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Auth Exceptions
# =============================================================================

class AuthenticationRequiredError(PortraitStudioException):
    """Raised when a request has no valid session."""

    def __init__(self, reason: str | None = None):
        super().__init__(
            message="Authentication required",
            code="AUTHENTICATION_REQUIRED",
            status_code=401,
            suggestion="Log in again to refresh your session",
            details={"reason": reason} if reason else None,
        )


# =============================================================================
# Upload Exceptions
# =============================================================================

class MissingInputImageError(PortraitStudioException):
    """Raised when a submission carries no image."""

    def __init__(self):
        super().__init__(
            message="No input_image provided",
            code="MISSING_INPUT_IMAGE",
            status_code=400,
            suggestion="Attach a photo in the 'image' form field",
        )


class InvalidFileTypeError(PortraitStudioException):
    """Raised when uploaded file type is not allowed."""

    def __init__(self, filename: str, allowed: list[str]):
        super().__init__(
            message=f"Invalid file type: {filename}",
            code="INVALID_FILE_TYPE",
            status_code=400,
            suggestion=f"Only these file types are supported: {', '.join(allowed)}",
            details={"filename": filename, "allowed_types": allowed}
        )


class FileTooLargeError(PortraitStudioException):
    """Raised when uploaded file exceeds size limit."""

    def __init__(self, size_mb: float, max_mb: int):
        super().__init__(
            message=f"File too large: {size_mb:.1f}MB (max: {max_mb}MB)",
            code="FILE_TOO_LARGE",
            status_code=413,
            suggestion=f"Upload a file smaller than {max_mb}MB",
            details={"size_mb": size_mb, "max_mb": max_mb}
        )


# =============================================================================
# Operation Exceptions
# =============================================================================

class OperationNotFoundError(PortraitStudioException):
    """Raised when an operation id is unknown (or owned by someone else)."""

    def __init__(self, operation_id: str):
        super().__init__(
            message="Operation not found",
            code="OPERATION_NOT_FOUND",
            status_code=404,
            suggestion="Check the operationId; finished operations are kept only until the server restarts",
            details={"operation_id": operation_id}
        )


class ProviderError(PortraitStudioException):
    """Raised when the image model provider rejects or fails a request."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Image provider error: {error}",
            code="PROVIDER_ERROR",
            status_code=502,
            suggestion="Try again in a moment",
            details={"error": error}
        )


class StorageUploadError(PortraitStudioException):
    """Raised when a result file cannot be stored."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Failed to store file: {error}",
            code="STORAGE_UPLOAD_ERROR",
            status_code=500,
            suggestion="Try again later or contact support if the issue persists",
            details={"error": error}
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def portrait_studio_exception_handler(
    request: Request,
    exc: PortraitStudioException
) -> JSONResponse:
    """
    Convert PortraitStudioException to JSON response.

    Returns structured error with:
    - success: always false
    - error: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Handle request validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Validation error",
            "code": "VALIDATION_ERROR",
            "errors": str(exc)
        }
    )
