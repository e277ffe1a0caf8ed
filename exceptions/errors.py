"""
Custom exception classes for the application.

Every error carries a stable code, an HTTP status and enough
context (row number, item code, field) for the user to fix and
re-upload.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "UPLOAD_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# UPLOAD FILE ERRORS
# ===================

class InvalidFileTypeError(ValidationError):
    """Uploaded file is not a CSV."""

    def __init__(self, filename: str):
        super().__init__(
            code="PRICING_UPLOAD_INVALID_FILE_TYPE",
            message="Please upload a CSV file only",
            details={"filename": filename, "expected_extension": ".csv"}
        )


class FileTooLargeError(ValidationError):
    """Uploaded file exceeds the size limit."""

    def __init__(self, filename: str, size_bytes: int, max_bytes: int):
        super().__init__(
            code="PRICING_UPLOAD_FILE_TOO_LARGE",
            message=f"Please upload a file smaller than {max_bytes // (1024 * 1024)}MB",
            details={
                "filename": filename,
                "size_bytes": size_bytes,
                "max_bytes": max_bytes
            }
        )


class CSVParseError(ValidationError):
    """CSV file could not be read as a pricing upload."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="CSV_PARSE_ERROR",
            message=message,
            details=details
        )


# ===================
# UPLOAD SESSION ERRORS
# ===================

class UploadSessionNotFoundError(NotFoundError):
    """Pricing upload session not found."""

    def __init__(self, upload_id: str):
        super().__init__(
            resource="Upload session",
            identifier=upload_id,
            code="UPLOAD_SESSION_NOT_FOUND"
        )


class UploadRecordNotFoundError(NotFoundError):
    """Pricing upload record not found."""

    def __init__(self, record_id: str):
        super().__init__(
            resource="Upload record",
            identifier=record_id,
            code="UPLOAD_RECORD_NOT_FOUND"
        )


# ===================
# REVIEW ERRORS
# ===================

class InvalidStatusTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, current_status: str, new_status: str, reason: Optional[str] = None):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
                "reason": reason or f"{current_status} is a terminal status"
            }
        )


class ReviewNotesRequiredError(ValidationError):
    """Rejecting a record needs a reason."""

    def __init__(self, record_id: str):
        super().__init__(
            code="REVIEW_NOTES_REQUIRED",
            message="Please provide a reason for rejection",
            details={"record_id": record_id, "field": "notes"}
        )


class UnresolvedValidationErrorsError(ValidationError):
    """Record still carries validation errors and cannot be approved."""

    def __init__(self, record_id: str, row_number: int, item_code: str, errors: list[str]):
        super().__init__(
            code="UNRESOLVED_VALIDATION_ERRORS",
            message=f"Row {row_number} ({item_code}) has validation errors and must be rejected",
            details={
                "record_id": record_id,
                "row_number": row_number,
                "item_code": item_code,
                "errors": errors
            }
        )


# ===================
# BULK OPERATION ERRORS
# ===================

class BulkOperationNotFoundError(NotFoundError):
    """Bulk operation not found."""

    def __init__(self, operation_id: str):
        super().__init__(
            resource="Bulk operation",
            identifier=operation_id,
            code="BULK_OPERATION_NOT_FOUND"
        )


class OperationNotCancellableError(ConflictError):
    """Only running operations can be cancelled."""

    def __init__(self, operation_id: str, status: str):
        super().__init__(
            code="OPERATION_NOT_CANCELLABLE",
            message=f"Operation is {status}; only IN_PROGRESS operations can be cancelled",
            details={"operation_id": operation_id, "status": status}
        )


class NoApprovedRecordsError(ValidationError):
    """Commit requested for a session with nothing approved."""

    def __init__(self, upload_id: str):
        super().__init__(
            code="NO_APPROVED_RECORDS",
            message="There are no approved records to commit",
            details={"upload_id": upload_id}
        )


class PriceWriteError(ValidationError):
    """The pricing store refused a single price change."""

    def __init__(self, item_code: str, message: str, details: Optional[dict] = None):
        super().__init__(
            code="PRICE_WRITE_FAILED",
            message=f"Price update for {item_code} failed: {message}",
            details={"item_code": item_code, **(details or {})}
        )


class CommitInProgressError(ConflictError):
    """A commit for this upload session is already queued or running."""

    def __init__(self, upload_id: str, operation_id: str):
        super().__init__(
            code="COMMIT_ALREADY_RUNNING",
            message="A commit for this upload is already in progress",
            details={"upload_id": upload_id, "operation_id": operation_id}
        )
