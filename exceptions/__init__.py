"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Upload file
    InvalidFileTypeError,
    FileTooLargeError,
    CSVParseError,

    # Upload sessions
    UploadSessionNotFoundError,
    UploadRecordNotFoundError,

    # Review
    InvalidStatusTransitionError,
    ReviewNotesRequiredError,
    UnresolvedValidationErrorsError,

    # Bulk operations
    BulkOperationNotFoundError,
    OperationNotCancellableError,
    NoApprovedRecordsError,
    PriceWriteError,
    CommitInProgressError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Upload file
    "InvalidFileTypeError",
    "FileTooLargeError",
    "CSVParseError",

    # Upload sessions
    "UploadSessionNotFoundError",
    "UploadRecordNotFoundError",

    # Review
    "InvalidStatusTransitionError",
    "ReviewNotesRequiredError",
    "UnresolvedValidationErrorsError",

    # Bulk operations
    "BulkOperationNotFoundError",
    "OperationNotCancellableError",
    "NoApprovedRecordsError",
    "PriceWriteError",
    "CommitInProgressError",
]
