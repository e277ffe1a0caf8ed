"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.pricing_upload import (
    ValidationStatus,
    ProcessingStatus,
    TERMINAL_RECORD_STATUSES,
    OPEN_RECORD_STATUSES,
    is_valid_record_transition,
    PricingUploadRecordResponse,
    PricingUploadRecordListResponse,
    UploadSessionResponse,
    UploadSessionListResponse,
    PricingUploadResult,
    ReviewDecision,
    BulkApproveFailure,
    BulkApproveResult,
)
from models.bulk_operation import (
    BulkOperationStatus,
    BulkOperationType,
    TERMINAL_OPERATION_STATUSES,
    is_valid_operation_transition,
    BulkOperationResponse,
    OperationProgress,
    BulkOperationListResponse,
    BulkMonitorSummary,
    CommitStartedResponse,
)
from models.item_pricing import (
    ItemPrice,
    PriceChangeAuditEntry,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",

    # Pricing uploads
    "ValidationStatus",
    "ProcessingStatus",
    "TERMINAL_RECORD_STATUSES",
    "OPEN_RECORD_STATUSES",
    "is_valid_record_transition",
    "PricingUploadRecordResponse",
    "PricingUploadRecordListResponse",
    "UploadSessionResponse",
    "UploadSessionListResponse",
    "PricingUploadResult",
    "ReviewDecision",
    "BulkApproveFailure",
    "BulkApproveResult",

    # Bulk operations
    "BulkOperationStatus",
    "BulkOperationType",
    "TERMINAL_OPERATION_STATUSES",
    "is_valid_operation_transition",
    "BulkOperationResponse",
    "OperationProgress",
    "BulkOperationListResponse",
    "BulkMonitorSummary",
    "CommitStartedResponse",

    # Item pricing
    "ItemPrice",
    "PriceChangeAuditEntry",
]
