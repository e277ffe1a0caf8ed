"""
Bulk operation schemas.

A bulk operation is the committed-write batch produced from an approved
upload session. It is distinct from the upload session itself.
"""

from pydantic import Field
from typing import Any, Optional, Union
from enum import Enum
from datetime import datetime

from models.base import BaseSchema


class BulkOperationStatus(str, Enum):
    """Bulk operation status values."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class BulkOperationType(str, Enum):
    """Kind of work a bulk operation performs."""
    PRICE_IMPORT = "PRICE_IMPORT"


TERMINAL_OPERATION_STATUSES = {
    BulkOperationStatus.COMPLETED,
    BulkOperationStatus.FAILED,
    BulkOperationStatus.CANCELLED,
}

OPERATION_TRANSITIONS = {
    BulkOperationStatus.PENDING: {
        BulkOperationStatus.IN_PROGRESS,
        BulkOperationStatus.FAILED,
    },
    BulkOperationStatus.IN_PROGRESS: {
        BulkOperationStatus.COMPLETED,
        BulkOperationStatus.FAILED,
        BulkOperationStatus.CANCELLED,
    },
}


def is_valid_operation_transition(current: BulkOperationStatus, new: BulkOperationStatus) -> bool:
    """
    Check if a bulk operation status transition is valid.

    Rules:
    - PENDING -> IN_PROGRESS, or FAILED if the run never starts
    - IN_PROGRESS -> COMPLETED | FAILED | CANCELLED
    - COMPLETED, FAILED and CANCELLED are terminal
    """
    return new in OPERATION_TRANSITIONS.get(current, set())


class BulkOperationResponse(BaseSchema):
    """Bulk operation as stored."""

    id: str = Field(..., description="Operation UUID")
    operation_type: BulkOperationType = BulkOperationType.PRICE_IMPORT
    status: BulkOperationStatus
    upload_id: Optional[str] = Field(None, description="Upload session the batch came from")
    total_records: int = 0
    processed_records: int = 0
    failed_records: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_details: Optional[Union[list[dict[str, Any]], dict[str, Any]]] = None
    operation_summary: Optional[dict[str, Any]] = None
    file_name: Optional[str] = None
    file_size_mb: Optional[float] = None
    started_by: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_OPERATION_STATUSES


class OperationProgress(BaseSchema):
    """Monitor view of one operation."""

    operation: BulkOperationResponse
    progress_percentage: float = Field(..., ge=0, le=100)
    duration_seconds: Optional[int] = Field(None, description="None while still running")
    duration_display: str


class BulkOperationListResponse(BaseSchema):
    """List of operations with progress."""

    data: list[OperationProgress]
    total: int
    refresh_interval_seconds: int


class BulkMonitorSummary(BaseSchema):
    """Aggregate monitor view over recent operations."""

    counts_by_status: dict[str, int]
    running: list[OperationProgress]
    completed: list[OperationProgress]
    failed: list[OperationProgress]
    total_operations: int
    refresh_interval_seconds: int
    generated_at: datetime


class CommitStartedResponse(BaseSchema):
    """Returned when a commit is queued."""

    operation: BulkOperationResponse
    message: str
