"""
Pricing upload schemas: upload sessions, upload records and review requests.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from enum import Enum
from datetime import date, datetime
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin


class ValidationStatus(str, Enum):
    """Review status of a single upload record."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REQUIRES_REVIEW = "REQUIRES_REVIEW"


class ProcessingStatus(str, Enum):
    """Processing status of an upload session."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_RECORD_STATUSES = {ValidationStatus.APPROVED, ValidationStatus.REJECTED}

# Counted as "pending" in session aggregates
OPEN_RECORD_STATUSES = {ValidationStatus.PENDING, ValidationStatus.REQUIRES_REVIEW}


def is_valid_record_transition(current: ValidationStatus, new: ValidationStatus) -> bool:
    """
    Check if a review transition is valid.

    Rules:
    - Only REQUIRES_REVIEW records can be approved or rejected by a reviewer
    - APPROVED and REJECTED are terminal
    - Nothing moves back to PENDING or REQUIRES_REVIEW
    """
    if current in TERMINAL_RECORD_STATUSES:
        return False
    if new not in TERMINAL_RECORD_STATUSES:
        return False
    return current == ValidationStatus.REQUIRES_REVIEW


# ===================
# UPLOAD RECORDS
# ===================

class PricingUploadRecordResponse(BaseSchema):
    """One CSV row and its validation/review state."""

    id: str = Field(..., description="Record UUID")
    upload_id: str = Field(..., description="Owning upload session UUID")
    row_number: int = Field(..., ge=1, description="Line in the source file (header is line 1)")
    item_code: str = Field(..., description="Item code from the file")
    proposed_price: Decimal = Field(..., description="Proposed new price")
    current_price: Optional[Decimal] = Field(None, description="Price in the item master at validation time")
    price_change_percentage: Optional[Decimal] = Field(None, description="Signed change vs current price")
    effective_date: Optional[date] = None
    cost_category: Optional[str] = None
    supplier: Optional[str] = None
    change_reason: Optional[str] = None
    validation_status: ValidationStatus
    validation_errors: list[str] = Field(default_factory=list)
    validation_warnings: list[str] = Field(default_factory=list)
    auto_approved: bool = False
    review_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @field_validator("validation_errors", "validation_warnings", mode="before")
    @classmethod
    def none_to_list(cls, v):
        """Stored JSON arrays may come back as null."""
        if v is None:
            return []
        return [str(item) for item in v]

    @property
    def has_errors(self) -> bool:
        return len(self.validation_errors) > 0


class PricingUploadRecordListResponse(BaseSchema):
    """Records of one upload session."""

    data: list[PricingUploadRecordResponse]
    total: int


# ===================
# UPLOAD SESSIONS
# ===================

class UploadSessionResponse(BaseSchema, TimestampMixin):
    """
    One CSV submission with aggregate review counts.

    pending_records counts both PENDING and REQUIRES_REVIEW records.
    """

    id: str = Field(..., description="Upload session UUID")
    filename: str
    file_size_bytes: Optional[int] = None
    file_hash: Optional[str] = None
    total_records: int = 0
    approved_records: int = 0
    pending_records: int = 0
    rejected_records: int = 0
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    created_by: Optional[str] = None

    @property
    def counts_consistent(self) -> bool:
        """approved + pending + rejected == total"""
        return (
            self.approved_records + self.pending_records + self.rejected_records
            == self.total_records
        )


class UploadSessionListResponse(BaseSchema):
    """Recent upload sessions."""

    data: list[UploadSessionResponse]
    total: int


class PricingUploadResult(BaseSchema):
    """Response for a processed CSV upload."""

    session: UploadSessionResponse
    records: list[PricingUploadRecordResponse]
    rows_in_file: int = Field(..., description="Data rows found in the file")
    dropped_rows: int = Field(..., description="Rows skipped for a missing item code or invalid price")
    warnings: list[str] = Field(default_factory=list)


# ===================
# REVIEW
# ===================

class ReviewDecision(BaseModel):
    """Reviewer input for approve/reject."""

    notes: Optional[str] = Field(None, max_length=2000, description="Review notes (required to reject)")


class BulkApproveFailure(BaseSchema):
    """A record bulk approval could not move."""

    record_id: str
    row_number: int
    item_code: str
    error: str


class BulkApproveResult(BaseSchema):
    """Outcome of approving every REQUIRES_REVIEW record in a session."""

    upload_id: str
    approved: int = 0
    failed: list[BulkApproveFailure] = Field(default_factory=list)
    session: Optional[UploadSessionResponse] = None
