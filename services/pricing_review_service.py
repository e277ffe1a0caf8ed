"""
Review queue for pricing upload records.

Only REQUIRES_REVIEW records can be approved or rejected, and each one
leaves that state exactly once. Updates are conditional on the record
still being REQUIRES_REVIEW, so two reviewers acting on the same record
cannot both succeed.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import (
    AppError,
    DatabaseError,
    InvalidStatusTransitionError,
    ReviewNotesRequiredError,
    UnresolvedValidationErrorsError,
)
from models.pricing_upload import (
    BulkApproveFailure,
    BulkApproveResult,
    PricingUploadRecordResponse,
    ValidationStatus,
    is_valid_record_transition,
)
from services.pricing_upload_service import PricingUploadService, get_pricing_upload_service

logger = structlog.get_logger(__name__)

BULK_APPROVE_NOTES = "Bulk approved"


class PricingReviewService:
    """
    Approve/reject transitions for upload records.
    """

    def __init__(self, upload_service: Optional[PricingUploadService] = None):
        self.db = get_supabase_client()
        self.uploads = upload_service or get_pricing_upload_service()
        self.table = "item_pricing_upload_records"

    def approve_record(
        self,
        record_id: str,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> PricingUploadRecordResponse:
        """
        Approve a record awaiting review.

        Args:
            record_id: Record UUID
            notes: Optional review notes
            actor: Reviewing user

        Returns:
            Updated record

        Raises:
            UploadRecordNotFoundError: Record doesn't exist
            UnresolvedValidationErrorsError: Record carries validation errors
            InvalidStatusTransitionError: Record is not REQUIRES_REVIEW
        """
        logger.info("approving_pricing_record", record_id=record_id, actor=actor)

        record = self.uploads.get_record(record_id)
        self._check_transition(record, ValidationStatus.APPROVED)

        if record.has_errors:
            raise UnresolvedValidationErrorsError(
                record_id=record.id,
                row_number=record.row_number,
                item_code=record.item_code,
                errors=record.validation_errors,
            )

        return self._apply(record, ValidationStatus.APPROVED, notes, actor)

    def reject_record(
        self,
        record_id: str,
        notes: Optional[str],
        actor: Optional[str] = None,
    ) -> PricingUploadRecordResponse:
        """
        Reject a record awaiting review.

        Args:
            record_id: Record UUID
            notes: Reason for rejection (required)
            actor: Reviewing user

        Raises:
            ReviewNotesRequiredError: Notes missing or blank
            UploadRecordNotFoundError: Record doesn't exist
            InvalidStatusTransitionError: Record is not REQUIRES_REVIEW
        """
        if not notes or not notes.strip():
            raise ReviewNotesRequiredError(record_id)

        logger.info("rejecting_pricing_record", record_id=record_id, actor=actor)

        record = self.uploads.get_record(record_id)
        self._check_transition(record, ValidationStatus.REJECTED)

        return self._apply(record, ValidationStatus.REJECTED, notes.strip(), actor)

    def bulk_approve_all(
        self,
        upload_id: str,
        actor: Optional[str] = None,
    ) -> BulkApproveResult:
        """
        Approve every REQUIRES_REVIEW record in a session.

        Each record is approved on its own; one failure does not stop the
        rest.

        Returns:
            BulkApproveResult with approved count and per-record failures
        """
        session = self.uploads.get_session(upload_id)
        pending = self.uploads.get_records(upload_id, status=ValidationStatus.REQUIRES_REVIEW)

        logger.info("bulk_approve_started", upload_id=upload_id, pending=len(pending))

        result = BulkApproveResult(upload_id=session.id)

        for record in pending:
            try:
                self.approve_record(record.id, notes=BULK_APPROVE_NOTES, actor=actor)
                result.approved += 1
            except AppError as e:
                logger.warning(
                    "bulk_approve_record_failed",
                    upload_id=upload_id,
                    record_id=record.id,
                    row_number=record.row_number,
                    error=e.message
                )
                result.failed.append(BulkApproveFailure(
                    record_id=record.id,
                    row_number=record.row_number,
                    item_code=record.item_code,
                    error=e.message,
                ))

        result.session = self.uploads.get_session(upload_id)

        logger.info(
            "bulk_approve_complete",
            upload_id=upload_id,
            approved=result.approved,
            failed=len(result.failed)
        )

        return result

    # ===================
    # HELPERS
    # ===================

    def _check_transition(
        self,
        record: PricingUploadRecordResponse,
        new_status: ValidationStatus,
    ) -> None:
        if not is_valid_record_transition(record.validation_status, new_status):
            raise InvalidStatusTransitionError(
                current_status=record.validation_status.value,
                new_status=new_status.value,
                reason="Only records awaiting review can be approved or rejected"
            )

    def _apply(
        self,
        record: PricingUploadRecordResponse,
        new_status: ValidationStatus,
        notes: Optional[str],
        actor: Optional[str],
    ) -> PricingUploadRecordResponse:
        update_data = {
            "validation_status": new_status.value,
            "reviewed_by": actor,
            "reviewed_at": datetime.now(timezone.utc).isoformat(),
            "review_notes": notes,
        }

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", record.id)
                .eq("validation_status", ValidationStatus.REQUIRES_REVIEW.value)
                .execute()
            )
        except Exception as e:
            logger.error(
                "review_transition_failed",
                record_id=record.id,
                to_status=new_status.value,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            # Another reviewer got there first
            current = self.uploads.get_record(record.id)
            raise InvalidStatusTransitionError(
                current_status=current.validation_status.value,
                new_status=new_status.value,
                reason="Record was reviewed by someone else"
            )

        updated = PricingUploadRecordResponse(**result.data[0])
        self.uploads.refresh_counts(record.upload_id)

        logger.info(
            "pricing_record_reviewed",
            record_id=record.id,
            upload_id=record.upload_id,
            row_number=record.row_number,
            item_code=record.item_code,
            status=new_status.value
        )

        return updated


# Singleton instance for convenience
_pricing_review_service: Optional[PricingReviewService] = None


def get_pricing_review_service() -> PricingReviewService:
    """Get or create PricingReviewService instance."""
    global _pricing_review_service
    if _pricing_review_service is None:
        _pricing_review_service = PricingReviewService()
    return _pricing_review_service
