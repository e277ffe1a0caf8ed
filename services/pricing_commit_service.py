"""
Commit pipeline: applies approved upload records to the pricing store.

One record at a time, in row order:
    - the live price is read as the old price, so a repeated item code
      sees the price written by its earlier row
    - price write + audit entry happen in one store call
    - a PriceWriteError counts as a failed record and processing continues
    - any other error is an infrastructure failure: the operation is
      marked FAILED with the error captured, and processing stops
    - the operation status is re-read before every record; a CANCELLED
      operation stops before its next record and keeps what was committed
"""

from typing import Any, Optional
import structlog

from exceptions import (
    CommitInProgressError,
    InvalidStatusTransitionError,
    NoApprovedRecordsError,
    PriceWriteError,
)
from models.bulk_operation import BulkOperationResponse, BulkOperationStatus
from models.pricing_upload import PricingUploadRecordResponse, ValidationStatus
from services.bulk_operation_service import BulkOperationService, get_bulk_operation_service
from services.pricing_store_service import PricingStoreService, get_pricing_store_service
from services.pricing_upload_service import PricingUploadService, get_pricing_upload_service

logger = structlog.get_logger(__name__)


class PricingCommitService:
    """
    Turns an approved upload session into a committed bulk operation.
    """

    def __init__(
        self,
        upload_service: Optional[PricingUploadService] = None,
        operations: Optional[BulkOperationService] = None,
        store: Optional[PricingStoreService] = None,
    ):
        self.uploads = upload_service or get_pricing_upload_service()
        self.operations = operations or get_bulk_operation_service()
        self.store = store or get_pricing_store_service()

    def start_commit(
        self,
        upload_id: str,
        actor: Optional[str] = None,
    ) -> tuple[BulkOperationResponse, list[PricingUploadRecordResponse]]:
        """
        Create a PENDING operation for the session's approved records.

        Returns:
            (operation, approved records in row order) to hand to run_commit

        Raises:
            UploadSessionNotFoundError: Session doesn't exist
            CommitInProgressError: A commit for the session is already running
            NoApprovedRecordsError: Nothing approved to commit
        """
        session = self.uploads.get_session(upload_id)

        active = self.operations.find_active_for_upload(upload_id)
        if active:
            raise CommitInProgressError(upload_id, active.id)

        records = self.uploads.get_records(upload_id, status=ValidationStatus.APPROVED)
        if not records:
            raise NoApprovedRecordsError(upload_id)

        operation = self.operations.create(
            total_records=len(records),
            upload_id=upload_id,
            file_name=session.filename,
            file_size_bytes=session.file_size_bytes,
            actor=actor,
        )

        logger.info(
            "pricing_commit_queued",
            upload_id=upload_id,
            operation_id=operation.id,
            records=len(records)
        )

        return operation, sorted(records, key=lambda r: r.row_number)

    def run_commit(
        self,
        operation_id: str,
        records: list[PricingUploadRecordResponse],
        actor: Optional[str] = None,
    ) -> BulkOperationResponse:
        """
        Apply records to the pricing store.

        Args:
            operation_id: PENDING operation created by start_commit
            records: Approved records
            actor: User the changes are attributed to

        Returns:
            Final state of the operation
        """
        ordered = sorted(records, key=lambda r: r.row_number)

        try:
            self.operations.mark_in_progress(operation_id)
        except InvalidStatusTransitionError as e:
            logger.warning(
                "pricing_commit_not_started",
                operation_id=operation_id,
                status=e.details.get("current_status")
            )
            return self.operations.get_by_id(operation_id)

        logger.info("pricing_commit_started", operation_id=operation_id, records=len(ordered))

        processed = 0
        failed = 0
        record_errors: list[dict[str, Any]] = []
        cancelled = False
        current: Optional[PricingUploadRecordResponse] = None

        try:
            for current in ordered:
                if self.operations.get_status(operation_id) == BulkOperationStatus.CANCELLED:
                    cancelled = True
                    logger.info(
                        "pricing_commit_cancelled",
                        operation_id=operation_id,
                        processed=processed,
                        failed=failed,
                        remaining=len(ordered) - processed - failed
                    )
                    break

                try:
                    self._commit_record(operation_id, current, actor)
                    processed += 1
                except PriceWriteError as e:
                    failed += 1
                    record_errors.append({
                        "record_id": current.id,
                        "row_number": current.row_number,
                        "item_code": current.item_code,
                        "error": e.message,
                    })

                self.operations.record_progress(
                    operation_id,
                    processed_records=processed,
                    failed_records=failed,
                    error_details=record_errors or None,
                )

        except Exception as e:
            logger.error(
                "pricing_commit_failed",
                operation_id=operation_id,
                row_number=current.row_number if current else None,
                item_code=current.item_code if current else None,
                error=str(e),
                error_type=type(e).__name__
            )
            error_details = {
                "error": str(e),
                "error_type": type(e).__name__,
                "row_number": current.row_number if current else None,
                "item_code": current.item_code if current else None,
                "record_errors": record_errors,
            }
            try:
                return self.operations.fail(
                    operation_id,
                    error_details,
                    summary=_summary(len(ordered), processed, failed),
                )
            except InvalidStatusTransitionError:
                return self.operations.get_by_id(operation_id)

        if cancelled:
            return self.operations.get_by_id(operation_id)

        try:
            operation = self.operations.complete(
                operation_id,
                summary=_summary(len(ordered), processed, failed),
            )
        except InvalidStatusTransitionError:
            # Cancelled after the last record was committed
            return self.operations.get_by_id(operation_id)

        logger.info(
            "pricing_commit_complete",
            operation_id=operation_id,
            processed=processed,
            failed=failed
        )

        return operation

    def _commit_record(
        self,
        operation_id: str,
        record: PricingUploadRecordResponse,
        actor: Optional[str],
    ) -> None:
        old_price = self.store.get_current_price(record.item_code)
        self.store.apply_price_change(
            item_code=record.item_code,
            old_price=old_price,
            new_price=record.proposed_price,
            reason=record.change_reason,
            actor=actor,
            effective_date=record.effective_date,
            operation_id=operation_id,
        )


def _summary(total: int, processed: int, failed: int) -> dict[str, int]:
    return {
        "total_records": total,
        "processed_records": processed,
        "failed_records": failed,
        "skipped_records": total - processed - failed,
    }


# Singleton instance for convenience
_pricing_commit_service: Optional[PricingCommitService] = None


def get_pricing_commit_service() -> PricingCommitService:
    """Get or create PricingCommitService instance."""
    global _pricing_commit_service
    if _pricing_commit_service is None:
        _pricing_commit_service = PricingCommitService()
    return _pricing_commit_service
