"""
Bulk operation persistence and status transitions.

Status flow: PENDING -> IN_PROGRESS -> COMPLETED | FAILED | CANCELLED.
Every transition is a conditional update on the expected current status,
so a cancellation issued while a commit is running is never overwritten
by the pipeline finishing.
"""

from datetime import datetime, timezone
from typing import Any, Optional
import structlog

from config import get_supabase_client
from models.bulk_operation import (
    BulkOperationResponse,
    BulkOperationStatus,
    BulkOperationType,
    is_valid_operation_transition,
)
from exceptions import (
    BulkOperationNotFoundError,
    DatabaseError,
    InvalidStatusTransitionError,
    OperationNotCancellableError,
)

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BulkOperationService:
    """
    CRUD and transitions for valuation_bulk_operations.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "valuation_bulk_operations"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, operation_id: str) -> BulkOperationResponse:
        """
        Get a single operation.

        Raises:
            BulkOperationNotFoundError: If the operation doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", operation_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_bulk_operation_failed", operation_id=operation_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise BulkOperationNotFoundError(operation_id)

        return BulkOperationResponse(**result.data[0])

    def get_status(self, operation_id: str) -> BulkOperationStatus:
        """Current status, read fresh from the store."""
        return self.get_by_id(operation_id).status

    def list_recent(
        self,
        limit: int = 50,
        status: Optional[BulkOperationStatus] = None,
    ) -> list[BulkOperationResponse]:
        """
        Most recent operations, newest first.

        Args:
            limit: Maximum rows
            status: Optional status filter
        """
        try:
            query = self.db.table(self.table).select("*")
            if status:
                query = query.eq("status", status.value)
            result = query.order("started_at", desc=True).limit(limit).execute()

            return [BulkOperationResponse(**row) for row in result.data or []]

        except Exception as e:
            logger.error("list_bulk_operations_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def find_active_for_upload(self, upload_id: str) -> Optional[BulkOperationResponse]:
        """PENDING or IN_PROGRESS operation for an upload session, if any."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("upload_id", upload_id)
                .in_("status", [
                    BulkOperationStatus.PENDING.value,
                    BulkOperationStatus.IN_PROGRESS.value,
                ])
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("find_active_operation_failed", upload_id=upload_id, error=str(e))
            raise DatabaseError("select", str(e))

        return BulkOperationResponse(**result.data[0]) if result.data else None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(
        self,
        total_records: int,
        upload_id: Optional[str] = None,
        file_name: Optional[str] = None,
        file_size_bytes: Optional[int] = None,
        actor: Optional[str] = None,
        operation_type: BulkOperationType = BulkOperationType.PRICE_IMPORT,
    ) -> BulkOperationResponse:
        """Create an operation in PENDING."""
        insert_data = {
            "operation_type": operation_type.value,
            "status": BulkOperationStatus.PENDING.value,
            "upload_id": upload_id,
            "total_records": total_records,
            "processed_records": 0,
            "failed_records": 0,
            "started_at": _now(),
            "file_name": file_name,
            "file_size_mb": round(file_size_bytes / (1024 * 1024), 3) if file_size_bytes else None,
            "started_by": actor,
        }

        try:
            result = self.db.table(self.table).insert(insert_data).execute()
            operation = BulkOperationResponse(**result.data[0])
        except Exception as e:
            logger.error("create_bulk_operation_failed", upload_id=upload_id, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info(
            "bulk_operation_created",
            operation_id=operation.id,
            operation_type=operation_type.value,
            total_records=total_records,
            upload_id=upload_id
        )

        return operation

    def mark_in_progress(self, operation_id: str) -> BulkOperationResponse:
        """PENDING -> IN_PROGRESS."""
        return self._transition(
            operation_id,
            from_statuses=[BulkOperationStatus.PENDING],
            to_status=BulkOperationStatus.IN_PROGRESS,
        )

    def record_progress(
        self,
        operation_id: str,
        processed_records: int,
        failed_records: int,
        error_details: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        """Persist progress counters after a record."""
        update_data: dict[str, Any] = {
            "processed_records": processed_records,
            "failed_records": failed_records,
        }
        if error_details is not None:
            update_data["error_details"] = error_details

        try:
            self.db.table(self.table).update(update_data).eq("id", operation_id).execute()
        except Exception as e:
            logger.error("record_progress_failed", operation_id=operation_id, error=str(e))
            raise DatabaseError("update", str(e))

    def complete(
        self,
        operation_id: str,
        summary: Optional[dict[str, Any]] = None,
    ) -> BulkOperationResponse:
        """IN_PROGRESS -> COMPLETED."""
        return self._transition(
            operation_id,
            from_statuses=[BulkOperationStatus.IN_PROGRESS],
            to_status=BulkOperationStatus.COMPLETED,
            extra={"completed_at": _now(), "operation_summary": summary},
        )

    def fail(
        self,
        operation_id: str,
        error_details: Any,
        summary: Optional[dict[str, Any]] = None,
    ) -> BulkOperationResponse:
        """PENDING | IN_PROGRESS -> FAILED, capturing the triggering error."""
        return self._transition(
            operation_id,
            from_statuses=[BulkOperationStatus.PENDING, BulkOperationStatus.IN_PROGRESS],
            to_status=BulkOperationStatus.FAILED,
            extra={
                "completed_at": _now(),
                "error_details": error_details,
                "operation_summary": summary,
            },
        )

    def cancel(self, operation_id: str) -> BulkOperationResponse:
        """
        Cancel a running operation.

        Work already committed stays committed; the pipeline stops before
        its next record.

        Raises:
            BulkOperationNotFoundError: If the operation doesn't exist
            OperationNotCancellableError: If it is not IN_PROGRESS
        """
        logger.info("cancelling_bulk_operation", operation_id=operation_id)

        existing = self.get_by_id(operation_id)
        if existing.status != BulkOperationStatus.IN_PROGRESS:
            raise OperationNotCancellableError(operation_id, existing.status.value)

        try:
            return self._transition(
                operation_id,
                from_statuses=[BulkOperationStatus.IN_PROGRESS],
                to_status=BulkOperationStatus.CANCELLED,
                extra={"completed_at": _now()},
            )
        except InvalidStatusTransitionError as e:
            # Finished between the read and the update
            raise OperationNotCancellableError(operation_id, e.details["current_status"])

    # ===================
    # HELPERS
    # ===================

    def _transition(
        self,
        operation_id: str,
        from_statuses: list[BulkOperationStatus],
        to_status: BulkOperationStatus,
        extra: Optional[dict[str, Any]] = None,
    ) -> BulkOperationResponse:
        """
        Conditional status update.

        Raises:
            InvalidStatusTransitionError: Current status is not in from_statuses
        """
        for status in from_statuses:
            if not is_valid_operation_transition(status, to_status):
                raise ValueError(f"{status.value} -> {to_status.value} is not a valid transition")

        update_data = {"status": to_status.value, **(extra or {})}

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", operation_id)
                .in_("status", [s.value for s in from_statuses])
                .execute()
            )
        except Exception as e:
            logger.error(
                "bulk_operation_transition_failed",
                operation_id=operation_id,
                to_status=to_status.value,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            current = self.get_by_id(operation_id)
            raise InvalidStatusTransitionError(
                current_status=current.status.value,
                new_status=to_status.value,
                reason=f"Expected one of {', '.join(s.value for s in from_statuses)}"
            )

        logger.info(
            "bulk_operation_status_updated",
            operation_id=operation_id,
            to_status=to_status.value
        )

        return BulkOperationResponse(**result.data[0])


# Singleton instance for convenience
_bulk_operation_service: Optional[BulkOperationService] = None


def get_bulk_operation_service() -> BulkOperationService:
    """Get or create BulkOperationService instance."""
    global _bulk_operation_service
    if _bulk_operation_service is None:
        _bulk_operation_service = BulkOperationService()
    return _bulk_operation_service
