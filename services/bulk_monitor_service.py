"""
Bulk operation monitor.

Read-only views over valuation_bulk_operations for a polling dashboard:
progress percentage, elapsed duration and per-status groupings.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Optional
import structlog

from config import settings
from models.bulk_operation import (
    BulkMonitorSummary,
    BulkOperationListResponse,
    BulkOperationResponse,
    BulkOperationStatus,
    OperationProgress,
)
from services.bulk_operation_service import BulkOperationService, get_bulk_operation_service

logger = structlog.get_logger(__name__)

RUNNING_STATUSES = {BulkOperationStatus.PENDING, BulkOperationStatus.IN_PROGRESS}
FAILED_STATUSES = {BulkOperationStatus.FAILED, BulkOperationStatus.CANCELLED}
STILL_RUNNING = "still running"


def progress_percentage(operation: BulkOperationResponse) -> float:
    """Successfully processed records as a share of the total, 0-100."""
    if operation.total_records <= 0:
        return 0.0
    return round(min(operation.processed_records / operation.total_records, 1.0) * 100, 1)


def duration_seconds(operation: BulkOperationResponse) -> Optional[int]:
    """Whole seconds from start to completion, None while still running."""
    if operation.completed_at is None:
        return None
    started = _as_utc(operation.started_at)
    completed = _as_utc(operation.completed_at)
    return max(int((completed - started).total_seconds()), 0)


def format_duration(seconds: Optional[int]) -> str:
    """Human readable duration: "still running", "45s", "3m 20s", "1h 5m"."""
    if seconds is None:
        return STILL_RUNNING
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def _as_utc(value: datetime) -> datetime:
    # Supabase returns timestamptz; naive values are treated as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_progress(operation: BulkOperationResponse) -> OperationProgress:
    seconds = duration_seconds(operation)
    return OperationProgress(
        operation=operation,
        progress_percentage=progress_percentage(operation),
        duration_seconds=seconds,
        duration_display=format_duration(seconds),
    )


class BulkMonitorService:
    """
    Aggregates operations for the monitor dashboard.
    """

    def __init__(self, operations: Optional[BulkOperationService] = None):
        self.operations = operations or get_bulk_operation_service()

    def list_operations(
        self,
        limit: Optional[int] = None,
        status: Optional[BulkOperationStatus] = None,
    ) -> BulkOperationListResponse:
        """
        Recent operations with progress, newest first.

        Args:
            limit: Maximum rows (defaults to bulk_monitor_history_limit)
            status: Optional status filter
        """
        rows = self.operations.list_recent(
            limit=limit or settings.bulk_monitor_history_limit,
            status=status,
        )

        return BulkOperationListResponse(
            data=[to_progress(op) for op in rows],
            total=len(rows),
            refresh_interval_seconds=settings.bulk_monitor_refresh_seconds,
        )

    def get_operation(self, operation_id: str) -> OperationProgress:
        """Single operation with progress."""
        return to_progress(self.operations.get_by_id(operation_id))

    def get_summary(self, limit: Optional[int] = None) -> BulkMonitorSummary:
        """
        Status counts plus running, completed and failed groupings.

        CANCELLED operations are grouped with failed ones.
        """
        rows = self.operations.list_recent(limit=limit or settings.bulk_monitor_history_limit)
        views = [to_progress(op) for op in rows]

        counts = Counter(op.status.value for op in rows)
        counts_by_status = {s.value: counts.get(s.value, 0) for s in BulkOperationStatus}

        summary = BulkMonitorSummary(
            counts_by_status=counts_by_status,
            running=[v for v in views if v.operation.status in RUNNING_STATUSES],
            completed=[v for v in views if v.operation.status == BulkOperationStatus.COMPLETED],
            failed=[v for v in views if v.operation.status in FAILED_STATUSES],
            total_operations=len(rows),
            refresh_interval_seconds=settings.bulk_monitor_refresh_seconds,
            generated_at=datetime.now(timezone.utc),
        )

        logger.debug(
            "bulk_monitor_summary",
            total=summary.total_operations,
            running=len(summary.running)
        )

        return summary


# Singleton instance for convenience
_bulk_monitor_service: Optional[BulkMonitorService] = None


def get_bulk_monitor_service() -> BulkMonitorService:
    """Get or create BulkMonitorService instance."""
    global _bulk_monitor_service
    if _bulk_monitor_service is None:
        _bulk_monitor_service = BulkMonitorService()
    return _bulk_monitor_service
