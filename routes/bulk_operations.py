"""
Bulk operation monitor API routes.

Clients poll these endpoints every refresh_interval_seconds.

See STANDARDS_ERRORS.md for error response format.
"""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.bulk_operation import (
    BulkMonitorSummary,
    BulkOperationListResponse,
    BulkOperationResponse,
    BulkOperationStatus,
    OperationProgress,
)
from services.bulk_monitor_service import get_bulk_monitor_service
from services.bulk_operation_service import get_bulk_operation_service

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("", response_model=BulkOperationListResponse)
async def list_operations(
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum operations to return"),
    status: Optional[BulkOperationStatus] = Query(None, description="Filter by status"),
):
    """Recent bulk operations with progress, newest first."""
    try:
        return get_bulk_monitor_service().list_operations(limit=limit, status=status)

    except Exception as e:
        return handle_error(e)


@router.get("/summary", response_model=BulkMonitorSummary)
async def get_summary():
    """Counts by status plus running, completed and failed operations."""
    try:
        return get_bulk_monitor_service().get_summary()

    except Exception as e:
        return handle_error(e)


@router.get("/{operation_id}", response_model=OperationProgress)
async def get_operation(operation_id: str):
    """
    Get one operation with progress.

    Raises:
        404: Operation not found
    """
    try:
        return get_bulk_monitor_service().get_operation(operation_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{operation_id}/cancel", response_model=BulkOperationResponse)
async def cancel_operation(operation_id: str):
    """
    Cancel a running operation.

    Price changes already committed are kept.

    Raises:
        404: Operation not found
        409: Operation is not IN_PROGRESS
    """
    try:
        return get_bulk_operation_service().cancel(operation_id)

    except Exception as e:
        return handle_error(e)
