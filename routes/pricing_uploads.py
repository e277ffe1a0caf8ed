"""
Pricing upload API routes.

Flow: upload CSV -> review flagged records -> commit approved records.

See STANDARDS_ERRORS.md for error response format.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, File, Header, Query, UploadFile
from fastapi.responses import JSONResponse, Response
import structlog

from exceptions import AppError
from models.bulk_operation import CommitStartedResponse
from models.pricing_upload import (
    BulkApproveResult,
    PricingUploadRecordListResponse,
    PricingUploadRecordResponse,
    PricingUploadResult,
    ReviewDecision,
    UploadSessionListResponse,
    UploadSessionResponse,
    ValidationStatus,
)
from parsers.pricing_csv_parser import build_template_csv, template_filename
from services.pricing_commit_service import get_pricing_commit_service
from services.pricing_review_service import get_pricing_review_service
from services.pricing_upload_service import get_pricing_upload_service

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
    # Unexpected error
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
# UPLOAD ROUTES
# ===================

@router.get("/template")
async def download_template():
    """
    Download a CSV template with the expected headers and two example rows.
    """
    today = date.today()
    return Response(
        content=build_template_csv(today),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{template_filename(today)}"'}
    )


@router.post("", response_model=PricingUploadResult)
async def upload_pricing_csv(
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(None),
):
    """
    Upload a pricing CSV.

    Every row is validated against the current item master prices.
    Changes within the auto-approval limit are approved immediately; the
    rest wait for review.

    Returns:
        PricingUploadResult with the session, its records and warnings
    """
    try:
        contents = await file.read()

        service = get_pricing_upload_service()
        return service.process_upload(file.filename or "", contents, actor=x_user_id)

    except Exception as e:
        return handle_error(e)


@router.get("", response_model=UploadSessionListResponse)
async def list_uploads(
    limit: int = Query(20, ge=1, le=100, description="Maximum sessions to return"),
):
    """List recent upload sessions, newest first."""
    try:
        sessions = get_pricing_upload_service().list_sessions(limit=limit)
        return UploadSessionListResponse(data=sessions, total=len(sessions))

    except Exception as e:
        return handle_error(e)


@router.get("/{upload_id}", response_model=UploadSessionResponse)
async def get_upload(upload_id: str):
    """
    Get one upload session with its counts.

    Raises:
        404: Session not found
    """
    try:
        return get_pricing_upload_service().get_session(upload_id)

    except Exception as e:
        return handle_error(e)


@router.get("/{upload_id}/records", response_model=PricingUploadRecordListResponse)
async def get_upload_records(
    upload_id: str,
    status: Optional[ValidationStatus] = Query(None, description="Filter by validation status"),
):
    """Records of an upload session ordered by row number."""
    try:
        service = get_pricing_upload_service()
        service.get_session(upload_id)

        records = service.get_records(upload_id, status=status)
        return PricingUploadRecordListResponse(data=records, total=len(records))

    except Exception as e:
        return handle_error(e)


# ===================
# REVIEW ROUTES
# ===================

@router.post("/records/{record_id}/approve", response_model=PricingUploadRecordResponse)
async def approve_record(
    record_id: str,
    decision: Optional[ReviewDecision] = None,
    x_user_id: Optional[str] = Header(None),
):
    """
    Approve a record awaiting review.

    Raises:
        404: Record not found
        422: Record is not awaiting review, or still has validation errors
    """
    try:
        service = get_pricing_review_service()
        return service.approve_record(
            record_id,
            notes=decision.notes if decision else None,
            actor=x_user_id,
        )

    except Exception as e:
        return handle_error(e)


@router.post("/records/{record_id}/reject", response_model=PricingUploadRecordResponse)
async def reject_record(
    record_id: str,
    decision: ReviewDecision,
    x_user_id: Optional[str] = Header(None),
):
    """
    Reject a record awaiting review. Notes are required.

    Raises:
        404: Record not found
        422: Notes missing, or record is not awaiting review
    """
    try:
        service = get_pricing_review_service()
        return service.reject_record(record_id, notes=decision.notes, actor=x_user_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{upload_id}/approve-all", response_model=BulkApproveResult)
async def approve_all(
    upload_id: str,
    x_user_id: Optional[str] = Header(None),
):
    """
    Approve every record awaiting review in a session.

    Records that cannot be approved are reported in `failed`.
    """
    try:
        return get_pricing_review_service().bulk_approve_all(upload_id, actor=x_user_id)

    except Exception as e:
        return handle_error(e)


# ===================
# COMMIT ROUTES
# ===================

@router.post("/{upload_id}/commit", response_model=CommitStartedResponse, status_code=202)
async def commit_upload(
    upload_id: str,
    background_tasks: BackgroundTasks,
    x_user_id: Optional[str] = Header(None),
):
    """
    Commit the approved records of a session to item pricing.

    The bulk operation is created immediately and processed in the
    background; poll /api/bulk-operations/{id} for progress.

    Raises:
        404: Session not found
        409: A commit for this session is already running
        422: No approved records
    """
    try:
        service = get_pricing_commit_service()
        operation, records = service.start_commit(upload_id, actor=x_user_id)

        background_tasks.add_task(service.run_commit, operation.id, records, x_user_id)

        return CommitStartedResponse(
            operation=operation,
            message=f"Committing {len(records)} price change(s)"
        )

    except Exception as e:
        return handle_error(e)
