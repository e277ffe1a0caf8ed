"""
Pricing upload sessions.

Pipeline for one CSV submission:
    file checks -> parse -> item price snapshot -> validate -> persist

Session counts are never incremented in place: refresh_counts() recomputes
them from the records so approved + pending + rejected always equals total.
"""

from collections import Counter
from typing import Optional
import hashlib
import structlog

from config import get_supabase_client, settings
from exceptions import (
    AppError,
    CSVParseError,
    DatabaseError,
    UploadRecordNotFoundError,
    UploadSessionNotFoundError,
)
from models.pricing_upload import (
    OPEN_RECORD_STATUSES,
    PricingUploadRecordResponse,
    PricingUploadResult,
    ProcessingStatus,
    UploadSessionResponse,
    ValidationStatus,
)
from parsers.pricing_csv_parser import (
    PricingCSVRow,
    parse_pricing_csv,
    validate_upload_file,
)
from services.item_master_service import ItemMasterService, get_item_master_service
from services.pricing_validation_service import ValidationOutcome, validate_batch

logger = structlog.get_logger(__name__)


class PricingUploadService:
    """
    Upload session business logic.
    """

    def __init__(self, item_master: Optional[ItemMasterService] = None):
        self.db = get_supabase_client()
        self.item_master = item_master or get_item_master_service()
        self.sessions_table = "item_pricing_csv_uploads"
        self.records_table = "item_pricing_upload_records"

    # ===================
    # UPLOAD PROCESSING
    # ===================

    def process_upload(
        self,
        filename: str,
        content: bytes,
        actor: Optional[str] = None,
    ) -> PricingUploadResult:
        """
        Parse, validate and store a pricing CSV.

        Args:
            filename: Original file name
            content: Raw file bytes
            actor: Uploading user

        Returns:
            PricingUploadResult with the session, its records and warnings

        Raises:
            InvalidFileTypeError, FileTooLargeError: Rejected before parsing
            CSVParseError: Unreadable file or no usable rows
            DatabaseError: Persisting the session failed
        """
        max_bytes = settings.pricing_upload_max_bytes
        validate_upload_file(filename, len(content), max_bytes)

        logger.info(
            "pricing_upload_started",
            filename=filename,
            size_bytes=len(content),
            actor=actor
        )

        file_hash = hashlib.sha256(content).hexdigest()
        parsed = parse_pricing_csv(content, filename, max_bytes)

        if not parsed.has_data:
            raise CSVParseError(
                message="No valid price records found in file",
                details={
                    "rows_in_file": parsed.total_rows,
                    "dropped_rows": parsed.dropped_rows
                }
            )

        warnings: list[str] = []
        previous = self.find_previous_upload(file_hash)
        if previous:
            warnings.append(
                f"This file was already uploaded on {str(previous['created_at'])[:10]} "
                f"({previous['filename']})"
            )
        if parsed.dropped_rows:
            warnings.append(
                f"{parsed.dropped_rows} row(s) skipped for a missing item code or invalid price"
            )

        candidates = sorted(parsed.records, key=lambda r: r.row_number)
        snapshot = self.item_master.get_price_snapshot([c.item_code for c in candidates])
        outcomes = validate_batch(candidates, snapshot.get)

        session = self._create_session(filename, len(content), file_hash, len(candidates), actor)

        try:
            self._insert_records(session.id, candidates, outcomes)
            session = self.refresh_counts(session.id, processing_status=ProcessingStatus.COMPLETED)
        except Exception as e:
            logger.error("pricing_upload_failed", upload_id=session.id, error=str(e))
            self._mark_failed(session.id, str(e))
            if isinstance(e, AppError):
                raise
            raise DatabaseError("insert", str(e))

        logger.info(
            "pricing_upload_processed",
            upload_id=session.id,
            total=session.total_records,
            approved=session.approved_records,
            pending=session.pending_records,
            rejected=session.rejected_records,
            dropped=parsed.dropped_rows
        )

        return PricingUploadResult(
            session=session,
            records=self.get_records(session.id),
            rows_in_file=parsed.total_rows,
            dropped_rows=parsed.dropped_rows,
            warnings=warnings,
        )

    def find_previous_upload(self, file_hash: str) -> Optional[dict]:
        """Earlier completed upload of the same file, if any."""
        try:
            result = (
                self.db.table(self.sessions_table)
                .select("id, filename, created_at")
                .eq("file_hash", file_hash)
                .eq("processing_status", ProcessingStatus.COMPLETED.value)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
            return result.data[0] if result.data else None
        except Exception as e:
            # Duplicate detection is advisory
            logger.warning("previous_upload_check_failed", error=str(e))
            return None

    # ===================
    # READ OPERATIONS
    # ===================

    def get_session(self, upload_id: str) -> UploadSessionResponse:
        """
        Get one upload session.

        Raises:
            UploadSessionNotFoundError: If it doesn't exist
        """
        try:
            result = (
                self.db.table(self.sessions_table)
                .select("*")
                .eq("id", upload_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_upload_session_failed", upload_id=upload_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise UploadSessionNotFoundError(upload_id)

        return UploadSessionResponse(**result.data[0])

    def list_sessions(self, limit: int = 20) -> list[UploadSessionResponse]:
        """Most recent upload sessions."""
        try:
            result = (
                self.db.table(self.sessions_table)
                .select("*")
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
            return [UploadSessionResponse(**row) for row in result.data or []]
        except Exception as e:
            logger.error("list_upload_sessions_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def get_records(
        self,
        upload_id: str,
        status: Optional[ValidationStatus] = None,
    ) -> list[PricingUploadRecordResponse]:
        """Records of a session ordered by row number."""
        try:
            query = (
                self.db.table(self.records_table)
                .select("*")
                .eq("upload_id", upload_id)
            )
            if status:
                query = query.eq("validation_status", status.value)
            result = query.order("row_number").execute()

            return [PricingUploadRecordResponse(**row) for row in result.data or []]

        except Exception as e:
            logger.error("get_upload_records_failed", upload_id=upload_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_record(self, record_id: str) -> PricingUploadRecordResponse:
        """
        Get one upload record.

        Raises:
            UploadRecordNotFoundError: If it doesn't exist
        """
        try:
            result = (
                self.db.table(self.records_table)
                .select("*")
                .eq("id", record_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_upload_record_failed", record_id=record_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise UploadRecordNotFoundError(record_id)

        return PricingUploadRecordResponse(**result.data[0])

    # ===================
    # COUNTS
    # ===================

    def refresh_counts(
        self,
        upload_id: str,
        processing_status: Optional[ProcessingStatus] = None,
    ) -> UploadSessionResponse:
        """
        Recompute session counts from its records.

        Args:
            upload_id: Session UUID
            processing_status: Also set the processing status

        Returns:
            Updated UploadSessionResponse
        """
        try:
            result = (
                self.db.table(self.records_table)
                .select("validation_status")
                .eq("upload_id", upload_id)
                .execute()
            )
            counts = Counter(
                ValidationStatus(row["validation_status"]) for row in result.data or []
            )

            update_data = {
                "total_records": sum(counts.values()),
                "approved_records": counts[ValidationStatus.APPROVED],
                "rejected_records": counts[ValidationStatus.REJECTED],
                "pending_records": sum(counts[s] for s in OPEN_RECORD_STATUSES),
            }
            if processing_status:
                update_data["processing_status"] = processing_status.value

            updated = (
                self.db.table(self.sessions_table)
                .update(update_data)
                .eq("id", upload_id)
                .execute()
            )
        except Exception as e:
            logger.error("refresh_upload_counts_failed", upload_id=upload_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not updated.data:
            raise UploadSessionNotFoundError(upload_id)

        return UploadSessionResponse(**updated.data[0])

    # ===================
    # HELPERS
    # ===================

    def _create_session(
        self,
        filename: str,
        size_bytes: int,
        file_hash: str,
        total_records: int,
        actor: Optional[str],
    ) -> UploadSessionResponse:
        insert_data = {
            "filename": filename,
            "file_size_bytes": size_bytes,
            "file_hash": file_hash,
            "total_records": total_records,
            "approved_records": 0,
            "pending_records": total_records,
            "rejected_records": 0,
            "processing_status": ProcessingStatus.PROCESSING.value,
            "created_by": actor,
        }
        try:
            result = self.db.table(self.sessions_table).insert(insert_data).execute()
            return UploadSessionResponse(**result.data[0])
        except Exception as e:
            logger.error("create_upload_session_failed", filename=filename, error=str(e))
            raise DatabaseError("insert", str(e))

    def _insert_records(
        self,
        upload_id: str,
        candidates: list[PricingCSVRow],
        outcomes: list[ValidationOutcome],
    ) -> None:
        rows = [
            _record_row(upload_id, candidate, outcome)
            for candidate, outcome in zip(candidates, outcomes)
        ]

        chunk_size = settings.pricing_upload_chunk_size
        for start in range(0, len(rows), chunk_size):
            chunk = rows[start:start + chunk_size]
            self.db.table(self.records_table).insert(chunk).execute()
            logger.debug(
                "pricing_records_inserted",
                upload_id=upload_id,
                inserted=start + len(chunk),
                total=len(rows)
            )

    def _mark_failed(self, upload_id: str, error: str) -> None:
        try:
            self.db.table(self.sessions_table).update({
                "processing_status": ProcessingStatus.FAILED.value,
                "validation_summary": {"error": error[:2000]},
            }).eq("id", upload_id).execute()
        except Exception as log_err:
            # Never let failure bookkeeping hide the original error
            logger.warning(
                "mark_upload_failed_error",
                upload_id=upload_id,
                log_error=str(log_err)
            )


def _record_row(upload_id: str, candidate: PricingCSVRow, outcome: ValidationOutcome) -> dict:
    """Database row for one validated candidate."""
    return {
        "upload_id": upload_id,
        "row_number": candidate.row_number,
        "item_code": outcome.item_code,
        "proposed_price": float(candidate.proposed_price),
        "current_price": float(outcome.current_price) if outcome.current_price is not None else None,
        "price_change_percentage": (
            float(outcome.price_change_percentage)
            if outcome.price_change_percentage is not None else None
        ),
        "effective_date": candidate.effective_date.isoformat() if candidate.effective_date else None,
        "cost_category": candidate.cost_category,
        "supplier": candidate.supplier,
        "change_reason": candidate.change_reason,
        "validation_status": outcome.status.value,
        "validation_errors": outcome.errors,
        "validation_warnings": outcome.warnings,
        "auto_approved": outcome.auto_approved,
    }


# Singleton instance for convenience
_pricing_upload_service: Optional[PricingUploadService] = None


def get_pricing_upload_service() -> PricingUploadService:
    """Get or create PricingUploadService instance."""
    global _pricing_upload_service
    if _pricing_upload_service is None:
        _pricing_upload_service = PricingUploadService()
    return _pricing_upload_service
