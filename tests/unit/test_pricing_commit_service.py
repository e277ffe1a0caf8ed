"""
Unit tests for PricingCommitService.

See STANDARDS_TESTING.md for patterns.

Run: pytest tests/unit/test_pricing_commit_service.py -v
"""

import pytest
from decimal import Decimal

from services.pricing_commit_service import PricingCommitService
from services.bulk_operation_service import BulkOperationService
from models.bulk_operation import BulkOperationStatus
from exceptions import (
    CommitInProgressError,
    NoApprovedRecordsError,
    UploadSessionNotFoundError,
)
from tests.factories import ItemFactory, PricingRecordFactory, UploadSessionFactory


SESSIONS = "item_pricing_csv_uploads"
RECORDS = "item_pricing_upload_records"
OPERATIONS = "valuation_bulk_operations"
HISTORY = "valuation_price_history"


# ===================
# FIXTURES
# ===================

@pytest.fixture
def approved_batch(mock_db):
    """
    Five approved records I1..I5 on rows 2..6, every item priced at 100,
    plus one rejected record that must never be committed.
    """
    ItemFactory.seed(mock_db, {f"I{i}": Decimal("100") for i in range(1, 7)})

    session = UploadSessionFactory.create(filename="march_prices.csv", total_records=6)
    upload_id = session["id"]
    records = PricingRecordFactory.create_batch(
        upload_id, 5, validation_status="APPROVED", proposed_price=110.0,
    )
    records.append(PricingRecordFactory.create(
        upload_id, row_number=7, item_code="I6", validation_status="REJECTED",
    ))

    mock_db.set_table_data(SESSIONS, [session])
    mock_db.set_table_data(RECORDS, records)
    return upload_id


def commit(upload_id: str, actor: str = "user-1"):
    service = PricingCommitService()
    operation, records = service.start_commit(upload_id, actor=actor)
    return service, operation, records


def price_of(mock_db, item_code: str) -> float:
    return next(p["current_price"] for p in mock_db.rows("item_pricing_master") if p["item_code"] == item_code)


# ===================
# START COMMIT
# ===================

class TestStartCommit:
    """Tests for start_commit."""

    def test_creates_pending_operation(self, mock_db, approved_batch):
        service, operation, records = commit(approved_batch)

        assert operation.status == BulkOperationStatus.PENDING
        assert operation.total_records == 5
        assert operation.upload_id == approved_batch
        assert operation.file_name == "march_prices.csv"
        assert operation.started_by == "user-1"
        assert [r.row_number for r in records] == [2, 3, 4, 5, 6]

    def test_no_approved_records(self, mock_db):
        session = UploadSessionFactory.create(total_records=1)
        mock_db.set_table_data(SESSIONS, [session])
        mock_db.set_table_data(RECORDS, [PricingRecordFactory.create(session["id"])])

        with pytest.raises(NoApprovedRecordsError):
            PricingCommitService().start_commit(session["id"])

        assert mock_db.rows(OPERATIONS) == []

    def test_unknown_session(self, mock_db):
        with pytest.raises(UploadSessionNotFoundError):
            PricingCommitService().start_commit("missing")

    def test_one_active_commit_per_session(self, mock_db, approved_batch):
        _, operation, _ = commit(approved_batch)

        with pytest.raises(CommitInProgressError) as exc_info:
            commit(approved_batch)

        assert exc_info.value.status_code == 409
        assert exc_info.value.details["operation_id"] == operation.id

    def test_retry_after_failed_commit(self, mock_db, approved_batch):
        _, first, _ = commit(approved_batch)
        BulkOperationService().fail(first.id, {"error": "worker crashed"})

        _, second, _ = commit(approved_batch)

        assert second.id != first.id


# ===================
# RUN COMMIT
# ===================

class TestRunCommit:
    """Tests for run_commit."""

    def test_commits_every_record(self, mock_db, approved_batch):
        # Arrange
        service, operation, records = commit(approved_batch)

        # Act
        result = service.run_commit(operation.id, records, actor="user-1")

        # Assert
        assert result.status == BulkOperationStatus.COMPLETED
        assert result.processed_records == 5
        assert result.failed_records == 0
        assert result.completed_at is not None
        assert result.operation_summary == {
            "total_records": 5,
            "processed_records": 5,
            "failed_records": 0,
            "skipped_records": 0,
        }

        history = mock_db.rows(HISTORY)
        assert len(history) == 5
        assert {h["bulk_operation_id"] for h in history} == {operation.id}
        assert {h["changed_by"] for h in history} == {"user-1"}
        assert all(h["old_price"] == 100.0 and h["new_price"] == 110.0 for h in history)
        assert price_of(mock_db, "I1") == 110.0

    def test_rejected_records_are_not_committed(self, mock_db, approved_batch):
        service, operation, records = commit(approved_batch)

        service.run_commit(operation.id, records)

        assert price_of(mock_db, "I6") == 100.0
        assert "I6" not in {h["item_code"] for h in mock_db.rows(HISTORY)}

    def test_partial_failure_completes(self, mock_db, approved_batch, price_function):
        # Arrange: the third record is refused by the store
        price_function.reject("I3", "price violates check constraint")
        service, operation, records = commit(approved_batch)

        # Act
        result = service.run_commit(operation.id, records, actor="user-1")

        # Assert
        assert result.status == BulkOperationStatus.COMPLETED
        assert result.processed_records == 4
        assert result.failed_records == 1

        assert len(result.error_details) == 1
        error = result.error_details[0]
        assert error["row_number"] == 4
        assert error["item_code"] == "I3"
        assert "price violates check constraint" in error["error"]

        audited = sorted(h["item_code"] for h in mock_db.rows(HISTORY))
        assert audited == ["I1", "I2", "I4", "I5"]
        assert price_of(mock_db, "I3") == 100.0

    def test_missing_audit_payload_is_not_a_failure(self, mock_db, approved_batch, price_function):
        def apply_without_payload(params):
            price_function(params)
            return []

        mock_db.register_rpc("apply_item_price_change", apply_without_payload)
        service, operation, records = commit(approved_batch)

        result = service.run_commit(operation.id, records)

        assert result.status == BulkOperationStatus.COMPLETED
        assert result.processed_records == 5
        assert result.failed_records == 0
        assert len(mock_db.rows(HISTORY)) == 5

    def test_repeated_item_sees_earlier_row(self, mock_db, price_function):
        ItemFactory.seed(mock_db, {"A1": Decimal("100")})
        session = UploadSessionFactory.create(total_records=2)
        mock_db.set_table_data(SESSIONS, [session])
        mock_db.set_table_data(RECORDS, [
            PricingRecordFactory.create(session["id"], row_number=3, item_code="A1",
                                        proposed_price=50.0, validation_status="APPROVED"),
            PricingRecordFactory.create(session["id"], row_number=2, item_code="A1",
                                        proposed_price=120.0, validation_status="APPROVED"),
        ])
        service, operation, records = commit(session["id"])

        service.run_commit(operation.id, records)

        history = mock_db.rows(HISTORY)
        assert [(h["old_price"], h["new_price"]) for h in history] == [(100.0, 120.0), (120.0, 50.0)]
        assert price_of(mock_db, "A1") == 50.0

    def test_infrastructure_error_fails_operation(self, mock_db, approved_batch, price_function):
        price_function.errors["I2"] = ConnectionError("connection reset by peer")
        service, operation, records = commit(approved_batch)

        result = service.run_commit(operation.id, records)

        assert result.status == BulkOperationStatus.FAILED
        assert result.processed_records == 1
        assert result.error_details["item_code"] == "I2"
        assert result.error_details["row_number"] == 3
        assert result.error_details["error_type"] == "ExternalServiceError"
        assert result.operation_summary["skipped_records"] == 4

        # Nothing after the failure was attempted
        assert [c["p_item_code"] for c in price_function.calls] == ["I1", "I2"]

    def test_cancellation_stops_before_next_record(self, mock_db, approved_batch, price_function):
        service, operation, records = commit(approved_batch)
        operations = BulkOperationService()

        def cancel_after_second(params):
            result = price_function(params)
            if len(price_function.calls) == 2:
                operations.cancel(operation.id)
            return result

        mock_db.register_rpc("apply_item_price_change", cancel_after_second)

        result = service.run_commit(operation.id, records)

        assert result.status == BulkOperationStatus.CANCELLED
        assert result.processed_records == 2
        assert len(mock_db.rows(HISTORY)) == 2
        # Committed work is kept
        assert price_of(mock_db, "I1") == 110.0
        assert price_of(mock_db, "I3") == 100.0

    def test_operation_not_pending_is_left_alone(self, mock_db, approved_batch, price_function):
        service, operation, records = commit(approved_batch)
        BulkOperationService().fail(operation.id, {"error": "abandoned"})

        result = service.run_commit(operation.id, records)

        assert result.status == BulkOperationStatus.FAILED
        assert price_function.calls == []
