"""
Business logic services.

Each service handles one domain area.
"""

from services.item_master_service import ItemMasterService, PriceSnapshot, get_item_master_service
from services.pricing_validation_service import (
    AUTO_APPROVE_THRESHOLD_PCT,
    ValidationOutcome,
    price_change_percentage,
    validate_record,
    validate_batch,
)
from services.pricing_upload_service import PricingUploadService, get_pricing_upload_service
from services.pricing_review_service import PricingReviewService, get_pricing_review_service
from services.pricing_store_service import PricingStoreService, get_pricing_store_service
from services.bulk_operation_service import BulkOperationService, get_bulk_operation_service
from services.pricing_commit_service import PricingCommitService, get_pricing_commit_service
from services.bulk_monitor_service import BulkMonitorService, get_bulk_monitor_service

__all__ = [
    "ItemMasterService",
    "PriceSnapshot",
    "get_item_master_service",
    "AUTO_APPROVE_THRESHOLD_PCT",
    "ValidationOutcome",
    "price_change_percentage",
    "validate_record",
    "validate_batch",
    "PricingUploadService",
    "get_pricing_upload_service",
    "PricingReviewService",
    "get_pricing_review_service",
    "PricingStoreService",
    "get_pricing_store_service",
    "BulkOperationService",
    "get_bulk_operation_service",
    "PricingCommitService",
    "get_pricing_commit_service",
    "BulkMonitorService",
    "get_bulk_monitor_service",
]
