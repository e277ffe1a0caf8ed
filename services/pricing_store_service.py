"""
Pricing store writes.

A price change and its audit entry are written by a single Postgres
function (apply_item_price_change) so both land or neither does.

Failure classification:
    - PostgREST APIError (constraint, RLS, raised exception in the
      function): the store refused this one change -> PriceWriteError
    - Anything else (network, timeout, auth): infrastructure failure
      -> ExternalServiceError
"""

from datetime import date
from decimal import Decimal
from typing import Optional
import structlog

from postgrest.exceptions import APIError
from pydantic import ValidationError

from config import get_supabase_client, get_admin_client
from exceptions import DatabaseError, ExternalServiceError, PriceWriteError
from models.item_pricing import PriceChangeAuditEntry

logger = structlog.get_logger(__name__)

PRICE_SOURCE_BULK_UPLOAD = "BULK_UPLOAD"


class PricingStoreService:
    """
    Item price writes and price history reads.
    """

    def __init__(self):
        # Background commits run without a user JWT
        self.db = get_admin_client() or get_supabase_client()
        self.prices_table = "item_pricing_master"
        self.history_table = "valuation_price_history"
        self.apply_rpc = "apply_item_price_change"

    def get_current_price(self, item_code: str) -> Optional[Decimal]:
        """
        Live active price for an item.

        Returns:
            Decimal price, or None if the item has no active price
        """
        try:
            result = (
                self.db.table(self.prices_table)
                .select("current_price")
                .eq("item_code", item_code.strip().upper())
                .eq("is_active", True)
                .limit(1)
                .execute()
            )
        except APIError as e:
            logger.error("get_live_price_failed", item_code=item_code, error=str(e))
            raise DatabaseError("select", str(e))
        except Exception as e:
            logger.error("get_live_price_unreachable", item_code=item_code, error=str(e))
            raise ExternalServiceError("supabase", f"Price lookup failed: {e}")

        if not result.data or result.data[0].get("current_price") is None:
            return None
        return Decimal(str(result.data[0]["current_price"]))

    def apply_price_change(
        self,
        item_code: str,
        old_price: Optional[Decimal],
        new_price: Decimal,
        reason: Optional[str],
        actor: Optional[str],
        effective_date: Optional[date] = None,
        operation_id: Optional[str] = None,
    ) -> Optional[PriceChangeAuditEntry]:
        """
        Write a new price and its audit entry atomically.

        Args:
            item_code: Item code
            old_price: Price being replaced (None for a first price)
            new_price: New price
            reason: Change reason from the upload
            actor: User applying the change
            effective_date: Date the price takes effect
            operation_id: Bulk operation the change belongs to

        Returns:
            The audit entry written, or None when the store returned no
            readable entry (the change itself is still committed)

        Raises:
            PriceWriteError: Store refused this change
            ExternalServiceError: Store unreachable
        """
        params = {
            "p_item_code": item_code,
            "p_old_price": float(old_price) if old_price is not None else None,
            "p_new_price": float(new_price),
            "p_change_reason": reason,
            "p_changed_by": actor,
            "p_effective_date": (effective_date or date.today()).isoformat(),
            "p_price_source": PRICE_SOURCE_BULK_UPLOAD,
            "p_bulk_operation_id": operation_id,
        }

        try:
            result = self.db.rpc(self.apply_rpc, params).execute()
        except APIError as e:
            logger.warning(
                "price_change_rejected",
                item_code=item_code,
                new_price=str(new_price),
                error=e.message,
                code=e.code
            )
            raise PriceWriteError(item_code, e.message or str(e), details={"code": e.code})
        except Exception as e:
            logger.error(
                "price_store_unreachable",
                item_code=item_code,
                error=str(e),
                error_type=type(e).__name__
            )
            raise ExternalServiceError("supabase", f"Pricing store unreachable: {e}")

        # The price and audit row are committed once the call returns, so an
        # unexpected payload is logged rather than reported as a failure
        row = result.data[0] if isinstance(result.data, list) and result.data else result.data
        entry = None
        if not row:
            logger.warning("price_change_no_audit_entry", item_code=item_code, operation_id=operation_id)
        else:
            try:
                entry = PriceChangeAuditEntry(**row)
            except (TypeError, ValidationError) as e:
                logger.warning(
                    "price_change_audit_entry_unreadable",
                    item_code=item_code,
                    operation_id=operation_id,
                    error=str(e)
                )

        logger.info(
            "price_change_applied",
            item_code=item_code,
            old_price=str(old_price) if old_price is not None else None,
            new_price=str(new_price),
            operation_id=operation_id
        )

        return entry

    def get_price_history(self, item_code: str, limit: int = 50) -> list[PriceChangeAuditEntry]:
        """Audit entries for an item, newest first."""
        try:
            result = (
                self.db.table(self.history_table)
                .select("*")
                .eq("item_code", item_code.strip().upper())
                .order("changed_at", desc=True)
                .limit(limit)
                .execute()
            )
            return [PriceChangeAuditEntry(**row) for row in result.data or []]
        except Exception as e:
            logger.error("get_price_history_failed", item_code=item_code, error=str(e))
            raise DatabaseError("select", str(e))


# Singleton instance for convenience
_pricing_store_service: Optional[PricingStoreService] = None


def get_pricing_store_service() -> PricingStoreService:
    """Get or create PricingStoreService instance."""
    global _pricing_store_service
    if _pricing_store_service is None:
        _pricing_store_service = PricingStoreService()
    return _pricing_store_service
