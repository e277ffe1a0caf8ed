"""
Item master lookups for price validation.

Existence comes from item_master; the current price is the active row in
item_pricing_master. An item that exists without an active price is
returned with current_price=None.
"""

from decimal import Decimal
from typing import Optional
import structlog

from config import get_supabase_client
from exceptions import DatabaseError
from models.item_pricing import ItemPrice

logger = structlog.get_logger(__name__)

# PostgREST URL length keeps in_() filters sane
LOOKUP_CHUNK_SIZE = 200


class PriceSnapshot:
    """
    Point-in-time view of item prices for one upload.

    Validation reads from this snapshot so every row is compared with the
    price that was live when the file was processed.
    """

    def __init__(self, items: dict[str, ItemPrice]):
        self._items = items

    def get(self, item_code: str) -> Optional[ItemPrice]:
        return self._items.get(item_code.strip().upper())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_code: str) -> bool:
        return item_code.strip().upper() in self._items


class ItemMasterService:
    """
    Item master price lookups.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.items_table = "item_master"
        self.prices_table = "item_pricing_master"

    def get_current_price(self, item_code: str) -> Optional[ItemPrice]:
        """
        Look up one item.

        Args:
            item_code: Item code (case-insensitive)

        Returns:
            ItemPrice, or None if the item is not in the item master
        """
        return self.get_price_snapshot([item_code]).get(item_code)

    def get_price_snapshot(self, item_codes: list[str]) -> PriceSnapshot:
        """
        Load every item referenced by an upload.

        Args:
            item_codes: Item codes (duplicates and case ignored)

        Returns:
            PriceSnapshot keyed by uppercase item code
        """
        codes = sorted({c.strip().upper() for c in item_codes if c and c.strip()})
        if not codes:
            return PriceSnapshot({})

        logger.debug("loading_price_snapshot", count=len(codes))

        try:
            items: dict[str, ItemPrice] = {}
            for chunk in _chunks(codes, LOOKUP_CHUNK_SIZE):
                result = (
                    self.db.table(self.items_table)
                    .select("item_code, item_name")
                    .in_("item_code", chunk)
                    .execute()
                )
                for row in result.data or []:
                    item = ItemPrice(
                        item_code=row["item_code"],
                        item_name=row.get("item_name"),
                    )
                    items[item.item_code] = item

                prices = (
                    self.db.table(self.prices_table)
                    .select("item_code, current_price")
                    .in_("item_code", chunk)
                    .eq("is_active", True)
                    .execute()
                )
                for row in prices.data or []:
                    code = str(row["item_code"]).strip().upper()
                    if code in items and row.get("current_price") is not None:
                        items[code].current_price = Decimal(str(row["current_price"]))

            logger.info(
                "price_snapshot_loaded",
                requested=len(codes),
                found=len(items),
                priced=sum(1 for i in items.values() if i.current_price is not None)
            )

            return PriceSnapshot(items)

        except Exception as e:
            logger.error("load_price_snapshot_failed", count=len(codes), error=str(e))
            raise DatabaseError("select", str(e))


def _chunks(values: list[str], size: int) -> list[list[str]]:
    return [values[i:i + size] for i in range(0, len(values), size)]


# Singleton instance for convenience
_item_master_service: Optional[ItemMasterService] = None


def get_item_master_service() -> ItemMasterService:
    """Get or create ItemMasterService instance."""
    global _item_master_service
    if _item_master_service is None:
        _item_master_service = ItemMasterService()
    return _item_master_service
