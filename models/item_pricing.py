"""
Item master price lookups and price change audit entries.
"""

from pydantic import Field, field_validator
from typing import Optional
from datetime import date, datetime
from decimal import Decimal

from models.base import BaseSchema


class ItemPrice(BaseSchema):
    """
    Item master entry with its current active price.

    current_price is None when the item exists but has never been priced.
    """

    item_code: str = Field(..., description="Item code (uppercase)")
    item_name: Optional[str] = None
    current_price: Optional[Decimal] = None

    @field_validator("item_code")
    @classmethod
    def item_code_uppercase(cls, v: str) -> str:
        return v.upper().strip()


class PriceChangeAuditEntry(BaseSchema):
    """One committed price mutation. Written once, never updated."""

    id: str
    item_code: str
    old_price: Optional[Decimal] = None
    new_price: Decimal
    change_reason: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: datetime
    effective_date: Optional[date] = None
    price_source: str = "BULK_UPLOAD"
    bulk_operation_id: Optional[str] = None
