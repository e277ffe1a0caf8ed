"""
Validation rules for candidate price updates.

validate_record() is a pure function of the candidate and an injected
item price lookup: no database access happens here, so re-running it on
the same inputs always yields the same status, errors and warnings.

Rules (all evaluated, messages accumulate):
    - Unknown item code            -> error
    - Proposed price <= 0 / not numeric -> error
    - Item has no current price    -> warning, REQUIRES_REVIEW
    - Current price is zero        -> warning, REQUIRES_REVIEW (no division)
    - |change| > 50%               -> warning, REQUIRES_REVIEW
    - Item repeated in the upload  -> warning, REQUIRES_REVIEW
    - Unrecognised effective date  -> warning, REQUIRES_REVIEW
    - Any error                    -> REQUIRES_REVIEW, never auto-approved
    - Otherwise                    -> APPROVED (auto-approved)
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Optional
import structlog

from models.item_pricing import ItemPrice
from models.pricing_upload import ValidationStatus
from parsers.pricing_csv_parser import PricingCSVRow

logger = structlog.get_logger(__name__)


# Fixed business rule, not user-configurable
AUTO_APPROVE_THRESHOLD_PCT = Decimal("50")

PriceLookup = Callable[[str], Optional[ItemPrice]]


@dataclass
class ValidationOutcome:
    """Validation result for one candidate record."""
    row_number: int
    item_code: str
    status: ValidationStatus
    current_price: Optional[Decimal] = None
    price_change_percentage: Optional[Decimal] = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def auto_approved(self) -> bool:
        return self.status == ValidationStatus.APPROVED

    @property
    def approvable(self) -> bool:
        """Records with errors can only be rejected."""
        return not self.errors


def price_change_percentage(current: Decimal, proposed: Decimal) -> Optional[Decimal]:
    """
    Signed percentage change from current to proposed.

    Returns None when current is zero (undefined).
    """
    if current == 0:
        return None
    return (proposed - current) / current * Decimal("100")


def validate_record(
    candidate: PricingCSVRow,
    lookup: PriceLookup,
    duplicate_of_row: Optional[int] = None,
) -> ValidationOutcome:
    """
    Validate one candidate price update.

    Args:
        candidate: Parsed CSV row
        lookup: item_code -> ItemPrice, or None when the item is unknown
        duplicate_of_row: Earlier row in the same upload with this item code

    Returns:
        ValidationOutcome
    """
    errors: list[str] = []
    warnings: list[str] = []
    needs_review = False

    item_code = (candidate.item_code or "").strip().upper()
    item = lookup(item_code) if item_code else None

    if item is None:
        errors.append(f"Item code {item_code or '(blank)'} not found in item master")

    proposed = _to_decimal(candidate.proposed_price)
    if proposed is None or proposed <= 0:
        errors.append(
            f"Proposed price {candidate.proposed_price} must be a number greater than 0"
        )
        proposed = None

    current = item.current_price if item is not None else None
    percentage = None

    if item is not None and current is None:
        warnings.append(
            f"No current price on record for {item_code}; percentage change cannot be checked"
        )
        needs_review = True
    elif current is not None and proposed is not None:
        percentage = price_change_percentage(current, proposed)
        if percentage is None:
            warnings.append("Current price is 0; percentage change is undefined")
            needs_review = True
        elif abs(percentage) > AUTO_APPROVE_THRESHOLD_PCT:
            warnings.append(
                f"Price change of {percentage:+.2f}% exceeds the "
                f"{AUTO_APPROVE_THRESHOLD_PCT}% auto-approval limit"
            )
            needs_review = True

    if duplicate_of_row is not None:
        warnings.append(
            f"Item code {item_code} also appears on row {duplicate_of_row}; "
            f"this row is applied after it"
        )
        needs_review = True

    if candidate.unparsed_effective_date:
        warnings.append(
            f"Effective date '{candidate.unparsed_effective_date}' not recognised; "
            f"using {candidate.effective_date.isoformat() if candidate.effective_date else 'today'}"
        )
        needs_review = True

    if errors or needs_review:
        status = ValidationStatus.REQUIRES_REVIEW
    else:
        status = ValidationStatus.APPROVED

    return ValidationOutcome(
        row_number=candidate.row_number,
        item_code=item_code,
        status=status,
        current_price=current,
        price_change_percentage=_round_pct(percentage),
        errors=errors,
        warnings=warnings,
    )


def validate_batch(
    candidates: list[PricingCSVRow],
    lookup: PriceLookup,
) -> list[ValidationOutcome]:
    """
    Validate an upload in row order.

    Every row is checked against the lookup snapshot, never against an
    earlier row's proposed price. Repeated item codes are flagged with
    the row of their first occurrence.
    """
    first_seen: dict[str, int] = {}
    outcomes: list[ValidationOutcome] = []

    for candidate in sorted(candidates, key=lambda c: c.row_number):
        code = (candidate.item_code or "").strip().upper()
        duplicate_of = first_seen.get(code)
        if code and duplicate_of is None:
            first_seen[code] = candidate.row_number

        outcomes.append(validate_record(candidate, lookup, duplicate_of_row=duplicate_of))

    logger.info(
        "pricing_batch_validated",
        records=len(outcomes),
        auto_approved=sum(1 for o in outcomes if o.auto_approved),
        requires_review=sum(1 for o in outcomes if o.status == ValidationStatus.REQUIRES_REVIEW),
        with_errors=sum(1 for o in outcomes if o.errors),
    )

    return outcomes


# ===================
# HELPER FUNCTIONS
# ===================

def _to_decimal(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _round_pct(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
