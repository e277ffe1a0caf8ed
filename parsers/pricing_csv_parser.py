"""
CSV parser for bulk item price uploads.

Turns an uploaded CSV into candidate price updates. Column headers are
resolved through an alias table so files exported from different tools
(or edited by hand) still map onto the same logical fields.

Rows without an item code, rows whose price is not a positive number, and
rows with more fields than the header (an unquoted "1,250.50", say) are
dropped from the candidate set. They are only visible through
PricingCSVParseResult.dropped_rows.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from io import BytesIO, StringIO
from typing import Optional
import csv
import re
import structlog

import pandas as pd

from exceptions import CSVParseError, FileTooLargeError, InvalidFileTypeError

logger = structlog.get_logger(__name__)


ALLOWED_EXTENSION = ".csv"
DEFAULT_CHANGE_REASON = "Bulk CSV upload"

# Logical field -> accepted header spellings, in priority order
FIELD_ALIASES: dict[str, list[str]] = {
    "item_code": ["Item Code", "item_code", "Item", "Code"],
    "proposed_price": ["Proposed Price", "proposed_price", "New Price", "Price", "Current Price"],
    "cost_category": ["Cost Category", "cost_category", "Category"],
    "supplier": ["Supplier", "supplier", "Vendor"],
    "effective_date": ["Effective Date", "effective_date", "Date"],
    "change_reason": ["Change Reason", "change_reason", "Reason", "Notes", "Comments"],
}

REQUIRED_FIELDS = ["item_code", "proposed_price"]

# Stands in for a row with too many fields so the frame index stays aligned
# with physical lines
MALFORMED_ROW_MARKER = "\x00malformed"

TEMPLATE_HEADERS = [
    "Item Code",
    "Proposed Price",
    "Cost Category",
    "Supplier",
    "Effective Date",
    "Change Reason",
]


@dataclass
class PricingCSVRow:
    """Candidate price update parsed from one CSV row."""
    row_number: int
    item_code: str
    proposed_price: Decimal
    effective_date: Optional[date] = None
    cost_category: Optional[str] = None
    supplier: Optional[str] = None
    change_reason: str = DEFAULT_CHANGE_REASON
    # Raw effective date text when it could not be parsed
    unparsed_effective_date: Optional[str] = None


@dataclass
class PricingCSVParseResult:
    """Result of parsing a pricing CSV."""
    records: list[PricingCSVRow] = field(default_factory=list)
    headers: list[str] = field(default_factory=list)
    column_mapping: dict[str, list[str]] = field(default_factory=dict)
    total_rows: int = 0
    dropped_rows: int = 0

    @property
    def has_data(self) -> bool:
        """True if any candidate record survived parsing."""
        return len(self.records) > 0


# ===================
# FILE CHECKS
# ===================

def validate_upload_file(filename: Optional[str], size_bytes: int, max_bytes: int) -> None:
    """
    Reject files before any parsing happens.

    Raises:
        InvalidFileTypeError: Name does not end in .csv
        FileTooLargeError: File is larger than max_bytes
    """
    name = filename or ""
    if not name.lower().endswith(ALLOWED_EXTENSION):
        logger.warning("pricing_upload_invalid_extension", filename=name)
        raise InvalidFileTypeError(name)

    if size_bytes > max_bytes:
        logger.warning(
            "pricing_upload_too_large",
            filename=name,
            size_bytes=size_bytes,
            max_bytes=max_bytes
        )
        raise FileTooLargeError(name, size_bytes, max_bytes)


# ===================
# PARSING
# ===================

def parse_pricing_csv(
    content: bytes,
    filename: str,
    max_bytes: int,
) -> PricingCSVParseResult:
    """
    Parse a pricing upload CSV.

    Args:
        content: Raw file bytes (UTF-8, comma-delimited)
        filename: Original file name, used for the extension check
        max_bytes: Size limit

    Returns:
        PricingCSVParseResult with candidate records in file order

    Raises:
        InvalidFileTypeError, FileTooLargeError: Before parsing
        CSVParseError: Empty/undecodable file or missing required columns
    """
    validate_upload_file(filename, len(content), max_bytes)

    logger.info("parsing_pricing_csv", filename=filename, size_bytes=len(content))

    df = _load_csv(content)
    result = PricingCSVParseResult(headers=[str(c) for c in df.columns])

    result.column_mapping = _resolve_columns(result.headers)
    missing = [f for f in REQUIRED_FIELDS if not result.column_mapping.get(f)]
    if missing:
        raise CSVParseError(
            message=f"Missing required columns: {', '.join(_display_names(missing))}",
            details={"missing": _display_names(missing), "found": result.headers}
        )

    for idx, row in df.iterrows():
        # Header is line 1; blank lines are kept by the loader so
        # idx + 2 is the spreadsheet line
        row_num = int(idx) + 2

        if row.iloc[0] == MALFORMED_ROW_MARKER:
            result.total_rows += 1
            result.dropped_rows += 1
            logger.debug("pricing_row_dropped", row=row_num, reason="too_many_fields")
            continue

        if _is_blank_row(row):
            continue

        values = {
            logical: _first_value(row, columns)
            for logical, columns in result.column_mapping.items()
        }

        result.total_rows += 1

        record = _build_record(row_num, values)
        if record is None:
            result.dropped_rows += 1
            logger.debug("pricing_row_dropped", row=row_num)
            continue

        result.records.append(record)

    logger.info(
        "pricing_csv_parsed",
        filename=filename,
        total_rows=result.total_rows,
        records=len(result.records),
        dropped=result.dropped_rows
    )

    return result


def _load_csv(content: bytes) -> pd.DataFrame:
    """
    Load CSV bytes as an all-string DataFrame indexed by data line.

    The header is read as an ordinary row so its width fixes the column
    count. A later line with more fields becomes a marker row instead of
    failing the whole file. Blank lines are kept so the index stays aligned
    with spreadsheet lines.
    """
    options = dict(
        sep=",",
        encoding="utf-8-sig",
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
        engine="python",
    )
    try:
        width = pd.read_csv(BytesIO(content), nrows=1, **options).shape[1]

        def mark_bad_line(fields: list[str]) -> list[str]:
            return [MALFORMED_ROW_MARKER] + [""] * (width - 1)

        raw = pd.read_csv(BytesIO(content), on_bad_lines=mark_bad_line, **options)
    except pd.errors.EmptyDataError:
        raise CSVParseError(message="CSV file is empty")
    except UnicodeDecodeError as e:
        raise CSVParseError(
            message="CSV file must be UTF-8 encoded",
            details={"original_error": str(e)}
        )
    except pd.errors.ParserError as e:
        logger.error("pricing_csv_read_failed", error=str(e))
        raise CSVParseError(
            message="Failed to read CSV file",
            details={"original_error": str(e)}
        )

    headers = ["" if pd.isna(h) else str(h) for h in raw.iloc[0].tolist()]
    if not any(h.strip() for h in headers):
        raise CSVParseError(message="CSV file is empty")

    df = raw.iloc[1:].reset_index(drop=True)
    df.columns = _dedupe_headers(headers)
    return df


def _dedupe_headers(headers: list[str]) -> list[str]:
    """Suffix repeated header names (Price, Price.1) so columns stay unique."""
    seen: dict[str, int] = {}
    unique = []
    for h in headers:
        count = seen.get(h, 0)
        unique.append(h if count == 0 else f"{h}.{count}")
        seen[h] = count + 1
    return unique


def _resolve_columns(headers: list[str]) -> dict[str, list[str]]:
    """
    Map each logical field to the file columns that can supply it.

    Columns are listed in alias priority order. Exact header matches are
    tried before normalized ones.
    """
    exact = {h.strip(): h for h in headers}
    normalized: dict[str, str] = {}
    for h in headers:
        normalized.setdefault(_normalize_header(h), h)

    mapping: dict[str, list[str]] = {}
    for logical, aliases in FIELD_ALIASES.items():
        columns: list[str] = []
        for alias in aliases:
            column = exact.get(alias) or normalized.get(_normalize_header(alias))
            if column is not None and column not in columns:
                columns.append(column)
        mapping[logical] = columns
    return mapping


def _first_value(row: pd.Series, columns: list[str]) -> str:
    """First non-empty value among the candidate columns."""
    for column in columns:
        value = row.get(column)
        if value is None or pd.isna(value):
            continue
        value = _strip_quotes(str(value).strip())
        if value:
            return value
    return ""


def _build_record(row_num: int, values: dict[str, str]) -> Optional[PricingCSVRow]:
    """Build a candidate record, or None if the row must be dropped."""
    item_code = values.get("item_code", "").strip().upper()
    if not item_code:
        return None

    price = parse_price(values.get("proposed_price", ""))
    if price is None or price <= 0:
        return None

    raw_date = values.get("effective_date", "")
    effective_date = _parse_date(raw_date) if raw_date else None

    return PricingCSVRow(
        row_number=row_num,
        item_code=item_code,
        proposed_price=price,
        effective_date=effective_date or date.today(),
        cost_category=values.get("cost_category") or None,
        supplier=values.get("supplier") or None,
        change_reason=values.get("change_reason") or DEFAULT_CHANGE_REASON,
        unparsed_effective_date=raw_date if raw_date and effective_date is None else None,
    )


# ===================
# TEMPLATE
# ===================

def build_template_csv(today: Optional[date] = None) -> str:
    """Downloadable template with the expected headers and two sample rows."""
    day = (today or date.today()).isoformat()
    rows = [
        ["SAMPLE001", "125.50", "RAW_MATERIAL", "VENDOR001", day, "Market price adjustment"],
        ["SAMPLE002", "89.75", "PACKAGING", "VENDOR002", day, "Supplier price update"],
    ]

    buffer = StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(TEMPLATE_HEADERS)
    writer.writerows(rows)
    return buffer.getvalue()


def template_filename(today: Optional[date] = None) -> str:
    return f"item_pricing_template_{(today or date.today()).isoformat()}.csv"


# ===================
# HELPER FUNCTIONS
# ===================

def _normalize_header(header: str) -> str:
    """
    Normalize header for alias matching.

    "Item Code" -> "item_code"
    " New-Price " -> "new_price"
    """
    value = str(header).lower().strip()
    value = re.sub(r"[^a-z0-9]", "_", value)
    value = re.sub(r"_+", "_", value)
    return value.strip("_")


def _display_names(fields: list[str]) -> list[str]:
    """First alias of each logical field, for user-facing messages."""
    return [FIELD_ALIASES[f][0] for f in fields]


def _is_blank_row(row: pd.Series) -> bool:
    return all(pd.isna(v) or not str(v).strip() for v in row.tolist())


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1].strip()
    return value


def parse_price(value) -> Optional[Decimal]:
    """
    Parse a price cell.

    Accepts thousands separators ("1,250.50"). Returns None for anything
    that is not a finite number.
    """
    if value is None:
        return None
    text = str(value).strip().replace(",", "").replace(" ", "")
    if not text:
        return None
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    if not price.is_finite():
        return None
    return price


def _parse_date(value) -> Optional[date]:
    """Parse various date formats to date object."""
    if value is None or pd.isna(value):
        return None

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    value_str = str(value).strip()
    for fmt in ["%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%Y/%m/%d"]:
        try:
            return datetime.strptime(value_str, fmt).date()
        except ValueError:
            continue
    try:
        return pd.to_datetime(value_str).date()
    except (ValueError, TypeError, OverflowError):
        return None
