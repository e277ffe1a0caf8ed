"""
File parsers module.
"""

from parsers.pricing_csv_parser import (
    parse_pricing_csv,
    validate_upload_file,
    build_template_csv,
    PricingCSVParseResult,
    PricingCSVRow,
)

__all__ = [
    "parse_pricing_csv",
    "validate_upload_file",
    "build_template_csv",
    "PricingCSVParseResult",
    "PricingCSVRow",
]
