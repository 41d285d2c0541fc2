"""
normalize.py - Cell value normalizers and pricing math.

Cell normalizers:
    parse_price(value)        -> float (currency text -> number, 0.0 on garbage)
    parse_quantity(value)     -> int (leading integer, 0 on garbage)
    normalize_text(value)     -> trimmed lowercase string for comparison
    texts_match(a, b)         -> case-insensitive, trimmed equality

Pricing math:
    calculate_price_difference(invoice, reference) -> percentage
    determine_severity(percentage)                 -> Severity

Formatting:
    format_currency, format_percentage, round_half_up, generate_id

Design principles:
    - SAME normalization on BOTH sides (invoice and reference)
    - Pure transformations, no I/O
    - Invalid input degrades to neutral defaults, never raises
"""

from __future__ import annotations

import math
import numbers
import re
from typing import Any

import pandas as pd

from logging_config import get_logger
from models import Severity

logger = get_logger(__name__)

# -- Severity bands --
# Fixed business rule, independent of the reporting threshold in config.py.
# At 20: a $0.50 drug billed at $0.61 (22%) is HIGH.
# At 10: a $0.50 drug billed at $0.56 (12%) is MEDIUM.
HIGH_SEVERITY_THRESHOLD = 20.0
MEDIUM_SEVERITY_THRESHOLD = 10.0

CURRENCY_SYMBOLS_RE = re.compile(r"[$€£¥,]")
WHITESPACE_RE = re.compile(r"\s+")
LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def is_number(value: Any) -> bool:
    """True for real numbers (including numpy scalars) but not for bools."""
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def is_blank(value: Any) -> bool:
    """True for None, NaN, and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def cell_text(value: Any) -> str:
    """Render a spreadsheet cell as trimmed text ('' for blanks)."""
    if is_blank(value):
        return ""
    if is_number(value) and float(value).is_integer() and not isinstance(value, numbers.Integral):
        # Excel hands back 10.0 for a cell typed as 10; strengths such as
        # "10" must not turn into "10.0".
        return str(int(value))
    return str(value).strip()


def parse_price(value: Any) -> float:
    """Convert a price cell into a float.

    Numbers pass through unchanged. Text has currency symbols ($ € £ ¥),
    thousands separators and whitespace stripped before the leading decimal
    number is read. Anything unreadable becomes 0.0.
    """
    if is_number(value):
        number = float(value)
        if not math.isfinite(number):
            logger.debug("parse_price | non_finite=%r | fallback=0.0", value)
            return 0.0
        return number

    if is_blank(value):
        return 0.0

    cleaned = WHITESPACE_RE.sub("", CURRENCY_SYMBOLS_RE.sub("", str(value)))
    match = LEADING_NUMBER_RE.match(cleaned)
    if not match:
        logger.debug("parse_price | parse_failed | raw=%r | fallback=0.0", value)
        return 0.0

    number = float(match.group(0))
    if not math.isfinite(number):
        logger.debug("parse_price | non_finite_parsed=%r | fallback=0.0", value)
        return 0.0
    return number


def parse_quantity(value: Any) -> int:
    """Read the integer part of a quantity cell, 0 when there is none."""
    if is_number(value):
        number = float(value)
        return int(number) if math.isfinite(number) else 0

    if is_blank(value):
        return 0

    match = LEADING_INT_RE.match(str(value))
    if not match:
        logger.debug("parse_quantity | parse_failed | raw=%r | fallback=0", value)
        return 0
    return int(match.group(1))


def normalize_text(value: Any) -> str:
    """Trimmed lowercase text used for every non-numeric comparison."""
    return cell_text(value).lower()


def texts_match(left: Any, right: Any) -> bool:
    return normalize_text(left) == normalize_text(right)


def calculate_price_difference(invoice_price: Any, reference_price: Any) -> float:
    """Percentage by which the invoice price exceeds the reference price.

    Returns ((invoice - reference) / reference) * 100 with these edge cases:
        - either price not numeric      -> 0
        - reference price is 0          -> 100 if invoice > 0 else 0
        - non-finite result             -> +100 if invoice > reference else -100
    """
    if not is_number(invoice_price) or not is_number(reference_price):
        return 0.0

    invoice_value = float(invoice_price)
    reference_value = float(reference_price)

    if reference_value == 0:
        return 100.0 if invoice_value > 0 else 0.0

    try:
        percentage = (invoice_value - reference_value) / reference_value * 100.0
    except OverflowError:
        percentage = math.inf

    if not math.isfinite(percentage):
        return 100.0 if invoice_value > reference_value else -100.0
    return percentage


def determine_severity(percentage: float) -> Severity:
    if percentage > HIGH_SEVERITY_THRESHOLD:
        return Severity.HIGH
    if percentage > MEDIUM_SEVERITY_THRESHOLD:
        return Severity.MEDIUM
    return Severity.LOW


def round_half_up(value: float, digits: int = 1) -> float:
    """Round with ties going up (12.25 -> 12.3), unlike Python's round()."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def format_currency(amount: float) -> str:
    amount = float(amount)
    if amount == 0:
        amount = 0.0  # avoid "$-0.00"
    return f"${amount:.2f}"


def format_percentage(percentage: float) -> str:
    return f"{percentage:.1f}%"


def generate_id(prefix: str, index: int) -> str:
    return f"{prefix}-{index}"
