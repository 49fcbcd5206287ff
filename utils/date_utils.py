"""
Date Utilities for identity documents and KYC form input.

Provides centralized date formatting and parsing to enforce a single
standard date format (YYYY-MM-DD) across the application.

Usage:
    from utils.date_utils import format_date, parse_date, normalize_date_value

    # Convert datetime to string
    date_str = format_date(datetime_obj)  # -> "2024-01-15"

    # Parse any common format to datetime
    dt = parse_date("15/01/2024")  # -> datetime(2024, 1, 15)

    # Normalize a document field; unparseable input comes back text-normalized
    normalized = normalize_date_value("15 JAN 2024")  # -> "2024-01-15"
"""
import re
from datetime import date, datetime
from typing import Optional, Union

from utils.text_normalization import normalize_text


# =============================================================================
# STANDARD FORMAT CONSTANT
# =============================================================================
STANDARD_DATE_FORMAT = "%Y-%m-%d"

# Common input formats to try when parsing OCR output and form input.
# Day-first: the supported documents print dates day-first.
INPUT_FORMATS = [
    "%Y-%m-%d",   # 2024-01-15 (ISO standard, our output format)
    "%Y/%m/%d",   # 2024/01/15
    "%Y.%m.%d",   # 2024.01.15
    "%d-%m-%Y",   # 15-01-2024
    "%d/%m/%Y",   # 15/01/2024
    "%d.%m.%Y",   # 15.01.2024
    "%d %b %Y",   # 15 Jan 2024 (passports)
    "%d %B %Y",   # 15 January 2024
    "%d-%b-%Y",   # 15-Jan-2024
    "%d/%b/%Y",   # 15/Jan/2024
    "%Y%m%d",     # 20240115 (compact)
]

# "2024-01-15T00:00:00.000Z" as produced by JSON-serialized form dates
_ISO_DATETIME_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[t\s]")


# =============================================================================
# CORE FUNCTIONS
# =============================================================================

def format_date(date_obj: Union[date, datetime]) -> str:
    """
    Convert a date/datetime object to the application-wide standard string format.

    Example:
        >>> format_date(datetime(2024, 1, 15))
        '2024-01-15'
    """
    return date_obj.strftime(STANDARD_DATE_FORMAT)


def parse_date(date_str: str) -> Optional[datetime]:
    """
    Robustly parse a date string from various common formats.

    Accepts ISO datetimes (the time part is dropped). Returns None if no
    format matches.

    Example:
        >>> parse_date("15/01/2024")
        datetime(2024, 1, 15, 0, 0)
        >>> parse_date("2024-01-15T00:00:00.000Z")
        datetime(2024, 1, 15, 0, 0)
    """
    if not date_str:
        return None

    date_str = date_str.strip()

    iso_match = _ISO_DATETIME_RE.match(date_str.lower())
    if iso_match:
        date_str = iso_match.group(1)

    for fmt in INPUT_FORMATS:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue

    return None


def normalize_date_value(value) -> str:
    """
    Normalize a date field for comparison.

    Parseable input becomes YYYY-MM-DD. Anything else is returned
    text-normalized so two equally garbled values still compare equal.

    Example:
        >>> normalize_date_value("15-01-2024")
        '2024-01-15'
        >>> normalize_date_value(" Not  A Date ")
        'not a date'
    """
    if isinstance(value, (date, datetime)):
        return format_date(value)

    text = normalize_text(value)
    dt = parse_date(text)
    if dt:
        return format_date(dt)
    return text
