"""
Text Normalization Utilities for document field comparison.

Provides functions for:
- Free text (names, countries): case-fold and whitespace cleanup
- Identifier numbers: separators and punctuation removed
- Addresses: punctuation turned into word breaks

Every function is idempotent: normalize(normalize(x)) == normalize(x).
"""
import re
import unicodedata
from typing import Iterable, Optional

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[\W_]+", re.UNICODE)


def _to_text(value) -> str:
    if value is None:
        return ""
    # NFKC folds full-width digits and compatibility forms OCR sometimes emits
    return unicodedata.normalize("NFKC", str(value))


def collapse_whitespace(text: str) -> str:
    """Replace every whitespace run with a single space and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_text(value) -> str:
    """
    Normalize a free-text field.

    Steps:
    1. Unicode compatibility fold (NFKC)
    2. Case-fold
    3. Collapse whitespace and trim

    Args:
        value: Raw value (None and non-strings allowed)

    Returns:
        Normalized text ("" for None)
    """
    return collapse_whitespace(_to_text(value).casefold())


def normalize_identifier(value) -> str:
    """
    Normalize an ID number for comparison.

    "ABCDE 1234-F" and "abcde1234f" both become "abcde1234f".
    """
    return _NON_ALNUM_RE.sub("", _to_text(value).casefold())


def normalize_address(value) -> str:
    """
    Normalize an address so OCR's single string and the form's lines line up.

    Punctuation and separators (commas, slashes, hyphens) become spaces.
    """
    text = _NON_ALNUM_RE.sub(" ", _to_text(value).casefold())
    return collapse_whitespace(text)


def join_address_parts(parts: Iterable[Optional[str]]) -> str:
    """Join address lines/city/state/postal code into one normalized address."""
    return normalize_address(" ".join(p for p in parts if p and str(p).strip()))
