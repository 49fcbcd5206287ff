"""
Field Comparison Service for OCR-to-Form Data Matching

Compares OCR-extracted document data with the user's KYC form data.

Features:
- Document-type specific sanitization (see document_sanitizers)
- Fuzzy matching tolerant of OCR misreads (see fuzzy_matching_service)
- Normalized dates compared exactly (STRICT_DATE_MATCHING)
- Every field the document carries is compared; a field OCR failed to read
  compares as "" and therefore fails instead of being skipped
- Mismatches are returned as data with both compared values for audit
"""
import logging
from typing import AbstractSet, Any, Dict, List, Mapping, Optional

from models.schemas import DocumentComparison, FieldComparisonResult, FieldMismatch
from services.document_sanitizers import get_sanitizer
from services.fuzzy_matching_service import FuzzyComparator, default_comparator
from utils.config import STRICT_DATE_MATCHING
from utils.exceptions import UnsupportedDocumentTypeError

logger = logging.getLogger(__name__)


def mismatch_reason(ocr_value: str, submitted_value: str) -> str:
    return f"Mismatch: OCR value ({ocr_value}) does not match KYC value ({submitted_value})"


def compare_fields(
    sanitized_ocr: Mapping[str, str],
    sanitized_submitted: Mapping[str, str],
    comparator: FuzzyComparator = default_comparator,
    exact_fields: AbstractSet[str] = frozenset()
) -> List[FieldComparisonResult]:
    """
    Compare every field of the sanitized OCR map against the form.

    Args:
        sanitized_ocr: Canonical OCR fields
        sanitized_submitted: Canonical form fields
        comparator: Fuzzy comparator to use
        exact_fields: Fields that must be equal after normalization

    Returns:
        One FieldComparisonResult per OCR field, in OCR field order
    """
    results = []
    for field, ocr_value in sanitized_ocr.items():
        ocr_value = ocr_value or ""
        submitted_value = sanitized_submitted.get(field) or ""
        results.append(FieldComparisonResult(
            field=field,
            ocr_value=ocr_value,
            submitted_value=submitted_value,
            is_match=(
                ocr_value == submitted_value if field in exact_fields
                else comparator.matches(ocr_value, submitted_value)
            )
        ))
    return results


def compare_document(
    document_type: Any,
    ocr_data: Mapping[str, Any],
    submitted_data: Mapping[str, Any],
    comparator: Optional[FuzzyComparator] = None,
    strict_dates: Optional[bool] = None
) -> DocumentComparison:
    """
    Decide whether OCR data corroborates the user's KYC form for a document type.

    Args:
        document_type: DocumentType or its wire string ("aadhaar-card", "passport",
            "pan-card", "dl", "voter-id"), case-insensitive
        ocr_data: Raw field map from the extraction client
        submitted_data: KYC form fields (camelCase form keys)
        comparator: Optional comparator override (defaults to FUZZY_MATCH_THRESHOLD)
        strict_dates: Require equal normalized dates (defaults to STRICT_DATE_MATCHING)

    Returns:
        DocumentComparison with is_match (all fields matched) and mismatches
        (failing fields only, with both compared values and a reason)

    Raises:
        UnsupportedDocumentTypeError: No sanitizer registered for document_type
    """
    sanitizer = get_sanitizer(document_type)
    if sanitizer is None:
        raise UnsupportedDocumentTypeError(document_type)

    sanitized_ocr = sanitizer.sanitize_ocr(ocr_data)
    sanitized_submitted = sanitizer.sanitize_submission(submitted_data)

    if strict_dates is None:
        strict_dates = STRICT_DATE_MATCHING
    results = compare_fields(
        sanitized_ocr,
        sanitized_submitted,
        comparator or default_comparator,
        exact_fields=sanitizer.date_fields if strict_dates else frozenset()
    )

    mismatches: Dict[str, FieldMismatch] = {
        r.field: FieldMismatch(
            ocr_value=r.ocr_value,
            submitted_value=r.submitted_value,
            reason=mismatch_reason(r.ocr_value, r.submitted_value)
        )
        for r in results
        if not r.is_match
    }

    is_match = all(r.is_match for r in results)
    logger.debug(
        f"Compared {len(results)} fields for {sanitizer.document_type.value}: "
        f"{len(mismatches)} mismatched",
        extra={"document_type": sanitizer.document_type.value}
    )

    return DocumentComparison(is_match=is_match, mismatches=mismatches, results=results)
