"""
Document Field Sanitizers.

One sanitizer per supported document type. A sanitizer turns both the OCR
field map and the user's KYC form into dicts with the same canonical keys
and comparable values:

    sanitizer = get_sanitizer(DocumentType.PASSPORT)
    ocr = sanitizer.sanitize_ocr({"documentNumber": "Z 123 4567", ...})
    form = sanitizer.sanitize_submission({"idNumber": "z1234567", ...})

OCR and form data arrive in different shapes (the OCR address is one free
text string, the form splits it into lines), so each side has its own key
aliases. Canonical keys are accepted as input on both sides, which makes
sanitizing already-sanitized data a no-op.

Sanitizers are pure: no I/O, no state.
"""
import re
from abc import ABC
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Type

from models.schemas import DocumentType
from utils.date_utils import normalize_date_value
from utils.text_normalization import (
    join_address_parts,
    normalize_address,
    normalize_identifier,
    normalize_text,
)

# KYC form keys that together make up the address
FORM_ADDRESS_KEYS = ("addressLine1", "addressLine2", "city", "state", "zipCode")


@dataclass(frozen=True)
class FieldRule:
    """How one canonical field is read and normalized on each side."""
    name: str
    normalizer: Callable[[Any], str]
    ocr_keys: Tuple[str, ...] = ()
    form_keys: Tuple[str, ...] = ()
    # Dates: compared for equality when strict date matching is on
    is_date: bool = False


def _first_value(data: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[Any]:
    """Return the first present, non-blank value among keys."""
    for key in keys:
        value = data.get(key)
        if value is not None and str(value).strip():
            return value
    return None


# Reusable rules. Canonical name is always tried first.
DATE_OF_BIRTH = FieldRule(
    "date_of_birth", normalize_date_value,
    ocr_keys=("dateOfBirth", "dob", "birthDate"),
    form_keys=("dob",),
    is_date=True,
)
ISSUE_DATE = FieldRule(
    "issue_date", normalize_date_value,
    ocr_keys=("dateOfIssue", "issueDate"),
    form_keys=("idIssueDate",),
    is_date=True,
)
EXPIRY_DATE = FieldRule(
    "expiry_date", normalize_date_value,
    ocr_keys=("dateOfExpiry", "expiryDate", "validTill"),
    form_keys=("idExpiryDate",),
    is_date=True,
)
NATIONALITY = FieldRule(
    "nationality", normalize_text,
    ocr_keys=("nationality",),
    form_keys=("nationality",),
)
ISSUING_COUNTRY = FieldRule(
    "issuing_country", normalize_text,
    ocr_keys=("issuingCountry", "countryOfIssue", "issuingState"),
    form_keys=("idIssuingCountry",),
)
ADDRESS = FieldRule(
    "address", normalize_address,
    ocr_keys=("address", "fullAddress", "permanentAddress"),
)


def id_number_rule(*ocr_keys: str) -> FieldRule:
    return FieldRule(
        "id_number", normalize_identifier,
        ocr_keys=("documentNumber",) + ocr_keys,
        form_keys=("idNumber",),
    )


class DocumentSanitizer(ABC):
    """Base sanitizer: subclasses declare their document type and field rules."""

    document_type: DocumentType
    rules: Tuple[FieldRule, ...] = ()

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(rule.name for rule in self.rules)

    @property
    def date_fields(self) -> FrozenSet[str]:
        return frozenset(rule.name for rule in self.rules if rule.is_date)

    def sanitize_ocr(self, ocr_data: Mapping[str, Any]) -> Dict[str, str]:
        """Normalize the OCR field map into canonical comparable fields."""
        ocr_data = ocr_data or {}
        return {
            rule.name: rule.normalizer(self.ocr_value(rule, ocr_data))
            for rule in self.rules
        }

    def sanitize_submission(self, submitted: Mapping[str, Any]) -> Dict[str, str]:
        """Normalize the user's KYC form into canonical comparable fields."""
        submitted = submitted or {}
        return {
            rule.name: rule.normalizer(self.submitted_value(rule, submitted))
            for rule in self.rules
        }

    def ocr_value(self, rule: FieldRule, data: Mapping[str, Any]) -> Optional[Any]:
        return _first_value(data, (rule.name,) + rule.ocr_keys)

    def submitted_value(self, rule: FieldRule, data: Mapping[str, Any]) -> Optional[Any]:
        value = _first_value(data, (rule.name,) + rule.form_keys)
        if value is None and rule.name == ADDRESS.name:
            return join_address_parts(data.get(key) for key in FORM_ADDRESS_KEYS)
        return value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.document_type.value})"


# =============================================================================
# REGISTRY
# =============================================================================

SANITIZERS: Dict[DocumentType, DocumentSanitizer] = {}


def register_sanitizer(cls: Type[DocumentSanitizer]) -> Type[DocumentSanitizer]:
    """Class decorator: instantiate and register a sanitizer for its document type."""
    if cls.document_type in SANITIZERS:
        raise ValueError(f"Sanitizer already registered for {cls.document_type.value}")
    SANITIZERS[cls.document_type] = cls()
    return cls


def get_sanitizer(document_type: Any) -> Optional[DocumentSanitizer]:
    """Look up the sanitizer for a document type (enum or wire string)."""
    parsed = DocumentType.parse(document_type)
    if parsed is None:
        return None
    return SANITIZERS.get(parsed)


# =============================================================================
# DOCUMENT TYPES
# =============================================================================

# "S/O Ramesh Kumar," / "C/O ..." relation clause printed before the address
_RELATION_PREFIX_RE = re.compile(r"^\s*[sdwc]\s*/\s*o\b[^,]*,", re.IGNORECASE)


@register_sanitizer
class NationalIdSanitizer(DocumentSanitizer):
    """Aadhaar card: 12-digit number printed in groups of four, full address on the back."""
    document_type = DocumentType.NATIONAL_ID
    rules = (
        id_number_rule("aadhaarNumber", "uid"),
        DATE_OF_BIRTH,
        ADDRESS,
    )

    def ocr_value(self, rule, data):
        value = super().ocr_value(rule, data)
        if rule.name == ADDRESS.name and value:
            return _RELATION_PREFIX_RE.sub("", str(value), count=1)
        return value


@register_sanitizer
class PassportSanitizer(DocumentSanitizer):
    """Passport data page (MRZ filler characters drop out with identifier normalization)."""
    document_type = DocumentType.PASSPORT
    rules = (
        id_number_rule("passportNumber"),
        DATE_OF_BIRTH,
        NATIONALITY,
        ISSUE_DATE,
        EXPIRY_DATE,
        ISSUING_COUNTRY,
    )


@register_sanitizer
class TaxIdSanitizer(DocumentSanitizer):
    """PAN card: number and date of birth are the only stable fields."""
    document_type = DocumentType.TAX_ID
    rules = (
        id_number_rule("panNumber"),
        DATE_OF_BIRTH,
    )


@register_sanitizer
class DrivingLicenseSanitizer(DocumentSanitizer):
    document_type = DocumentType.DRIVING_LICENSE
    rules = (
        id_number_rule("licenseNumber", "dlNumber"),
        DATE_OF_BIRTH,
        ISSUE_DATE,
        EXPIRY_DATE,
        ADDRESS,
    )


@register_sanitizer
class VoterIdSanitizer(DocumentSanitizer):
    """Voter ID (EPIC) card."""
    document_type = DocumentType.VOTER_ID
    rules = (
        id_number_rule("epicNumber", "voterId"),
        DATE_OF_BIRTH,
        ADDRESS,
    )
