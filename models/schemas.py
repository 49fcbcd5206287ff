"""
Pydantic models for API request/response schemas and engine results.
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class DocumentType(str, Enum):
    """Supported identity documents. Values are the wire strings clients send."""
    NATIONAL_ID = "aadhaar-card"
    PASSPORT = "passport"
    TAX_ID = "pan-card"
    DRIVING_LICENSE = "dl"
    VOTER_ID = "voter-id"

    @classmethod
    def parse(cls, value: Any) -> Optional["DocumentType"]:
        """Case-insensitive lookup; None for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class KycStatus(str, Enum):
    PENDING = "Pending"
    VERIFIED = "Verified"
    REJECTED = "Rejected"


class ModerationAudience(str, Enum):
    """Who a moderation record is being rendered for."""
    REVIEWER = "reviewer"
    OWNER = "owner"


class HealthResponse(BaseModel):
    """Response model for the /health endpoint."""
    status: str = Field(..., description="Service status")
    database_ready: bool = Field(..., description="Whether the database answered a ping")
    ocr_configured: bool = Field(..., description="Whether OCR service credentials are set")


# =============================================================================
# KYC SUBMISSIONS
# =============================================================================

class KycSubmissionCreate(BaseModel):
    """Self-reported KYC form data."""
    nationality: str = Field(..., min_length=1, description="Nationality")
    dob: date = Field(..., description="Date of Birth")
    id_type: DocumentType = Field(..., alias="idType", description="ID Type")
    id_number: str = Field(..., alias="idNumber", min_length=1)
    id_issue_date: date = Field(..., alias="idIssueDate")
    # Some IDs have no expiry date
    id_expiry_date: Optional[date] = Field(None, alias="idExpiryDate")
    id_issuing_country: str = Field(..., alias="idIssuingCountry", min_length=1)
    country_of_residence: str = Field(..., alias="countryOfResidence", min_length=1)
    address_line1: str = Field(..., alias="addressLine1", min_length=1)
    address_line2: Optional[str] = Field("", alias="addressLine2")
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., alias="zipCode", min_length=1)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "nationality": "Indian",
                "dob": "1990-01-15",
                "idType": "pan-card",
                "idNumber": "ABCDE1234F",
                "idIssueDate": "2015-06-01",
                "idIssuingCountry": "India",
                "countryOfResidence": "India",
                "addressLine1": "12 MG Road",
                "addressLine2": "",
                "city": "Bengaluru",
                "state": "Karnataka",
                "zipCode": "560001"
            }
        }

    @field_validator("id_type", mode="before")
    @classmethod
    def lower_id_type(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class KycSubmissionResponse(BaseModel):
    """A KYC submission as shown to its owner or a reviewer."""
    id: str
    user_id: str = Field(..., alias="userId")
    document_type: str = Field(..., alias="documentType")
    status: KycStatus = Field(..., alias="kycStatus")
    nationality: str
    dob: str
    id_number: str = Field(..., alias="idNumber")
    id_issue_date: str = Field(..., alias="idIssueDate")
    id_expiry_date: Optional[str] = Field(None, alias="idExpiryDate")
    id_issuing_country: str = Field(..., alias="idIssuingCountry")
    country_of_residence: str = Field(..., alias="countryOfResidence")
    address_line1: str = Field(..., alias="addressLine1")
    address_line2: str = Field("N/A", alias="addressLine2")
    city: str
    state: str
    zip_code: str = Field(..., alias="zipCode")
    document_image: Optional[str] = Field(None, alias="documentImage")
    selfie_image: Optional[str] = Field(None, alias="selfieImage")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    class Config:
        populate_by_name = True


class KycStatusUpdate(BaseModel):
    """Reviewer status change. Validated by the state machine, not here."""
    status: str = Field(..., description="Verified or Rejected")


# =============================================================================
# DOCUMENT COMPARISON
# =============================================================================

class FieldComparisonResult(BaseModel):
    """Outcome of comparing one sanitized field."""
    field: str
    ocr_value: str
    submitted_value: str
    is_match: bool


class FieldMismatch(BaseModel):
    """Both compared values of a failing field, for reviewer audit."""
    ocr_value: str = Field(..., alias="ocrValue")
    submitted_value: str = Field(..., alias="submittedValue")
    reason: str

    class Config:
        populate_by_name = True


class DocumentComparison(BaseModel):
    """Result of compare_document."""
    is_match: bool = Field(..., alias="isMatch")
    mismatches: Dict[str, FieldMismatch] = Field(default_factory=dict)
    results: List[FieldComparisonResult] = Field(default_factory=list)

    class Config:
        populate_by_name = True


# =============================================================================
# MODERATION
# =============================================================================

class FaceMatchInput(BaseModel):
    """Face-match result supplied by the face comparison collaborator."""
    match: bool
    match_confidence: float = Field(0.0, alias="matchConfidence", ge=0.0)

    class Config:
        populate_by_name = True


class LivelinessInput(BaseModel):
    """Liveliness result supplied by the liveness collaborator."""
    passed: bool
    details: Optional[Any] = None
    results: Optional[Any] = None


class KycAssetsUpload(BaseModel):
    """Upload step: stored image references plus external face/liveliness signals."""
    document_image: str = Field(..., alias="documentImage", min_length=1)
    selfie_image: str = Field(..., alias="selfieImage", min_length=1)
    face_match: FaceMatchInput = Field(..., alias="faceMatch")
    liveliness: LivelinessInput

    class Config:
        populate_by_name = True


class KycUploadResponse(BaseModel):
    """What the submitting user learns from the upload step."""
    submission_id: str = Field(..., alias="submissionId")
    moderation_id: str = Field(..., alias="moderationId")
    ocr_match: bool = Field(..., alias="ocrMatch")
    mismatched_fields: List[str] = Field(default_factory=list, alias="mismatchedFields")

    class Config:
        populate_by_name = True


class FaceMatchView(BaseModel):
    match: bool
    match_confidence: Optional[float] = Field(None, alias="matchConfidence")

    class Config:
        populate_by_name = True


class LivelinessView(BaseModel):
    passed: bool
    details: Optional[Any] = None
    results: Optional[Any] = None


class ModerationReviewerView(BaseModel):
    """Full moderation detail for reviewers."""
    id: str
    ocr_match: bool = Field(..., alias="ocrMatch")
    ocr_mismatches: Dict[str, FieldMismatch] = Field(default_factory=dict, alias="ocrMismatches")
    face_match: FaceMatchView = Field(..., alias="faceMatch")
    liveliness: LivelinessView
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    class Config:
        populate_by_name = True


class ModerationOwnerView(BaseModel):
    """Derived status only; never exposes comparison internals."""
    submission_id: str = Field(..., alias="submissionId")
    status: KycStatus
    moderation_completed: bool = Field(..., alias="moderationCompleted")

    class Config:
        populate_by_name = True


class KycOwnerDetail(KycSubmissionResponse):
    moderation: Optional[ModerationOwnerView] = None


class KycReviewerDetail(KycSubmissionResponse):
    moderation: Optional[ModerationReviewerView] = None
