"""
SQLAlchemy Models for the KYC moderation service (PostgreSQL).
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from services.db import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite for local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KycSubmission(Base):
    __tablename__ = "kyc_submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    document_type: Mapped[str] = mapped_column(String(20), nullable=False)  # DocumentType value

    # Self-reported fields (dates stored as YYYY-MM-DD)
    nationality: Mapped[str] = mapped_column(String(100), nullable=False)
    dob: Mapped[str] = mapped_column(String(10), nullable=False)
    id_number: Mapped[str] = mapped_column(String(50), nullable=False)
    id_issue_date: Mapped[str] = mapped_column(String(10), nullable=False)
    id_expiry_date: Mapped[Optional[str]] = mapped_column(String(10))
    id_issuing_country: Mapped[str] = mapped_column(String(100), nullable=False)
    country_of_residence: Mapped[str] = mapped_column(String(100), nullable=False)
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)

    # Stored upload references
    document_image: Mapped[Optional[str]] = mapped_column(String(500))
    selfie_image: Mapped[Optional[str]] = mapped_column(String(500))

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")  # Pending, Verified, Rejected

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    moderation: Mapped[Optional["Moderation"]] = relationship(back_populates="submission", uselist=False)


class Moderation(Base):
    """
    Automated verdict for a submission.

    One per submission: the unique constraint on submission_id is what makes
    concurrent creation attempts collapse to a single row.
    """
    __tablename__ = "moderations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("kyc_submissions.id"), nullable=False, unique=True, index=True
    )

    # Document data comparison
    ocr_match: Mapped[bool] = mapped_column(Boolean, nullable=False)
    ocr_mismatches: Mapped[dict] = mapped_column(JSONType, default=dict)

    # Face match (external)
    face_match: Mapped[bool] = mapped_column(Boolean, nullable=False)
    face_match_confidence: Mapped[Optional[float]] = mapped_column(Float)

    # Liveliness (external)
    liveliness_passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    liveliness_details: Mapped[Optional[dict]] = mapped_column(JSONType)
    liveliness_results: Mapped[Optional[dict]] = mapped_column(JSONType)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    submission: Mapped["KycSubmission"] = relationship(back_populates="moderation")
