"""
KYC Submission Service.

Creates submissions, renders them for owners and reviewers, and runs the
status state machine:

    Pending --(reviewer)--> Verified | Rejected

Only Verified and Rejected can be set. A reviewer may set a terminal status
again (last writer wins); nothing re-evaluates a submission automatically.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.schemas import KycStatus, KycSubmissionCreate, KycSubmissionResponse
from models.sql_models import KycSubmission
from utils.date_utils import format_date
from utils.exceptions import (
    ActiveSubmissionExistsError,
    InvalidStatusTransitionError,
    SubmissionNotFoundError,
)

logger = logging.getLogger(__name__)

# Statuses a reviewer may move a submission to
REVIEWER_TARGET_STATUSES = (KycStatus.VERIFIED, KycStatus.REJECTED)
TERMINAL_STATUSES = frozenset(REVIEWER_TARGET_STATUSES)

# A user may not open a new submission while one of these exists
ACTIVE_STATUSES = (KycStatus.PENDING.value, KycStatus.VERIFIED.value)


def parse_target_status(target: Any) -> KycStatus:
    """
    Validate a reviewer-supplied target status.

    Raises:
        InvalidStatusTransitionError: target is not Verified or Rejected
    """
    allowed = [s.value for s in REVIEWER_TARGET_STATUSES]
    try:
        status = KycStatus(target)
    except ValueError:
        raise InvalidStatusTransitionError(target, allowed)
    if status not in REVIEWER_TARGET_STATUSES:
        raise InvalidStatusTransitionError(target, allowed)
    return status


def is_terminal(submission: KycSubmission) -> bool:
    return submission.status in {s.value for s in TERMINAL_STATUSES}


async def create_submission(
    db: AsyncSession,
    user_id: str,
    form: KycSubmissionCreate
) -> KycSubmission:
    """
    Store a new Pending submission for a user.

    Raises:
        ActiveSubmissionExistsError: user already has a Pending or Verified submission
    """
    result = await db.execute(
        select(KycSubmission.status)
        .where(KycSubmission.user_id == user_id, KycSubmission.status.in_(ACTIVE_STATUSES))
        .limit(1)
    )
    active_status = result.scalar_one_or_none()
    if active_status is not None:
        raise ActiveSubmissionExistsError(user_id, active_status)

    submission = KycSubmission(
        user_id=user_id,
        document_type=form.id_type.value,
        nationality=form.nationality,
        dob=format_date(form.dob),
        id_number=form.id_number,
        id_issue_date=format_date(form.id_issue_date),
        id_expiry_date=format_date(form.id_expiry_date) if form.id_expiry_date else None,
        id_issuing_country=form.id_issuing_country,
        country_of_residence=form.country_of_residence,
        address_line1=form.address_line1,
        address_line2=form.address_line2 or None,
        city=form.city,
        state=form.state,
        zip_code=form.zip_code,
        status=KycStatus.PENDING.value,
    )
    db.add(submission)
    await db.commit()

    logger.info(
        "KYC submission created",
        extra={"submission_id": submission.id, "document_type": submission.document_type}
    )
    return submission


async def get_submission(db: AsyncSession, submission_id: str) -> KycSubmission:
    """Fetch a submission or raise SubmissionNotFoundError."""
    submission = await db.get(KycSubmission, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)
    return submission


async def get_owned_submission(db: AsyncSession, submission_id: str, user_id: str) -> KycSubmission:
    """Fetch a submission owned by user_id; other users' submissions read as not found."""
    submission = await get_submission(db, submission_id)
    if submission.user_id != user_id:
        raise SubmissionNotFoundError(submission_id)
    return submission


async def update_kyc_status(db: AsyncSession, submission_id: str, target: Any) -> KycSubmission:
    """
    Move a submission to Verified or Rejected.

    The target is validated before the row is touched, so a rejected
    transition leaves the stored status unchanged.

    Raises:
        InvalidStatusTransitionError: target is not Verified or Rejected
        SubmissionNotFoundError: unknown submission
    """
    status = parse_target_status(target)
    submission = await get_submission(db, submission_id)

    previous = submission.status
    submission.status = status.value
    await db.commit()

    logger.info(
        f"KYC status changed {previous} -> {status.value}",
        extra={"submission_id": submission_id}
    )
    return submission


def submitted_fields(submission: KycSubmission) -> Dict[str, Optional[str]]:
    """The submission's self-reported fields keyed like the KYC form."""
    return {
        "nationality": submission.nationality,
        "dob": submission.dob,
        "idNumber": submission.id_number,
        "idIssueDate": submission.id_issue_date,
        "idExpiryDate": submission.id_expiry_date,
        "idIssuingCountry": submission.id_issuing_country,
        "countryOfResidence": submission.country_of_residence,
        "addressLine1": submission.address_line1,
        "addressLine2": submission.address_line2,
        "city": submission.city,
        "state": submission.state,
        "zipCode": submission.zip_code,
    }


def format_submission(submission: KycSubmission) -> Dict[str, Any]:
    """Serialize a submission into KycSubmissionResponse fields."""
    return KycSubmissionResponse(
        id=submission.id,
        user_id=submission.user_id,
        document_type=submission.document_type,
        status=submission.status,
        nationality=submission.nationality,
        dob=submission.dob,
        id_number=submission.id_number,
        id_issue_date=submission.id_issue_date,
        id_expiry_date=submission.id_expiry_date,
        id_issuing_country=submission.id_issuing_country,
        country_of_residence=submission.country_of_residence,
        address_line1=submission.address_line1,
        address_line2=submission.address_line2 or "N/A",
        city=submission.city,
        state=submission.state,
        zip_code=submission.zip_code,
        document_image=submission.document_image,
        selfie_image=submission.selfie_image,
        created_at=submission.created_at,
        updated_at=submission.updated_at,
    ).model_dump()
