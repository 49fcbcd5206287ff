"""
Moderation Service.

Aggregates the document comparison verdict with the externally supplied
face-match and liveliness results into one Moderation record per KYC
submission, and renders that record for reviewers and submission owners.

At most one record per submission is guaranteed twice over:
1. SubmissionLockRegistry serializes moderation of the same submission
   inside this process (existence check and insert run under the lock).
2. The UNIQUE constraint on moderations.submission_id rejects a second
   insert from any other process; the IntegrityError is reported as
   DuplicateModerationError and the first record is left untouched.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.schemas import (
    DocumentComparison,
    FaceMatchInput,
    FaceMatchView,
    KycAssetsUpload,
    KycStatus,
    LivelinessInput,
    LivelinessView,
    ModerationAudience,
    ModerationOwnerView,
    ModerationReviewerView,
)
from models.sql_models import KycSubmission, Moderation
from services.field_comparison_service import compare_document
from services.kyc_service import get_submission, is_terminal, submitted_fields
from services.ocr_service import DocumentOCRClient
from utils.exceptions import (
    DatabaseError,
    DuplicateModerationError,
    ExtractionError,
    ExtractionFailureCause,
    SubmissionFinalizedError,
)

logger = logging.getLogger(__name__)


class SubmissionLockRegistry:
    """
    asyncio locks keyed by submission id.

    A lock lives only while someone holds or waits for it, so the registry
    does not grow with the number of submissions ever seen.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


moderation_locks = SubmissionLockRegistry()


async def get_moderation(db: AsyncSession, submission_id: str) -> Optional[Moderation]:
    result = await db.execute(
        select(Moderation).where(Moderation.submission_id == submission_id)
    )
    return result.scalar_one_or_none()


async def _open_submission(db: AsyncSession, submission_id: str) -> KycSubmission:
    """
    Load a submission that may still be moderated. Call with the submission's lock held.

    Raises:
        SubmissionNotFoundError: unknown submission
        SubmissionFinalizedError: submission is already Verified or Rejected
        DuplicateModerationError: submission already moderated
    """
    submission = await get_submission(db, submission_id)
    if is_terminal(submission):
        raise SubmissionFinalizedError(submission_id, submission.status)
    if await get_moderation(db, submission_id) is not None:
        raise DuplicateModerationError(submission_id)
    return submission


async def _extract_document(ocr_client: DocumentOCRClient, image_path: str) -> Dict[str, str]:
    """
    Run the blocking OCR call in a worker thread under an overall deadline.

    The HTTP client's own timeout bounds connect and each socket read, not
    the whole exchange, so a server trickling bytes is cut off here. The
    worker thread is abandoned, not interrupted.
    """
    deadline = ocr_client.config.timeout_seconds
    try:
        return await asyncio.wait_for(asyncio.to_thread(ocr_client.extract, image_path), timeout=deadline)
    except asyncio.TimeoutError:
        logger.error(
            f"Error extracting data from document: no complete response within {deadline}s",
            extra={"cause": ExtractionFailureCause.NETWORK_ERROR.value}
        )
        raise ExtractionError(
            ExtractionFailureCause.NETWORK_ERROR,
            f"OCR API did not answer within {deadline}s"
        )


async def _insert_moderation(
    db: AsyncSession,
    submission_id: str,
    comparison: DocumentComparison,
    face_match: FaceMatchInput,
    liveliness: LivelinessInput
) -> Moderation:
    if await get_moderation(db, submission_id) is not None:
        raise DuplicateModerationError(submission_id)

    moderation = Moderation(
        submission_id=submission_id,
        ocr_match=comparison.is_match,
        ocr_mismatches={
            field: mismatch.model_dump(by_alias=True)
            for field, mismatch in comparison.mismatches.items()
        },
        face_match=face_match.match,
        face_match_confidence=face_match.match_confidence,
        liveliness_passed=liveliness.passed,
        liveliness_details=liveliness.details,
        liveliness_results=liveliness.results,
    )
    db.add(moderation)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        # Lost the race to another writer
        if await get_moderation(db, submission_id) is not None:
            raise DuplicateModerationError(submission_id)
        raise DatabaseError(str(e.orig), operation="insert")

    logger.info(
        f"Moderation created (ocr_match={moderation.ocr_match}, "
        f"face_match={moderation.face_match}, liveliness={moderation.liveliness_passed})",
        extra={"submission_id": submission_id, "moderation_id": moderation.id}
    )
    return moderation


async def create_moderation(
    db: AsyncSession,
    submission_id: str,
    comparison: DocumentComparison,
    face_match: FaceMatchInput,
    liveliness: LivelinessInput
) -> Moderation:
    """
    Create the moderation record for a submission.

    Raises:
        SubmissionNotFoundError: unknown submission
        SubmissionFinalizedError: submission is already Verified or Rejected
        DuplicateModerationError: the submission already has a record
    """
    async with moderation_locks.hold(submission_id):
        await _open_submission(db, submission_id)
        return await _insert_moderation(db, submission_id, comparison, face_match, liveliness)


async def moderate_submission(
    db: AsyncSession,
    submission_id: str,
    ocr_client: DocumentOCRClient,
    upload: KycAssetsUpload
) -> Tuple[Moderation, DocumentComparison]:
    """
    Upload workflow: extract the document, compare it with the form, record the verdict.

    Runs entirely under the submission's lock so a second concurrent upload
    waits and is then rejected before it calls the OCR service.

    Returns:
        (Moderation, DocumentComparison)

    Raises:
        SubmissionNotFoundError: unknown submission
        SubmissionFinalizedError: submission is already Verified or Rejected
        DuplicateModerationError: submission already moderated
        ExtractionError: OCR call failed or exceeded the configured timeout
        UnsupportedDocumentTypeError: stored document type has no sanitizer
    """
    async with moderation_locks.hold(submission_id):
        submission = await _open_submission(db, submission_id)

        submission.document_image = upload.document_image
        submission.selfie_image = upload.selfie_image

        ocr_data = await _extract_document(ocr_client, upload.document_image)
        comparison = compare_document(submission.document_type, ocr_data, submitted_fields(submission))

        moderation = await _insert_moderation(
            db, submission_id, comparison, upload.face_match, upload.liveliness
        )
        return moderation, comparison


def format_reviewer_view(moderation: Moderation) -> ModerationReviewerView:
    return ModerationReviewerView(
        id=moderation.id,
        ocr_match=moderation.ocr_match,
        ocr_mismatches=moderation.ocr_mismatches or {},
        face_match=FaceMatchView(
            match=moderation.face_match,
            match_confidence=moderation.face_match_confidence
        ),
        liveliness=LivelinessView(
            passed=moderation.liveliness_passed,
            details=moderation.liveliness_details,
            results=moderation.liveliness_results
        ),
        created_at=moderation.created_at,
        updated_at=moderation.updated_at,
    )


def format_owner_view(
    submission_id: str,
    status: Union[KycStatus, str],
    moderation: Optional[Moderation]
) -> ModerationOwnerView:
    return ModerationOwnerView(
        submission_id=submission_id,
        status=status,
        moderation_completed=moderation is not None,
    )


async def get_moderation_for_submission(
    db: AsyncSession,
    submission_id: str,
    audience: ModerationAudience = ModerationAudience.REVIEWER
) -> Optional[Union[ModerationReviewerView, ModerationOwnerView]]:
    """
    Read a submission's moderation for one audience.

    Reviewers get every mismatched field with both values, the face match
    and liveliness detail, or None when the submission is not moderated yet.
    Owners only get the derived status and whether moderation has run.

    Raises:
        SubmissionNotFoundError: unknown submission
    """
    submission = await get_submission(db, submission_id)
    moderation = await get_moderation(db, submission_id)

    if audience == ModerationAudience.OWNER:
        return format_owner_view(submission.id, submission.status, moderation)
    if moderation is None:
        return None
    return format_reviewer_view(moderation)
