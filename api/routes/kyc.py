"""
KYC submission endpoints.

Routes
------
POST /kyc                   – user creates a Pending submission
POST /kyc/{kyc_id}/upload   – user attaches images; runs OCR comparison and moderation
GET  /kyc/{kyc_id}          – owner view (no comparison internals)
GET  /kyc/{kyc_id}/admin    – reviewer view with full moderation detail
PUT  /kyc/{kyc_id}/status   – reviewer sets Verified or Rejected
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import Identity, get_identity, get_ocr_client, require_reviewer
from api.routes.metrics import EXTRACTION_FAILURES, MODERATIONS_TOTAL
from middleware.request_id import get_request_id
from models.schemas import (
    KycAssetsUpload,
    KycOwnerDetail,
    KycReviewerDetail,
    KycStatusUpdate,
    KycSubmissionCreate,
    KycSubmissionResponse,
    KycUploadResponse,
    ModerationAudience,
)
from services.db import get_db
from services.kyc_service import (
    create_submission,
    format_submission,
    get_owned_submission,
    get_submission,
    update_kyc_status,
)
from services.moderation_service import get_moderation_for_submission, moderate_submission
from services.ocr_service import DocumentOCRClient
from utils.exceptions import ExtractionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kyc", tags=["KYC"])


@router.post("", response_model=KycSubmissionResponse, status_code=201)
async def create_kyc(
    form: KycSubmissionCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Create a new KYC submission for the calling user."""
    submission = await create_submission(db, identity.user_id, form)
    return format_submission(submission)


@router.post("/{kyc_id}/upload", response_model=KycUploadResponse)
async def upload_kyc_assets(
    kyc_id: str,
    body: KycAssetsUpload,
    request: Request,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    ocr_client: DocumentOCRClient = Depends(get_ocr_client),
):
    """
    Attach the stored document/selfie references and moderate the submission.

    The response tells the user which fields disagree with the document,
    never the values read from it.
    """
    await get_owned_submission(db, kyc_id, identity.user_id)

    try:
        moderation, comparison = await moderate_submission(db, kyc_id, ocr_client, body)
    except ExtractionError as e:
        EXTRACTION_FAILURES.labels(cause=e.cause.value).inc()
        logger.warning(
            f"Extraction failed for upload: {e.message}",
            extra={"submission_id": kyc_id, "transaction_id": get_request_id(request)}
        )
        raise

    MODERATIONS_TOTAL.labels(ocr_match=str(comparison.is_match).lower()).inc()
    return KycUploadResponse(
        submission_id=kyc_id,
        moderation_id=moderation.id,
        ocr_match=comparison.is_match,
        mismatched_fields=list(comparison.mismatches),
    )


@router.get("/{kyc_id}/admin", response_model=KycReviewerDetail)
async def get_kyc_with_moderation(
    kyc_id: str,
    reviewer: Identity = Depends(require_reviewer),
    db: AsyncSession = Depends(get_db),
):
    """Reviewer view: submission plus full moderation detail."""
    submission = await get_submission(db, kyc_id)
    moderation = await get_moderation_for_submission(db, kyc_id, ModerationAudience.REVIEWER)
    return KycReviewerDetail(**format_submission(submission), moderation=moderation)


@router.get("/{kyc_id}", response_model=KycOwnerDetail)
async def get_kyc_by_id(
    kyc_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """Owner view: submission fields and derived moderation status only."""
    submission = await get_owned_submission(db, kyc_id, identity.user_id)
    moderation = await get_moderation_for_submission(db, kyc_id, ModerationAudience.OWNER)
    return KycOwnerDetail(**format_submission(submission), moderation=moderation)


@router.put("/{kyc_id}/status", response_model=KycSubmissionResponse)
async def update_status(
    kyc_id: str,
    body: KycStatusUpdate,
    reviewer: Identity = Depends(require_reviewer),
    db: AsyncSession = Depends(get_db),
):
    """Set a submission to Verified or Rejected."""
    submission = await update_kyc_status(db, kyc_id, body.status)
    logger.info(
        f"Status set to {submission.status} by reviewer {reviewer.user_id}",
        extra={"submission_id": kyc_id}
    )
    return format_submission(submission)
