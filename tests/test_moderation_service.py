"""
Moderation Service Tests

Moderation record creation, the one-record-per-submission guard under
concurrent attempts, the upload workflow and the reviewer/owner views.
Run with: pytest tests/test_moderation_service.py -v
"""
import asyncio
import pytest
import sys
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

sys.path.insert(0, str(Path(__file__).parent.parent))

from models.schemas import (
    DocumentComparison,
    FaceMatchInput,
    FieldMismatch,
    KycAssetsUpload,
    KycStatus,
    LivelinessInput,
    ModerationAudience,
    ModerationOwnerView,
    ModerationReviewerView,
)
from models.sql_models import Moderation
from services.kyc_service import get_submission, update_kyc_status
from services.moderation_service import (
    SubmissionLockRegistry,
    _insert_moderation,
    create_moderation,
    get_moderation,
    get_moderation_for_submission,
    moderate_submission,
    moderation_locks,
)
from utils.exceptions import (
    DatabaseError,
    DuplicateModerationError,
    ExtractionError,
    ExtractionFailureCause,
    SubmissionFinalizedError,
    SubmissionNotFoundError,
)


FACE_MATCH = FaceMatchInput(match=True, match_confidence=0.91)
LIVELINESS = LivelinessInput(passed=True, details={"score": 0.87}, results={"blink": True})


def mismatched_comparison():
    return DocumentComparison(
        is_match=False,
        mismatches={
            "id_number": FieldMismatch(
                ocr_value="987654321098",
                submitted_value="123456789012",
                reason="Mismatch: OCR value (987654321098) does not match KYC value (123456789012)",
            )
        },
    )


async def count_moderations(session_factory, submission_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(Moderation).where(Moderation.submission_id == submission_id)
        )
        return result.scalar_one()


@pytest.fixture
def upload(upload_body):
    return KycAssetsUpload(**upload_body)


class TestCreateModeration:
    """Single moderation record creation."""

    async def test_record_stored(self, db, pending_submission):
        moderation = await create_moderation(
            db, pending_submission.id, mismatched_comparison(), FACE_MATCH, LIVELINESS
        )

        assert moderation.ocr_match is False
        assert moderation.ocr_mismatches["id_number"]["ocrValue"] == "987654321098"
        assert moderation.face_match is True
        assert moderation.face_match_confidence == 0.91
        assert moderation.liveliness_passed is True
        assert moderation.liveliness_details == {"score": 0.87}

    async def test_second_attempt_rejected(self, session_factory, pending_submission):
        async with session_factory() as session:
            first = await create_moderation(
                session, pending_submission.id, mismatched_comparison(), FACE_MATCH, LIVELINESS
            )

        async with session_factory() as session:
            with pytest.raises(DuplicateModerationError) as exc_info:
                await create_moderation(
                    session, pending_submission.id,
                    DocumentComparison(is_match=True), FACE_MATCH, LIVELINESS
                )
        assert exc_info.value.status_code == 409

        # First record is untouched
        async with session_factory() as session:
            stored = await get_moderation(session, pending_submission.id)
            assert stored.id == first.id
            assert stored.ocr_match is False

    async def test_concurrent_attempts_create_one_record(self, session_factory, pending_submission):
        """Two simultaneous attempts: exactly one succeeds, the other is a duplicate."""
        async def attempt(comparison):
            async with session_factory() as session:
                return await create_moderation(
                    session, pending_submission.id, comparison, FACE_MATCH, LIVELINESS
                )

        results = await asyncio.gather(
            attempt(mismatched_comparison()),
            attempt(DocumentComparison(is_match=True)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, Moderation)]
        duplicates = [r for r in results if isinstance(r, DuplicateModerationError)]
        assert len(successes) == 1
        assert len(duplicates) == 1
        assert await count_moderations(session_factory, pending_submission.id) == 1
        assert len(moderation_locks) == 0

    async def test_unique_constraint_without_lock(self, session_factory, pending_submission):
        """Writers that skip the in-process lock are still stopped by the database."""
        async with session_factory() as session:
            session.add(Moderation(
                submission_id=pending_submission.id, ocr_match=True,
                face_match=True, liveliness_passed=True,
            ))
            await session.commit()

        async with session_factory() as session:
            session.add(Moderation(
                submission_id=pending_submission.id, ocr_match=False,
                face_match=False, liveliness_passed=False,
            ))
            with pytest.raises(IntegrityError):
                await session.commit()

        assert await count_moderations(session_factory, pending_submission.id) == 1

    async def test_unknown_submission(self, session_factory):
        async with session_factory() as session:
            with pytest.raises(SubmissionNotFoundError):
                await create_moderation(
                    session, "no-such-submission", mismatched_comparison(), FACE_MATCH, LIVELINESS
                )

        assert await count_moderations(session_factory, "no-such-submission") == 0
        assert len(moderation_locks) == 0

    @pytest.mark.parametrize("status", ["Verified", "Rejected"])
    async def test_finalized_submission_rejected(self, session_factory, pending_submission, status):
        async with session_factory() as session:
            await update_kyc_status(session, pending_submission.id, status)

        async with session_factory() as session:
            with pytest.raises(SubmissionFinalizedError) as exc_info:
                await create_moderation(
                    session, pending_submission.id, mismatched_comparison(), FACE_MATCH, LIVELINESS
                )
        assert exc_info.value.status_code == 409
        assert await count_moderations(session_factory, pending_submission.id) == 0


class TestInsertModeration:
    """The insert path on its own, without the in-process lock."""

    async def test_lost_race_reported_as_duplicate(self, session_factory, pending_submission, monkeypatch):
        """Another writer commits between the existence check and our commit."""
        async with session_factory() as session:
            first = await _insert_moderation(
                session, pending_submission.id, mismatched_comparison(), FACE_MATCH, LIVELINESS
            )

        checks = []

        async def stale_first_check(db, submission_id):
            checks.append(submission_id)
            if len(checks) == 1:
                return None
            return await get_moderation(db, submission_id)

        monkeypatch.setattr("services.moderation_service.get_moderation", stale_first_check)

        async with session_factory() as session:
            with pytest.raises(DuplicateModerationError):
                await _insert_moderation(
                    session, pending_submission.id,
                    DocumentComparison(is_match=True), FACE_MATCH, LIVELINESS
                )

        # Pre-check, then the re-check after the constraint fired
        assert len(checks) == 2
        async with session_factory() as session:
            stored = await get_moderation(session, pending_submission.id)
            assert stored.id == first.id
            assert stored.ocr_match is False
        assert await count_moderations(session_factory, pending_submission.id) == 1

    async def test_concurrent_inserts_create_one_record(self, session_factory, pending_submission, monkeypatch):
        """Both writers pass the existence check before either commits."""
        checked = []
        both_checked = asyncio.Event()
        first_committed = asyncio.Event()

        async def racing_check(db, submission_id):
            existing = await get_moderation(db, submission_id)
            if db not in checked:
                checked.append(db)
                if len(checked) == 2:
                    both_checked.set()
                await both_checked.wait()
                if db is checked[1]:
                    await first_committed.wait()
            return existing

        monkeypatch.setattr("services.moderation_service.get_moderation", racing_check)

        async def attempt(comparison):
            async with session_factory() as session:
                try:
                    return await _insert_moderation(
                        session, pending_submission.id, comparison, FACE_MATCH, LIVELINESS
                    )
                finally:
                    if session is checked[0]:
                        first_committed.set()

        results = await asyncio.gather(
            attempt(mismatched_comparison()),
            attempt(DocumentComparison(is_match=True)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Moderation) for r in results) == 1
        assert sum(isinstance(r, DuplicateModerationError) for r in results) == 1
        assert await count_moderations(session_factory, pending_submission.id) == 1

    async def test_other_constraint_violation_is_database_error(self, session_factory, pending_submission):
        """A failed insert that left no record behind is not a duplicate."""
        missing_verdict = FaceMatchInput.model_construct(match=None, match_confidence=None)

        async with session_factory() as session:
            with pytest.raises(DatabaseError) as exc_info:
                await _insert_moderation(
                    session, pending_submission.id, mismatched_comparison(), missing_verdict, LIVELINESS
                )

        assert exc_info.value.status_code == 500
        assert exc_info.value.details["operation"] == "insert"
        assert await count_moderations(session_factory, pending_submission.id) == 0


class TestModerateSubmission:
    """Upload workflow: extract, compare, record."""

    async def test_matching_document(self, db, pending_submission, fake_ocr_client, upload):
        moderation, comparison = await moderate_submission(
            db, pending_submission.id, fake_ocr_client, upload
        )

        assert comparison.is_match is True
        assert moderation.ocr_match is True
        assert moderation.ocr_mismatches == {}
        assert fake_ocr_client.calls == ["uploads/kyc/document.jpg"]

        submission = await get_submission(db, pending_submission.id)
        assert submission.document_image == "uploads/kyc/document.jpg"
        assert submission.selfie_image == "uploads/kyc/selfie.jpg"
        assert submission.status == KycStatus.PENDING.value

    async def test_mismatching_document(self, db, pending_submission, aadhaar_ocr, ocr_client_factory, upload):
        aadhaar_ocr["documentNumber"] = "9876 5432 1098"
        client = ocr_client_factory(aadhaar_ocr)

        moderation, comparison = await moderate_submission(db, pending_submission.id, client, upload)

        assert comparison.is_match is False
        assert set(moderation.ocr_mismatches) == {"id_number"}
        assert moderation.ocr_mismatches["id_number"]["submittedValue"] == "123456789012"

    async def test_concurrent_uploads(self, session_factory, pending_submission, fake_ocr_client, upload):
        """The loser waits for the winner and is rejected before calling OCR."""
        async def attempt():
            async with session_factory() as session:
                return await moderate_submission(session, pending_submission.id, fake_ocr_client, upload)

        results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

        assert sum(isinstance(r, tuple) for r in results) == 1
        assert sum(isinstance(r, DuplicateModerationError) for r in results) == 1
        assert len(fake_ocr_client.calls) == 1
        assert await count_moderations(session_factory, pending_submission.id) == 1

    async def test_extraction_failure_records_nothing(self, session_factory, pending_submission, ocr_client_factory, upload):
        client = ocr_client_factory(error=ExtractionError(ExtractionFailureCause.NETWORK_ERROR, "timed out"))

        async with session_factory() as session:
            with pytest.raises(ExtractionError):
                await moderate_submission(session, pending_submission.id, client, upload)

        assert await count_moderations(session_factory, pending_submission.id) == 0
        assert len(moderation_locks) == 0

    async def test_slow_ocr_exceeds_deadline(self, session_factory, pending_submission, aadhaar_ocr, ocr_client_factory, upload):
        """A response that never completes within the timeout is a network error."""
        client = ocr_client_factory(aadhaar_ocr, delay=0.5, timeout_seconds=0.05)

        async with session_factory() as session:
            with pytest.raises(ExtractionError) as exc_info:
                await moderate_submission(session, pending_submission.id, client, upload)

        assert exc_info.value.cause == ExtractionFailureCause.NETWORK_ERROR
        assert exc_info.value.status_code == 502
        assert await count_moderations(session_factory, pending_submission.id) == 0
        assert len(moderation_locks) == 0

    @pytest.mark.parametrize("status", ["Verified", "Rejected"])
    async def test_finalized_submission_rejected(self, db, pending_submission, fake_ocr_client, upload, status):
        await update_kyc_status(db, pending_submission.id, status)

        with pytest.raises(SubmissionFinalizedError):
            await moderate_submission(db, pending_submission.id, fake_ocr_client, upload)
        assert fake_ocr_client.calls == []

    async def test_unknown_submission(self, db, fake_ocr_client, upload):
        with pytest.raises(SubmissionNotFoundError):
            await moderate_submission(db, "missing", fake_ocr_client, upload)


class TestModerationViews:
    """Audience-specific rendering."""

    async def test_reviewer_view(self, db, pending_submission):
        await create_moderation(db, pending_submission.id, mismatched_comparison(), FACE_MATCH, LIVELINESS)

        view = await get_moderation_for_submission(db, pending_submission.id, ModerationAudience.REVIEWER)

        assert isinstance(view, ModerationReviewerView)
        assert view.ocr_match is False
        assert view.ocr_mismatches["id_number"].ocr_value == "987654321098"
        assert view.ocr_mismatches["id_number"].submitted_value == "123456789012"
        assert view.face_match.match_confidence == 0.91
        assert view.liveliness.results == {"blink": True}

    async def test_reviewer_view_before_moderation(self, db, pending_submission):
        assert await get_moderation_for_submission(db, pending_submission.id) is None

    async def test_owner_view_hides_internals(self, db, pending_submission):
        await create_moderation(db, pending_submission.id, mismatched_comparison(), FACE_MATCH, LIVELINESS)

        view = await get_moderation_for_submission(db, pending_submission.id, ModerationAudience.OWNER)

        assert isinstance(view, ModerationOwnerView)
        assert view.moderation_completed is True
        assert view.status == KycStatus.PENDING
        assert set(view.model_dump(by_alias=True)) == {"submissionId", "status", "moderationCompleted"}

    async def test_owner_view_before_moderation(self, db, pending_submission):
        view = await get_moderation_for_submission(db, pending_submission.id, ModerationAudience.OWNER)
        assert view.moderation_completed is False

    async def test_unknown_submission(self, db):
        with pytest.raises(SubmissionNotFoundError):
            await get_moderation_for_submission(db, "missing")


class TestSubmissionLockRegistry:
    """Per-submission lock bookkeeping."""

    async def test_serializes_same_key(self):
        registry = SubmissionLockRegistry()
        order = []

        async def worker(name):
            async with registry.hold("kyc-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )
        assert len(registry) == 0

    async def test_released_after_error(self):
        registry = SubmissionLockRegistry()
        with pytest.raises(RuntimeError):
            async with registry.hold("kyc-1"):
                assert len(registry) == 1
                raise RuntimeError("boom")
        assert len(registry) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
