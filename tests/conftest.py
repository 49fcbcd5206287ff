"""
Pytest Configuration and Fixtures

Shared fixtures for all tests in the KYC moderation test suite.
Run with: pytest -v
"""
import os
import sys
import tempfile
import time
from pathlib import Path

# Point the app at a throwaway SQLite database before anything imports services.db
_TEST_DB_DIR = tempfile.mkdtemp(prefix="kyc-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/app.db"
os.environ["API_KEYS"] = ""
os.environ.setdefault("LOG_JSON_FORMAT", "false")

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import pytest_asyncio


@pytest.fixture
def aadhaar_ocr():
    """Raw OCR output for a national ID (Aadhaar) card."""
    return {
        "documentNumber": "1234 5678 9012",
        "dateOfBirth": "15/01/1990",
        "address": "S/O Ramesh Kumar, 12 MG Road, Near Park, Bengaluru, Karnataka - 560001",
    }


@pytest.fixture
def aadhaar_form():
    """KYC form data matching aadhaar_ocr."""
    return {
        "nationality": "Indian",
        "dob": "1990-01-15",
        "idNumber": "123456789012",
        "idIssueDate": "2015-06-01",
        "idIssuingCountry": "India",
        "countryOfResidence": "India",
        "addressLine1": "12 MG Road",
        "addressLine2": "Near Park",
        "city": "Bengaluru",
        "state": "Karnataka",
        "zipCode": "560001",
    }


@pytest.fixture
def passport_ocr():
    return {
        "documentNumber": "Z1234567",
        "dateOfBirth": "15 JAN 1990",
        "nationality": "INDIAN",
        "dateOfIssue": "01/06/2015",
        "dateOfExpiry": "31/05/2025",
        "issuingCountry": "India",
    }


@pytest.fixture
def passport_form():
    return {
        "nationality": "Indian",
        "dob": "1990-01-15T00:00:00.000Z",
        "idNumber": "z1234567",
        "idIssueDate": "2015-06-01",
        "idExpiryDate": "2025-05-31",
        "idIssuingCountry": "India",
    }


@pytest.fixture
def submission_form():
    """Request body for POST /kyc (camelCase, as the client sends it)."""
    return {
        "nationality": "Indian",
        "dob": "1990-01-15",
        "idType": "aadhaar-card",
        "idNumber": "1234 5678 9012",
        "idIssueDate": "2015-06-01",
        "idIssuingCountry": "India",
        "countryOfResidence": "India",
        "addressLine1": "12 MG Road",
        "addressLine2": "Near Park",
        "city": "Bengaluru",
        "state": "Karnataka",
        "zipCode": "560001",
    }


@pytest.fixture
def upload_body():
    """Request body for POST /kyc/{id}/upload."""
    return {
        "documentImage": "uploads/kyc/document.jpg",
        "selfieImage": "uploads/kyc/selfie.jpg",
        "faceMatch": {"match": True, "matchConfidence": 0.93},
        "liveliness": {"passed": True, "details": {"score": 0.88}, "results": {"blink": True}},
    }


class FakeOCRClient:
    """Stands in for DocumentOCRClient; returns a fixed field map."""

    def __init__(self, fields=None, error=None, delay=0.0, timeout_seconds=5.0):
        from utils.config import OCRServiceConfig
        self.config = OCRServiceConfig(
            url="http://ocr.test", rapid_host="ocr.test", rapid_api_key="key",
            timeout_seconds=timeout_seconds
        )
        self.delay = delay
        self.fields = fields or {}
        self.error = error
        self.calls = []

    def extract(self, image_path):
        self.calls.append(image_path)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return dict(self.fields)


@pytest.fixture
def ocr_client_factory():
    return FakeOCRClient


@pytest.fixture
def fake_ocr_client(aadhaar_ocr):
    return FakeOCRClient(aadhaar_ocr)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh on-disk SQLite database per test."""
    from services.db import build_engine, init_db

    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'kyc.db'}")
    await init_db(bind=test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    from services.db import build_session_factory
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def pending_submission(db, submission_form):
    """A Pending national-ID submission owned by user-1."""
    from models.schemas import KycSubmissionCreate
    from services.kyc_service import create_submission

    form = KycSubmissionCreate(**submission_form)
    return await create_submission(db, "user-1", form)


@pytest.fixture
def temp_image_file(tmp_path):
    """Create a temporary dummy image file for testing."""
    image_path = tmp_path / "document.jpg"

    # Minimal JPEG header; the OCR client only reads and forwards the bytes
    image_path.write_bytes(b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x01\x00H\x00H\x00\x00\xff\xd9")
    return str(image_path)
