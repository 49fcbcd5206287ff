"""
KYC Document Verification & Moderation API

Compares the data read from a user's identity document with the data the
user typed into the KYC form, combines that verdict with face-match and
liveliness results into a moderation record, and lets reviewers verify or
reject the submission.

Usage:
    uvicorn main:app --reload

Then access the API documentation at http://localhost:8000/docs
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import router as production_router
from api.routes.metrics import MetricsMiddleware, router as metrics_router
from middleware.api_key import APIKeyMiddleware
from middleware.request_id import RequestIDMiddleware, get_request_id
from services.db import init_db
from services.ocr_service import DocumentOCRClient
from utils.config import API_KEYS, LOG_JSON_FORMAT, LOG_LEVEL, load_ocr_config
from utils.exceptions import AppError
from utils.logging_config import configure_logging

# Configure structured JSON logging
configure_logging(level=LOG_LEVEL, json_format=LOG_JSON_FORMAT)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Creates database tables and builds the OCR client from the environment once.
    """
    logger.info("Starting KYC moderation API...")

    await init_db()

    ocr_config = load_ocr_config()
    if not ocr_config.is_configured:
        logger.warning("OCR service is not configured - uploads will fail extraction")
    app.state.ocr_client = DocumentOCRClient(ocr_config)

    logger.info("KYC moderation API ready!")

    yield  # Application runs here

    app.state.ocr_client.session.close()
    logger.info("Shutting down KYC moderation API...")


# Create FastAPI application
app = FastAPI(
    title="KYC Moderation API",
    description="""
    Identity document verification and moderation.

    ## Workflow

    1. User submits KYC form data to `POST /kyc`
    2. User uploads document/selfie references with face-match and liveliness
       results to `POST /kyc/{id}/upload`; the document is read by OCR and
       compared field by field with the form
    3. Reviewer inspects `GET /kyc/{id}/admin` and sets Verified or Rejected
    """,
    version="0.1.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add custom middleware (order matters: last added = outermost)
app.add_middleware(MetricsMiddleware)
app.add_middleware(APIKeyMiddleware, api_keys=API_KEYS)
app.add_middleware(RequestIDMiddleware)


# =============================================================================
# GLOBAL EXCEPTION HANDLER
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Global handler for all AppError exceptions.

    Converts custom exceptions to consistent JSON responses.
    """
    logger.warning(
        f"[{exc.code}] {exc.message} | Details: {exc.details}",
        extra={"transaction_id": get_request_id(request)}
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


# Include API routes
app.include_router(production_router, prefix="/api/v1")
app.include_router(metrics_router)  # /metrics at root level


@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": "KYC Moderation API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/v1/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=False
    )
