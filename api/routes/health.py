"""Health check endpoints."""
from fastapi import APIRouter, Request

from models.schemas import HealthResponse
from services.db import ping_db

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Check that the database answers and the OCR service is configured.
    """
    ocr_client = getattr(request.app.state, "ocr_client", None)
    return HealthResponse(
        status="ok",
        database_ready=await ping_db(),
        ocr_configured=bool(ocr_client and ocr_client.config.is_configured),
    )
