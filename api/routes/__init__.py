"""
API Routes Module.

This module combines all route modules into a single router for the KYC service.
"""
from fastapi import APIRouter

from .health import router as health_router
from .kyc import router as kyc_router

# Combined router that includes all sub-routers
router = APIRouter()

router.include_router(health_router)
router.include_router(kyc_router)

__all__ = ["router"]
