"""
API Key Authentication Middleware for the KYC moderation API.

Validates the X-API-Key header the gateway attaches to every forwarded call.
Excludes public endpoints like /health, /metrics, /docs from authentication.
"""
import logging
from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse


logger = logging.getLogger(__name__)

# Endpoints that don't require authentication
PUBLIC_PATHS = {
    "/",
    "/api",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/api/v1/health",
    "/metrics",
}


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Middleware to validate API key authentication."""

    def __init__(self, app, api_keys: Optional[Iterable[str]] = None):
        """
        Initialize API Key middleware.

        Args:
            app: ASGI application
            api_keys: Valid API keys. If empty/None, auth is disabled.
        """
        super().__init__(app)
        self.api_keys = set(api_keys) if api_keys else set()
        self.auth_enabled = len(self.api_keys) > 0

        if self.auth_enabled:
            logger.info(f"API Key authentication enabled with {len(self.api_keys)} key(s)")
        else:
            logger.info("API Key authentication disabled (no keys configured)")

    async def dispatch(self, request: Request, call_next):
        if not self.auth_enabled or request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key")
        if not api_key:
            logger.warning(f"Missing API key for {request.method} {request.url.path}")
            return self._unauthorized("Missing X-API-Key header")

        if api_key not in self.api_keys:
            logger.warning(f"Invalid API key for {request.method} {request.url.path}")
            return self._unauthorized("Invalid API key")

        return await call_next(request)

    @staticmethod
    def _unauthorized(message: str) -> JSONResponse:
        return JSONResponse(
            status_code=401,
            content={
                "status": "error",
                "code": "UNAUTHORIZED",
                "message": message,
                "details": {}
            }
        )
