"""
Shared FastAPI dependencies.

Identity comes from the gateway, which authenticates the caller and
forwards X-User-ID and X-User-Role. This service only reads them.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from services.ocr_service import DocumentOCRClient
from utils.config import REVIEWER_ROLES
from utils.exceptions import ForbiddenError


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


async def get_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_user_role: Optional[str] = Header("user", alias="X-User-Role"),
) -> Identity:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-ID header")
    return Identity(user_id=x_user_id, role=(x_user_role or "user").strip().lower())


async def require_reviewer(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_user_role: Optional[str] = Header("user", alias="X-User-Role"),
) -> Identity:
    identity = await get_identity(x_user_id, x_user_role)
    if not identity.is_reviewer:
        raise ForbiddenError()
    return identity


def get_ocr_client(request: Request) -> DocumentOCRClient:
    """OCR client built once at startup (see main.lifespan)."""
    return request.app.state.ocr_client
