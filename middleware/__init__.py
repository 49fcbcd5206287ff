"""
Middleware package for the KYC moderation API.
"""
from middleware.request_id import RequestIDMiddleware, get_request_id

__all__ = ["RequestIDMiddleware", "get_request_id"]
