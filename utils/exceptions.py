"""
Custom Application Exceptions.

Provides a hierarchy of exceptions for consistent error handling.

Usage:
    from utils.exceptions import ExtractionError, SubmissionNotFoundError

    # In the OCR client
    raise ExtractionError(ExtractionFailureCause.MISSING_PAYLOAD, "Empty response body")

    # In database operations
    raise SubmissionNotFoundError(submission_id)
"""
from enum import Enum
from typing import Optional, Dict, Any


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "DUPLICATE_MODERATION")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """
    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "status": "error",
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# =============================================================================
# SERVICE LAYER EXCEPTIONS (400-level errors)
# =============================================================================

class ServiceError(AppError):
    """
    General service-layer error (bad input, processing failure).

    Use for: Generic service failures not covered by specific exceptions below.
    """
    def __init__(
        self,
        message: str,
        code: str = "SERVICE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 400
    ):
        super().__init__(message, code, status_code=status_code, details=details)


class ImageProcessingError(ServiceError):
    """
    Image reference is missing or unreadable.

    Use for: Upload references that point nowhere, unreadable files.
    """
    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code="IMAGE_PROCESSING_ERROR", details=details)


class UnsupportedDocumentTypeError(ServiceError):
    """No sanitizer is registered for the requested document type."""
    def __init__(self, document_type: Any):
        super().__init__(
            f"Unsupported document type: {document_type}",
            code="UNSUPPORTED_DOCUMENT_TYPE",
            details={"document_type": str(document_type)}
        )


class InvalidStatusTransitionError(ServiceError):
    """Target status is not one a reviewer may set."""
    def __init__(self, target: Any, allowed: Optional[list] = None):
        super().__init__(
            f"Invalid KYC status provided: {target}",
            code="INVALID_STATUS_TRANSITION",
            details={"target": str(target), "allowed": allowed or []}
        )


class DuplicateModerationError(ServiceError):
    """
    A moderation record already exists for the submission.

    Terminal: the second attempt is rejected and the first record is kept.
    """
    def __init__(self, submission_id: str):
        super().__init__(
            f"Moderation already exists for KYC submission '{submission_id}'",
            code="DUPLICATE_MODERATION",
            details={"submission_id": submission_id},
            status_code=409
        )


class SubmissionFinalizedError(ServiceError):
    """Submission is already Verified or Rejected and cannot be moderated again."""
    def __init__(self, submission_id: str, status: str):
        super().__init__(
            f"KYC submission '{submission_id}' is already {status}",
            code="SUBMISSION_FINALIZED",
            details={"submission_id": submission_id, "status": status},
            status_code=409
        )


class ActiveSubmissionExistsError(ServiceError):
    """User already has a Pending or Verified submission."""
    def __init__(self, user_id: str, status: str):
        super().__init__(
            f"User already has a KYC submission in status {status}",
            code="ACTIVE_SUBMISSION_EXISTS",
            details={"user_id": user_id, "status": status},
            status_code=409
        )


class ForbiddenError(AppError):
    """Caller identity is not allowed to perform the action."""
    def __init__(self, message: str = "Reviewer access required"):
        super().__init__(message, "FORBIDDEN", status_code=403)


class ResourceNotFoundError(AppError):
    """
    Requested resource not found in database.

    Use for: KYC submission not found, moderation not found, etc.
    """
    def __init__(
        self,
        resource: str,
        identifier: str,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        _details["resource"] = resource
        _details["identifier"] = identifier
        super().__init__(
            f"{resource} with identifier '{identifier}' not found",
            "NOT_FOUND",
            status_code=404,
            details=_details
        )


class SubmissionNotFoundError(ResourceNotFoundError):
    def __init__(self, submission_id: str):
        super().__init__("KycSubmission", submission_id)


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS (500-level errors)
# =============================================================================

class ExtractionFailureCause(str, Enum):
    """Why a document extraction call failed."""
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"
    SERVICE_REPORTED_ERROR = "service_reported_error"
    MISSING_PAYLOAD = "missing_payload"


class ExtractionError(AppError):
    """
    Document recognition call failed.

    The cause distinguishes transport problems from bad or empty responses
    so callers can react differently.
    """
    def __init__(
        self,
        cause: ExtractionFailureCause,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.cause = cause
        _details = details or {}
        _details["cause"] = cause.value
        super().__init__(
            f"OCR extraction failed: {message}",
            "EXTRACTION_FAILED",
            status_code=502,
            details=_details
        )


class DatabaseError(AppError):
    """
    Database connection or query failed.

    Use for: Connection timeouts, query failures, unexpected constraint violations.
    """
    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        _details = details or {}
        if operation:
            _details["operation"] = operation  # "insert", "update", "query", "connect"
        super().__init__(
            f"Database error: {message}",
            "DATABASE_ERROR",
            status_code=500,
            details=_details
        )
