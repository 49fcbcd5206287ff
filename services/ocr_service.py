"""
Document OCR client for the external ID Document Recognition API.

Sends one document image and returns the extracted field map:

    client = DocumentOCRClient(load_ocr_config())
    fields = client.extract("uploads/kyc/passport.jpg")
    # {"documentNumber": "Z1234567", "dateOfBirth": "15/01/1990", ...}

Expected response shape:

    {"status": "ok", "data": {"ocr": {<field>: <value>, ...}}}

Every failure is raised as ExtractionError with a cause:
- NETWORK_ERROR: timeout, connection failure, other transport errors
- MISSING_PAYLOAD: empty response body
- MALFORMED_RESPONSE: body is not a JSON object, or data.ocr is missing
- SERVICE_REPORTED_ERROR: HTTP error status or status != "ok"

The client never retries.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from utils.config import OCR_METADATA_FIELDS, OCRServiceConfig
from utils.exceptions import ExtractionError, ExtractionFailureCause, ImageProcessingError
from utils.logging_config import log_execution_time

logger = logging.getLogger(__name__)


class DocumentOCRClient:
    """Blocking HTTP client; call it from a worker thread in async code."""

    def __init__(self, config: OCRServiceConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "x-rapidapi-host": self.config.rapid_host,
            "x-rapidapi-key": self.config.rapid_api_key,
        }

    def _fail(self, cause: ExtractionFailureCause, message: str, **details) -> ExtractionError:
        logger.error(
            f"Error extracting data from document: {message}",
            extra={"cause": cause.value}
        )
        return ExtractionError(cause, message, details=details or None)

    @log_execution_time
    def extract(self, image_path: str) -> Dict[str, str]:
        """
        Extract document fields from an image.

        The timeout bounds connecting and each socket read, not the whole
        exchange; callers needing a total deadline enforce it themselves.

        Args:
            image_path: Path of the stored document image

        Returns:
            Field name -> string value, without provider metadata fields

        Raises:
            ExtractionError: The API call failed (see module docstring for causes)
            ImageProcessingError: The image reference cannot be read
        """
        path = Path(image_path)
        try:
            image_bytes = path.read_bytes()
        except OSError as e:
            raise ImageProcessingError(
                f"Could not read document image: {path.name}",
                details={"reason": str(e)}
            )

        try:
            response = self.session.post(
                self.config.url,
                files={"image": (path.name, image_bytes)},
                headers=self._headers(),
                timeout=self.config.timeout_seconds,
            )
        except requests.Timeout:
            raise self._fail(
                ExtractionFailureCause.NETWORK_ERROR,
                f"OCR API timed out after {self.config.timeout_seconds}s"
            )
        except requests.RequestException as e:
            raise self._fail(ExtractionFailureCause.NETWORK_ERROR, f"OCR API request failed: {e}")

        if not response.ok:
            raise self._fail(
                ExtractionFailureCause.SERVICE_REPORTED_ERROR,
                f"OCR API returned HTTP {response.status_code}",
                http_status=response.status_code
            )

        return self.parse_response(response)

    def parse_response(self, response: requests.Response) -> Dict[str, str]:
        """Validate the response envelope and return the cleaned OCR field map."""
        if not response.content or not response.content.strip():
            raise self._fail(ExtractionFailureCause.MISSING_PAYLOAD, "Invalid OCR API response")

        try:
            body = response.json()
        except ValueError:
            raise self._fail(ExtractionFailureCause.MALFORMED_RESPONSE, "OCR API response is not JSON")

        if body is None:
            raise self._fail(ExtractionFailureCause.MISSING_PAYLOAD, "Invalid OCR API response")
        if not isinstance(body, dict):
            raise self._fail(ExtractionFailureCause.MALFORMED_RESPONSE, "OCR API response is not an object")

        if body.get("status") != "ok":
            message = body.get("message") or "Unknown error"
            raise self._fail(
                ExtractionFailureCause.SERVICE_REPORTED_ERROR,
                f"OCR API error: {message}",
                service_status=body.get("status")
            )

        data = body.get("data")
        ocr = data.get("ocr") if isinstance(data, dict) else None
        if not isinstance(ocr, dict):
            raise self._fail(ExtractionFailureCause.MALFORMED_RESPONSE, "OCR data is missing in API response")

        return clean_ocr_fields(ocr)


def clean_ocr_fields(ocr: Dict[str, Any]) -> Dict[str, str]:
    """Drop provider metadata and empty values; coerce values to strings."""
    return {
        key: str(value)
        for key, value in ocr.items()
        if key not in OCR_METADATA_FIELDS and value is not None
    }
