"""
Mathpix PDF conversion API client.

A PDF is submitted once, then polled. When the page text is done the archive
conversion (markdown + images in a zip) is checked separately; the document is
reported `completed` only when that archive can be downloaded.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

import requests

from config import (
    ConfigurationError,
    MATHPIX_API_URL,
    MATHPIX_ARCHIVE_FORMAT,
    MATHPIX_TIMEOUT,
)

log = logging.getLogger(__name__)

QUEUED = "queued"
PROCESSING = "processing"
COMPLETED = "completed"
ERROR = "error"

# Mathpix PDF status -> conversion status
PDF_STATUS_MAP = {
    "received": QUEUED,
    "loaded": QUEUED,
    "split": PROCESSING,
    "processing": PROCESSING,
    "completed": COMPLETED,
    "error": ERROR,
}


class MathpixError(Exception):
    """An HTTP or protocol failure talking to Mathpix."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ConversionStatus:
    status: str
    error_detail: Optional[str] = None


def _error_text(payload: dict) -> str:
    info = payload.get("error_info") or payload.get("error") or {}
    if isinstance(info, dict):
        return info.get("message") or info.get("id") or json.dumps(info)
    return str(info)


class MathpixClient:
    """Client for the Mathpix /v3/pdf conversion endpoints."""

    def __init__(
        self,
        app_id: Optional[str] = None,
        app_key: Optional[str] = None,
        base_url: str = MATHPIX_API_URL,
        archive_format: str = MATHPIX_ARCHIVE_FORMAT,
        timeout: int = MATHPIX_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.app_id = app_id or os.environ.get("MATHPIX_APP_ID")
        self.app_key = app_key or os.environ.get("MATHPIX_APP_KEY")
        if not self.app_id or not self.app_key:
            raise ConfigurationError(
                "Mathpix credentials required. Set MATHPIX_APP_ID and MATHPIX_APP_KEY "
                "environment variables or pass app_id/app_key."
            )

        self.base_url = base_url.rstrip("/")
        self.archive_format = archive_format
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"app_id": self.app_id, "app_key": self.app_key})

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise MathpixError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise MathpixError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def submit(self, file_bytes: bytes, filename: str) -> str:
        """Upload a PDF for conversion and return the Mathpix pdf_id."""
        options = {
            "conversion_formats": {self.archive_format: True},
            "math_inline_delimiters": ["$", "$"],
            "rm_spaces": True,
        }
        response = self._request(
            "POST",
            "/pdf",
            files={"file": (filename, file_bytes, "application/pdf")},
            data={"options_json": json.dumps(options)},
        )
        payload = response.json()
        pdf_id = payload.get("pdf_id")
        if not pdf_id:
            raise MathpixError(f"No pdf_id in submit response: {_error_text(payload)}")

        log.info("Submitted %s to Mathpix as %s", filename, pdf_id)
        return pdf_id

    def get_status(self, pdf_id: str) -> ConversionStatus:
        """Return the combined status of the PDF and its archive conversion."""
        payload = self._request("GET", f"/pdf/{pdf_id}").json()
        status = PDF_STATUS_MAP.get(payload.get("status", ""), PROCESSING)

        if status == ERROR:
            return ConversionStatus(ERROR, _error_text(payload) or "conversion error")
        if status != COMPLETED:
            return ConversionStatus(status)

        converter = self._request("GET", f"/converter/{pdf_id}").json()
        archive = (converter.get("conversion_status") or {}).get(self.archive_format, {})
        archive_status = archive.get("status")
        if archive_status == COMPLETED:
            return ConversionStatus(COMPLETED)
        if archive_status == ERROR:
            return ConversionStatus(ERROR, f"{self.archive_format}: {_error_text(archive)}")
        return ConversionStatus(PROCESSING)

    def download_result_archive(self, pdf_id: str) -> bytes:
        """Download the zip holding the converted text and its images."""
        response = self._request("GET", f"/pdf/{pdf_id}.{self.archive_format}")
        return response.content


def create_client() -> MathpixClient:
    """Create a Mathpix client from environment settings."""
    return MathpixClient()
