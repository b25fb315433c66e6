"""
Error taxonomy shared by the lifecycle layer and the HTTP surface.

Every error carries the HTTP status it maps to; ``main`` installs a single
handler that renders them as ``{"detail": message}``.
"""
from __future__ import annotations


class ReceiptTrackerError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(ReceiptTrackerError):
    """Missing fields, empty file list, unsupported file type."""
    status_code = 400


class UnauthorizedError(ReceiptTrackerError):
    status_code = 401


class NotFoundError(ReceiptTrackerError):
    status_code = 404


class SessionInUseError(ReceiptTrackerError):
    """A temp session was deleted while receipts still reference it."""
    status_code = 409


class UpstreamError(ReceiptTrackerError):
    """Blob store or extraction service call failed."""
    status_code = 502


class ExtractionParseError(UpstreamError):
    """Extraction returned data that failed field or numeric validation."""
    status_code = 422


class UploadFailedError(ReceiptTrackerError):
    """No file in an upload batch could be stored."""
    status_code = 500


class ConfigurationError(ReceiptTrackerError):
    """Required configuration is missing at startup."""
