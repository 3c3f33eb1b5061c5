from __future__ import annotations


class MediaError(Exception):
    """Base class for failures surfaced by the media service."""

    code = "MEDIA_ERROR"


class ValidationError(MediaError):
    code = "VALIDATION_ERROR"


class InvalidRange(ValidationError):
    code = "INVALID_RANGE"


class ObjectStoreError(MediaError):
    """Non-retryable failure reported by the object store."""

    code = "STORAGE_ERROR"


class TransientStoreError(ObjectStoreError):
    """Network, throttling or 5xx failure; safe to retry."""


class UploadFailed(MediaError):
    code = "UPLOAD_FAILED"


class ParseFailure(MediaError):
    code = "PARSE_FAILURE"


class NotFound(MediaError):
    code = "NOT_FOUND"


class InvalidState(MediaError):
    code = "INVALID_STATE"
