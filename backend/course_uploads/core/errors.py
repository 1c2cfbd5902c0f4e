from __future__ import annotations


class UploadError(Exception):
    """Base class for errors surfaced by the upload coordinator.

    Args:
        message (str): Human readable message, returned to the client as ``error``.
        detail (str | None): Optional diagnostic text (e.g. the storage backend's error).
    """

    status_code = 500

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(self.message)


class InvalidRequest(UploadError):
    """Raised when a required field is missing or malformed."""

    status_code = 400


class NotFound(UploadError):
    """Raised when an upload id has no session record."""

    status_code = 404


class IncompleteUpload(UploadError):
    """Raised by complete when one or more declared chunks were never stored."""

    status_code = 409

    def __init__(self, message: str, missing_chunks: list[int]):
        self.missing_chunks = list(missing_chunks)
        super().__init__(message)


class StoreUnavailable(UploadError):
    """Raised when the blob store fails to read or write."""

    status_code = 500
