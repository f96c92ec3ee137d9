"""Error taxonomy shared by services and the HTTP boundary.

Every error has a stable machine-readable ``kind`` and a human-readable
``message``; the FastAPI handlers in ``filevault.main`` render them as
``{"kind": ..., "message": ...}`` with the class's HTTP status.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Any


class AppError(Exception):
    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    kind: str = "internal_error"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, kind: str | None = None) -> None:
        if kind is not None:
            self.kind = kind
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ValidationError(AppError):
    status = HTTPStatus.BAD_REQUEST
    kind = "validation_error"
    message = "Invalid request"


class AuthenticationError(AppError):
    status = HTTPStatus.UNAUTHORIZED
    kind = "unauthorized"
    message = "Authentication required"


class NotFoundError(AppError):
    status = HTTPStatus.NOT_FOUND
    kind = "not_found"
    message = "Not found"


class ConflictError(AppError):
    # Register answers duplicates with 400, same as other input problems
    status = HTTPStatus.BAD_REQUEST
    kind = "conflict"
    message = "Conflict"


class StorageError(AppError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    kind = "storage_error"
    message = "Storage failure"


class PayloadTooLargeError(ValidationError):
    status = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    kind = "payload_too_large"

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"File is {size} bytes, the limit is {limit} bytes")


# --- concrete failures used across services ---

class DuplicateEmailError(ConflictError):
    kind = "duplicate_email"
    message = "User already exists"


class WeakPasswordError(ValidationError):
    kind = "weak_password"

    def __init__(self, min_length: int) -> None:
        super().__init__(f"Password must be at least {min_length} characters")


class InvalidCredentialsError(AuthenticationError):
    kind = "invalid_credentials"
    message = "Invalid credentials"


class UserNotFoundError(NotFoundError):
    kind = "user_not_found"
    message = "User not found"


class InvalidOrExpiredOtpError(ValidationError):
    kind = "invalid_or_expired_otp"
    message = "Invalid or expired OTP"


class FileNotFoundInLedgerError(NotFoundError):
    message = "File not found"


class MetadataWriteFailedError(StorageError):
    kind = "metadata_write_failed"
    message = "Failed to save file"


class BlobWriteFailedError(StorageError):
    kind = "blob_write_failed"
    message = "Failed to store file content"


class BlobDeleteFailedError(StorageError):
    kind = "blob_delete_failed"
    message = "Failed to delete file content"


class BlobNotFound(Exception):
    """Raised by blob stores when the named blob does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Blob not found: {name}")
