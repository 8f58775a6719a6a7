"""Custom exception hierarchy for herdstore."""

from __future__ import annotations


class HerdStoreError(Exception):
    """Base exception for all herdstore errors."""


class HerdConfigError(HerdStoreError):
    """Invalid or missing configuration."""


class RecordNotFoundError(HerdStoreError):
    """Update target does not exist in the given scope."""

    def __init__(
        self,
        message: str,
        *,
        record_id: str = "",
        path: str = "",
    ) -> None:
        self.record_id = record_id
        self.path = path
        super().__init__(message)


class RecordDecodeError(HerdStoreError):
    """A stored document could not be decoded into a record.

    Stores never surface this to callers; a malformed document is
    logged and left out of the result.
    """

    def __init__(self, message: str, *, document_id: str = "") -> None:
        self.document_id = document_id
        super().__init__(message)


class HerdTransportError(HerdStoreError):
    """Backend-level failure (network, non-200, rejected write)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)
