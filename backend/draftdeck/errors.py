"""Typed failures shared by the gateway, stores and sync engine."""

from __future__ import annotations


class DraftDeckError(Exception):
    """Base class for all DraftDeck failures.

    ``code`` travels in JSON error bodies so HTTP clients can rebuild the
    typed failure without parsing the message.
    """

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(DraftDeckError):
    """No access token available — no network call may be attempted."""

    status_code = 500
    code = "configuration_error"


class ValidationError(DraftDeckError):
    """Malformed input; never reaches the network."""

    status_code = 400
    code = "validation_error"


class RemoteApiError(DraftDeckError):
    """Non-2xx answer (or transport failure) from a remote HTTP API."""

    code = "remote_api_error"

    def __init__(self, status_code: int, status_text: str, details: str | None = None):
        super().__init__(f"Remote API error: {status_code} {status_text}", details)
        self.status_code = status_code
        self.status_text = status_text

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_forbidden(self) -> bool:
        return self.status_code in (401, 403)


class StorageError(DraftDeckError):
    """Local persistence read/write/parse failure."""

    code = "storage_error"


class SyncError(DraftDeckError):
    """Background propagation to the reference store failed."""

    code = "sync_error"
