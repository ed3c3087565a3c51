"""
Error taxonomy — every whole-request failure maps to one HTTP status.

Per-field shape mismatches are not errors: they resolve to ``None``
where they are read. Only the classes below abort a request.
"""

from typing import Optional


class LpReaderError(Exception):
    """Base class. ``status_code`` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.state = state  # lookup state the failure happened in, if any

    def to_payload(self) -> dict:
        return {"ok": False, "error": self.message}


class InvalidInputError(LpReaderError):
    """Missing or malformed identifier (user error)."""

    status_code = 400


class ConfigurationError(LpReaderError):
    """A required credential or setting is missing for this request."""

    status_code = 400


class NotFoundError(LpReaderError):
    """Venue or position cannot be resolved."""

    status_code = 404


class UpstreamUnavailableError(LpReaderError):
    """Network error, timeout or non-2xx from a dependency after retries."""

    status_code = 500


class SdkUnavailableError(LpReaderError):
    """The on-chain DLMM SDK could not be constructed."""

    status_code = 500


class UpstreamStatusError(UpstreamUnavailableError):
    """Non-2xx answer from a dependency; keeps the upstream status."""

    def __init__(self, message: str, upstream_status: int, state: Optional[str] = None):
        super().__init__(message, state=state)
        self.upstream_status = upstream_status
