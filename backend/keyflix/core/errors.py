"""
errors.py

Error taxonomy shared by the gateways, orchestrator and persistence bridge.
"""
from typing import Optional


class KeyflixError(Exception):
    """Base class for every error raised by keyflix."""


class ValidationError(KeyflixError, ValueError):
    """Malformed movie id or query. Raised before any network call."""


class GatewayError(KeyflixError):
    """Non-success response (or transport failure) from the metadata API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GatewayTimeoutError(GatewayError):
    """The metadata API did not answer within the configured timeout."""


class PersistenceError(KeyflixError):
    """Key-value storage read/write failure. Never surfaced to the user."""
