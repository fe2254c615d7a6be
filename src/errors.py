"""Custom exception hierarchy for the itinerary jobs service.

These errors provide clear, typed failure modes across the service so
FastAPI exception handlers can map them to HTTP status codes and the
background job runner can record them on the job document.
"""
from __future__ import annotations

from typing import Any


class ItineraryServiceError(Exception):
    """Base class for every error raised by the service."""


class ValidationError(ItineraryServiceError):
    """Raised when caller supplied input (destination, durationDays) is invalid."""


class InitializationError(ItineraryServiceError):
    """Raised when the initial `processing` document could not be persisted."""


class InvalidTransitionError(ItineraryServiceError):
    """Raised when a job is asked to leave a terminal state."""


class EncodingError(ItineraryServiceError):
    """Raised when a record holds a value the document store cannot represent."""


class GenerationError(ItineraryServiceError):
    """Raised when the generation backend fails or returns an unusable itinerary."""


class TokenError(ItineraryServiceError):
    """Base class for OAuth2 service-account token failures."""


class CredentialError(TokenError):
    """Raised when a required service credential field is missing."""


class KeyDecodeError(TokenError):
    """Raised when the private key cannot be decoded from its PEM envelope."""


class SigningError(TokenError):
    """Raised when the JWT assertion signature cannot be produced."""


class TokenExchangeError(TokenError):
    """Raised when the token endpoint rejects the assertion or answers garbage."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail if detail is not None else {}


class DocumentStoreError(ItineraryServiceError):
    """Base class for document store failures."""


class WriteError(DocumentStoreError):
    """Raised when the document store answers a write with a non-2xx status."""

    def __init__(self, status_code: int, body: Any):
        super().__init__(f"Document store error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class TransportError(DocumentStoreError):
    """Raised when an outbound HTTP call fails before a response is received."""


__all__ = [
    "ItineraryServiceError",
    "ValidationError",
    "InitializationError",
    "InvalidTransitionError",
    "EncodingError",
    "GenerationError",
    "TokenError",
    "CredentialError",
    "KeyDecodeError",
    "SigningError",
    "TokenExchangeError",
    "DocumentStoreError",
    "WriteError",
    "TransportError",
]
