# src/allyhub/errors.py

"""
Error taxonomy for the sync engine.

These exceptions never leave the engine: coordinators and services catch them
and turn them into a renderable state (fallback entity, False, ChatResult.ok=False).
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for everything the sync engine raises internally."""


class ConfigurationError(SyncError):
    """Endpoint URL is empty or not an http(s) URL. Detected before any I/O."""


class TransportError(SyncError):
    """Connection failure, timeout or non-2xx response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(SyncError):
    """Payload matched no known wire shape and is not structurally empty."""


class PersistenceError(SyncError):
    """Blob store read/write failure."""


def friendly_error_message(exc: BaseException) -> str:
    """Short user-facing text for a failure (no stack traces, no raw reprs)."""
    if isinstance(exc, ConfigurationError):
        return f"Endpoint is not configured: {exc}"
    if isinstance(exc, TransportError):
        if exc.status_code is not None:
            return f"Server error: HTTP {exc.status_code}"
        return f"Network error: {exc}"
    if isinstance(exc, DecodeError):
        return "Unexpected response format from server"
    if isinstance(exc, PersistenceError):
        return "Local cache is unavailable"
    return "Unexpected error"
