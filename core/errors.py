"""
Property Engine Errors

Every failure the engine reports is one of these kinds. The HTTP layer maps
each kind to a status code; nothing below the service downgrades one kind
into another.
"""

from __future__ import annotations

from typing import Optional


class PropertyEngineError(Exception):
    """Base class for all engine errors."""

    code: str = "ENGINE_ERROR"
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class Unauthenticated(PropertyEngineError):
    """No identity, or an identity that is invalid, inactive or deleted."""

    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(PropertyEngineError):
    """Authenticated, but not permitted to perform the action."""

    code = "FORBIDDEN"


class NotFound(PropertyEngineError):
    """Unknown id, or an id hidden from the caller."""

    code = "NOT_FOUND"

    def __init__(self, message: str = "Property not found"):
        super().__init__(message)


class InvalidTransition(PropertyEngineError):
    """The state machine rejects the requested move."""

    code = "INVALID_TRANSITION"


class ValidationFailed(PropertyEngineError):
    """Publish preconditions unmet, malformed input, or upload rejected."""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, reasons: Optional[list[str]] = None):
        self.reasons = reasons or [message]
        super().__init__(message)


class Conflict(PropertyEngineError):
    """The re-check inside a guarded transition no longer holds."""

    code = "CONFLICT"


class StoreUnavailable(PropertyEngineError):
    """Transient infrastructure failure. Safe for the caller to retry."""

    code = "STORE_UNAVAILABLE"
    retryable = True

    def __init__(self, message: str = "Store temporarily unavailable"):
        super().__init__(message)
