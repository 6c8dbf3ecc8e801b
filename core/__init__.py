"""
Property Marketplace - Core Business Logic

This package provides:
1. Identity resolution (bearer credential -> caller)
2. The property lifecycle and access-control engine
3. The error taxonomy shared by both
"""

from .errors import (
    PropertyEngineError,
    Unauthenticated,
    Forbidden,
    NotFound,
    InvalidTransition,
    ValidationFailed,
    Conflict,
    StoreUnavailable,
)
from .identity import (
    Role,
    Caller,
    UserRecord,
    UserDirectory,
    IdentityProvider,
)

__all__ = [
    # Errors
    "PropertyEngineError",
    "Unauthenticated",
    "Forbidden",
    "NotFound",
    "InvalidTransition",
    "ValidationFailed",
    "Conflict",
    "StoreUnavailable",
    # Identity
    "Role",
    "Caller",
    "UserRecord",
    "UserDirectory",
    "IdentityProvider",
]
