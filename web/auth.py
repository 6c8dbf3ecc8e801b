"""
Request Authentication - Bearer Credentials to Callers

Routes depend on one of:
- optional_caller  anonymous allowed; a presented token must still be valid
- require_caller   a valid token is mandatory

A presented but invalid, expired, inactive or deleted identity is always
rejected, even on routes that allow anonymous access.
"""

from __future__ import annotations

from typing import Final, Optional

from fastapi import Depends, Request

from core.errors import Unauthenticated
from core.identity import Caller, IdentityProvider, UserDirectory
from utils.config import Config


BEARER_PREFIX: Final[str] = "bearer "


# =============================================================================
# Identity Provider Singleton
# =============================================================================

_provider_instance: Optional[IdentityProvider] = None


def get_identity_provider() -> IdentityProvider:
    """Get the identity provider singleton, built from the environment."""
    global _provider_instance
    if _provider_instance is None:
        config = Config.load()
        _provider_instance = IdentityProvider(
            UserDirectory(config.users_path),
            secret=config.token_secret,
            token_ttl_hours=config.token_ttl_hours,
        )
    return _provider_instance


def reset_identity_provider() -> None:
    """Reset the singleton instance (for testing)."""
    global _provider_instance
    _provider_instance = None


# =============================================================================
# Dependencies
# =============================================================================


def bearer_credential(request: Request) -> Optional[str]:
    """Extract the bearer token from the Authorization header."""
    header = request.headers.get("authorization")
    if not header:
        return None
    if not header.lower().startswith(BEARER_PREFIX):
        raise Unauthenticated("Authorization header must use the Bearer scheme")
    return header[len(BEARER_PREFIX):].strip() or None


def optional_caller(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Optional[Caller]:
    return provider.resolve_optional(bearer_credential(request))


def require_caller(
    request: Request,
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Caller:
    return provider.resolve_caller(bearer_credential(request))
