"""
Identity Context - Resolves Bearer Credentials into Callers

The engine only ever sees a Caller (user id + role). This module is the
boundary that turns an opaque bearer credential into one.

Credentials are HMAC-SHA256 signed tokens:
    base64url(json_payload).hex_signature

Resolution rules:
- Bad signature, malformed token or expired token -> Unauthenticated
- Unknown user -> Unauthenticated
- Inactive or deleted user -> Unauthenticated (same as unknown)
- The role comes from the directory, not from the token
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Final, Optional
from uuid import uuid4

from core.errors import StoreUnavailable, Unauthenticated


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_TOKEN_TTL_HOURS: Final[int] = 24


# =============================================================================
# Roles and Callers
# =============================================================================


class Role(Enum):
    """Marketplace roles."""

    USER = "user"
    OWNER = "owner"
    ADMIN = "admin"


@dataclass(frozen=True)
class Caller:
    """Resolved identity of whoever is invoking the engine."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class UserRecord:
    """A marketplace account as known to the identity provider."""

    user_id: str
    email: str
    role: Role
    is_active: bool = True
    deleted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def can_authenticate(self) -> bool:
        return self.is_active and self.deleted_at is None

    def to_caller(self) -> Caller:
        return Caller(user_id=self.user_id, role=self.role)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role.value,
            "is_active": self.is_active,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserRecord":
        return cls(
            user_id=data["user_id"],
            email=data["email"],
            role=Role(data["role"]),
            is_active=data.get("is_active", True),
            deleted_at=(
                datetime.fromisoformat(data["deleted_at"])
                if data.get("deleted_at")
                else None
            ),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


# =============================================================================
# User Directory
# =============================================================================


class UserDirectory:
    """
    Directory of marketplace users.

    In-memory with optional JSON file persistence, swappable for a database.
    """

    def __init__(self, persist_path: Optional[str] = None):
        self._users: dict[str, UserRecord] = {}
        self._email_index: dict[str, str] = {}
        self._lock = threading.RLock()
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        if not self._persist_path:
            return

        data = {
            "users": {uid: u.to_dict() for uid, u in self._users.items()},
            "saved_at": datetime.utcnow().isoformat(),
        }
        try:
            self._persist_path.parent.mkdir(parents=True, exist_ok=True)
            self._persist_path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise StoreUnavailable(f"Could not persist users: {e}")

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._persist_path.read_text())
            for uid, user_data in data.get("users", {}).items():
                user = UserRecord.from_dict(user_data)
                self._users[uid] = user
                self._email_index[user.email] = uid
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load user directory from %s: %s", self._persist_path, e)

    def add_user(self, email: str, role: Role) -> UserRecord:
        """
        Register a user.

        Raises:
            ValueError: If the email is already registered
            StoreUnavailable: If the directory cannot be persisted
        """
        email = email.strip().lower()
        with self._lock:
            if email in self._email_index:
                raise ValueError(f"User {email} already exists")
            user = UserRecord(user_id=str(uuid4()), email=email, role=role)
            self._users[user.user_id] = user
            self._email_index[email] = user.user_id
            try:
                self._save_to_file()
            except StoreUnavailable:
                del self._users[user.user_id]
                del self._email_index[email]
                raise
        logger.info("Registered %s user %s", role.value, user.user_id)
        return user

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)

    def get_by_email(self, email: str) -> Optional[UserRecord]:
        user_id = self._email_index.get(email.strip().lower())
        return self._users.get(user_id) if user_id else None

    def deactivate(self, user_id: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if not user:
                return False
            previous, user.is_active = user.is_active, False
            try:
                self._save_to_file()
            except StoreUnavailable:
                user.is_active = previous
                raise
        return True

    def delete(self, user_id: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if not user:
                return False
            previous, user.deleted_at = user.deleted_at, datetime.utcnow()
            try:
                self._save_to_file()
            except StoreUnavailable:
                user.deleted_at = previous
                raise
        return True

    def list_all(self) -> list[UserRecord]:
        return list(self._users.values())


# =============================================================================
# Token Signing
# =============================================================================


def _sign(payload_b64: str, secret: str) -> str:
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).hexdigest()


def sign_token(payload: dict, secret: str) -> str:
    """Encode and sign a token payload."""
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    payload_b64 = base64.urlsafe_b64encode(raw.encode()).decode()
    return f"{payload_b64}.{_sign(payload_b64, secret)}"


def verify_token(token: str, secret: str, now: Optional[float] = None) -> Optional[dict]:
    """
    Verify a signed token.

    Returns:
        The payload if the signature is valid and the token has not expired,
        None otherwise
    """
    try:
        payload_b64, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, _sign(payload_b64, secret)):
            return None
        payload = json.loads(base64.urlsafe_b64decode(payload_b64.encode()).decode())
    except (ValueError, json.JSONDecodeError):
        return None

    if not isinstance(payload, dict) or "sub" not in payload or "exp" not in payload:
        return None

    current = time.time() if now is None else now
    if current >= payload["exp"]:
        return None
    return payload


# =============================================================================
# Identity Provider
# =============================================================================


class IdentityProvider:
    """
    Turns bearer credentials into Callers.

    Usage:
        provider = IdentityProvider(directory, secret)
        token = provider.issue_token(user)
        caller = provider.resolve_caller(token)
    """

    def __init__(
        self,
        directory: UserDirectory,
        secret: Optional[str] = None,
        token_ttl_hours: int = DEFAULT_TOKEN_TTL_HOURS,
    ):
        self._directory = directory
        # Ephemeral secret: tokens do not survive a restart
        self._secret = secret or secrets.token_hex(32)
        self._token_ttl_seconds = token_ttl_hours * 3600

    @property
    def directory(self) -> UserDirectory:
        return self._directory

    def issue_token(self, user: UserRecord) -> str:
        """
        Issue a bearer token for a user.

        Development and operator helper only. Login flows live elsewhere.
        """
        issued_at = int(time.time())
        return sign_token(
            {
                "sub": user.user_id,
                "role": user.role.value,
                "iat": issued_at,
                "exp": issued_at + self._token_ttl_seconds,
            },
            self._secret,
        )

    def resolve_caller(self, credential: Optional[str]) -> Caller:
        """
        Resolve a bearer credential.

        Raises:
            Unauthenticated: For any credential that does not map to an
                active, non-deleted user
        """
        if not credential:
            raise Unauthenticated()

        payload = verify_token(credential, self._secret)
        if payload is None:
            raise Unauthenticated("Invalid or expired token")

        user = self._directory.get(payload["sub"])
        if user is None or not user.can_authenticate:
            raise Unauthenticated("Invalid or expired token")

        return user.to_caller()

    def resolve_optional(self, credential: Optional[str]) -> Optional[Caller]:
        """Resolve a credential if one was presented; anonymous otherwise."""
        if not credential:
            return None
        return self.resolve_caller(credential)
