"""
Counter Projection - Favorites and Messages Attached to Property Views

Counts come from external aggregates and are appended after every
lifecycle and visibility decision has already been made. They never feed
back into those decisions, and an unavailable aggregate degrades the count
to 0 instead of failing the read.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
from uuid import uuid4

from core.properties.schema import Property, PropertyProjection


logger = logging.getLogger(__name__)


# =============================================================================
# Aggregate Interface
# =============================================================================


class CounterSource(ABC):
    """Read-only aggregate counts per property id."""

    @abstractmethod
    def count_favorites(self, property_id: str) -> int:
        ...

    @abstractmethod
    def count_messages(self, property_id: str) -> int:
        ...


@dataclass(frozen=True)
class FavoriteRecord:
    """A user's bookmark on a property."""

    property_id: str
    user_id: str
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class MessageRecord:
    """A message from a user to a property's owner."""

    id: str
    property_id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


class EngagementStore(CounterSource):
    """Favorites and messages, written by users and counted per property."""

    @abstractmethod
    def add_favorite(self, property_id: str, user_id: str) -> Optional[FavoriteRecord]:
        """Returns None if the user had already favorited the property."""

    @abstractmethod
    def remove_favorite(self, property_id: str, user_id: str) -> bool:
        """Returns False if there was nothing to remove."""

    @abstractmethod
    def favorites_of(self, user_id: str) -> list[FavoriteRecord]:
        ...

    @abstractmethod
    def record_message(
        self,
        property_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
    ) -> MessageRecord:
        ...

    @abstractmethod
    def messages_received(self, user_id: str) -> list[MessageRecord]:
        ...

    @abstractmethod
    def messages_sent(self, user_id: str) -> list[MessageRecord]:
        ...


class InMemoryCounterStore(EngagementStore):
    """
    Favorites and messages kept in memory.

    Stands in for the favorites and messaging services, which own the real
    records.
    """

    def __init__(self):
        self._favorites: dict[str, dict[str, FavoriteRecord]] = {}
        self._messages: dict[str, list[MessageRecord]] = {}
        self._lock = threading.Lock()

    def add_favorite(self, property_id: str, user_id: str) -> Optional[FavoriteRecord]:
        with self._lock:
            users = self._favorites.setdefault(property_id, {})
            if user_id in users:
                return None
            record = users[user_id] = FavoriteRecord(property_id, user_id)
            return record

    def remove_favorite(self, property_id: str, user_id: str) -> bool:
        with self._lock:
            users = self._favorites.get(property_id, {})
            return users.pop(user_id, None) is not None

    def favorites_of(self, user_id: str) -> list[FavoriteRecord]:
        with self._lock:
            records = [
                users[user_id] for users in self._favorites.values() if user_id in users
            ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def record_message(
        self,
        property_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
    ) -> MessageRecord:
        if not content or not content.strip():
            raise ValueError("Message content is required")
        message = MessageRecord(
            id=str(uuid4()),
            property_id=property_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
        )
        with self._lock:
            self._messages.setdefault(property_id, []).append(message)
        return message

    def _messages_where(self, predicate: Callable[[MessageRecord], bool]) -> list[MessageRecord]:
        with self._lock:
            found = [m for thread in self._messages.values() for m in thread if predicate(m)]
        return sorted(found, key=lambda m: m.created_at, reverse=True)

    def messages_received(self, user_id: str) -> list[MessageRecord]:
        return self._messages_where(lambda m: m.receiver_id == user_id)

    def messages_sent(self, user_id: str) -> list[MessageRecord]:
        return self._messages_where(lambda m: m.sender_id == user_id)

    def count_favorites(self, property_id: str) -> int:
        with self._lock:
            return len(self._favorites.get(property_id, ()))

    def count_messages(self, property_id: str) -> int:
        with self._lock:
            return len(self._messages.get(property_id, ()))


# =============================================================================
# Projector
# =============================================================================


class CounterProjector:
    """Turns stored properties into caller-facing projections."""

    def __init__(self, source: CounterSource):
        self._source = source

    def _safe_count(self, counter: Callable[[str], int], property_id: str, label: str) -> int:
        try:
            value = counter(property_id)
        except Exception as e:
            # Counts are advisory; a failing aggregate must not fail the read
            logger.warning("%s count unavailable for property %s: %s", label, property_id, e)
            return 0
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            logger.warning("%s count for property %s was not a count: %r", label, property_id, value)
            return 0
        return value

    def project(self, prop: Property) -> PropertyProjection:
        return PropertyProjection(
            id=prop.id,
            owner_id=prop.owner_id,
            title=prop.title,
            description=prop.description,
            location=prop.location,
            price=prop.price,
            status=prop.status,
            images=tuple(prop.active_images),
            favorites_count=self._safe_count(self._source.count_favorites, prop.id, "Favorites"),
            messages_count=self._safe_count(self._source.count_messages, prop.id, "Messages"),
            created_at=prop.created_at,
            deleted_at=prop.deleted_at,
        )
