"""
Engagement - Favorites and Messages on Listings

Users bookmark listings and write to their owners. Both go through the
visibility policy first: a caller can only engage with a property they can
see, and favorites are limited to published listings.

The records live in an EngagementStore, which is also the counter source
for property projections.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.errors import Forbidden, NotFound, Unauthenticated, ValidationFailed
from core.identity import Caller
from core.properties.counters import CounterProjector, EngagementStore, MessageRecord
from core.properties.repository import PropertyRepository
from core.properties.schema import Property, PropertyProjection, PropertyStatus
from core.properties.visibility import can_view, require_view


logger = logging.getLogger(__name__)


MAX_MESSAGE_LENGTH = 2000


@dataclass(frozen=True)
class FavoriteEntry:
    """A favorited property as the user sees it."""

    property: PropertyProjection
    favorited_at: datetime

    def to_dict(self) -> dict:
        return {
            "property": self.property.to_dict(),
            "favorited_at": self.favorited_at.isoformat(),
        }


def _require_caller(caller: Optional[Caller]) -> Caller:
    if caller is None:
        raise Unauthenticated()
    return caller


class EngagementService:
    """
    Favorites and messages, gated by the visibility policy.

    Usage:
        engagement = EngagementService(repository, store, projector)
        engagement.favorite(property_id, user)
        engagement.send_message(property_id, "Is it still available?", user)
    """

    def __init__(
        self,
        repository: PropertyRepository,
        store: EngagementStore,
        projector: CounterProjector,
    ):
        self._repository = repository
        self._store = store
        self._projector = projector

    # =========================================================================
    # Favorites
    # =========================================================================

    def favorite(self, property_id: str, caller: Optional[Caller]) -> FavoriteEntry:
        """
        Add a published property to the caller's favorites.

        Raises:
            Unauthenticated: Anonymous caller
            NotFound: Unknown, deleted, or hidden property
            Forbidden: Not published, or already a favorite
        """
        caller = _require_caller(caller)
        prop = require_view(self._repository.get(property_id), caller)
        if prop.status != PropertyStatus.PUBLISHED:
            raise Forbidden("Only published properties can be favorited")

        record = self._store.add_favorite(prop.id, caller.user_id)
        if record is None:
            raise Forbidden("Property already in favorites")

        logger.info("User %s favorited property %s", caller.user_id, prop.id)
        return FavoriteEntry(self._projector.project(prop), record.created_at)

    def unfavorite(self, property_id: str, caller: Optional[Caller]) -> None:
        """
        Remove a favorite. Works whatever the property's current status.

        Raises:
            Unauthenticated: Anonymous caller
            NotFound: The caller had not favorited the property
        """
        caller = _require_caller(caller)
        if not self._store.remove_favorite(property_id, caller.user_id):
            raise NotFound("Favorite not found")
        logger.info("User %s removed favorite %s", caller.user_id, property_id)

    def list_favorites(self, caller: Optional[Caller]) -> list[FavoriteEntry]:
        """The caller's favorites, newest first, skipping properties they can no longer see."""
        caller = _require_caller(caller)
        entries = []
        for record in self._store.favorites_of(caller.user_id):
            prop = self._repository.get(record.property_id)
            if prop is not None and can_view(prop, caller):
                entries.append(FavoriteEntry(self._projector.project(prop), record.created_at))
        return entries

    # =========================================================================
    # Messages
    # =========================================================================

    def send_message(
        self,
        property_id: str,
        content: str,
        caller: Optional[Caller],
    ) -> MessageRecord:
        """
        Send a message about a property to its owner.

        Raises:
            Unauthenticated: Anonymous caller
            NotFound: Unknown, deleted, or hidden property
            ValidationFailed: Empty or oversized content, or writing to oneself
        """
        caller = _require_caller(caller)
        prop = require_view(self._repository.get(property_id), caller)

        text = (content or "").strip()
        if not text:
            raise ValidationFailed("Message content is required")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationFailed(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
        if prop.owner_id == caller.user_id:
            raise ValidationFailed("You cannot message yourself about your own property")

        message = self._store.record_message(prop.id, caller.user_id, prop.owner_id, text)
        logger.info("User %s messaged owner of property %s", caller.user_id, prop.id)
        return message

    def inbox(self, caller: Optional[Caller]) -> list[MessageRecord]:
        """Messages received by the caller, newest first."""
        caller = _require_caller(caller)
        return self._live(self._store.messages_received(caller.user_id))

    def sent(self, caller: Optional[Caller]) -> list[MessageRecord]:
        """Messages sent by the caller, newest first."""
        caller = _require_caller(caller)
        return self._live(self._store.messages_sent(caller.user_id))

    def _live(self, messages: list[MessageRecord]) -> list[MessageRecord]:
        # Threads on deleted properties disappear with the property
        alive: dict[str, bool] = {}
        kept = []
        for message in messages:
            if message.property_id not in alive:
                prop: Optional[Property] = self._repository.get(message.property_id)
                alive[message.property_id] = prop is not None and not prop.is_deleted
            if alive[message.property_id]:
                kept.append(message)
        return kept
