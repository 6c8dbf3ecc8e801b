"""
Tests for Favorites and Messages

Tests cover:
- Favorites limited to visible, published properties
- Duplicate and missing favorites
- Messages routed to the owner, with inbox and sent views
- Counts reflected in property projections
"""

import pytest

from core.errors import Forbidden, NotFound, Unauthenticated, ValidationFailed
from core.identity import Caller, Role
from core.properties import ImageFile, PropertyRepository, PropertyService


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def owner():
    return Caller(user_id="owner-1", role=Role.OWNER)


@pytest.fixture
def user():
    return Caller(user_id="user-1", role=Role.USER)


@pytest.fixture
def admin():
    return Caller(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def service():
    return PropertyService(PropertyRepository())


@pytest.fixture
def draft(service, owner):
    return service.create_draft(
        {"title": "Cozy Flat", "description": "Two rooms", "location": "Riverside", "price": 500},
        owner,
    )


@pytest.fixture
def published(service, owner, draft):
    service.upload_images(
        draft.id, [ImageFile("front.png", b"\x89PNGdata", "image/png")], owner
    )
    return service.publish(draft.id, owner)


# =============================================================================
# Favorites
# =============================================================================


class TestFavorites:
    """Tests for adding, removing and listing favorites."""

    def test_favorite_published(self, service, user, published):
        entry = service.favorite(published.id, user)
        assert entry.property.id == published.id
        assert entry.property.favorites_count == 1
        assert service.get_property(published.id, None).favorites_count == 1

    def test_anonymous_rejected(self, service, published):
        with pytest.raises(Unauthenticated):
            service.favorite(published.id, None)

    def test_duplicate_forbidden(self, service, user, published):
        service.favorite(published.id, user)
        with pytest.raises(Forbidden):
            service.favorite(published.id, user)

    def test_hidden_draft_not_found(self, service, user, draft):
        with pytest.raises(NotFound):
            service.favorite(draft.id, user)

    def test_own_draft_forbidden(self, service, owner, draft):
        with pytest.raises(Forbidden):
            service.favorite(draft.id, owner)

    def test_deleted_not_found(self, service, user, admin, published):
        service.soft_delete(published.id, admin)
        with pytest.raises(NotFound):
            service.favorite(published.id, user)

    def test_unknown_not_found(self, service, user):
        with pytest.raises(NotFound):
            service.favorite("missing", user)

    def test_unfavorite(self, service, user, published):
        service.favorite(published.id, user)
        service.unfavorite(published.id, user)
        assert service.list_favorites(user) == []
        with pytest.raises(NotFound):
            service.unfavorite(published.id, user)

    def test_unfavorite_after_archive(self, service, user, admin, published):
        service.favorite(published.id, user)
        service.archive(published.id, admin)
        service.unfavorite(published.id, user)
        assert service.engagement_store.count_favorites(published.id) == 0

    def test_list_skips_no_longer_visible(self, service, user, admin, published):
        service.favorite(published.id, user)
        assert [e.property.id for e in service.list_favorites(user)] == [published.id]

        service.archive(published.id, admin)
        assert service.list_favorites(user) == []


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    """Tests for messaging property owners."""

    def test_message_reaches_owner(self, service, owner, user, published):
        message = service.send_message(published.id, "  Is it available?  ", user)
        assert message.receiver_id == owner.user_id
        assert message.content == "Is it available?"

        assert [m.id for m in service.inbox(owner)] == [message.id]
        assert [m.id for m in service.sent_messages(user)] == [message.id]
        assert service.inbox(user) == []
        assert service.get_property(published.id, None).messages_count == 1

    def test_hidden_property_not_found(self, service, user, draft):
        with pytest.raises(NotFound):
            service.send_message(draft.id, "Hello", user)

    @pytest.mark.parametrize("content", ["", "   ", "x" * 2001])
    def test_bad_content(self, service, user, published, content):
        with pytest.raises(ValidationFailed):
            service.send_message(published.id, content, user)

    def test_cannot_message_self(self, service, owner, published):
        with pytest.raises(ValidationFailed):
            service.send_message(published.id, "Note to self", owner)

    def test_deleted_property_drops_thread(self, service, owner, user, published):
        service.send_message(published.id, "Hello", user)
        service.soft_delete(published.id, owner)
        assert service.inbox(owner) == []
        assert service.sent_messages(user) == []

    def test_anonymous_inbox_rejected(self, service):
        with pytest.raises(Unauthenticated):
            service.inbox(None)
