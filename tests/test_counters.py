"""
Tests for Counter Projection

Tests cover:
- Favorite and message counts on projections
- Degradation to zero when a counter source fails
- Counts never blocking lifecycle operations
"""

import pytest
from decimal import Decimal

from core.identity import Caller, Role
from core.properties import (
    CounterProjector,
    CounterSource,
    InMemoryCounterStore,
    Property,
    PropertyRepository,
    PropertyService,
)


# =============================================================================
# Fixtures
# =============================================================================


class BrokenCounters(CounterSource):
    """Counter source whose backing service is down."""

    def count_favorites(self, property_id):
        raise ConnectionError("favorites service down")

    def count_messages(self, property_id):
        raise TimeoutError("messages service timed out")


class NonsenseCounters(CounterSource):
    def count_favorites(self, property_id):
        return -3

    def count_messages(self, property_id):
        return "many"


@pytest.fixture
def store():
    return InMemoryCounterStore()


@pytest.fixture
def prop():
    return Property.new_draft(owner_id="owner-1", title="Cozy Flat", price=Decimal("10"))


@pytest.fixture
def owner():
    return Caller(user_id="owner-1", role=Role.OWNER)


# =============================================================================
# In-Memory Store
# =============================================================================


class TestInMemoryCounterStore:
    """Tests for the in-memory counter store."""

    def test_favorites_unique_per_user(self, store):
        assert store.add_favorite("p1", "u1")
        assert not store.add_favorite("p1", "u1")
        assert store.add_favorite("p1", "u2")
        assert store.count_favorites("p1") == 2

    def test_remove_favorite(self, store):
        store.add_favorite("p1", "u1")
        assert store.remove_favorite("p1", "u1")
        assert not store.remove_favorite("p1", "u1")
        assert store.count_favorites("p1") == 0

    def test_messages_counted_per_property(self, store):
        store.record_message("p1", "u1", "owner-1", "Is it available?")
        store.record_message("p1", "u2", "owner-1", "Viewing Saturday?")
        store.record_message("p2", "u1", "owner-2", "Hello")
        assert store.count_messages("p1") == 2
        assert store.count_messages("p2") == 1
        assert store.count_messages("p3") == 0

    def test_empty_message_rejected(self, store):
        with pytest.raises(ValueError):
            store.record_message("p1", "u1", "owner-1", "   ")

    def test_favorites_of_user(self, store):
        store.add_favorite("p1", "u1")
        store.add_favorite("p2", "u1")
        store.add_favorite("p2", "u2")
        assert {r.property_id for r in store.favorites_of("u1")} == {"p1", "p2"}
        assert store.favorites_of("u3") == []

    def test_messages_by_direction(self, store):
        store.record_message("p1", "u1", "owner-1", "Hi")
        store.record_message("p2", "owner-1", "u1", "Hello back")
        assert [m.content for m in store.messages_received("owner-1")] == ["Hi"]
        assert [m.content for m in store.messages_sent("owner-1")] == ["Hello back"]


# =============================================================================
# Projector
# =============================================================================


class TestCounterProjector:
    """Tests for projecting counts onto properties."""

    def test_projects_counts(self, store, prop):
        store.add_favorite(prop.id, "u1")
        store.record_message(prop.id, "u1", prop.owner_id, "Hi")
        projection = CounterProjector(store).project(prop)
        assert projection.favorites_count == 1
        assert projection.messages_count == 1
        assert projection.title == "Cozy Flat"

    def test_failing_source_degrades_to_zero(self, prop):
        projection = CounterProjector(BrokenCounters()).project(prop)
        assert projection.favorites_count == 0
        assert projection.messages_count == 0

    def test_invalid_values_degrade_to_zero(self, prop):
        projection = CounterProjector(NonsenseCounters()).project(prop)
        assert projection.favorites_count == 0
        assert projection.messages_count == 0

    def test_failure_logged(self, prop, caplog):
        with caplog.at_level("WARNING"):
            CounterProjector(BrokenCounters()).project(prop)
        assert "count unavailable" in caplog.text

    def test_broken_counters_do_not_block_lifecycle(self, owner):
        service = PropertyService(PropertyRepository(), counters=BrokenCounters())
        draft = service.create_draft({"title": "Cozy Flat"}, owner)
        updated = service.update_draft(draft.id, {"title": "Cosier Flat"}, owner)
        assert updated.title == "Cosier Flat"
        assert updated.favorites_count == 0
