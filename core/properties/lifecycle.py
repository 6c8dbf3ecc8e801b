"""
Property Lifecycle - State Machine for Draft, Published and Archived

Transitions:

    create            -> draft            owner, admin
    draft             -> published        owner of the property, admin
    draft             -> archived         owner of the property, admin
    published         -> archived         admin
    any (not deleted) -> deleted          owner of the property, admin

Deletion is a flag, not a state: it sets deleted_at and forces archived.
Nothing in the state machine clears deleted_at; restore() is a separate
admin-only recovery operation.

Every change runs as a guarded transition:
1. Snapshot read, authorisation and precondition checks (cheap rejection)
2. Atomic unit on the row: fresh read, the same checks again, write
Publishing is strict: if the fresh read no longer satisfies the checks the
transition aborts with Conflict, which closes double-publish and
publish-after-delete races.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Final, Optional

from core.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    PropertyEngineError,
    Unauthenticated,
    ValidationFailed,
)
from core.identity import Caller, Role
from core.properties.repository import PropertyRepository
from core.properties.schema import Property, PropertyStatus
from core.properties.validation import validate_draft_data, validate_for_publish
from core.properties.visibility import (
    can_archive,
    can_edit_fields,
    deny,
    is_admin,
    require_mutate,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Transition Table
# =============================================================================

ALLOWED_TRANSITIONS: Final[dict[PropertyStatus, frozenset[PropertyStatus]]] = {
    PropertyStatus.DRAFT: frozenset({PropertyStatus.PUBLISHED, PropertyStatus.ARCHIVED}),
    PropertyStatus.PUBLISHED: frozenset({PropertyStatus.ARCHIVED}),
    PropertyStatus.ARCHIVED: frozenset(),
}

CREATOR_ROLES: Final[frozenset[Role]] = frozenset({Role.OWNER, Role.ADMIN})

# Errors that reject a transition, as opposed to the store failing
REJECTIONS: Final = (Unauthenticated, NotFound, Forbidden, InvalidTransition, ValidationFailed)


def is_allowed_transition(current: PropertyStatus, target: PropertyStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def enforce_invariants(prop: Property) -> Property:
    """A deleted property is always archived."""
    if prop.is_deleted and prop.status != PropertyStatus.ARCHIVED:
        prop.status = PropertyStatus.ARCHIVED
    return prop


# =============================================================================
# Guarded Transition
# =============================================================================

# authorize(prop, caller) returns the property or raises NotFound/Forbidden
Authorizer = Callable[[Optional[Property], Optional[Caller]], Property]
# precondition(prop, caller) raises to reject, returns False for a no-op
Precondition = Callable[[Property, Optional[Caller]], bool]
Mutation = Callable[[Property], Property]


@dataclass(frozen=True)
class GuardedTransition:
    """
    A state change whose checks are repeated inside the atomic unit.

    With strict=True a check that passed on the snapshot but fails on the
    fresh read is reported as Conflict rather than as the original error.
    """

    name: str
    authorize: Authorizer
    precondition: Precondition
    apply: Mutation
    strict: bool = False


def _always(prop: Property, caller: Optional[Caller]) -> bool:
    return True


# =============================================================================
# State Machine
# =============================================================================


class PropertyLifecycle:
    """
    Executes lifecycle operations against a property repository.

    Usage:
        lifecycle = PropertyLifecycle(repository)
        draft = lifecycle.create_draft({"title": "Cozy Flat"}, owner)
        lifecycle.publish(draft.id, owner)
    """

    def __init__(
        self,
        repository: PropertyRepository,
        allow_owner_edit_after_publish: bool = False,
    ):
        self._repository = repository
        self.allow_owner_edit_after_publish = allow_owner_edit_after_publish

    def execute(
        self,
        transition: GuardedTransition,
        property_id: str,
        caller: Optional[Caller],
    ) -> Property:
        """
        Run a guarded transition.

        Returns:
            The property after the transition (unchanged for a no-op)
        """
        try:
            snapshot = transition.authorize(self._repository.get(property_id), caller)
            proceed = transition.precondition(snapshot, caller)
        except REJECTIONS as e:
            self._log_rejection(transition, property_id, caller, e)
            raise
        if not proceed:
            return snapshot

        with self._repository.atomic(property_id) as unit:
            try:
                fresh = transition.authorize(unit.current, caller)
                proceed = transition.precondition(fresh, caller)
            except (NotFound, Forbidden, InvalidTransition) as e:
                if not transition.strict:
                    self._log_rejection(transition, property_id, caller, e)
                    raise
                logger.warning(
                    "%s on property %s lost a race: %s",
                    transition.name,
                    property_id,
                    e.message,
                )
                raise Conflict(
                    f"Property {property_id} changed while {transition.name} was in progress"
                )
            except REJECTIONS as e:
                self._log_rejection(transition, property_id, caller, e)
                raise
            if not proceed:
                return fresh

            updated = enforce_invariants(transition.apply(fresh))
            unit.save(updated)

        logger.info(
            "%s property %s by %s (status=%s)",
            transition.name,
            property_id,
            caller.user_id if caller else "anonymous",
            updated.status.value,
        )
        return updated

    @staticmethod
    def _log_rejection(
        transition: GuardedTransition,
        property_id: str,
        caller: Optional[Caller],
        error: PropertyEngineError,
    ) -> None:
        logger.warning(
            "%s on property %s by %s rejected [%s]: %s",
            transition.name,
            property_id,
            caller.user_id if caller else "anonymous",
            error.code,
            error.message,
        )

    # =========================================================================
    # Create and Update
    # =========================================================================

    def create_draft(self, data: dict[str, Any], caller: Optional[Caller]) -> Property:
        """
        Create a new draft owned by the caller.

        Raises:
            Unauthenticated: Anonymous caller
            Forbidden: Caller is neither owner nor admin
            ValidationFailed: Malformed input
        """
        if caller is None:
            raise Unauthenticated()
        if caller.role not in CREATOR_ROLES:
            raise Forbidden("Only owners and admins can create properties")

        values = validate_draft_data(data)
        prop = Property.new_draft(owner_id=caller.user_id, **values)
        stored = self._repository.insert(prop)
        logger.info("Created draft property %s for %s", stored.id, caller.user_id)
        return stored

    def update_draft(
        self,
        property_id: str,
        changes: dict[str, Any],
        caller: Optional[Caller],
    ) -> Property:
        """
        Change listing content.

        Raises:
            NotFound: Unknown, deleted, or hidden property
            Forbidden: Visible but not the caller's
            InvalidTransition: Content is locked in the current status
            ValidationFailed: Malformed changes
        """
        values: dict[str, Any] = {}

        def precondition(prop: Property, who: Optional[Caller]) -> bool:
            if not can_edit_fields(prop, who, self.allow_owner_edit_after_publish):
                raise InvalidTransition(
                    f"Cannot edit a {prop.status.value} property; only drafts can be edited"
                )
            values.update(validate_draft_data(changes, partial=True))
            return True

        def apply(prop: Property) -> Property:
            for key, value in values.items():
                setattr(prop, key, value)
            return prop

        return self.execute(
            GuardedTransition("update", require_mutate, precondition, apply),
            property_id,
            caller,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def publish(self, property_id: str, caller: Optional[Caller]) -> Property:
        """
        draft -> published.

        Raises:
            NotFound / Forbidden: Per the visibility policy
            InvalidTransition: Property is not a draft
            ValidationFailed: Publish gate failed
            Conflict: Property changed between the check and the write
        """

        def precondition(prop: Property, who: Optional[Caller]) -> bool:
            if not is_allowed_transition(prop.status, PropertyStatus.PUBLISHED):
                raise InvalidTransition(
                    f"Only draft properties can be published (status is {prop.status.value})"
                )
            validate_for_publish(prop, prop.active_image_count)
            return True

        def apply(prop: Property) -> Property:
            prop.status = PropertyStatus.PUBLISHED
            return prop

        return self.execute(
            GuardedTransition("publish", require_mutate, precondition, apply, strict=True),
            property_id,
            caller,
        )

    def archive(self, property_id: str, caller: Optional[Caller]) -> Property:
        """
        draft|published -> archived. Archiving an archived property is a no-op.

        Raises:
            NotFound: Unknown, deleted, or hidden property
            Forbidden: Owner archiving a published property, or not the owner
        """

        def authorize(prop: Optional[Property], who: Optional[Caller]) -> Property:
            prop = require_mutate(prop, who)
            if not can_archive(prop, who):
                deny(prop, who, "Only admins can archive published properties")
            return prop

        def precondition(prop: Property, who: Optional[Caller]) -> bool:
            return prop.status != PropertyStatus.ARCHIVED

        def apply(prop: Property) -> Property:
            prop.status = PropertyStatus.ARCHIVED
            return prop

        return self.execute(
            GuardedTransition("archive", authorize, precondition, apply),
            property_id,
            caller,
        )

    def soft_delete(self, property_id: str, caller: Optional[Caller]) -> Property:
        """
        Mark a property deleted. Forces archived.

        Raises:
            NotFound: Unknown, hidden, or already deleted
            Forbidden: Visible but not the caller's
        """

        def apply(prop: Property) -> Property:
            prop.deleted_at = datetime.utcnow()
            prop.status = PropertyStatus.ARCHIVED
            return prop

        return self.execute(
            GuardedTransition("delete", require_mutate, _always, apply),
            property_id,
            caller,
        )

    def restore(self, property_id: str, caller: Optional[Caller]) -> Property:
        """
        Admin recovery: clear deleted_at. The property stays archived.

        Raises:
            NotFound: Unknown property, or caller is not an admin
            InvalidTransition: Property is not deleted
        """

        def authorize(prop: Optional[Property], who: Optional[Caller]) -> Property:
            if prop is None:
                raise NotFound()
            if not is_admin(who):
                deny(prop, who, "Only admins can restore properties")
            return prop

        def precondition(prop: Property, who: Optional[Caller]) -> bool:
            if not prop.is_deleted:
                raise InvalidTransition("Property is not deleted")
            return True

        def apply(prop: Property) -> Property:
            prop.deleted_at = None
            prop.status = PropertyStatus.ARCHIVED
            return prop

        return self.execute(
            GuardedTransition("restore", authorize, precondition, apply),
            property_id,
            caller,
        )
