"""
Visibility Policy - Single Source of Truth for Property Access

Every read and every write consults this module. Nothing else in the engine
compares owner ids or roles.

Rules:
- Published, non-deleted properties are visible to everyone (anonymous too)
- Drafts and archived properties are visible to their owner and to admins
- Deleted properties are visible only to admins who ask for them explicitly
- Writes are allowed to the owner and to admins

Error shaping:
- A caller who cannot even see the property gets NotFound, so private drafts
  never leak their existence
- A caller who can see it but may not act on it gets Forbidden
"""

from __future__ import annotations

from typing import Optional

from core.errors import Forbidden, NotFound
from core.identity import Caller
from core.properties.schema import Property, PropertyStatus


def is_owner(prop: Property, caller: Optional[Caller]) -> bool:
    return caller is not None and caller.user_id == prop.owner_id


def is_admin(caller: Optional[Caller]) -> bool:
    return caller is not None and caller.is_admin


def can_view(
    prop: Property,
    caller: Optional[Caller],
    include_deleted: bool = False,
) -> bool:
    """Read predicate for a single property."""
    if prop.is_deleted:
        return include_deleted and is_admin(caller)
    if prop.status == PropertyStatus.PUBLISHED:
        return True
    return is_owner(prop, caller) or is_admin(caller)


def can_mutate(prop: Property, caller: Optional[Caller]) -> bool:
    """Generic write gate used by update, archive, delete and image changes."""
    return is_admin(caller) or is_owner(prop, caller)


def can_edit_fields(
    prop: Property,
    caller: Optional[Caller],
    allow_owner_edit_after_publish: bool,
) -> bool:
    """
    Whether listing content (title, description, location, price) may change.

    Admins may always edit. Owners may edit drafts, and published properties
    only when the policy flag allows it.
    """
    if not can_mutate(prop, caller):
        return False
    if is_admin(caller):
        return True
    if prop.status == PropertyStatus.DRAFT:
        return True
    if prop.status == PropertyStatus.PUBLISHED:
        return allow_owner_edit_after_publish
    return False


def can_archive(prop: Property, caller: Optional[Caller]) -> bool:
    """Published properties are archived by admins only."""
    if prop.status == PropertyStatus.PUBLISHED:
        return is_admin(caller)
    return can_mutate(prop, caller)


# =============================================================================
# Enforcement
# =============================================================================


def require_view(
    prop: Optional[Property],
    caller: Optional[Caller],
    include_deleted: bool = False,
) -> Property:
    """
    Return the property if the caller may see it.

    Raises:
        NotFound: Unknown, deleted, or private to someone else
    """
    if prop is None or not can_view(prop, caller, include_deleted):
        raise NotFound()
    return prop


def deny(prop: Property, caller: Optional[Caller], message: str) -> None:
    """
    Raise the right error for a refused action.

    Callers who cannot view the property learn nothing about it.
    """
    if not can_view(prop, caller):
        raise NotFound()
    raise Forbidden(message)


def require_mutate(prop: Optional[Property], caller: Optional[Caller]) -> Property:
    """
    Return the live property if the caller may write to it.

    Raises:
        NotFound: Unknown or deleted property, or hidden from the caller
        Forbidden: Visible to the caller but not theirs to change
    """
    if prop is None or prop.is_deleted:
        raise NotFound()
    if not can_mutate(prop, caller):
        deny(prop, caller, "You can only manage your own properties")
    return prop
