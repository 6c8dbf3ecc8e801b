"""
Property Query Engine - Role-Scoped, Filtered, Paginated Listings

A listing is built in three steps:
1. Role-scoped base predicate (what the caller may see at all)
2. Caller-supplied filters (location, price range, ownership)
3. Stable ordering and pagination

Base predicates:
- anonymous / user: published and not deleted; any status filter is ignored
- owner:            published and not deleted, or their own non-deleted rows;
                    a status filter narrows to their own rows in that status
- admin:            everything not deleted; deleted rows only on request
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Final, Optional

from core.errors import Unauthenticated, ValidationFailed
from core.identity import Caller, Role
from core.properties.counters import CounterProjector
from core.properties.repository import PropertyRepository
from core.properties.schema import Property, PropertyProjection, PropertyStatus


# =============================================================================
# Constants
# =============================================================================

DEFAULT_PAGE_SIZE: Final[int] = 12
MAX_PAGE_SIZE: Final[int] = 100


Predicate = Callable[[Property], bool]


# =============================================================================
# Filter and Page Types
# =============================================================================


@dataclass
class PropertyFilter:
    """Caller-supplied listing parameters."""

    status: Optional[PropertyStatus] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    location: Optional[str] = None
    page: int = 1
    limit: Optional[int] = None
    only_mine: bool = False
    include_deleted: bool = False

    def validate(self) -> None:
        """
        Raises:
            ValidationFailed: Negative or inverted price range
        """
        if self.min_price is not None and self.min_price < 0:
            raise ValidationFailed("min_price must not be negative")
        if self.max_price is not None and self.max_price < 0:
            raise ValidationFailed("max_price must not be negative")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValidationFailed("min_price must not exceed max_price")


@dataclass(frozen=True)
class PageInfo:
    page: int
    limit: int
    total: int
    total_pages: int

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class PropertyPage:
    """One page of projections plus pagination metadata."""

    items: list[PropertyProjection]
    pagination: PageInfo

    def to_dict(self) -> dict:
        return {
            "data": [item.to_dict() for item in self.items],
            "pagination": self.pagination.to_dict(),
        }


# =============================================================================
# Predicates
# =============================================================================


def _is_public(prop: Property) -> bool:
    return prop.status == PropertyStatus.PUBLISHED and not prop.is_deleted


def base_predicate(caller: Optional[Caller], flt: PropertyFilter) -> Predicate:
    """
    Build the role-scoped predicate, including how the status filter is
    allowed to interact with it.
    """
    if caller is None or caller.role == Role.USER:
        return _is_public

    if caller.role == Role.OWNER:
        user_id = caller.user_id
        if flt.status is not None:
            status = flt.status
            return lambda p: (
                p.owner_id == user_id and p.status == status and not p.is_deleted
            )
        return lambda p: _is_public(p) or (p.owner_id == user_id and not p.is_deleted)

    # Admin
    include_deleted = flt.include_deleted
    status = flt.status
    return lambda p: (
        (include_deleted or not p.is_deleted)
        and (status is None or p.status == status)
    )


def filter_predicates(caller: Optional[Caller], flt: PropertyFilter) -> list[Predicate]:
    """Predicates for the caller-supplied filters."""
    predicates: list[Predicate] = []

    if flt.only_mine:
        if caller is None:
            raise Unauthenticated("Listing your own properties requires authentication")
        user_id = caller.user_id
        predicates.append(lambda p: p.owner_id == user_id)

    if flt.location:
        needle = flt.location.strip().casefold()
        if needle:
            predicates.append(lambda p: needle in (p.location or "").casefold())

    if flt.min_price is not None:
        min_price = flt.min_price
        predicates.append(lambda p: p.price >= min_price)

    if flt.max_price is not None:
        max_price = flt.max_price
        predicates.append(lambda p: p.price <= max_price)

    return predicates


def combine(predicates: list[Predicate]) -> Predicate:
    return lambda p: all(predicate(p) for predicate in predicates)


# =============================================================================
# Query Engine
# =============================================================================


class PropertyQueryEngine:
    """Builds role-scoped listing pages over the property repository."""

    def __init__(
        self,
        repository: PropertyRepository,
        projector: CounterProjector,
        max_page_size: int = MAX_PAGE_SIZE,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._repository = repository
        self._projector = projector
        self._max_page_size = max_page_size
        self._default_page_size = min(default_page_size, max_page_size)

    def list_properties(
        self,
        flt: Optional[PropertyFilter],
        caller: Optional[Caller],
    ) -> PropertyPage:
        """
        List properties visible to the caller.

        total reflects the fully filtered set, not just the base predicate.
        """
        flt = flt or PropertyFilter()
        flt.validate()

        page = max(1, flt.page)
        limit = self._default_page_size if flt.limit is None else flt.limit
        take = min(max(1, limit), self._max_page_size)
        skip = (page - 1) * take

        predicate = combine([base_predicate(caller, flt)] + filter_predicates(caller, flt))
        matches = self._repository.query(predicate)
        # Newest first; id breaks ties so pages never overlap
        matches.sort(key=lambda p: (p.created_at, p.id), reverse=True)

        total = len(matches)
        items = [self._projector.project(p) for p in matches[skip:skip + take]]

        return PropertyPage(
            items=items,
            pagination=PageInfo(
                page=page,
                limit=take,
                total=total,
                total_pages=math.ceil(total / take),
            ),
        )
