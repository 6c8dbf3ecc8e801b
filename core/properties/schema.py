"""
Property Schema - Records, Statuses and Limits

Defines the durable property and image records held by the store, and the
read-only projection returned to callers.

Status model:
- draft       initial, freely editable, invisible to ordinary users
- published   validated, publicly visible
- archived    hidden from ordinary users

Soft deletion is a separate flag (deleted_at). A deleted property is always
archived.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Enums
# =============================================================================


class PropertyStatus(Enum):
    """Lifecycle status of a property."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# =============================================================================
# Constants
# =============================================================================

# Fields an owner supplies and edits
EDITABLE_FIELDS: Final[tuple[str, ...]] = (
    "title",
    "description",
    "location",
    "price",
)

# Fields only ever changed by the engine itself
PROTECTED_FIELDS: Final[tuple[str, ...]] = (
    "id",
    "owner_id",
    "status",
    "images",
    "created_at",
    "deleted_at",
)

MAX_TITLE_LENGTH: Final[int] = 255
MAX_LOCATION_LENGTH: Final[int] = 255

# Images
MAX_IMAGES_PER_PROPERTY: Final[int] = 10
MAX_IMAGE_SIZE_BYTES: Final[int] = 5 * 1024 * 1024
ALLOWED_IMAGE_CONTENT_TYPES: Final[frozenset[str]] = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
})
ALLOWED_IMAGE_EXTENSIONS: Final[tuple[str, ...]] = (
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
)
DEFAULT_UPLOAD_FOLDER: Final[str] = "properties"


def generate_property_id() -> str:
    return str(uuid.uuid4())


def generate_image_id() -> str:
    return str(uuid.uuid4())


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# =============================================================================
# Image Record
# =============================================================================


@dataclass
class Image:
    """An image owned by a property. Soft-deletable independently."""

    id: str
    property_id: str
    url: str
    external_key: str
    created_at: datetime
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "url": self.url,
            "external_key": self.external_key,
            "created_at": self.created_at.isoformat(),
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    def to_public_dict(self) -> dict:
        """Image as exposed to callers. Storage keys stay internal."""
        return {
            "id": self.id,
            "url": self.url,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Image":
        return cls(
            id=data["id"],
            property_id=data["property_id"],
            url=data["url"],
            external_key=data["external_key"],
            created_at=datetime.fromisoformat(data["created_at"]),
            deleted_at=_parse_datetime(data.get("deleted_at")),
        )


# =============================================================================
# Property Record
# =============================================================================


@dataclass
class Property:
    """
    Durable property record.

    id, owner_id and created_at never change after creation.
    """

    id: str
    owner_id: str
    title: str
    description: str
    location: str
    price: Decimal
    status: PropertyStatus
    created_at: datetime
    images: list[Image] = field(default_factory=list)
    deleted_at: Optional[datetime] = None

    @classmethod
    def new_draft(
        cls,
        owner_id: str,
        title: str = "",
        description: str = "",
        location: str = "",
        price: Decimal = Decimal("0"),
    ) -> "Property":
        """Create a new property in draft status."""
        return cls(
            id=generate_property_id(),
            owner_id=owner_id,
            title=title,
            description=description,
            location=location,
            price=price,
            status=PropertyStatus.DRAFT,
            created_at=datetime.utcnow(),
        )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def active_images(self) -> list[Image]:
        """Non-deleted images, oldest first."""
        return sorted(
            (img for img in self.images if img.is_active),
            key=lambda img: (img.created_at, img.id),
        )

    @property
    def active_image_count(self) -> int:
        return sum(1 for img in self.images if img.is_active)

    def find_image(self, image_id: str) -> Optional[Image]:
        for image in self.images:
            if image.id == image_id:
                return image
        return None

    def copy(self) -> "Property":
        """Detached copy, safe to hand out of the store."""
        return replace(self, images=[replace(img) for img in self.images])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "price": str(self.price),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "images": [img.to_dict() for img in self.images],
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Property":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            title=data.get("title", ""),
            description=data.get("description", ""),
            location=data.get("location", ""),
            price=Decimal(data.get("price", "0")),
            status=PropertyStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            images=[Image.from_dict(img) for img in data.get("images", [])],
            deleted_at=_parse_datetime(data.get("deleted_at")),
        )


# =============================================================================
# Projection
# =============================================================================


@dataclass(frozen=True)
class PropertyProjection:
    """
    Read-only view of a property returned to callers.

    favorites_count and messages_count are point-in-time snapshots and play
    no part in any lifecycle decision.
    """

    id: str
    owner_id: str
    title: str
    description: str
    location: str
    price: Decimal
    status: PropertyStatus
    images: tuple[Image, ...]
    favorites_count: int
    messages_count: int
    created_at: datetime
    deleted_at: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "price": str(self.price),
            "status": self.status.value,
            "images": [img.to_public_dict() for img in self.images],
            "favorites_count": self.favorites_count,
            "messages_count": self.messages_count,
            "created_at": self.created_at.isoformat(),
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
