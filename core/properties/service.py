"""
Property Service - Public Surface of the Lifecycle Engine

Composes the visibility policy, the state machine, the query engine, image
handling and counter projection behind one object. The HTTP layer and the
CLI talk to this class only.

Every property returned is a PropertyProjection. Counts are attached last,
after the operation has succeeded.
"""

from __future__ import annotations

from typing import Any, Optional

from core.identity import Caller
from core.properties.counters import (
    CounterProjector,
    CounterSource,
    EngagementStore,
    InMemoryCounterStore,
    MessageRecord,
)
from core.properties.engagement import EngagementService, FavoriteEntry
from core.properties.images import DEFAULT_UPLOAD_CONCURRENCY, ImageFile, ImageService, ImageUploadBatch
from core.properties.lifecycle import PropertyLifecycle
from core.properties.media import CloudinaryUploader, InMemoryMediaUploader, MediaUploader
from core.properties.query import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, PropertyFilter, PropertyPage, PropertyQueryEngine
from core.properties.repository import PropertyRepository
from core.properties.schema import DEFAULT_UPLOAD_FOLDER, Image, PropertyProjection
from core.properties.visibility import require_view
from utils.config import Config


class PropertyService:
    """
    Facade over the property lifecycle and access-control engine.

    Usage:
        service = PropertyService(PropertyRepository())
        draft = service.create_draft({"title": "Cozy Flat"}, owner)
        service.upload_images(draft.id, [ImageFile("a.jpg", data)], owner)
        service.publish(draft.id, owner)
    """

    def __init__(
        self,
        repository: PropertyRepository,
        counters: Optional[CounterSource] = None,
        engagement: Optional[EngagementStore] = None,
        uploader: Optional[MediaUploader] = None,
        allow_owner_edit_after_publish: bool = False,
        max_upload_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY,
        upload_folder: str = DEFAULT_UPLOAD_FOLDER,
        max_page_size: int = MAX_PAGE_SIZE,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._repository = repository
        if engagement is None:
            engagement = counters if isinstance(counters, EngagementStore) else InMemoryCounterStore()
        self.engagement_store = engagement
        self.counters = counters or engagement
        self.uploader = uploader or InMemoryMediaUploader()
        self._projector = CounterProjector(self.counters)
        self.lifecycle = PropertyLifecycle(repository, allow_owner_edit_after_publish)
        self._queries = PropertyQueryEngine(
            repository, self._projector, max_page_size, default_page_size
        )
        self._images = ImageService(
            repository,
            self.uploader,
            max_concurrency=max_upload_concurrency,
            folder=upload_folder,
        )
        self._engagement = EngagementService(repository, engagement, self._projector)

    @property
    def repository(self) -> PropertyRepository:
        return self._repository

    # =========================================================================
    # Writes
    # =========================================================================

    def create_draft(self, data: dict[str, Any], caller: Optional[Caller]) -> PropertyProjection:
        return self._projector.project(self.lifecycle.create_draft(data, caller))

    def update_draft(
        self,
        property_id: str,
        changes: dict[str, Any],
        caller: Optional[Caller],
    ) -> PropertyProjection:
        return self._projector.project(self.lifecycle.update_draft(property_id, changes, caller))

    def publish(self, property_id: str, caller: Optional[Caller]) -> PropertyProjection:
        return self._projector.project(self.lifecycle.publish(property_id, caller))

    def archive(self, property_id: str, caller: Optional[Caller]) -> PropertyProjection:
        return self._projector.project(self.lifecycle.archive(property_id, caller))

    def soft_delete(self, property_id: str, caller: Optional[Caller]) -> PropertyProjection:
        return self._projector.project(self.lifecycle.soft_delete(property_id, caller))

    def restore(self, property_id: str, caller: Optional[Caller]) -> PropertyProjection:
        return self._projector.project(self.lifecycle.restore(property_id, caller))

    def upload_images(
        self,
        property_id: str,
        files: list[ImageFile],
        caller: Optional[Caller],
    ) -> ImageUploadBatch:
        return self._images.upload_images(property_id, files, caller)

    def delete_image(self, image_id: str, caller: Optional[Caller]) -> Image:
        return self._images.delete_image(image_id, caller)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_property(
        self,
        property_id: str,
        caller: Optional[Caller],
        include_deleted: bool = False,
    ) -> PropertyProjection:
        """
        Raises:
            NotFound: Unknown, or not visible to the caller
        """
        prop = require_view(self._repository.get(property_id), caller, include_deleted)
        return self._projector.project(prop)

    def list_properties(
        self,
        flt: Optional[PropertyFilter],
        caller: Optional[Caller],
    ) -> PropertyPage:
        return self._queries.list_properties(flt, caller)

    # =========================================================================
    # Favorites and Messages
    # =========================================================================

    def favorite(self, property_id: str, caller: Optional[Caller]) -> FavoriteEntry:
        return self._engagement.favorite(property_id, caller)

    def unfavorite(self, property_id: str, caller: Optional[Caller]) -> None:
        self._engagement.unfavorite(property_id, caller)

    def list_favorites(self, caller: Optional[Caller]) -> list[FavoriteEntry]:
        return self._engagement.list_favorites(caller)

    def send_message(
        self,
        property_id: str,
        content: str,
        caller: Optional[Caller],
    ) -> MessageRecord:
        return self._engagement.send_message(property_id, content, caller)

    def inbox(self, caller: Optional[Caller]) -> list[MessageRecord]:
        return self._engagement.inbox(caller)

    def sent_messages(self, caller: Optional[Caller]) -> list[MessageRecord]:
        return self._engagement.sent(caller)


# =============================================================================
# Construction
# =============================================================================


def build_media_uploader(config: Config) -> MediaUploader:
    if config.media_backend == "cloudinary":
        return CloudinaryUploader(
            cloud_name=config.cloudinary_cloud_name or "",
            api_key=config.cloudinary_api_key or "",
            api_secret=config.cloudinary_api_secret or "",
            timeout=config.request_timeout,
        )
    if config.media_backend == "memory":
        return InMemoryMediaUploader()
    raise ValueError(f"Unknown media backend: {config.media_backend}")


def build_property_service(config: Config) -> PropertyService:
    """Wire a service from configuration."""
    return PropertyService(
        repository=PropertyRepository(
            config.properties_path,
            timeout_seconds=config.store_timeout_seconds,
        ),
        uploader=build_media_uploader(config),
        allow_owner_edit_after_publish=config.allow_owner_edit_after_publish,
        max_upload_concurrency=config.max_upload_concurrency,
        upload_folder=config.upload_folder,
        max_page_size=config.max_page_size,
        default_page_size=config.default_page_size,
    )


_service_instance: Optional[PropertyService] = None


def get_property_service() -> PropertyService:
    """Get the property service singleton, built from the environment."""
    global _service_instance
    if _service_instance is None:
        _service_instance = build_property_service(Config.load())
    return _service_instance


def reset_property_service() -> None:
    """Reset the singleton instance (for testing)."""
    global _service_instance
    _service_instance = None
