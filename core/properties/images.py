"""
Property Images - Batch Upload and Soft Deletion

Uploads are best-effort batches:
- Files are checked locally first (format, size, emptiness)
- Valid files go to the media host with bounded concurrency
- Each successful upload is recorded on the property as soon as it is known
- Failures are reported per file; earlier successes are never rolled back
- Only a batch with zero successes fails as a whole
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Final, Optional

from core.errors import NotFound, StoreUnavailable, ValidationFailed
from core.identity import Caller
from core.properties.media import (
    MediaRejected,
    MediaUnavailable,
    MediaUploadError,
    MediaUploader,
    UploadedMedia,
)
from core.properties.repository import PropertyRepository
from core.properties.schema import (
    ALLOWED_IMAGE_CONTENT_TYPES,
    ALLOWED_IMAGE_EXTENSIONS,
    DEFAULT_UPLOAD_FOLDER,
    MAX_IMAGE_SIZE_BYTES,
    MAX_IMAGES_PER_PROPERTY,
    Image,
    generate_image_id,
)
from core.properties.visibility import require_mutate


logger = logging.getLogger(__name__)


DEFAULT_UPLOAD_CONCURRENCY: Final[int] = 4


# =============================================================================
# Types
# =============================================================================


@dataclass(frozen=True)
class ImageFile:
    """An image as received from the caller."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        if "." not in self.filename:
            return ""
        return "." + self.filename.rsplit(".", 1)[-1].lower()


@dataclass(frozen=True)
class UploadFailure:
    filename: str
    reason: str
    transient: bool = False

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "reason": self.reason,
            "transient": self.transient,
        }


@dataclass(frozen=True)
class ImageUploadBatch:
    """Outcome of a batch upload. Partial success is a success."""

    property_id: str
    uploaded: list[Image] = field(default_factory=list)
    failures: list[UploadFailure] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.uploaded) and bool(self.failures)

    def to_dict(self) -> dict:
        return {
            "property_id": self.property_id,
            "message": f"{len(self.uploaded)} images uploaded successfully",
            "images": [img.to_public_dict() for img in self.uploaded],
            "failures": [f.to_dict() for f in self.failures],
        }


def check_image_file(file: ImageFile) -> Optional[str]:
    """Return why a file cannot be uploaded, or None if it is acceptable."""
    if not file.content:
        return "Invalid or empty file"
    if len(file.content) > MAX_IMAGE_SIZE_BYTES:
        max_mb = MAX_IMAGE_SIZE_BYTES // (1024 * 1024)
        return f"File too large. Maximum size: {max_mb}MB"
    if file.content_type:
        if file.content_type.lower() not in ALLOWED_IMAGE_CONTENT_TYPES:
            return "Only JPEG, PNG, or WEBP images are allowed"
    elif file.extension not in ALLOWED_IMAGE_EXTENSIONS:
        return "Only JPEG, PNG, or WEBP images are allowed"
    return None


# =============================================================================
# Service
# =============================================================================


class ImageService:
    """Adds images to properties and removes them."""

    def __init__(
        self,
        repository: PropertyRepository,
        uploader: MediaUploader,
        max_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY,
        folder: str = DEFAULT_UPLOAD_FOLDER,
    ):
        self._repository = repository
        self._uploader = uploader
        self._max_concurrency = max(1, min(max_concurrency, MAX_IMAGES_PER_PROPERTY))
        self._folder = folder

    def upload_images(
        self,
        property_id: str,
        files: list[ImageFile],
        caller: Optional[Caller],
    ) -> ImageUploadBatch:
        """
        Upload a batch of images to a property.

        Raises:
            NotFound / Forbidden: Per the visibility policy
            ValidationFailed: Empty or oversized batch, or nothing uploaded
            StoreUnavailable: Nothing uploaded and every failure was transient
        """
        snapshot = require_mutate(self._repository.get(property_id), caller)

        if not files:
            raise ValidationFailed("No files provided")
        if len(files) > MAX_IMAGES_PER_PROPERTY:
            raise ValidationFailed(f"Maximum {MAX_IMAGES_PER_PROPERTY} images allowed")
        if snapshot.active_image_count + len(files) > MAX_IMAGES_PER_PROPERTY:
            raise ValidationFailed(
                f"A property can have at most {MAX_IMAGES_PER_PROPERTY} images "
                f"({snapshot.active_image_count} already attached)"
            )

        failures: list[UploadFailure] = []
        accepted: list[ImageFile] = []
        for file in files:
            reason = check_image_file(file)
            if reason:
                failures.append(UploadFailure(file.filename, reason))
            else:
                accepted.append(file)

        uploaded: list[Image] = []
        if accepted:
            workers = min(self._max_concurrency, len(accepted))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    (file, pool.submit(self._uploader.upload, file.content, file.filename, self._folder))
                    for file in accepted
                ]
                # Recorded in submission order so image order matches the request
                for file, future in futures:
                    outcome = self._collect(property_id, file, future, caller)
                    if isinstance(outcome, Image):
                        uploaded.append(outcome)
                    else:
                        failures.append(outcome)

        if not uploaded:
            first = failures[0]
            reasons = [f"{f.filename}: {f.reason}" for f in failures]
            if all(f.transient for f in failures):
                raise StoreUnavailable(f"No images uploaded: {reasons[0]}")
            raise ValidationFailed(f"No images uploaded: {first.filename}: {first.reason}", reasons)

        logger.info(
            "Uploaded %d of %d images to property %s",
            len(uploaded),
            len(files),
            property_id,
        )
        return ImageUploadBatch(property_id=property_id, uploaded=uploaded, failures=failures)

    def _collect(
        self,
        property_id: str,
        file: ImageFile,
        future: "Future[UploadedMedia]",
        caller: Optional[Caller],
    ):
        try:
            media = future.result()
        except MediaUploadError as e:
            logger.warning("Upload failed for %s: %s", file.filename, e)
            return UploadFailure(file.filename, str(e), transient=e.transient)

        try:
            return self._record(property_id, media, caller)
        except (NotFound, ValidationFailed) as e:
            self._discard(media)
            return UploadFailure(file.filename, e.message)
        except StoreUnavailable as e:
            self._discard(media)
            return UploadFailure(file.filename, e.message, transient=True)

    def _record(self, property_id: str, media: UploadedMedia, caller: Optional[Caller]) -> Image:
        with self._repository.atomic(property_id) as unit:
            prop = require_mutate(unit.current, caller)
            if prop.active_image_count >= MAX_IMAGES_PER_PROPERTY:
                raise ValidationFailed(
                    f"A property can have at most {MAX_IMAGES_PER_PROPERTY} images"
                )
            image = Image(
                id=generate_image_id(),
                property_id=property_id,
                url=media.url,
                external_key=media.external_key,
                created_at=datetime.utcnow(),
            )
            prop.images.append(image)
            unit.save(prop)
        return image

    def _discard(self, media: UploadedMedia) -> None:
        """Remove an uploaded object that could not be recorded."""
        try:
            self._uploader.delete(media.external_key)
        except MediaUploadError as e:
            logger.warning("Could not remove orphaned upload %s: %s", media.external_key, e)

    def delete_image(self, image_id: str, caller: Optional[Caller]) -> Image:
        """
        Remove an image from the media host and soft-delete its record.

        Raises:
            NotFound: Unknown or already deleted image, or hidden property
            Forbidden: Property visible but not the caller's
            ValidationFailed: The media host refused the deletion
            StoreUnavailable: The media host could not be reached
        """
        snapshot = self._repository.get_by_image(image_id)
        if snapshot is None:
            raise NotFound("Image not found")
        prop = require_mutate(snapshot, caller)
        image = prop.find_image(image_id)
        if image is None or not image.is_active:
            raise NotFound("Image not found")

        try:
            self._uploader.delete(image.external_key)
        except MediaUnavailable as e:
            raise StoreUnavailable(str(e))
        except MediaRejected as e:
            raise ValidationFailed(str(e))

        with self._repository.atomic(prop.id) as unit:
            fresh = require_mutate(unit.current, caller)
            image = fresh.find_image(image_id)
            if image is None or not image.is_active:
                raise NotFound("Image not found")
            image.deleted_at = datetime.utcnow()
            unit.save(fresh)

        logger.info("Deleted image %s from property %s", image_id, prop.id)
        return image
