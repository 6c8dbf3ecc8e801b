"""
Property Lifecycle & Access-Control Engine

Owners list properties, administrators moderate them, and everyone else
browses what has been published.

Principles:
1. One visibility policy, consulted by every operation
2. Drafts may be incomplete; completeness is enforced when publishing
3. Publishing is a guarded transition, re-checked inside the write
4. Deletion is a flag that forces archived, never a fourth status
5. Counters are decoration, never an input to a decision
"""

from core.properties.schema import (
    PropertyStatus,
    Property,
    Image,
    PropertyProjection,
    MAX_IMAGES_PER_PROPERTY,
    MAX_IMAGE_SIZE_BYTES,
)
from core.properties.visibility import (
    can_view,
    can_mutate,
    can_edit_fields,
    can_archive,
    require_view,
    require_mutate,
)
from core.properties.validation import (
    PublishValidationResult,
    check_publish_readiness,
    validate_for_publish,
    validate_draft_data,
)
from core.properties.repository import (
    PropertyRepository,
    PropertyUnit,
)
from core.properties.lifecycle import (
    PropertyLifecycle,
    GuardedTransition,
    ALLOWED_TRANSITIONS,
)
from core.properties.query import (
    PropertyFilter,
    PropertyPage,
    PageInfo,
    PropertyQueryEngine,
)
from core.properties.counters import (
    CounterSource,
    CounterProjector,
    EngagementStore,
    InMemoryCounterStore,
    FavoriteRecord,
    MessageRecord,
)
from core.properties.engagement import (
    EngagementService,
    FavoriteEntry,
)
from core.properties.media import (
    MediaUploader,
    InMemoryMediaUploader,
    CloudinaryUploader,
    MediaRejected,
    MediaUnavailable,
)
from core.properties.images import (
    ImageFile,
    ImageService,
    ImageUploadBatch,
    UploadFailure,
)
from core.properties.service import (
    PropertyService,
    build_property_service,
    get_property_service,
    reset_property_service,
)

__all__ = [
    # Schema
    "PropertyStatus",
    "Property",
    "Image",
    "PropertyProjection",
    "MAX_IMAGES_PER_PROPERTY",
    "MAX_IMAGE_SIZE_BYTES",
    # Visibility
    "can_view",
    "can_mutate",
    "can_edit_fields",
    "can_archive",
    "require_view",
    "require_mutate",
    # Validation
    "PublishValidationResult",
    "check_publish_readiness",
    "validate_for_publish",
    "validate_draft_data",
    # Store
    "PropertyRepository",
    "PropertyUnit",
    # Lifecycle
    "PropertyLifecycle",
    "GuardedTransition",
    "ALLOWED_TRANSITIONS",
    # Query
    "PropertyFilter",
    "PropertyPage",
    "PageInfo",
    "PropertyQueryEngine",
    # Counters
    "CounterSource",
    "CounterProjector",
    "EngagementStore",
    "InMemoryCounterStore",
    "FavoriteRecord",
    "MessageRecord",
    # Engagement
    "EngagementService",
    "FavoriteEntry",
    # Media
    "MediaUploader",
    "InMemoryMediaUploader",
    "CloudinaryUploader",
    "MediaRejected",
    "MediaUnavailable",
    # Images
    "ImageFile",
    "ImageService",
    "ImageUploadBatch",
    "UploadFailure",
    # Service
    "PropertyService",
    "build_property_service",
    "get_property_service",
    "reset_property_service",
]
