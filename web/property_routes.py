"""
Property Routes - Web API for the Property Lifecycle Engine

Routes:
- GET    /properties                    - List (role-scoped, anonymous allowed)
- GET    /properties/{id}               - Detail (anonymous allowed)
- POST   /properties                    - Create draft (owner, admin)
- PATCH  /properties/{id}               - Update content
- POST   /properties/{id}/publish       - draft -> published
- POST   /properties/{id}/archive       - draft|published -> archived
- DELETE /properties/{id}               - Soft delete
- POST   /properties/{id}/restore       - Undo soft delete (admin)
- POST   /properties/{id}/images        - Upload images (multipart)
- DELETE /images/{image_id}             - Soft delete an image
- POST   /properties/{id}/favorite      - Add to favorites (published only)
- DELETE /properties/{id}/favorite      - Remove from favorites
- POST   /properties/{id}/messages      - Message the owner
- GET    /favorites                     - Caller's favorites
- GET    /messages/inbox                - Messages received
- GET    /messages/sent                 - Messages sent

Engine errors propagate to the exception handler in web.app, which maps
each kind to its status code.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from core.errors import ValidationFailed
from core.identity import Caller
from core.properties import (
    ImageFile,
    PropertyFilter,
    PropertyService,
    PropertyStatus,
    get_property_service,
)
from web.auth import optional_caller, require_caller


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/properties", tags=["properties"])
image_router = APIRouter(prefix="/images", tags=["images"])
engagement_router = APIRouter(tags=["engagement"])


def get_service() -> PropertyService:
    return get_property_service()


# =============================================================================
# Request Models
# =============================================================================


class PropertyContent(BaseModel):
    """
    Listing content.

    Extra keys are passed through so the engine can reject protected fields
    such as status or owner_id with a specific message.
    """

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    price: Optional[Decimal] = None


class MessageBody(BaseModel):
    content: str


def _parse_status(value: Optional[str]) -> Optional[PropertyStatus]:
    if value is None or value == "":
        return None
    try:
        return PropertyStatus(value.lower())
    except ValueError:
        allowed = ", ".join(s.value for s in PropertyStatus)
        raise ValidationFailed(f"Invalid status: {value}. Allowed: {allowed}")


def _supplied(body: PropertyContent) -> dict:
    """Fields the client actually sent, unknown keys included."""
    return dict(body.model_dump(exclude_unset=True), **(body.model_extra or {}))


# =============================================================================
# Reads
# =============================================================================


@router.get("")
def list_properties(
    status: Optional[str] = Query(None, description="draft, published or archived"),
    min_price: Optional[Decimal] = Query(None),
    max_price: Optional[Decimal] = Query(None),
    location: Optional[str] = Query(None, description="Case-insensitive substring"),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    only_mine: bool = Query(False),
    include_deleted: bool = Query(False),
    caller: Optional[Caller] = Depends(optional_caller),
    service: PropertyService = Depends(get_service),
):
    """List properties visible to the caller."""
    flt = PropertyFilter(
        status=_parse_status(status),
        min_price=min_price,
        max_price=max_price,
        location=location,
        page=page,
        limit=limit,
        only_mine=only_mine,
        include_deleted=include_deleted,
    )
    return JSONResponse(service.list_properties(flt, caller).to_dict())


@router.get("/{property_id}")
def get_property(
    property_id: str,
    include_deleted: bool = Query(False),
    caller: Optional[Caller] = Depends(optional_caller),
    service: PropertyService = Depends(get_service),
):
    """Published properties for everyone; drafts and archived for owner or admin."""
    return JSONResponse(service.get_property(property_id, caller, include_deleted).to_dict())


# =============================================================================
# Writes
# =============================================================================


@router.post("", status_code=201)
def create_property(
    body: PropertyContent,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    """Create a new draft owned by the caller."""
    projection = service.create_draft(_supplied(body), caller)
    return JSONResponse(projection.to_dict(), status_code=201)


@router.patch("/{property_id}")
def update_property(
    property_id: str,
    body: PropertyContent,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    """Update listing content."""
    projection = service.update_draft(property_id, _supplied(body), caller)
    return JSONResponse(projection.to_dict())


@router.post("/{property_id}/publish")
def publish_property(
    property_id: str,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    return JSONResponse(service.publish(property_id, caller).to_dict())


@router.post("/{property_id}/archive")
def archive_property(
    property_id: str,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    return JSONResponse(service.archive(property_id, caller).to_dict())


@router.delete("/{property_id}")
def delete_property(
    property_id: str,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    service.soft_delete(property_id, caller)
    return JSONResponse({"message": "Property soft deleted successfully"})


@router.post("/{property_id}/restore")
def restore_property(
    property_id: str,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    return JSONResponse(service.restore(property_id, caller).to_dict())


# =============================================================================
# Images
# =============================================================================


@router.post("/{property_id}/images", status_code=201)
async def upload_images(
    property_id: str,
    files: list[UploadFile] = File(...),
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    """Upload up to 10 images. Partial success is reported per file."""
    images = []
    for upload in files:
        content = await upload.read()
        images.append(
            ImageFile(
                filename=upload.filename or "image",
                content=content,
                content_type=upload.content_type,
            )
        )

    batch = await run_in_threadpool(service.upload_images, property_id, images, caller)
    return JSONResponse(batch.to_dict(), status_code=201)


@image_router.delete("/{image_id}")
def delete_image(
    image_id: str,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    service.delete_image(image_id, caller)
    return JSONResponse({"message": "Image soft deleted successfully"})


# =============================================================================
# Favorites and Messages
# =============================================================================


@router.post("/{property_id}/favorite", status_code=201)
def favorite_property(
    property_id: str,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    entry = service.favorite(property_id, caller)
    return JSONResponse(
        {"message": "Added to favorites", "favorite": entry.to_dict()},
        status_code=201,
    )


@router.delete("/{property_id}/favorite")
def unfavorite_property(
    property_id: str,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    service.unfavorite(property_id, caller)
    return JSONResponse({"message": "Removed from favorites"})


@router.post("/{property_id}/messages", status_code=201)
def message_owner(
    property_id: str,
    body: MessageBody,
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    """Send a message about a property to its owner."""
    message = service.send_message(property_id, body.content, caller)
    return JSONResponse({"message": message.to_dict()}, status_code=201)


@engagement_router.get("/favorites")
def list_favorites(
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    entries = service.list_favorites(caller)
    return JSONResponse({"data": [e.to_dict() for e in entries], "count": len(entries)})


@engagement_router.get("/messages/inbox")
def inbox(
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    return JSONResponse({"messages": [m.to_dict() for m in service.inbox(caller)]})


@engagement_router.get("/messages/sent")
def sent_messages(
    caller: Caller = Depends(require_caller),
    service: PropertyService = Depends(get_service),
):
    return JSONResponse({"messages": [m.to_dict() for m in service.sent_messages(caller)]})
