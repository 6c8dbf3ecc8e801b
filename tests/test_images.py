"""
Tests for Property Images

Tests cover:
- Local file checks (format, size, emptiness)
- Batch limits
- Partial and zero-success batches
- Bounded upload concurrency
- Image soft deletion
- Cloudinary uploader error mapping
"""

import threading
import time

import pytest
import requests

from core.errors import Forbidden, NotFound, StoreUnavailable, ValidationFailed
from core.identity import Caller, Role
from core.properties import (
    CloudinaryUploader,
    ImageFile,
    InMemoryMediaUploader,
    MAX_IMAGE_SIZE_BYTES,
    MediaRejected,
    MediaUnavailable,
    PropertyRepository,
    PropertyService,
)
from core.properties.images import check_image_file
from core.properties.media import UploadedMedia


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def owner():
    return Caller(user_id="owner-1", role=Role.OWNER)


@pytest.fixture
def other_owner():
    return Caller(user_id="owner-2", role=Role.OWNER)


@pytest.fixture
def admin():
    return Caller(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def uploader():
    return InMemoryMediaUploader()


@pytest.fixture
def service(uploader):
    return PropertyService(PropertyRepository(), uploader=uploader)


@pytest.fixture
def draft(service, owner):
    return service.create_draft({"title": "Cozy Flat"}, owner)


def jpeg(name="photo.jpg", size=16):
    return ImageFile(filename=name, content=b"\xff" * size, content_type="image/jpeg")


# =============================================================================
# File Checks
# =============================================================================


class TestCheckImageFile:
    """Tests for check_image_file."""

    def test_accepts_jpeg(self):
        assert check_image_file(jpeg()) is None

    @pytest.mark.parametrize("content_type", ["image/png", "image/webp", "IMAGE/JPEG"])
    def test_accepts_allowed_types(self, content_type):
        assert check_image_file(ImageFile("x", b"data", content_type)) is None

    def test_extension_used_without_content_type(self):
        assert check_image_file(ImageFile("photo.PNG", b"data")) is None
        assert check_image_file(ImageFile("photo.gif", b"data")) is not None

    def test_rejects_other_types(self):
        reason = check_image_file(ImageFile("doc.pdf", b"data", "application/pdf"))
        assert reason == "Only JPEG, PNG, or WEBP images are allowed"

    def test_rejects_empty(self):
        assert check_image_file(ImageFile("a.jpg", b"", "image/jpeg")) == "Invalid or empty file"

    def test_rejects_oversized(self):
        big = ImageFile("big.jpg", b"\x00" * (MAX_IMAGE_SIZE_BYTES + 1), "image/jpeg")
        assert check_image_file(big) == "File too large. Maximum size: 5MB"

    def test_exact_limit_allowed(self):
        edge = ImageFile("edge.jpg", b"\x00" * MAX_IMAGE_SIZE_BYTES, "image/jpeg")
        assert check_image_file(edge) is None


# =============================================================================
# Upload
# =============================================================================


class TestUploadImages:
    """Tests for batch uploads."""

    def test_upload_records_images(self, service, uploader, owner, draft):
        batch = service.upload_images(draft.id, [jpeg("a.jpg"), jpeg("b.jpg")], owner)
        assert len(batch.uploaded) == 2
        assert batch.failures == []
        assert not batch.is_partial
        assert uploader.object_count == 2

        prop = service.get_property(draft.id, owner)
        assert {img.id for img in prop.images} == {img.id for img in batch.uploaded}
        assert all(img.url.startswith("memory://media/properties/") for img in prop.images)

    def test_to_dict_hides_storage_keys(self, service, owner, draft):
        body = service.upload_images(draft.id, [jpeg()], owner).to_dict()
        assert body["message"] == "1 images uploaded successfully"
        assert "external_key" not in body["images"][0]

    def test_no_files(self, service, owner, draft):
        with pytest.raises(ValidationFailed) as exc_info:
            service.upload_images(draft.id, [], owner)
        assert exc_info.value.message == "No files provided"

    def test_more_than_ten_files(self, service, uploader, owner, draft):
        files = [jpeg(f"{i}.jpg") for i in range(11)]
        with pytest.raises(ValidationFailed):
            service.upload_images(draft.id, files, owner)
        assert uploader.object_count == 0

    def test_per_property_cap(self, service, owner, draft):
        service.upload_images(draft.id, [jpeg(f"{i}.jpg") for i in range(8)], owner)
        with pytest.raises(ValidationFailed):
            service.upload_images(draft.id, [jpeg(f"x{i}.jpg") for i in range(3)], owner)

    def test_partial_success(self, service, uploader, owner, draft):
        uploader.fail_on["bad.jpg"] = MediaRejected("corrupt image")
        files = [jpeg("good.jpg"), jpeg("bad.jpg"), ImageFile("doc.txt", b"hi", "text/plain")]
        batch = service.upload_images(draft.id, files, owner)

        assert batch.is_partial
        assert len(batch.uploaded) == 1
        assert {f.filename for f in batch.failures} == {"bad.jpg", "doc.txt"}
        assert len(service.get_property(draft.id, owner).images) == 1

    def test_zero_success_is_validation_failure(self, service, uploader, owner, draft):
        uploader.fail_on["bad.jpg"] = MediaRejected("corrupt image")
        with pytest.raises(ValidationFailed) as exc_info:
            service.upload_images(draft.id, [jpeg("bad.jpg")], owner)
        assert "bad.jpg" in exc_info.value.message
        assert service.get_property(draft.id, owner).images == ()

    def test_zero_success_all_transient_is_unavailable(self, service, uploader, owner, draft):
        uploader.fail_on["a.jpg"] = MediaUnavailable("host down")
        uploader.fail_on["b.jpg"] = MediaUnavailable("host down")
        with pytest.raises(StoreUnavailable):
            service.upload_images(draft.id, [jpeg("a.jpg"), jpeg("b.jpg")], owner)

    def test_mixed_failures_not_retryable(self, service, uploader, owner, draft):
        uploader.fail_on["a.jpg"] = MediaUnavailable("host down")
        with pytest.raises(ValidationFailed):
            service.upload_images(draft.id, [jpeg("a.jpg"), jpeg("", size=0)], owner)

    def test_other_owner_hidden_draft(self, service, uploader, other_owner, draft):
        with pytest.raises(NotFound):
            service.upload_images(draft.id, [jpeg()], other_owner)
        assert uploader.object_count == 0

    def test_other_owner_published_forbidden(self, service, owner, other_owner):
        prop = service.create_draft(
            {"title": "T", "description": "D", "location": "L", "price": 1}, owner
        )
        service.upload_images(prop.id, [jpeg()], owner)
        service.publish(prop.id, owner)
        with pytest.raises(Forbidden):
            service.upload_images(prop.id, [jpeg()], other_owner)

    def test_admin_uploads_to_any_property(self, service, admin, draft):
        assert len(service.upload_images(draft.id, [jpeg()], admin).uploaded) == 1

    def test_deleted_property(self, service, owner, draft):
        service.soft_delete(draft.id, owner)
        with pytest.raises(NotFound):
            service.upload_images(draft.id, [jpeg()], owner)


class SlowUploader(InMemoryMediaUploader):
    """Tracks how many uploads are in flight at once."""

    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.peak = 0
        self._counter_lock = threading.Lock()

    def upload(self, content, filename, folder):
        with self._counter_lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        time.sleep(0.02)
        try:
            return super().upload(content, filename, folder)
        finally:
            with self._counter_lock:
                self.in_flight -= 1


class TestUploadConcurrency:
    """Tests for the in-flight bound."""

    @pytest.mark.parametrize("limit", [1, 3])
    def test_in_flight_bounded(self, owner, limit):
        uploader = SlowUploader()
        service = PropertyService(
            PropertyRepository(),
            uploader=uploader,
            max_upload_concurrency=limit,
        )
        draft = service.create_draft({}, owner)
        batch = service.upload_images(draft.id, [jpeg(f"{i}.jpg") for i in range(8)], owner)
        assert len(batch.uploaded) == 8
        assert 1 <= uploader.peak <= limit

    def test_each_upload_recorded_once(self, owner):
        service = PropertyService(PropertyRepository(), uploader=SlowUploader(), max_upload_concurrency=4)
        draft = service.create_draft({}, owner)
        files = [jpeg(f"{i}.jpg") for i in range(5)]
        batch = service.upload_images(draft.id, files, owner)
        keys = [img.external_key for img in batch.uploaded]
        assert len(set(keys)) == 5


# =============================================================================
# Delete
# =============================================================================


class TestDeleteImage:
    """Tests for image soft deletion."""

    def test_delete_image(self, service, uploader, owner, draft):
        image = service.upload_images(draft.id, [jpeg()], owner).uploaded[0]
        deleted = service.delete_image(image.id, owner)
        assert deleted.deleted_at is not None
        assert not uploader.exists(image.external_key)
        assert service.get_property(draft.id, owner).images == ()

        stored = service.repository.get(draft.id)
        assert stored.find_image(image.id).deleted_at is not None

    def test_delete_twice(self, service, owner, draft):
        image = service.upload_images(draft.id, [jpeg()], owner).uploaded[0]
        service.delete_image(image.id, owner)
        with pytest.raises(NotFound):
            service.delete_image(image.id, owner)

    def test_unknown_image(self, service, owner):
        with pytest.raises(NotFound):
            service.delete_image("missing", owner)

    def test_other_owner(self, service, owner, other_owner, draft):
        image = service.upload_images(draft.id, [jpeg()], owner).uploaded[0]
        with pytest.raises(NotFound):
            service.delete_image(image.id, other_owner)

    def test_host_unavailable(self, service, uploader, owner, draft):
        image = service.upload_images(draft.id, [jpeg()], owner).uploaded[0]
        uploader.fail_deletes = MediaUnavailable("host down")
        with pytest.raises(StoreUnavailable):
            service.delete_image(image.id, owner)
        assert len(service.get_property(draft.id, owner).images) == 1

    def test_deleted_slot_frees_capacity(self, service, owner, draft):
        batch = service.upload_images(draft.id, [jpeg(f"{i}.jpg") for i in range(10)], owner)
        service.delete_image(batch.uploaded[0].id, owner)
        assert len(service.upload_images(draft.id, [jpeg("new.jpg")], owner).uploaded) == 1


# =============================================================================
# Cloudinary
# =============================================================================


class FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, data=None, files=None, timeout=None):
        self.calls.append({"url": url, "data": data, "files": files, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def cloudinary(session):
    return CloudinaryUploader("demo", "key", "secret", timeout=5, session=session)


class TestCloudinaryUploader:
    """Tests for the Cloudinary media host."""

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            CloudinaryUploader("", "key", "secret")

    def test_upload_success(self):
        session = FakeSession(
            FakeResponse(200, {"secure_url": "https://cdn/x.jpg", "public_id": "properties/x"})
        )
        media = cloudinary(session).upload(b"data", "x.jpg", "properties")
        assert media == UploadedMedia(url="https://cdn/x.jpg", external_key="properties/x")

        call = session.calls[0]
        assert call["url"].endswith("/demo/image/upload")
        assert call["timeout"] == 5
        assert call["data"]["folder"] == "properties"
        assert call["data"]["api_key"] == "key"
        assert "signature" in call["data"]

    def test_timeout_is_transient(self):
        session = FakeSession(error=requests.Timeout("slow"))
        with pytest.raises(MediaUnavailable):
            cloudinary(session).upload(b"data", "x.jpg", "properties")

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    def test_server_errors_transient(self, status_code):
        with pytest.raises(MediaUnavailable):
            cloudinary(FakeSession(FakeResponse(status_code))).upload(b"d", "x.jpg", "f")

    def test_client_error_rejected(self):
        session = FakeSession(FakeResponse(400, {"error": {"message": "Invalid image file"}}))
        with pytest.raises(MediaRejected) as exc_info:
            cloudinary(session).upload(b"d", "x.jpg", "f")
        assert "Invalid image file" in str(exc_info.value)

    @pytest.mark.parametrize("result", ["ok", "not found"])
    def test_delete_accepts(self, result):
        cloudinary(FakeSession(FakeResponse(200, {"result": result}))).delete("properties/x")

    def test_delete_refused(self):
        with pytest.raises(MediaRejected):
            cloudinary(FakeSession(FakeResponse(200, {"result": "error"}))).delete("properties/x")
