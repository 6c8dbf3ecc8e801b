"""
Media Host - Upload and Delete Property Images

Image binaries live on an external media host. The engine only records the
returned URL and storage key.

Failures are classified:
- MediaRejected     permanent (bad format, refused by the host)
- MediaUnavailable  transient (timeouts, connection errors, 5xx, 429)
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Final, Optional
from uuid import uuid4

import requests


logger = logging.getLogger(__name__)


CLOUDINARY_API_BASE: Final[str] = "https://api.cloudinary.com/v1_1"


# =============================================================================
# Results and Errors
# =============================================================================


@dataclass(frozen=True)
class UploadedMedia:
    url: str
    external_key: str


class MediaUploadError(Exception):
    """Base class for media host failures."""

    transient: bool = False


class MediaRejected(MediaUploadError):
    """The host refused the file. Retrying will not help."""

    transient = False


class MediaUnavailable(MediaUploadError):
    """The host could not be reached or is overloaded."""

    transient = True


# =============================================================================
# Uploader Interface
# =============================================================================


class MediaUploader(ABC):
    """Contract toward the external media host."""

    @abstractmethod
    def upload(self, content: bytes, filename: str, folder: str) -> UploadedMedia:
        ...

    @abstractmethod
    def delete(self, external_key: str) -> None:
        ...


# =============================================================================
# In-Memory Host
# =============================================================================


class InMemoryMediaUploader(MediaUploader):
    """
    Media host kept in process memory.

    Used for local development and tests. Failures can be scripted per
    filename through fail_on.
    """

    def __init__(self, base_url: str = "memory://media"):
        self._base_url = base_url.rstrip("/")
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()
        self.fail_on: dict[str, MediaUploadError] = {}
        self.fail_deletes: Optional[MediaUploadError] = None

    def upload(self, content: bytes, filename: str, folder: str) -> UploadedMedia:
        error = self.fail_on.get(filename)
        if error is not None:
            raise error
        key = f"{folder}/{uuid4().hex}"
        with self._lock:
            self._objects[key] = content
        return UploadedMedia(url=f"{self._base_url}/{key}", external_key=key)

    def delete(self, external_key: str) -> None:
        if self.fail_deletes is not None:
            raise self.fail_deletes
        with self._lock:
            self._objects.pop(external_key, None)

    def exists(self, external_key: str) -> bool:
        with self._lock:
            return external_key in self._objects

    @property
    def object_count(self) -> int:
        with self._lock:
            return len(self._objects)


# =============================================================================
# Cloudinary Host
# =============================================================================


class CloudinaryUploader(MediaUploader):
    """
    Media host backed by Cloudinary's REST upload API.

    Requests are signed with the API secret; every call carries a timeout.
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not cloud_name or not api_key or not api_secret:
            raise ValueError("Cloudinary credentials missing")
        self._cloud_name = cloud_name
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = timeout
        self._session = session or requests.Session()

    def _endpoint(self, action: str) -> str:
        return f"{CLOUDINARY_API_BASE}/{self._cloud_name}/image/{action}"

    def _signed(self, params: dict[str, str]) -> dict[str, str]:
        params = dict(params, timestamp=str(int(time.time())))
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        signature = hashlib.sha1((to_sign + self._api_secret).encode()).hexdigest()
        return dict(params, api_key=self._api_key, signature=signature)

    def _post(self, action: str, data: dict[str, str], files: Optional[dict] = None) -> dict:
        try:
            response = self._session.post(
                self._endpoint(action),
                data=data,
                files=files,
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise MediaUnavailable(f"Media host timed out: {e}")
        except requests.RequestException as e:
            raise MediaUnavailable(f"Media host unreachable: {e}")

        if response.status_code == 429 or response.status_code >= 500:
            raise MediaUnavailable(f"Media host returned {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("error", {}).get("message") or f"HTTP {response.status_code}"
            raise MediaRejected(message)
        return body

    def upload(self, content: bytes, filename: str, folder: str) -> UploadedMedia:
        body = self._post(
            "upload",
            self._signed({"folder": folder}),
            files={"file": (filename, content)},
        )
        if "secure_url" not in body or "public_id" not in body:
            raise MediaRejected("Upload failed - no result")
        logger.info("Uploaded %s as %s", filename, body["public_id"])
        return UploadedMedia(url=body["secure_url"], external_key=body["public_id"])

    def delete(self, external_key: str) -> None:
        if not external_key:
            raise MediaRejected("Storage key required")
        body = self._post("destroy", self._signed({"public_id": external_key}))
        if body.get("result") not in ("ok", "not found"):
            raise MediaRejected(f"Delete failed for {external_key}: {body.get('result')}")
        logger.info("Deleted %s", external_key)
