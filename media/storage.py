"""
media/storage.py -- Narrow object-storage interface for listing media.

Listings keep only the public URL of each stored object. The store must be able
to delete an object given that URL, which is all the cascade delete and the
"remove picture/video" routes need.

Backends (MEDIA_BACKEND):
  local       -- files under MEDIA_ROOT, served by the API at MEDIA_BASE_URL.
  cloudinary  -- Cloudinary upload API; the public_id is recovered from the
                 secure URL on delete.

Cleanup policy:
  delete_media_best_effort() never raises. Storage outages must not block
  record deletion; each failure is logged with its URL so it can be swept
  later.

Layer rule: no imports from api/, auth/, listings/, or notify/.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import re
import uuid
from collections.abc import Iterable
from pathlib import Path

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from core.config import Settings, get_settings

logger = logging.getLogger("estatedesk.media")

_SAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]+")
# .../<resource_type>/upload/[v<version>/]<public_id>.<ext>
_CLOUDINARY_URL = re.compile(r"/(image|video|raw)/upload/(?:v\d+/)?(.+?)(?:\.[A-Za-z0-9]+)?$")


class MediaStorageError(RuntimeError):
    pass


def _extension_for(content_type: str) -> str:
    ext = mimetypes.guess_extension((content_type or "").split(";")[0].strip()) or ""
    # mimetypes answers ".jpe" for image/jpeg on some platforms.
    return ".jpg" if ext in (".jpe", ".jpeg") else ext


def _clean_hint(key_hint: str) -> str:
    parts = [_SAFE_SEGMENT.sub("-", p).strip("-") for p in (key_hint or "").split("/")]
    return "/".join(p for p in parts if p) or "misc"


class MediaStore:
    """Interface implemented by every backend."""

    name = "base"

    def put(self, raw: bytes, content_type: str, key_hint: str) -> str:
        """Store the bytes and return a public URL for them."""
        raise NotImplementedError

    def delete(self, url: str) -> None:
        """Delete the object behind url. Raises MediaStorageError on failure."""
        raise NotImplementedError


class LocalMediaStore(MediaStore):
    """Files on local disk. Suitable for development and single-node installs."""

    name = "local"

    def __init__(self, root: str, base_url: str) -> None:
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, raw: bytes, content_type: str, key_hint: str) -> str:
        relative = Path(_clean_hint(key_hint)) / f"{uuid.uuid4().hex}{_extension_for(content_type)}"
        target = self.root / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(raw)
        except OSError as exc:
            raise MediaStorageError(f"Could not write {relative}: {exc}") from exc
        return f"{self.base_url}/{relative.as_posix()}"

    def delete(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            raise MediaStorageError(f"URL not managed by this store: {url}")
        try:
            target = (self.root / url[len(prefix) :]).resolve()
        except (OSError, ValueError) as exc:
            raise MediaStorageError(f"Unusable media path {url!r}: {exc}") from exc
        # Refuse anything that escapes MEDIA_ROOT (e.g. "../" in a stored URL).
        if self.root not in target.parents:
            raise MediaStorageError(f"URL outside media root: {url}")
        try:
            target.unlink(missing_ok=True)
        except (OSError, ValueError) as exc:
            raise MediaStorageError(f"Could not delete {url}: {exc}") from exc


class CloudinaryMediaStore(MediaStore):
    """Cloudinary upload API. Pictures go up as image, videos as video."""

    name = "cloudinary"

    def __init__(self, settings: Settings) -> None:
        if not (settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret):
            raise MediaStorageError("CLOUDINARY_CLOUD_NAME/API_KEY/API_SECRET not configured")
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )
        self.folder = settings.cloudinary_folder

    def put(self, raw: bytes, content_type: str, key_hint: str) -> str:
        resource_type = "video" if (content_type or "").startswith("video/") else "image"
        try:
            res = cloudinary.uploader.upload(
                io.BytesIO(raw),
                resource_type=resource_type,
                folder=f"{self.folder}/{_clean_hint(key_hint)}",
                public_id=uuid.uuid4().hex,
                overwrite=False,
            )
        except CloudinaryError as exc:
            raise MediaStorageError(f"Cloudinary upload failed: {exc}") from exc
        url = str(res.get("secure_url") or "").strip()
        if not url:
            raise MediaStorageError("Cloudinary upload returned no URL")
        return url

    def delete(self, url: str) -> None:
        match = _CLOUDINARY_URL.search(url or "")
        if match is None:
            raise MediaStorageError(f"Not a Cloudinary upload URL: {url}")
        resource_type, public_id = match.groups()
        try:
            res = cloudinary.uploader.destroy(public_id, resource_type=resource_type, invalidate=True)
        except CloudinaryError as exc:
            raise MediaStorageError(f"Cloudinary delete failed: {exc}") from exc
        if res.get("result") not in ("ok", "not found"):
            raise MediaStorageError(f"Cloudinary delete failed: {res}")


def build_media_store(settings: Settings | None = None) -> MediaStore:
    """Instantiate the backend named by MEDIA_BACKEND."""
    settings = settings or get_settings()
    backend = (settings.media_backend or "local").strip().lower()
    if backend == "cloudinary":
        return CloudinaryMediaStore(settings)
    if backend == "local":
        return LocalMediaStore(settings.media_root, settings.media_base_url)
    raise MediaStorageError(f"Unknown MEDIA_BACKEND: {backend!r}")


def delete_media_best_effort(store: MediaStore, urls: Iterable[str]) -> int:
    """Delete each URL, logging failures. Returns the number actually deleted."""
    deleted = 0
    for url in urls:
        if not url:
            continue
        try:
            store.delete(url)
            deleted += 1
        except MediaStorageError as exc:
            logger.warning("Media cleanup failed url=%s: %s", url, exc)
        except Exception:
            logger.warning("Media cleanup raised unexpectedly url=%r", url, exc_info=True)
    return deleted
