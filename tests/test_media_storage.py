"""Unit tests for media/storage.py.

Covers:
- LocalMediaStore writes under MEDIA_ROOT and returns a base-URL path
- delete() removes the file and refuses URLs outside the store
- build_media_store() picks the backend by name
- CloudinaryMediaStore delete() derives public id and resource type from the URL
- delete_media_best_effort() keeps going past failures of any kind
"""

from unittest.mock import patch

import pytest

from core.config import Settings
from media.storage import (
    CloudinaryMediaStore,
    LocalMediaStore,
    MediaStorageError,
    MediaStore,
    build_media_store,
    delete_media_best_effort,
)


@pytest.fixture
def local(tmp_path):
    return LocalMediaStore(str(tmp_path / "media"), "/media/")


def test_local_put_and_delete(local, tmp_path):
    url = local.put(b"\x89PNG...", "image/png", "listings/7/pictures")
    assert url.startswith("/media/listings/7/pictures/")
    assert url.endswith(".png")
    stored = tmp_path / "media" / url[len("/media/") :]
    assert stored.read_bytes() == b"\x89PNG..."

    local.delete(url)
    assert not stored.exists()


def test_local_key_hint_is_sanitized(local):
    url = local.put(b"x", "video/mp4", "../../etc/<bad>")
    assert ".." not in url
    assert "<" not in url


def test_local_delete_rejects_foreign_url(local):
    with pytest.raises(MediaStorageError):
        local.delete("https://elsewhere.example.com/x.png")


def test_local_delete_rejects_traversal(local):
    with pytest.raises(MediaStorageError):
        local.delete("/media/../../outside.txt")


def _settings(**overrides) -> Settings:
    values = {"debug": True, "secret_key": "s" * 40}
    values.update(overrides)
    return Settings(**values)


def test_build_media_store_local(tmp_path):
    store = build_media_store(_settings(media_backend="local", media_root=str(tmp_path)))
    assert store.name == "local"


def test_build_media_store_unknown():
    with pytest.raises(MediaStorageError):
        build_media_store(_settings(media_backend="ftp"))


def test_cloudinary_requires_credentials():
    with pytest.raises(MediaStorageError):
        CloudinaryMediaStore(_settings(media_backend="cloudinary"))


def test_cloudinary_delete_parses_url():
    store = CloudinaryMediaStore(
        _settings(cloudinary_cloud_name="demo", cloudinary_api_key="k", cloudinary_api_secret="s")
    )
    url = "https://res.cloudinary.com/demo/video/upload/v1712345/estatedesk/listings/3/videos/abc123.mp4"
    with patch("media.storage.cloudinary.uploader.destroy", return_value={"result": "ok"}) as destroy:
        store.delete(url)
    destroy.assert_called_once_with("estatedesk/listings/3/videos/abc123", resource_type="video", invalidate=True)


def test_cloudinary_delete_rejects_other_urls():
    store = CloudinaryMediaStore(
        _settings(cloudinary_cloud_name="demo", cloudinary_api_key="k", cloudinary_api_secret="s")
    )
    with pytest.raises(MediaStorageError):
        store.delete("https://example.com/picture.png")


class _FlakyStore(MediaStore):
    def __init__(self, bad: set[str]) -> None:
        self.bad = bad
        self.deleted: list[str] = []

    def delete(self, url: str) -> None:
        if url in self.bad:
            raise MediaStorageError("nope")
        self.deleted.append(url)


def test_best_effort_continues_after_failure():
    store = _FlakyStore(bad={"b"})
    assert delete_media_best_effort(store, ["a", "b", "", "c"]) == 2
    assert store.deleted == ["a", "c"]


def test_local_delete_rejects_unusable_path(local):
    with pytest.raises(MediaStorageError):
        local.delete("/media/listings/1/pictures/a\x00b.jpg")


class _BrokenStore(MediaStore):
    def __init__(self) -> None:
        self.deleted: list[str] = []

    def delete(self, url: str) -> None:
        if url == "boom":
            raise ValueError("backend bug")
        self.deleted.append(url)


def test_best_effort_survives_unexpected_errors():
    store = _BrokenStore()
    assert delete_media_best_effort(store, ["boom", "ok"]) == 1
    assert store.deleted == ["ok"]
