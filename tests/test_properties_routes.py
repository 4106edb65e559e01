"""
tests/test_properties_routes.py -- Integration tests for /api/v1/property.

Coverage:
  - Create requires auth; 201 with owner attached
  - Public search: filters, pagination block, inactive listings hidden
  - Detail: inactive listing 404 for the public, visible to owner and admin
  - Ownership: non-owner update/delete is 403 and leaves the listing unchanged;
    admin may modify any listing
  - Soft delete keeps the row and shows it in my-posts
  - Media: upload, per-kind limits, size cap, content type check, storage
    failure rolls back the batch, delete only for URLs on the listing,
    media lists cannot be written through the create/update body
  - Public stats

Fixtures used (from conftest.py):
  - api_env: module-scoped TestClient + stores + RecordingMediaStore
"""

from __future__ import annotations

import pytest
from conftest import ApiEnv, admin_token, auth_headers, signup_verified

from core.config import get_settings

POSTS = "/api/v1/property/posts"


@pytest.fixture(scope="module")
def owner(api_env: ApiEnv) -> tuple[int, dict]:
    account_id, token = signup_verified(api_env, "owner@example.com", "9811100001")
    return account_id, auth_headers(token)


@pytest.fixture(scope="module")
def stranger(api_env: ApiEnv) -> tuple[int, dict]:
    account_id, token = signup_verified(api_env, "stranger@example.com", "9811100002")
    return account_id, auth_headers(token)


@pytest.fixture(scope="module")
def admin(api_env: ApiEnv) -> dict:
    return auth_headers(admin_token(api_env.client))


def _create(api_env: ApiEnv, headers: dict, **overrides) -> dict:
    body = {"propertyType": "owner", "city": "Pune", "price": 20000, "propertyCategory": "rental", "bhk": 2}
    body.update(overrides)
    resp = api_env.client.post(POSTS, json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["propertyPost"]


class TestCreateAndRead:
    def test_create_requires_auth(self, api_env: ApiEnv) -> None:
        resp = api_env.client.post(POSTS, json={"propertyType": "owner", "city": "Pune"})
        assert resp.status_code == 401

    def test_create_attaches_owner(self, api_env: ApiEnv, owner) -> None:
        owner_id, headers = owner
        post = _create(api_env, headers, amenities=["gym"], facing="north-east")
        assert post["ownerId"] == owner_id
        assert post["owner"]["email"] == "owner@example.com"
        assert post["amenities"] == ["gym"]
        assert post["facing"] == "north-east"
        assert post["isActive"] is True
        assert post["propertyStatus"] == "available"

    def test_create_rejects_bad_enum(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        resp = api_env.client.post(POSTS, json={"propertyType": "castle", "city": "Pune"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"

    def test_create_rejects_negative_price(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        resp = api_env.client.post(POSTS, json={"propertyType": "owner", "city": "Pune", "price": -1}, headers=headers)
        assert resp.status_code == 400

    def test_public_search_with_filters(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        _create(api_env, headers, city="Nashik", bhk=4, price=50000, isFurnished=True)
        _create(api_env, headers, city="Nashik", bhk=1, price=8000)

        resp = api_env.client.get(POSTS, params={"city": "nashik", "minPrice": 10000})
        assert resp.status_code == 200
        data = resp.json()
        assert [p["bhk"] for p in data["propertyPosts"]] == [4]
        assert data["pagination"]["total"] == 1
        assert data["pagination"]["currentPage"] == 1

        legacy = api_env.client.get("/api/v1/property/filter", params={"city": "nashik", "isFurnished": "true"})
        assert legacy.json()["pagination"]["total"] == 1

    def test_pagination_limit(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        for _ in range(3):
            _create(api_env, headers, city="Satara")
        resp = api_env.client.get(POSTS, params={"city": "Satara", "limit": 2, "page": 2})
        data = resp.json()
        assert len(data["propertyPosts"]) == 1
        assert data["pagination"]["totalPages"] == 2
        assert data["pagination"]["hasPrevPage"] is True
        assert data["pagination"]["hasNextPage"] is False

    def test_invalid_page_is_400(self, api_env: ApiEnv) -> None:
        assert api_env.client.get(POSTS, params={"page": 0}).status_code == 400

    def test_detail_not_found(self, api_env: ApiEnv) -> None:
        resp = api_env.client.get(f"{POSTS}/999999")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestOwnership:
    def test_stranger_cannot_update(self, api_env: ApiEnv, owner, stranger) -> None:
        _owner_id, owner_headers = owner
        _stranger_id, stranger_headers = stranger
        post = _create(api_env, owner_headers, price=1000)

        resp = api_env.client.put(f"{POSTS}/{post['id']}", json={"price": 1}, headers=stranger_headers)
        assert resp.status_code == 403
        assert api_env.listings.get_listing(post["id"]).price == 1000

    def test_stranger_cannot_delete(self, api_env: ApiEnv, owner, stranger) -> None:
        _owner_id, owner_headers = owner
        _stranger_id, stranger_headers = stranger
        post = _create(api_env, owner_headers)
        resp = api_env.client.delete(f"{POSTS}/{post['id']}", headers=stranger_headers)
        assert resp.status_code == 403
        assert api_env.listings.get_listing(post["id"]).is_active is True

    def test_owner_partial_update(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers, locality="Kothrud")
        resp = api_env.client.put(
            f"{POSTS}/{post['id']}",
            json={"price": 30000, "propertyStatus": "rented", "city": None},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        updated = resp.json()["propertyPost"]
        assert updated["price"] == 30000
        assert updated["propertyStatus"] == "rented"
        assert updated["locality"] == "Kothrud"
        assert updated["city"] == "Pune"

    def test_admin_can_update_any_listing(self, api_env: ApiEnv, owner, admin) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        resp = api_env.client.put(f"{POSTS}/{post['id']}", json={"landmark": "Near park"}, headers=admin)
        assert resp.status_code == 200
        assert resp.json()["propertyPost"]["landmark"] == "Near park"


class TestSoftDelete:
    def test_soft_delete_hides_from_public(self, api_env: ApiEnv, owner, stranger, admin) -> None:
        _owner_id, headers = owner
        _stranger_id, stranger_headers = stranger
        post = _create(api_env, headers, city="Kolhapur")

        resp = api_env.client.delete(f"{POSTS}/{post['id']}", headers=headers)
        assert resp.status_code == 200
        assert api_env.listings.get_listing(post["id"]).is_active is False

        assert api_env.client.get(POSTS, params={"city": "Kolhapur"}).json()["pagination"]["total"] == 0
        assert api_env.client.get(f"{POSTS}/{post['id']}").status_code == 404
        assert api_env.client.get(f"{POSTS}/{post['id']}", headers=stranger_headers).status_code == 404
        assert api_env.client.get(f"{POSTS}/{post['id']}", headers=headers).status_code == 200
        assert api_env.client.get(f"{POSTS}/{post['id']}", headers=admin).status_code == 200

        mine = api_env.client.get(f"{POSTS}/user/my-posts", headers=headers).json()["propertyPosts"]
        assert post["id"] in [p["id"] for p in mine]

    def test_my_posts_requires_auth(self, api_env: ApiEnv) -> None:
        assert api_env.client.get(f"{POSTS}/user/my-posts").status_code == 401


def _pictures(n: int, size: int = 16, content_type: str = "image/jpeg") -> list:
    return [("pictures", (f"p{i}.jpg", b"x" * size, content_type)) for i in range(n)]


class TestMedia:
    def test_upload_and_delete_picture(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        url = f"/api/v1/property/upload/pictures/{post['id']}"

        resp = api_env.client.post(url, files=_pictures(2), headers=headers)
        assert resp.status_code == 200, resp.text
        urls = resp.json()["urls"]
        assert len(urls) == 2
        assert api_env.listings.get_listing(post["id"]).property_pics == urls

        resp = api_env.client.request(
            "DELETE",
            f"/api/v1/property/pictures/{post['id']}",
            json={"pictureUrl": urls[0]},
            headers=headers,
        )
        assert resp.status_code == 200
        assert api_env.listings.get_listing(post["id"]).property_pics == [urls[1]]
        assert urls[0] in api_env.media.deleted

    def test_delete_unknown_picture_is_404(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        resp = api_env.client.request(
            "DELETE",
            f"/api/v1/property/pictures/{post['id']}",
            json={"pictureUrl": "https://media.test/someone-else/1"},
            headers=headers,
        )
        assert resp.status_code == 404
        assert "https://media.test/someone-else/1" not in api_env.media.deleted

    def test_media_urls_cannot_be_set_through_body(self, api_env: ApiEnv, owner, stranger) -> None:
        _owner_id, headers = owner
        _stranger_id, stranger_headers = stranger
        theirs = _create(api_env, headers)
        victim_url = api_env.client.post(
            f"/api/v1/property/upload/pictures/{theirs['id']}", files=_pictures(1), headers=headers
        ).json()["urls"][0]

        mine = _create(api_env, stranger_headers, propertyPics=[victim_url], propertyVideos=[victim_url])
        assert mine["propertyPics"] == []
        assert mine["propertyVideos"] == []
        resp = api_env.client.put(f"{POSTS}/{mine['id']}", json={"propertyPics": [victim_url]}, headers=stranger_headers)
        assert resp.status_code == 200
        assert resp.json()["propertyPost"]["propertyPics"] == []

        resp = api_env.client.request(
            "DELETE",
            f"/api/v1/property/pictures/{mine['id']}",
            json={"pictureUrl": victim_url},
            headers=stranger_headers,
        )
        assert resp.status_code == 404
        assert victim_url not in api_env.media.deleted
        assert api_env.listings.get_listing(theirs["id"]).property_pics == [victim_url]

    def test_upload_video(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        files = [("videos", ("tour.mp4", b"\x00" * 32, "video/mp4"))]
        resp = api_env.client.post(f"/api/v1/property/upload/videos/{post['id']}", files=files, headers=headers)
        assert resp.status_code == 200, resp.text
        assert api_env.listings.get_listing(post["id"]).property_videos == resp.json()["urls"]

    def test_too_many_pictures(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        resp = api_env.client.post(
            f"/api/v1/property/upload/pictures/{post['id']}", files=_pictures(11), headers=headers
        )
        assert resp.status_code == 400

    def test_wrong_content_type(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        resp = api_env.client.post(
            f"/api/v1/property/upload/pictures/{post['id']}",
            files=_pictures(1, content_type="application/pdf"),
            headers=headers,
        )
        assert resp.status_code == 400

    def test_oversize_file(self, api_env: ApiEnv, owner, monkeypatch) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        monkeypatch.setattr(get_settings(), "media_max_bytes", 8)
        resp = api_env.client.post(
            f"/api/v1/property/upload/pictures/{post['id']}", files=_pictures(1, size=9), headers=headers
        )
        assert resp.status_code == 400
        assert api_env.listings.get_listing(post["id"]).property_pics == []

    def test_storage_failure_is_502(self, api_env: ApiEnv, owner) -> None:
        _owner_id, headers = owner
        post = _create(api_env, headers)
        api_env.media.fail_put = True
        try:
            resp = api_env.client.post(
                f"/api/v1/property/upload/pictures/{post['id']}", files=_pictures(2), headers=headers
            )
        finally:
            api_env.media.fail_put = False
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "dependency_failure"
        assert api_env.listings.get_listing(post["id"]).property_pics == []

    def test_stranger_cannot_upload(self, api_env: ApiEnv, owner, stranger) -> None:
        _owner_id, headers = owner
        _stranger_id, stranger_headers = stranger
        post = _create(api_env, headers)
        resp = api_env.client.post(
            f"/api/v1/property/upload/pictures/{post['id']}", files=_pictures(1), headers=stranger_headers
        )
        assert resp.status_code == 403


def test_public_stats(api_env: ApiEnv, owner) -> None:
    _owner_id, headers = owner
    _create(api_env, headers, city="Latur", propertyStatus="sold")
    resp = api_env.client.get("/api/v1/property/stats")
    assert resp.status_code == 200
    stats = resp.json()["stats"]
    assert stats["totalProperties"] >= 1
    assert stats["soldProperties"] >= 1
    assert {"name", "count"} <= set(stats["propertiesByCity"][0])
