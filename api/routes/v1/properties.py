"""
api/routes/v1/properties.py -- Property listings and their media.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /property/posts                    -- public search, active listings only, paginated
  GET    /property/filter                   -- same search under its legacy path
  GET    /property/stats                    -- public counts over active listings
  GET    /property/posts/user/my-posts      -- caller's listings incl. inactive (auth)
  GET    /property/posts/{id}               -- one listing; inactive ones only for owner/admin
  POST   /property/posts                    -- create (auth)
  PUT    /property/posts/{id}               -- partial update (owner or admin)
  DELETE /property/posts/{id}               -- soft delete: isActive=false (owner or admin)
  POST   /property/upload/pictures/{id}     -- multipart "pictures", up to 10 files (owner or admin)
  POST   /property/upload/videos/{id}       -- multipart "videos", up to 5 files (owner or admin)
  DELETE /property/pictures/{id}            -- {"pictureUrl": ...} (owner or admin)
  DELETE /property/videos/{id}              -- {"videoUrl": ...} (owner or admin)

Authorization:
  Every mutating route runs listings.service.ensure_can_modify(), so the
  owner and any admin share one code path; anyone else gets 403 and the
  listing is not touched.

File uploads:
  Each file is capped at MEDIA_MAX_BYTES (10 MB). Pictures must be image/*,
  videos must be video/*. If one file in a batch fails to store, the files
  already stored for that batch are removed again and nothing is attached.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from api.models import (
    FacingEnum,
    ListingCreate,
    ListingListResponse,
    ListingOut,
    ListingResponse,
    ListingUpdate,
    MediaUploadResponse,
    MessageResponse,
    Pagination,
    PictureDelete,
    PropertyCategoryEnum,
    PropertyTypeEnum,
    PublicStats,
    PublicStatsResponse,
    VideoDelete,
)
from auth.dependencies import get_current_user, try_get_current_user
from auth.models import Account
from auth.store import AccountStore
from core.config import get_settings
from core.errors import DependencyFailure, NotFound, ValidationFailed
from listings.models import Listing, ListingFilter
from listings.service import ensure_can_modify, get_listing_or_404, is_listing_media, media_key
from listings.store import ListingStore
from media.storage import MediaStorageError, MediaStore, delete_media_best_effort

router = APIRouter()
logger = logging.getLogger("estatedesk.properties")

_MAX_FILES = {"pictures": 10, "videos": 5}
_MIME_PREFIX = {"pictures": "image/", "videos": "video/"}
# Columns that reject NULL; an explicit null in an update body is ignored for these.
_NON_NULLABLE = {
    "property_type",
    "city",
    "is_furnished",
    "has_parking",
    "property_status",
    "is_active",
    "amenities",
    "nearby_places",
}


# ---------------------------------------------------------------------------
# Shared helpers (also used by api/routes/v1/admin.py)
# ---------------------------------------------------------------------------


def listing_filter(
    property_type: Optional[PropertyTypeEnum] = Query(None, alias="propertyType"),
    property_category: Optional[PropertyCategoryEnum] = Query(None, alias="propertyCategory"),
    city: Optional[str] = Query(None, max_length=100),
    state: Optional[str] = Query(None, max_length=100),
    location: Optional[str] = Query(None, max_length=100),
    bhk: Optional[int] = Query(None, ge=0),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    is_furnished: Optional[bool] = Query(None, alias="isFurnished"),
    has_parking: Optional[bool] = Query(None, alias="hasParking"),
    facing: Optional[FacingEnum] = Query(None),
) -> ListingFilter:
    """Build a ListingFilter from camelCase query parameters (active listings only)."""
    return ListingFilter(
        property_type=property_type.value if property_type else None,
        property_category=property_category.value if property_category else None,
        city=city or None,
        state=state or None,
        location=location or None,
        bhk=bhk,
        min_price=min_price,
        max_price=max_price,
        is_furnished=is_furnished,
        has_parking=has_parking,
        facing=facing.value if facing else None,
    )


def listings_out(accounts: AccountStore, items: list[Listing]) -> list[ListingOut]:
    """Render listings with their owner's public contact details attached."""
    owners = accounts.get_many([item.owner_id for item in items])
    return [ListingOut.from_domain(item, owners.get(item.owner_id)) for item in items]


def listing_out(accounts: AccountStore, listing: Listing) -> ListingOut:
    return ListingOut.from_domain(listing, accounts.get_by_id(listing.owner_id))


def update_fields(body: ListingUpdate) -> dict:
    fields = body.model_dump(exclude_unset=True, mode="json")
    return {k: v for k, v in fields.items() if not (v is None and k in _NON_NULLABLE)}


def _read_upload(upload: UploadFile, kind: str, max_bytes: int) -> bytes:
    content_type = upload.content_type or ""
    if not content_type.startswith(_MIME_PREFIX[kind]):
        raise ValidationFailed(f"{upload.filename or 'file'}: expected {_MIME_PREFIX[kind]}* content, got {content_type!r}.")
    raw = upload.file.read(max_bytes + 1)
    if len(raw) > max_bytes:
        raise ValidationFailed(f"{upload.filename or 'file'}: file exceeds {max_bytes // (1024 * 1024)} MB limit.")
    if not raw:
        raise ValidationFailed(f"{upload.filename or 'file'}: file is empty.")
    return raw


def store_uploads(
    listings: ListingStore,
    media: MediaStore,
    listing: Listing,
    kind: str,
    files: list[UploadFile],
) -> list[str]:
    """Validate, store and attach a batch of uploads. Returns the new URLs.

    All files are validated before any is stored. A storage failure midway
    removes the batch's already-stored objects and raises DependencyFailure.
    """
    if len(files) > _MAX_FILES[kind]:
        raise ValidationFailed(f"At most {_MAX_FILES[kind]} {kind} can be uploaded at once.")
    max_bytes = get_settings().media_max_bytes
    payloads = [(f.content_type or "", _read_upload(f, kind, max_bytes)) for f in files]

    urls: list[str] = []
    for content_type, raw in payloads:
        try:
            urls.append(media.put(raw, content_type, media_key(listing.id, kind)))
        except MediaStorageError as exc:
            delete_media_best_effort(media, urls)
            raise DependencyFailure(f"Failed to store {kind}. Please try again later.") from exc
    listings.add_media(listing.id, kind, urls)
    return urls


def remove_media(listings: ListingStore, media: MediaStore, listing: Listing, kind: str, url: str) -> None:
    """Detach url from the listing, then delete the stored object (best effort).

    Storage is only touched for URLs this listing's own uploads created.
    """
    if not listings.remove_media(listing.id, kind, url):
        raise NotFound(f"{kind[:-1].capitalize()} not found on this property post.")
    if is_listing_media(listing, kind, url):
        delete_media_best_effort(media, [url])
    else:
        logger.warning("Detached foreign media url from listing_id=%s without deleting it", listing.id)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.get("/property/posts", response_model=ListingListResponse)
@router.get("/property/filter", response_model=ListingListResponse)
def list_properties(
    request: Request,
    flt: ListingFilter = Depends(listing_filter),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ListingListResponse:
    """Search active listings, newest first."""
    store: ListingStore = request.app.state.listing_store
    result = store.list_listings(flt, page=page, limit=limit)
    return ListingListResponse(
        property_posts=listings_out(request.app.state.account_store, result.items),
        pagination=Pagination.from_page(result),
    )


@router.get("/property/stats", response_model=PublicStatsResponse)
def property_stats(request: Request) -> PublicStatsResponse:
    store: ListingStore = request.app.state.listing_store
    return PublicStatsResponse(stats=PublicStats.from_stats(store.listing_stats(active_only=True)))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/property/posts/user/my-posts", response_model=ListingListResponse)
def my_properties(request: Request, current_user: Account = Depends(get_current_user)) -> ListingListResponse:
    """All of the caller's listings, including soft-deleted ones."""
    store: ListingStore = request.app.state.listing_store
    items = store.list_by_owner(current_user.id)
    return ListingListResponse(property_posts=[ListingOut.from_domain(i, current_user) for i in items])


@router.get("/property/posts/{listing_id}", response_model=ListingResponse)
def get_property(request: Request, listing_id: int) -> ListingResponse:
    """Public detail view. Inactive listings are visible only to their owner and admins."""
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    if not listing.is_active:
        viewer = try_get_current_user(request)
        if viewer is None or not (viewer.is_admin or viewer.id == listing.owner_id):
            raise NotFound("Property post is not active.")
    return ListingResponse(property_post=listing_out(request.app.state.account_store, listing))


@router.post("/property/posts", response_model=ListingResponse, status_code=201)
def create_property(
    request: Request,
    body: ListingCreate,
    current_user: Account = Depends(get_current_user),
) -> ListingResponse:
    store: ListingStore = request.app.state.listing_store
    listing = store.create_listing(Listing(owner_id=current_user.id, **body.model_dump(mode="json")))
    return ListingResponse(
        message="Property post created successfully.",
        property_post=ListingOut.from_domain(listing, current_user),
    )


@router.put("/property/posts/{listing_id}", response_model=ListingResponse)
def update_property(
    request: Request,
    listing_id: int,
    body: ListingUpdate,
    current_user: Account = Depends(get_current_user),
) -> ListingResponse:
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    ensure_can_modify(listing, current_user, "update")

    fields = update_fields(body)
    updated = store.update_listing(listing_id, **fields) if fields else listing
    return ListingResponse(
        message="Property post updated successfully.",
        property_post=listing_out(request.app.state.account_store, updated),
    )


@router.delete("/property/posts/{listing_id}", response_model=MessageResponse)
def delete_property(
    request: Request,
    listing_id: int,
    current_user: Account = Depends(get_current_user),
) -> MessageResponse:
    """Soft delete. The listing and its media stay stored; admins can hard-delete."""
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    ensure_can_modify(listing, current_user, "delete")
    store.update_listing(listing_id, is_active=False)
    return MessageResponse(message="Property post deleted successfully.")


@router.post("/property/upload/pictures/{listing_id}", response_model=MediaUploadResponse)
def upload_pictures(
    request: Request,
    listing_id: int,
    pictures: list[UploadFile] = File(...),
    current_user: Account = Depends(get_current_user),
) -> MediaUploadResponse:
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    ensure_can_modify(listing, current_user, "upload pictures for")
    urls = store_uploads(store, request.app.state.media_store, listing, "pictures", pictures)
    return MediaUploadResponse(message=f"{len(urls)} picture(s) uploaded successfully.", urls=urls)


@router.post("/property/upload/videos/{listing_id}", response_model=MediaUploadResponse)
def upload_videos(
    request: Request,
    listing_id: int,
    videos: list[UploadFile] = File(...),
    current_user: Account = Depends(get_current_user),
) -> MediaUploadResponse:
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    ensure_can_modify(listing, current_user, "upload videos for")
    urls = store_uploads(store, request.app.state.media_store, listing, "videos", videos)
    return MediaUploadResponse(message=f"{len(urls)} video(s) uploaded successfully.", urls=urls)


@router.delete("/property/pictures/{listing_id}", response_model=MessageResponse)
def delete_picture(
    request: Request,
    listing_id: int,
    body: PictureDelete,
    current_user: Account = Depends(get_current_user),
) -> MessageResponse:
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    ensure_can_modify(listing, current_user, "delete pictures from")
    remove_media(store, request.app.state.media_store, listing, "pictures", body.picture_url)
    return MessageResponse(message="Picture deleted successfully.")


@router.delete("/property/videos/{listing_id}", response_model=MessageResponse)
def delete_video(
    request: Request,
    listing_id: int,
    body: VideoDelete,
    current_user: Account = Depends(get_current_user),
) -> MessageResponse:
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    ensure_can_modify(listing, current_user, "delete videos from")
    remove_media(store, request.app.state.media_store, listing, "videos", body.video_url)
    return MessageResponse(message="Video deleted successfully.")
