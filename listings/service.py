"""
listings/service.py -- Rules that span more than one store.

Ownership:
  A listing may be modified by its owner or by any admin. Everyone else gets
  Forbidden and the listing is left untouched. Owner routes and admin routes
  share these helpers; the permission check is the only difference between
  them, so every operation is written once.

Cascade delete:
  Deleting an account removes, in order:
    1. stored media for every listing the account owns (best effort),
    2. the profile and all listings,
    3. the identity record and its OTP challenges.
  Media failures are logged by media.storage and never block steps 2-3, so
  an outage at the storage provider cannot leave a half-deleted account.

Layer rule: no imports from api/ or notify/.
"""

from __future__ import annotations

import logging

from auth.models import Account
from auth.store import AccountStore
from core.errors import Forbidden, NotFound
from listings.models import Listing
from listings.store import ListingStore
from media.storage import MediaStore, delete_media_best_effort

logger = logging.getLogger("estatedesk.listings")


def ensure_can_modify(listing: Listing, actor: Account, action: str = "modify") -> None:
    """Raise Forbidden unless actor owns the listing or is an admin."""
    if actor.is_admin or listing.owner_id == actor.id:
        return
    logger.warning("Ownership check failed account_id=%s listing_id=%s action=%s", actor.id, listing.id, action)
    raise Forbidden(f"Not authorized to {action} this property post.")


def get_listing_or_404(listings: ListingStore, listing_id: int) -> Listing:
    listing = listings.get_listing(listing_id)
    if listing is None:
        raise NotFound("Property post not found.")
    return listing


def media_key(listing_id: int, kind: str) -> str:
    """Storage key prefix for a listing's uploads of one kind ("pictures" / "videos")."""
    return f"listings/{listing_id}/{kind}"


def is_listing_media(listing: Listing, kind: str, url: str) -> bool:
    """True when url was stored under this listing's own key prefix."""
    return f"/{media_key(listing.id, kind)}/" in (url or "")


def owned_media_urls(listing: Listing) -> list[str]:
    """The listing's media URLs that this listing's uploads actually created.

    Anything else (a URL copied from another listing, legacy data) is only
    ever detached, never deleted from storage.
    """
    return [
        *(u for u in listing.property_pics if is_listing_media(listing, "pictures", u)),
        *(u for u in listing.property_videos if is_listing_media(listing, "videos", u)),
    ]


def hard_delete_listing(listings: ListingStore, media: MediaStore, listing: Listing) -> None:
    """Remove the listing row and attempt to remove its stored media."""
    urls = owned_media_urls(listing)
    failed = len(urls) - delete_media_best_effort(media, urls)
    listings.delete_listing(listing.id)
    logger.info("Listing %s hard-deleted (media cleanup failures: %d)", listing.id, failed)


def delete_account_cascade(
    accounts: AccountStore,
    listings: ListingStore,
    media: MediaStore,
    account_id: int,
) -> None:
    """Delete an account and everything hanging off it. Raises NotFound if absent."""
    account = accounts.get_by_id(account_id)
    if account is None:
        raise NotFound("User not found.")

    owned = listings.list_by_owner(account_id)
    urls = [url for listing in owned for url in owned_media_urls(listing)]
    cleaned = delete_media_best_effort(media, urls)

    listings.delete_profile(account_id)
    removed = listings.delete_listings_by_owner(account_id)
    accounts.delete_account(account_id)
    logger.info(
        "Account %s deleted with %d listing(s); media %d/%d removed",
        account_id,
        removed,
        cleaned,
        len(urls),
    )
