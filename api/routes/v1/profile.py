"""
api/routes/v1/profile.py -- The caller's own profile.

Routes:
  GET /api/v1/profile  -- profile, with identity fields falling back to the account
  PUT /api/v1/profile  -- partial update; address parts are merged, not replaced

Both routes require authentication and only ever touch the caller's profile.
"""

from fastapi import APIRouter, Depends, Request

from api.models import ProfileOut, ProfileResponse, ProfileUpdate
from auth.dependencies import get_current_user
from auth.models import Account
from core.errors import NotFound
from listings.store import ListingStore

router = APIRouter()


@router.get("/profile", response_model=ProfileResponse)
def get_profile(request: Request, current_user: Account = Depends(get_current_user)) -> ProfileResponse:
    store: ListingStore = request.app.state.listing_store
    profile = store.get_profile(current_user.id)
    if profile is None:
        raise NotFound("Profile not found.")
    return ProfileResponse(profile=ProfileOut.from_domain(profile, current_user))


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    current_user: Account = Depends(get_current_user),
) -> ProfileResponse:
    """Write only the fields present in the body.

    The address object is merged key by key, so {"address": {"city": "Pune"}}
    keeps the stored addressLine, state and pincode.
    """
    store: ListingStore = request.app.state.listing_store
    if store.get_profile(current_user.id) is None:
        raise NotFound("Profile not found.")

    fields = body.model_dump(exclude_unset=True)
    address = fields.pop("address", None) or {}
    fields.update(address)

    profile = store.update_profile(current_user.id, **fields) if fields else store.get_profile(current_user.id)
    return ProfileResponse(
        message="Profile updated successfully.",
        profile=ProfileOut.from_domain(profile, current_user),
    )
