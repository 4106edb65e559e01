"""
api/routes/v1/admin.py -- Administration surface.

Every route here requires the admin role (router-level dependency).

Routes:
  GET    /api/v1/admin/users                      -- all client accounts
  GET    /api/v1/admin/users/{id}                 -- one account with its profile
  DELETE /api/v1/admin/users/{id}                 -- cascade delete (not your own account)
  GET    /api/v1/admin/properties                 -- listing search incl. inactive (isActive filter)
  GET    /api/v1/admin/properties/{id}            -- one listing, active or not
  DELETE /api/v1/admin/properties/{id}            -- hard delete + media cleanup
  PUT    /api/v1/admin/properties/{id}/status     -- set propertyStatus
  GET    /api/v1/admin/stats                      -- dashboard counts
  GET    /api/v1/admin/contacts                   -- inquiries, newest first
  GET    /api/v1/admin/contacts/{id}
  DELETE /api/v1/admin/contacts/{id}
  GET    /api/v1/admin/schedule-meetings          -- status/startDate/endDate filters, ascending by date
  GET    /api/v1/admin/schedule-meetings/{id}
  PUT    /api/v1/admin/schedule-meetings/{id}/status
  DELETE /api/v1/admin/schedule-meetings/{id}

Listing edits and media management for admins go through the ordinary
/property routes; ensure_can_modify() lets admins through there.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    AccountOut,
    AdminStats,
    AdminStatsResponse,
    ContactListResponse,
    ContactOut,
    ContactResponse,
    ListingListResponse,
    ListingResponse,
    MeetingListResponse,
    MeetingOut,
    MeetingResponse,
    MeetingStatusEnum,
    MeetingStatusUpdate,
    MessageResponse,
    Pagination,
    PropertyStatusUpdate,
    UserDetailOut,
    UserDetailResponse,
    UserListResponse,
)
from api.routes.v1.properties import listing_filter, listing_out, listings_out
from auth.dependencies import require_admin
from auth.models import ROLE_CLIENT, Account
from auth.store import AccountStore
from core.errors import Forbidden, NotFound, ValidationFailed
from listings.models import ListingFilter
from listings.service import delete_account_cascade, get_listing_or_404, hard_delete_listing
from listings.store import ListingStore, to_utc_iso

logger = logging.getLogger("estatedesk.admin")

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(request: Request) -> UserListResponse:
    accounts: AccountStore = request.app.state.account_store
    users = accounts.list_accounts(role=ROLE_CLIENT)
    return UserListResponse(count=len(users), users=[AccountOut.from_domain(u) for u in users])


@router.get("/users/{account_id}", response_model=UserDetailResponse)
def get_user(request: Request, account_id: int) -> UserDetailResponse:
    accounts: AccountStore = request.app.state.account_store
    account = accounts.get_by_id(account_id)
    if account is None:
        raise NotFound("User not found.")
    profile = request.app.state.listing_store.get_profile(account_id)
    return UserDetailResponse(user=UserDetailOut.from_account(account, profile))


@router.delete("/users/{account_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    account_id: int,
    admin: Account = Depends(require_admin),
) -> MessageResponse:
    """Delete the account, its profile, its listings and their stored media."""
    if account_id == admin.id:
        raise Forbidden("Admins cannot delete their own account.")
    delete_account_cascade(
        request.app.state.account_store,
        request.app.state.listing_store,
        request.app.state.media_store,
        account_id,
    )
    logger.info("Admin %s deleted account %s", admin.id, account_id)
    return MessageResponse(message="User and associated data deleted successfully.")


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


@router.get("/properties", response_model=ListingListResponse)
def list_properties(
    request: Request,
    flt: ListingFilter = Depends(listing_filter),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ListingListResponse:
    """Like the public search, but inactive listings are included unless isActive is given."""
    flt.is_active = is_active
    result = request.app.state.listing_store.list_listings(flt, page=page, limit=limit)
    return ListingListResponse(
        property_posts=listings_out(request.app.state.account_store, result.items),
        pagination=Pagination.from_page(result),
    )


@router.get("/properties/{listing_id}", response_model=ListingResponse)
def get_property(request: Request, listing_id: int) -> ListingResponse:
    listing = get_listing_or_404(request.app.state.listing_store, listing_id)
    return ListingResponse(property_post=listing_out(request.app.state.account_store, listing))


@router.delete("/properties/{listing_id}", response_model=MessageResponse)
def delete_property(request: Request, listing_id: int) -> MessageResponse:
    store: ListingStore = request.app.state.listing_store
    listing = get_listing_or_404(store, listing_id)
    hard_delete_listing(store, request.app.state.media_store, listing)
    return MessageResponse(message="Property post deleted permanently.")


@router.put("/properties/{listing_id}/status", response_model=ListingResponse)
def update_property_status(request: Request, listing_id: int, body: PropertyStatusUpdate) -> ListingResponse:
    store: ListingStore = request.app.state.listing_store
    get_listing_or_404(store, listing_id)
    listing = store.update_listing(listing_id, property_status=body.property_status.value)
    return ListingResponse(
        message="Property status updated successfully.",
        property_post=listing_out(request.app.state.account_store, listing),
    )


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@router.get("/stats", response_model=AdminStatsResponse)
def stats(request: Request) -> AdminStatsResponse:
    listings: ListingStore = request.app.state.listing_store
    accounts: AccountStore = request.app.state.account_store
    return AdminStatsResponse(
        stats=AdminStats.from_stats(
            listings.listing_stats(active_only=False),
            total_users=accounts.count_accounts(ROLE_CLIENT),
            users_by_city=listings.users_by_city(),
        )
    )


# ---------------------------------------------------------------------------
# Contact inquiries
# ---------------------------------------------------------------------------


@router.get("/contacts", response_model=ContactListResponse)
def list_contacts(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ContactListResponse:
    result = request.app.state.listing_store.list_contacts(page=page, limit=limit)
    return ContactListResponse(
        contacts=[ContactOut.from_domain(c) for c in result.items],
        pagination=Pagination.from_page(result),
    )


@router.get("/contacts/{contact_id}", response_model=ContactResponse)
def get_contact(request: Request, contact_id: int) -> ContactResponse:
    inquiry = request.app.state.listing_store.get_contact(contact_id)
    if inquiry is None:
        raise NotFound("Contact not found.")
    return ContactResponse(contact=ContactOut.from_domain(inquiry))


@router.delete("/contacts/{contact_id}", response_model=MessageResponse)
def delete_contact(request: Request, contact_id: int) -> MessageResponse:
    if not request.app.state.listing_store.delete_contact(contact_id):
        raise NotFound("Contact not found.")
    return MessageResponse(message="Contact deleted successfully.")


# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


@router.get("/schedule-meetings", response_model=MeetingListResponse)
def list_meetings(
    request: Request,
    status: Optional[MeetingStatusEnum] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> MeetingListResponse:
    if start_date is not None and end_date is not None and to_utc_iso(start_date) > to_utc_iso(end_date):
        raise ValidationFailed("startDate must not be after endDate.")
    result = request.app.state.listing_store.list_meetings(
        status=status.value if status else None,
        start=start_date,
        end=end_date,
        page=page,
        limit=limit,
    )
    return MeetingListResponse(
        meetings=[MeetingOut.from_domain(m) for m in result.items],
        pagination=Pagination.from_page(result),
    )


@router.get("/schedule-meetings/{meeting_id}", response_model=MeetingResponse)
def get_meeting(request: Request, meeting_id: int) -> MeetingResponse:
    meeting = request.app.state.listing_store.get_meeting(meeting_id)
    if meeting is None:
        raise NotFound("Meeting not found.")
    return MeetingResponse(meeting=MeetingOut.from_domain(meeting))


@router.put("/schedule-meetings/{meeting_id}/status", response_model=MeetingResponse)
def update_meeting_status(request: Request, meeting_id: int, body: MeetingStatusUpdate) -> MeetingResponse:
    meeting = request.app.state.listing_store.update_meeting_status(meeting_id, body.status.value)
    if meeting is None:
        raise NotFound("Meeting not found.")
    return MeetingResponse(message="Meeting status updated successfully.", meeting=MeetingOut.from_domain(meeting))


@router.delete("/schedule-meetings/{meeting_id}", response_model=MessageResponse)
def delete_meeting(request: Request, meeting_id: int) -> MessageResponse:
    if not request.app.state.listing_store.delete_meeting(meeting_id):
        raise NotFound("Meeting not found.")
    return MessageResponse(message="Meeting deleted successfully.")
