"""
api/routes/v1/contact.py -- Public contact inquiries and site-visit requests.

Routes:
  POST /api/v1/contact                    -- leave an inquiry, optionally about a listing
  POST /api/v1/contact/schedule-meeting   -- request a site visit at a future date

Both routes are public. Reading and managing what they create lives under
/api/v1/admin (see api/routes/v1/admin.py).

Meeting conflicts:
  Only one `scheduled` meeting may exist per place per UTC calendar day.
  Completed and cancelled meetings do not block the slot.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from api.models import ContactCreate, ContactOut, ContactResponse, MeetingCreate, MeetingOut, MeetingResponse
from core.errors import NotFound, ValidationFailed
from listings.models import ContactInquiry, Meeting
from listings.store import ListingStore, to_utc_iso

logger = logging.getLogger("estatedesk.contact")

router = APIRouter()


def _ensure_listing_exists(store: ListingStore, listing_id) -> None:
    if listing_id is not None and store.get_listing(listing_id) is None:
        raise NotFound("Property not found.")


@router.post("/contact", response_model=ContactResponse, status_code=201)
def create_contact(request: Request, body: ContactCreate) -> ContactResponse:
    store: ListingStore = request.app.state.listing_store
    _ensure_listing_exists(store, body.property_id)
    inquiry = store.create_contact(
        ContactInquiry(
            full_name=body.full_name,
            contact_number=body.contact_number,
            email=body.email.lower(),
            description=body.description,
            property_id=body.property_id,
        )
    )
    logger.info("Contact inquiry %s received (property_id=%s)", inquiry.id, inquiry.property_id)
    return ContactResponse(message="Contact request submitted successfully.", contact=ContactOut.from_domain(inquiry))


@router.post("/contact/schedule-meeting", response_model=MeetingResponse, status_code=201)
def schedule_meeting(request: Request, body: MeetingCreate) -> MeetingResponse:
    """Book a visit. Naive timestamps are read as UTC."""
    store: ListingStore = request.app.state.listing_store
    when = body.date if body.date.tzinfo is not None else body.date.replace(tzinfo=timezone.utc)
    if when <= datetime.now(timezone.utc):
        raise ValidationFailed("Meeting date must be in the future.")
    _ensure_listing_exists(store, body.property_id)
    if store.find_scheduled_meeting(body.place, when) is not None:
        raise ValidationFailed("A meeting is already scheduled at this place on the selected date.")

    meeting = store.create_meeting(
        Meeting(
            name=body.name,
            email=body.email.lower(),
            date=to_utc_iso(when),
            place=body.place,
            property_id=body.property_id,
        )
    )
    logger.info("Meeting %s scheduled for %s", meeting.id, meeting.date)
    return MeetingResponse(message="Meeting scheduled successfully.", meeting=MeetingOut.from_domain(meeting))
