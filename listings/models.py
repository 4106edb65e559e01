"""
listings/models.py -- Domain dataclasses for profiles, listings, inquiries and meetings.

Pure data containers. Validation of user input happens in api/models.py;
persistence and querying live in listings/store.py; cross-store rules
(ownership, cascade delete) live in listings/service.py.
"""

from dataclasses import dataclass, field
from typing import Optional

PROPERTY_TYPES = ("owner", "lease")
PROPERTY_CATEGORIES = ("rental", "sale", "commercial_sale", "pg", "hostel", "flatmates", "land", "plot")
FACINGS = ("east", "west", "north", "south", "north-east", "north-west", "south-east", "south-west")
PROPERTY_STATUSES = ("available", "sold", "rented", "under_construction")
MEETING_STATUSES = ("scheduled", "completed", "cancelled")


@dataclass
class Address:
    address_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None  # 6 digits


@dataclass
class Profile:
    """Extended personal details, one per account.

    Seeded at signup with the account's name, email and phone. Empty fields
    fall back to the account's values when rendered.

    id is None before the record is written to the database.
    """

    account_id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_no: Optional[str] = None
    phone_no2: Optional[str] = None
    pan_no: Optional[str] = None  # AAAAA9999A, stored upper-case
    aadhaar_no: Optional[str] = None  # 12 digits
    address: Address = field(default_factory=Address)
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Listing:
    """A property post owned by one account.

    is_active=False is a soft delete: the listing disappears from public
    queries but the owner and admins can still see it.

    id is None before the record is written to the database.
    """

    owner_id: int
    property_type: str  # "owner" | "lease"
    city: str
    price_tag: Optional[str] = None
    price: Optional[float] = None
    property_details: Optional[str] = None
    property_pics: list[str] = field(default_factory=list)
    property_videos: list[str] = field(default_factory=list)
    contact_info: Optional[str] = None
    is_furnished: bool = False
    has_parking: bool = False
    property_category: Optional[str] = None
    bhk: Optional[int] = None
    floor: Optional[int] = None
    property_age: Optional[int] = None
    facing: Optional[str] = None
    build_area: Optional[float] = None
    carpet_area: Optional[float] = None
    locality: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None
    amenities: list[str] = field(default_factory=list)
    nearby_places: list[str] = field(default_factory=list)
    property_status: str = "available"
    is_active: bool = True
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ListingFilter:
    """Query parameters for listing searches. None means "no constraint"."""

    property_type: Optional[str] = None
    property_category: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    location: Optional[str] = None  # substring of city, state or locality
    bhk: Optional[int] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    is_furnished: Optional[bool] = None
    has_parking: Optional[bool] = None
    facing: Optional[str] = None
    is_active: Optional[bool] = True
    owner_id: Optional[int] = None


@dataclass
class Page:
    """One page of results plus the numbers needed to render pagination."""

    items: list
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    @property
    def has_next(self) -> bool:
        return (self.page - 1) * self.limit + self.limit < self.total

    @property
    def has_prev(self) -> bool:
        return self.page > 1


@dataclass
class ContactInquiry:
    full_name: str
    contact_number: str
    email: str
    description: str
    property_id: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Meeting:
    """A site visit request. date is an ISO 8601 UTC timestamp."""

    name: str
    email: str
    date: str
    place: str
    property_id: Optional[int] = None
    meeting_status: str = "scheduled"
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
