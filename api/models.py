"""
API request and response models for EstateDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
listings/models.py, which own the internal domain representation. Route
handlers map between the two with the from_domain() constructors below.

Wire format: JSON keys are camelCase (fullName, phoneNo, propertyPics).
CamelModel generates the aliases; populate_by_name lets Python code build
models with snake_case names. FastAPI serializes response_model output by
alias, so clients only ever see camelCase.

Every success body carries success=True; every error body is ErrorResponse.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from auth.models import Account
from listings.models import ContactInquiry, Listing, Meeting, Page, Profile

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^\S+@\S+\.\S+$"
PHONE_PATTERN = r"^\d{10}$"
PINCODE_PATTERN = r"^\d{6}$"
PAN_PATTERN = r"^[A-Z]{5}[0-9]{4}[A-Z]$"
AADHAAR_PATTERN = r"^\d{12}$"
MIN_PASSWORD_LENGTH = 6


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PropertyTypeEnum(str, Enum):
    owner = "owner"
    lease = "lease"


class PropertyCategoryEnum(str, Enum):
    rental = "rental"
    sale = "sale"
    commercial_sale = "commercial_sale"
    pg = "pg"
    hostel = "hostel"
    flatmates = "flatmates"
    land = "land"
    plot = "plot"


class FacingEnum(str, Enum):
    east = "east"
    west = "west"
    north = "north"
    south = "south"
    north_east = "north-east"
    north_west = "north-west"
    south_east = "south-east"
    south_west = "south-west"


class PropertyStatusEnum(str, Enum):
    available = "available"
    sold = "sold"
    rented = "rented"
    under_construction = "under_construction"


class MeetingStatusEnum(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: ErrorDetail


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def from_page(cls, page: Page) -> "Pagination":
        return cls(
            current_page=page.page,
            total_pages=page.total_pages,
            total=page.total,
            has_next_page=page.has_next,
            has_prev_page=page.has_prev,
        )


class CountRow(BaseModel):
    """One bucket of a grouped count (category, city)."""

    name: Optional[str] = None
    count: int


def _count_rows(pairs: list[tuple[Optional[str], int]]) -> list[CountRow]:
    return [CountRow(name=name, count=count) for name, count in pairs]


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class _EmailField(CamelModel):
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        """Trim and lower-case so lookups are case-insensitive."""
        return value.strip().lower() if isinstance(value, str) else value


class SignupRequest(_EmailField):
    full_name: str = Field(min_length=2, max_length=255)
    phone_no: str = Field(pattern=PHONE_PATTERN)
    password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=128)

    @field_validator("full_name", "phone_no", mode="before")
    @classmethod
    def strip(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginRequest(CamelModel):
    # No pattern here: a malformed email simply fails as invalid credentials.
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class EmailRequest(_EmailField):
    """Body for resend-verification-otp, forgot-password and resend-otp."""


class OtpRequest(_EmailField):
    """Body for verify-email-otp and verify-otp."""

    otp: str = Field(min_length=1, max_length=10)

    @field_validator("otp", mode="before")
    @classmethod
    def coerce_otp(cls, value):
        """Accept the code as a JSON number too; compare as text."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value.strip() if isinstance(value, str) else value


class ResetPasswordRequest(OtpRequest):
    new_password: str = Field(min_length=MIN_PASSWORD_LENGTH, max_length=128)
    confirm_password: str = Field(max_length=128)

    @model_validator(mode="after")
    def passwords_match(self) -> "ResetPasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("New password and confirm password do not match")
        return self


# ---------------------------------------------------------------------------
# Auth / profile -- responses
# ---------------------------------------------------------------------------


class AccountOut(CamelModel):
    """Public view of an Account. Never carries the password hash."""

    id: int
    full_name: str
    email: str
    phone_no: str
    role: str
    is_verified: bool
    created_at: Optional[str] = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountOut":
        return cls(
            id=account.id,
            full_name=account.full_name,
            email=account.email,
            phone_no=account.phone_no,
            role=account.role,
            is_verified=account.is_verified,
            created_at=account.created_at,
        )


class AddressOut(CamelModel):
    address_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None


class ProfileOut(CamelModel):
    id: int
    account_id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_no: Optional[str] = None
    phone_no2: Optional[str] = None
    pan_no: Optional[str] = None
    aadhaar_no: Optional[str] = None
    address: AddressOut = Field(default_factory=AddressOut)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, profile: Profile, account: Optional[Account] = None) -> "ProfileOut":
        """Empty profile identity fields fall back to the account's values."""
        return cls(
            id=profile.id,
            account_id=profile.account_id,
            full_name=profile.full_name or (account.full_name if account else None),
            email=profile.email or (account.email if account else None),
            phone_no=profile.phone_no or (account.phone_no if account else None),
            phone_no2=profile.phone_no2,
            pan_no=profile.pan_no,
            aadhaar_no=profile.aadhaar_no,
            address=AddressOut(
                address_line=profile.address.address_line,
                city=profile.address.city,
                state=profile.address.state,
                pincode=profile.address.pincode,
            ),
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class SignupResponse(CamelModel):
    success: bool = True
    message: str
    user_id: int
    user: AccountOut
    profile: ProfileOut


class LoginResponse(CamelModel):
    success: bool = True
    message: str = "Login successful"
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountOut


class MeResponse(CamelModel):
    success: bool = True
    user: AccountOut


class ProfileResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    profile: ProfileOut


# ---------------------------------------------------------------------------
# Profile -- requests
# ---------------------------------------------------------------------------


class AddressUpdate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    address_line: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    pincode: Optional[str] = Field(default=None, pattern=PINCODE_PATTERN)


class ProfileUpdate(CamelModel):
    """Partial update. Only fields present in the body are written; address is merged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    phone_no2: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    pan_no: Optional[str] = Field(default=None, pattern=PAN_PATTERN)
    aadhaar_no: Optional[str] = Field(default=None, pattern=AADHAAR_PATTERN)
    address: Optional[AddressUpdate] = None

    @field_validator("pan_no", mode="before")
    @classmethod
    def upper_pan(cls, value):
        return value.strip().upper() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class _ListingFields(CamelModel):
    """Optional listing attributes shared by create and update bodies."""

    model_config = ConfigDict(str_strip_whitespace=True)

    price_tag: Optional[str] = Field(default=None, max_length=100)
    price: Optional[float] = Field(default=None, ge=0)
    property_details: Optional[str] = Field(default=None, max_length=5000)
    contact_info: Optional[str] = Field(default=None, max_length=500)
    property_category: Optional[PropertyCategoryEnum] = None
    bhk: Optional[int] = Field(default=None, ge=0)
    floor: Optional[int] = Field(default=None, ge=0)
    property_age: Optional[int] = Field(default=None, ge=0)
    facing: Optional[FacingEnum] = None
    build_area: Optional[float] = Field(default=None, ge=0)
    carpet_area: Optional[float] = Field(default=None, ge=0)
    locality: Optional[str] = Field(default=None, max_length=255)
    state: Optional[str] = Field(default=None, max_length=100)
    pincode: Optional[str] = Field(default=None, pattern=PINCODE_PATTERN)
    landmark: Optional[str] = Field(default=None, max_length=255)


class ListingCreate(_ListingFields):
    property_type: PropertyTypeEnum
    city: str = Field(min_length=1, max_length=100)
    is_furnished: bool = False
    has_parking: bool = False
    amenities: list[str] = Field(default_factory=list, max_length=50)
    nearby_places: list[str] = Field(default_factory=list, max_length=50)
    property_status: PropertyStatusEnum = PropertyStatusEnum.available


class ListingUpdate(_ListingFields):
    """Partial update. Fields absent from the body are left unchanged.

    propertyPics / propertyVideos are not accepted here or on create; they
    change only through the upload and media-delete routes.
    """

    property_type: Optional[PropertyTypeEnum] = None
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    is_furnished: Optional[bool] = None
    has_parking: Optional[bool] = None
    amenities: Optional[list[str]] = Field(default=None, max_length=50)
    nearby_places: Optional[list[str]] = Field(default=None, max_length=50)
    property_status: Optional[PropertyStatusEnum] = None
    is_active: Optional[bool] = None


class PropertyStatusUpdate(CamelModel):
    property_status: PropertyStatusEnum


class PictureDelete(CamelModel):
    picture_url: str = Field(min_length=1)


class VideoDelete(CamelModel):
    video_url: str = Field(min_length=1)


class OwnerOut(CamelModel):
    id: int
    full_name: str
    email: str
    phone_no: str


class ListingOut(CamelModel):
    id: int
    owner_id: int
    owner: Optional[OwnerOut] = None
    property_type: str
    price_tag: Optional[str] = None
    price: Optional[float] = None
    property_details: Optional[str] = None
    property_pics: list[str] = Field(default_factory=list)
    property_videos: list[str] = Field(default_factory=list)
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
    city: str
    state: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None
    amenities: list[str] = Field(default_factory=list)
    nearby_places: list[str] = Field(default_factory=list)
    property_status: str
    is_active: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, listing: Listing, owner: Optional[Account] = None) -> "ListingOut":
        owner_out = None
        if owner is not None:
            owner_out = OwnerOut(id=owner.id, full_name=owner.full_name, email=owner.email, phone_no=owner.phone_no)
        return cls(
            id=listing.id,
            owner_id=listing.owner_id,
            owner=owner_out,
            property_type=listing.property_type,
            price_tag=listing.price_tag,
            price=listing.price,
            property_details=listing.property_details,
            property_pics=listing.property_pics,
            property_videos=listing.property_videos,
            contact_info=listing.contact_info,
            is_furnished=listing.is_furnished,
            has_parking=listing.has_parking,
            property_category=listing.property_category,
            bhk=listing.bhk,
            floor=listing.floor,
            property_age=listing.property_age,
            facing=listing.facing,
            build_area=listing.build_area,
            carpet_area=listing.carpet_area,
            locality=listing.locality,
            city=listing.city,
            state=listing.state,
            pincode=listing.pincode,
            landmark=listing.landmark,
            amenities=listing.amenities,
            nearby_places=listing.nearby_places,
            property_status=listing.property_status,
            is_active=listing.is_active,
            created_at=listing.created_at,
            updated_at=listing.updated_at,
        )


class ListingResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    property_post: ListingOut


class ListingListResponse(CamelModel):
    success: bool = True
    property_posts: list[ListingOut]
    pagination: Optional[Pagination] = None


class MediaUploadResponse(CamelModel):
    success: bool = True
    message: str
    urls: list[str]


class PublicStats(CamelModel):
    total_properties: int
    available_properties: int
    sold_properties: int
    rented_properties: int
    properties_by_category: list[CountRow]
    properties_by_city: list[CountRow]

    @classmethod
    def from_stats(cls, stats: dict) -> "PublicStats":
        return cls(
            total_properties=stats["total"],
            available_properties=stats["available"],
            sold_properties=stats["sold"],
            rented_properties=stats["rented"],
            properties_by_category=_count_rows(stats["by_category"]),
            properties_by_city=_count_rows(stats["by_city"]),
        )


class PublicStatsResponse(CamelModel):
    success: bool = True
    stats: PublicStats


# ---------------------------------------------------------------------------
# Contact inquiries and meetings
# ---------------------------------------------------------------------------


class ContactCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(min_length=1, max_length=255)
    contact_number: str = Field(pattern=PHONE_PATTERN)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    description: str = Field(min_length=1, max_length=5000)
    property_id: Optional[int] = None


class ContactOut(CamelModel):
    id: int
    full_name: str
    contact_number: str
    email: str
    description: str
    property_id: Optional[int] = None
    created_at: str

    @classmethod
    def from_domain(cls, inquiry: ContactInquiry) -> "ContactOut":
        return cls(
            id=inquiry.id,
            full_name=inquiry.full_name,
            contact_number=inquiry.contact_number,
            email=inquiry.email,
            description=inquiry.description,
            property_id=inquiry.property_id,
            created_at=inquiry.created_at,
        )


class ContactResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    contact: ContactOut


class ContactListResponse(CamelModel):
    success: bool = True
    contacts: list[ContactOut]
    pagination: Pagination


class MeetingCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    date: datetime
    place: str = Field(min_length=1, max_length=255)
    property_id: Optional[int] = None


class MeetingStatusUpdate(CamelModel):
    status: MeetingStatusEnum


class MeetingOut(CamelModel):
    id: int
    name: str
    email: str
    date: str
    place: str
    property_id: Optional[int] = None
    meeting_status: str
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, meeting: Meeting) -> "MeetingOut":
        return cls(
            id=meeting.id,
            name=meeting.name,
            email=meeting.email,
            date=meeting.date,
            place=meeting.place,
            property_id=meeting.property_id,
            meeting_status=meeting.meeting_status,
            created_at=meeting.created_at,
            updated_at=meeting.updated_at,
        )


class MeetingResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    meeting: MeetingOut


class MeetingListResponse(CamelModel):
    success: bool = True
    meetings: list[MeetingOut]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class UserDetailOut(AccountOut):
    profile: Optional[ProfileOut] = None

    @classmethod
    def from_account(cls, account: Account, profile: Optional[Profile]) -> "UserDetailOut":
        return cls(
            **AccountOut.from_domain(account).model_dump(),
            profile=ProfileOut.from_domain(profile, account) if profile is not None else None,
        )


class UserListResponse(CamelModel):
    success: bool = True
    count: int
    users: list[AccountOut]


class UserDetailResponse(CamelModel):
    success: bool = True
    user: UserDetailOut


class AdminStats(CamelModel):
    total_users: int
    total_properties: int
    active_properties: int
    inactive_properties: int
    properties_by_category: list[CountRow]
    properties_by_city: list[CountRow]
    users_by_city: list[CountRow]

    @classmethod
    def from_stats(cls, stats: dict, total_users: int, users_by_city: list) -> "AdminStats":
        return cls(
            total_users=total_users,
            total_properties=stats["total"],
            active_properties=stats["active"],
            inactive_properties=stats["inactive"],
            properties_by_category=_count_rows(stats["by_category"]),
            properties_by_city=_count_rows(stats["by_city"]),
            users_by_city=_count_rows(users_by_city),
        )


class AdminStatsResponse(CamelModel):
    success: bool = True
    stats: AdminStats
