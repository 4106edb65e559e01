"""
listings/store.py -- SQLAlchemy-backed persistence for profiles, listings,
contact inquiries and meetings.

Uses SQLAlchemy Core (not ORM) so the dataclasses in listings/models.py stay
the domain representation. Same Repository + Data Mapper layout as
auth/store.py: ListingStore is the repository, the _row_to_* functions are the
mappers.

Security: all queries use bound parameters. No f-strings in SQL. Substring
filters escape LIKE wildcards so user input is matched literally.

Usage:
    store = ListingStore()
    listing = store.create_listing(Listing(owner_id=1, property_type="owner", city="Pune"))
    page = store.list_listings(ListingFilter(city="pune"), page=1, limit=10)
    store.close()
"""

import json
from dataclasses import asdict
from datetime import datetime, time, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    event,
    func,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine

from core.config import get_settings
from listings.models import (
    Address,
    ContactInquiry,
    Listing,
    ListingFilter,
    Meeting,
    Page,
    Profile,
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_profiles = Table(
    "profiles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, nullable=False, unique=True),
    Column("full_name", String(255)),
    Column("email", String(255)),
    Column("phone_no", String(10)),
    Column("phone_no2", String(10)),
    Column("pan_no", String(10)),
    Column("aadhaar_no", String(12)),
    Column("address_line", Text),
    Column("city", String(100)),
    Column("state", String(100)),
    Column("pincode", String(6)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_listings = Table(
    "listings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("property_type", String(10), nullable=False),
    Column("price_tag", String(100)),
    Column("price", Float),
    Column("property_details", Text),
    Column("property_pics", Text),  # JSON array serialized as text
    Column("property_videos", Text),  # JSON array
    Column("contact_info", Text),
    Column("is_furnished", Boolean, nullable=False, server_default="0"),
    Column("has_parking", Boolean, nullable=False, server_default="0"),
    Column("property_category", String(30)),
    Column("bhk", Integer),
    Column("floor", Integer),
    Column("property_age", Integer),
    Column("facing", String(20)),
    Column("build_area", Float),
    Column("carpet_area", Float),
    Column("locality", String(255)),
    Column("city", String(100), nullable=False),
    Column("state", String(100)),
    Column("pincode", String(6)),
    Column("landmark", String(255)),
    Column("amenities", Text),  # JSON array
    Column("nearby_places", Text),  # JSON array
    Column("property_status", String(30), nullable=False, server_default="available"),
    Column("is_active", Boolean, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_contacts = Table(
    "contact_inquiries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("full_name", String(255), nullable=False),
    Column("contact_number", String(10), nullable=False),
    Column("email", String(255), nullable=False),
    Column("description", Text, nullable=False),
    Column("property_id", Integer),
    Column("created_at", String(32), nullable=False),
)

_meetings = Table(
    "meetings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("date", String(32), nullable=False),  # ISO 8601, UTC
    Column("place", String(255), nullable=False),
    Column("property_id", Integer),
    Column("meeting_status", String(20), nullable=False, server_default="scheduled"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_LIST_COLUMNS = ("property_pics", "property_videos", "amenities", "nearby_places")
_MEDIA_COLUMNS = {"pictures": "property_pics", "videos": "property_videos"}
_TOP_N = 10


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_utc_iso(value: datetime) -> str:
    """Normalize to an aware UTC ISO string so stored dates sort lexically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _contains(column, needle: str):
    """Case-insensitive literal substring match."""
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode; SQLite PRAGMAs are per-connection."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _listing_conditions(flt: ListingFilter) -> list:
    c = _listings.c
    conds = []
    if flt.is_active is not None:
        conds.append(c.is_active == flt.is_active)
    if flt.owner_id is not None:
        conds.append(c.owner_id == flt.owner_id)
    if flt.property_type:
        conds.append(c.property_type == flt.property_type)
    if flt.property_category:
        conds.append(c.property_category == flt.property_category)
    if flt.city:
        conds.append(_contains(c.city, flt.city))
    if flt.state:
        conds.append(_contains(c.state, flt.state))
    if flt.location:
        conds.append(
            or_(
                _contains(c.city, flt.location),
                _contains(c.state, flt.location),
                _contains(c.locality, flt.location),
            )
        )
    if flt.bhk is not None:
        conds.append(c.bhk == flt.bhk)
    if flt.min_price is not None:
        conds.append(c.price >= flt.min_price)
    if flt.max_price is not None:
        conds.append(c.price <= flt.max_price)
    if flt.is_furnished is not None:
        conds.append(c.is_furnished == flt.is_furnished)
    if flt.has_parking is not None:
        conds.append(c.has_parking == flt.has_parking)
    if flt.facing:
        conds.append(c.facing == flt.facing)
    return conds


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ListingStore:
    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync handlers in a thread pool.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def _paginate(self, query, count_query, page: int, limit: int, mapper) -> Page:
        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(query.offset((page - 1) * limit).limit(limit)).fetchall()
        return Page(items=[mapper(r) for r in rows], page=page, limit=limit, total=total)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_profile(self, profile: Profile) -> Profile:
        """Insert the profile for an account. One profile per account (UNIQUE)."""
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _profiles.insert().values(
                    account_id=profile.account_id,
                    full_name=profile.full_name,
                    email=profile.email,
                    phone_no=profile.phone_no,
                    phone_no2=profile.phone_no2,
                    pan_no=profile.pan_no,
                    aadhaar_no=profile.aadhaar_no,
                    address_line=profile.address.address_line,
                    city=profile.address.city,
                    state=profile.address.state,
                    pincode=profile.address.pincode,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return self.get_profile(profile.account_id)

    def get_profile(self, account_id: int) -> Optional[Profile]:
        with self.engine.connect() as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.account_id == account_id)).fetchone()
        return _row_to_profile(row) if row is not None else None

    def update_profile(self, account_id: int, **fields) -> Optional[Profile]:
        """Update profile columns. Address parts are passed flat (city=..., pincode=...).

        Returns the updated Profile, or None if the account has no profile.
        """
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_profiles.update().where(_profiles.c.account_id == account_id).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_profile(account_id)

    def delete_profile(self, account_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_profiles.delete().where(_profiles.c.account_id == account_id))
            conn.commit()
        return result.rowcount > 0

    def users_by_city(self) -> list[tuple[Optional[str], int]]:
        """Top profile cities by count, most populous first."""
        count = func.count().label("count")
        query = select(_profiles.c.city, count).group_by(_profiles.c.city).order_by(count.desc()).limit(_TOP_N)
        with self.engine.connect() as conn:
            return [(r[0], r[1]) for r in conn.execute(query).fetchall()]

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def create_listing(self, listing: Listing) -> Listing:
        """Insert a listing and return it with id and timestamps populated."""
        values = asdict(listing)
        values.pop("id")
        for col in _LIST_COLUMNS:
            values[col] = json.dumps(values[col] or [])
        now = _now_iso()
        values["created_at"] = now
        values["updated_at"] = now
        with self.engine.connect() as conn:
            result = conn.execute(_listings.insert().values(**values))
            conn.commit()
            listing_id = result.inserted_primary_key[0]
        return self.get_listing(listing_id)

    def get_listing(self, listing_id: int) -> Optional[Listing]:
        """Fetch a listing by ID regardless of is_active. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_listings.select().where(_listings.c.id == listing_id)).fetchone()
        return _row_to_listing(row) if row is not None else None

    def update_listing(self, listing_id: int, **fields) -> Optional[Listing]:
        """Update mutable listing fields.

        List-valued fields (pictures, videos, amenities, nearby places) must be
        passed as list[str]; this method serializes them to JSON.
        Returns the updated Listing, or None if listing_id was not found.
        """
        for col in _LIST_COLUMNS:
            if col in fields:
                fields[col] = json.dumps(fields[col] or [])
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_listings.update().where(_listings.c.id == listing_id).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_listing(listing_id)

    def list_listings(self, flt: ListingFilter, page: int = 1, limit: int = 10) -> Page:
        """Filtered, newest-first page of listings."""
        conds = _listing_conditions(flt)
        query = _listings.select().order_by(_listings.c.created_at.desc(), _listings.c.id.desc())
        count_query = select(func.count()).select_from(_listings)
        if conds:
            query = query.where(and_(*conds))
            count_query = count_query.where(and_(*conds))
        return self._paginate(query, count_query, page, limit, _row_to_listing)

    def list_by_owner(self, owner_id: int) -> list[Listing]:
        """All listings for an owner, active or not, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _listings.select()
                .where(_listings.c.owner_id == owner_id)
                .order_by(_listings.c.created_at.desc(), _listings.c.id.desc())
            ).fetchall()
        return [_row_to_listing(r) for r in rows]

    def delete_listing(self, listing_id: int) -> bool:
        """Hard delete. Media cleanup is the caller's job (see listings/service.py)."""
        with self.engine.connect() as conn:
            result = conn.execute(_listings.delete().where(_listings.c.id == listing_id))
            conn.commit()
        return result.rowcount > 0

    def delete_listings_by_owner(self, owner_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_listings.delete().where(_listings.c.owner_id == owner_id))
            conn.commit()
        return result.rowcount

    def add_media(self, listing_id: int, kind: str, urls: list[str]) -> Optional[Listing]:
        """Append URLs to the pictures or videos list. kind is "pictures" | "videos"."""
        col = _MEDIA_COLUMNS[kind]
        listing = self.get_listing(listing_id)
        if listing is None:
            return None
        return self.update_listing(listing_id, **{col: [*getattr(listing, col), *urls]})

    def remove_media(self, listing_id: int, kind: str, url: str) -> bool:
        """Drop every occurrence of url from the list. Returns True if it was present."""
        col = _MEDIA_COLUMNS[kind]
        listing = self.get_listing(listing_id)
        if listing is None:
            return False
        current = getattr(listing, col)
        remaining = [u for u in current if u != url]
        if len(remaining) == len(current):
            return False
        self.update_listing(listing_id, **{col: remaining})
        return True

    def listing_stats(self, active_only: bool) -> dict:
        """Counts for the public and admin dashboards.

        active_only=True restricts every figure to visible listings (public
        stats); False counts the whole table and adds active/inactive totals.
        """
        c = _listings.c
        base = [c.is_active.is_(True)] if active_only else []

        def _count(*extra) -> int:
            query = select(func.count()).select_from(_listings)
            if base or extra:
                query = query.where(and_(*base, *extra))
            return conn.execute(query).scalar() or 0

        def _group(column, top: Optional[int] = None) -> list[tuple[Optional[str], int]]:
            count = func.count().label("count")
            query = select(column, count).group_by(column)
            if base:
                query = query.where(and_(*base))
            query = query.order_by(count.desc(), column)
            if top:
                query = query.limit(top)
            return [(r[0], r[1]) for r in conn.execute(query).fetchall()]

        with self.engine.connect() as conn:
            stats = {
                "total": _count(),
                "by_category": _group(c.property_category),
                "by_city": _group(c.city, _TOP_N),
            }
            if active_only:
                stats["available"] = _count(c.property_status == "available")
                stats["sold"] = _count(c.property_status == "sold")
                stats["rented"] = _count(c.property_status == "rented")
            else:
                stats["active"] = _count(c.is_active.is_(True))
                stats["inactive"] = _count(c.is_active.is_(False))
        return stats

    # ------------------------------------------------------------------
    # Contact inquiries
    # ------------------------------------------------------------------

    def create_contact(self, inquiry: ContactInquiry) -> ContactInquiry:
        with self.engine.connect() as conn:
            result = conn.execute(
                _contacts.insert().values(
                    full_name=inquiry.full_name,
                    contact_number=inquiry.contact_number,
                    email=inquiry.email,
                    description=inquiry.description,
                    property_id=inquiry.property_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            contact_id = result.inserted_primary_key[0]
        return self.get_contact(contact_id)

    def get_contact(self, contact_id: int) -> Optional[ContactInquiry]:
        with self.engine.connect() as conn:
            row = conn.execute(_contacts.select().where(_contacts.c.id == contact_id)).fetchone()
        return _row_to_contact(row) if row is not None else None

    def list_contacts(self, page: int = 1, limit: int = 10) -> Page:
        """Newest-first page of contact inquiries."""
        query = _contacts.select().order_by(_contacts.c.created_at.desc(), _contacts.c.id.desc())
        count_query = select(func.count()).select_from(_contacts)
        return self._paginate(query, count_query, page, limit, _row_to_contact)

    def delete_contact(self, contact_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_contacts.delete().where(_contacts.c.id == contact_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    def create_meeting(self, meeting: Meeting) -> Meeting:
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _meetings.insert().values(
                    name=meeting.name,
                    email=meeting.email,
                    date=meeting.date,
                    place=meeting.place,
                    property_id=meeting.property_id,
                    meeting_status=meeting.meeting_status,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            meeting_id = result.inserted_primary_key[0]
        return self.get_meeting(meeting_id)

    def get_meeting(self, meeting_id: int) -> Optional[Meeting]:
        with self.engine.connect() as conn:
            row = conn.execute(_meetings.select().where(_meetings.c.id == meeting_id)).fetchone()
        return _row_to_meeting(row) if row is not None else None

    def find_scheduled_meeting(self, place: str, when: datetime) -> Optional[Meeting]:
        """Return a still-scheduled meeting at place on the same UTC calendar day."""
        day = when.astimezone(timezone.utc).date()
        start = datetime.combine(day, time.min, tzinfo=timezone.utc).isoformat()
        end = datetime.combine(day, time.max, tzinfo=timezone.utc).isoformat()
        c = _meetings.c
        with self.engine.connect() as conn:
            row = conn.execute(
                _meetings.select().where(
                    and_(c.place == place, c.meeting_status == "scheduled", c.date >= start, c.date <= end)
                )
            ).fetchone()
        return _row_to_meeting(row) if row is not None else None

    def list_meetings(
        self,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """Meetings in ascending date order, optionally filtered by status and date range."""
        conds = []
        if status:
            conds.append(_meetings.c.meeting_status == status)
        if start is not None:
            conds.append(_meetings.c.date >= to_utc_iso(start))
        if end is not None:
            conds.append(_meetings.c.date <= to_utc_iso(end))
        query = _meetings.select().order_by(_meetings.c.date.asc(), _meetings.c.id.asc())
        count_query = select(func.count()).select_from(_meetings)
        if conds:
            query = query.where(and_(*conds))
            count_query = count_query.where(and_(*conds))
        return self._paginate(query, count_query, page, limit, _row_to_meeting)

    def update_meeting_status(self, meeting_id: int, status: str) -> Optional[Meeting]:
        with self.engine.connect() as conn:
            result = conn.execute(
                _meetings.update()
                .where(_meetings.c.id == meeting_id)
                .values(meeting_status=status, updated_at=_now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_meeting(meeting_id)

    def delete_meeting(self, meeting_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_meetings.delete().where(_meetings.c.id == meeting_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_profile(row) -> Profile:
    return Profile(
        id=row.id,
        account_id=row.account_id,
        full_name=row.full_name,
        email=row.email,
        phone_no=row.phone_no,
        phone_no2=row.phone_no2,
        pan_no=row.pan_no,
        aadhaar_no=row.aadhaar_no,
        address=Address(
            address_line=row.address_line,
            city=row.city,
            state=row.state,
            pincode=row.pincode,
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_listing(row) -> Listing:
    lists = {col: (json.loads(getattr(row, col)) if getattr(row, col) else []) for col in _LIST_COLUMNS}
    return Listing(
        id=row.id,
        owner_id=row.owner_id,
        property_type=row.property_type,
        city=row.city,
        price_tag=row.price_tag,
        price=row.price,
        property_details=row.property_details,
        contact_info=row.contact_info,
        is_furnished=bool(row.is_furnished),
        has_parking=bool(row.has_parking),
        property_category=row.property_category,
        bhk=row.bhk,
        floor=row.floor,
        property_age=row.property_age,
        facing=row.facing,
        build_area=row.build_area,
        carpet_area=row.carpet_area,
        locality=row.locality,
        state=row.state,
        pincode=row.pincode,
        landmark=row.landmark,
        property_status=row.property_status,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
        **lists,
    )


def _row_to_contact(row) -> ContactInquiry:
    return ContactInquiry(
        id=row.id,
        full_name=row.full_name,
        contact_number=row.contact_number,
        email=row.email,
        description=row.description,
        property_id=row.property_id,
        created_at=row.created_at,
    )


def _row_to_meeting(row) -> Meeting:
    return Meeting(
        id=row.id,
        name=row.name,
        email=row.email,
        date=row.date,
        place=row.place,
        property_id=row.property_id,
        meeting_status=row.meeting_status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
