"""
models.py
Domain dataclasses (members, chapters, transfer requests), enums as constants,
row mapping to/from the store.
"""

from __future__ import annotations

from dataclasses import dataclass

# Membership tiers
CATEGORIES = [
    "ACTIVO",
    "ADHERENTE",
    "INTERNACIONAL",
    "CADETE",
    "MENOR",
    "VITALICIO",
    "BEBÉ",
    "ACTIVO EXTERIOR",
]
DEFAULT_CATEGORY = "ADHERENTE"

GENDERS = ["M", "F", "X"]

# Member roles
ROLE_NONE = "NONE"
ROLE_MEMBER = "SOCIO"
ROLE_CHIEF = "PRESIDENTE"
ROLE_LIAISON = "REFERENTE"
ROLES = [ROLE_NONE, ROLE_MEMBER, ROLE_CHIEF, ROLE_LIAISON]
OFFICER_ROLES = (ROLE_CHIEF, ROLE_LIAISON)

# Dues status (derived, never stored)
STATUS_ALDIA = "AL DÍA"
STATUS_ENDEUDA = "EN DEUDA"
STATUS_DEBAJA = "DE BAJA"
DUES_STATUSES = [STATUS_ALDIA, STATUS_ENDEUDA, STATUS_DEBAJA]

# Transfer request lifecycle
TRANSFER_PENDING = "PENDING"
TRANSFER_APPROVED = "APPROVED"
TRANSFER_REJECTED = "REJECTED"
TRANSFER_CANCELLED = "CANCELLED"
TRANSFER_STATUSES = [TRANSFER_PENDING, TRANSFER_APPROVED, TRANSFER_REJECTED, TRANSFER_CANCELLED]

# Allowed next states; terminal states have none
TRANSFER_TRANSITIONS = {
    TRANSFER_PENDING: {TRANSFER_APPROVED, TRANSFER_REJECTED, TRANSFER_CANCELLED},
    TRANSFER_APPROVED: set(),
    TRANSFER_REJECTED: set(),
    TRANSFER_CANCELLED: set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in TRANSFER_TRANSITIONS.get(current, set())


@dataclass(frozen=True)
class Member:
    id: str
    membership_number: str
    first_name: str
    last_name: str
    national_id: str = ""
    category: str = DEFAULT_CATEGORY
    gender: str = "M"
    email: str = ""
    phone: str = ""
    birth_date: str | None = None
    join_date: str | None = None
    last_payment_date: str | None = None  # any accepted date shape; storage form once written
    chapter: str | None = None  # chapter name; empty means the central chapter
    role: str = ROLE_MEMBER
    photo_url: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


@dataclass(frozen=True)
class Chapter:
    id: str
    name: str
    city: str = ""
    country: str = "Argentina"
    address: str = ""
    email: str = ""
    phone: str = ""
    website: str = ""
    social_instagram: str = ""
    chief_officer_name: str = ""
    chief_officer_id: str | None = None
    liaison_officer_name: str = ""
    liaison_officer_id: str | None = None
    vice_president: str = ""
    secretary: str = ""
    treasurer: str = ""
    is_official: bool = False
    official_since: str | None = None
    logo_url: str | None = None
    banner_url: str | None = None


@dataclass(frozen=True)
class TransferRequest:
    id: str
    member_id: str
    member_name: str
    from_chapter_id: str
    from_chapter_name: str
    to_chapter_id: str
    to_chapter_name: str
    request_date: str
    status: str = TRANSFER_PENDING
    comment: str = ""


# ---------- Row mapping ----------

def _clean(value, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _optional(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("true", "1", "yes")


def member_from_row(row) -> Member:
    row = dict(row)
    gender = row.get("gender")
    member_id = _clean(row.get("id"))
    return Member(
        id=member_id,
        membership_number=_clean(row.get("membership_number"), member_id),
        first_name=_clean(row.get("first_name")),
        last_name=_clean(row.get("last_name")),
        national_id=_clean(row.get("national_id")),
        category=_clean(row.get("category"), DEFAULT_CATEGORY),
        gender=gender if gender in GENDERS else "M",
        email=_clean(row.get("email")),
        phone=_clean(row.get("phone")),
        birth_date=_optional(row.get("birth_date")),
        join_date=_optional(row.get("join_date")),
        last_payment_date=_optional(row.get("last_payment_date")),
        chapter=_optional(row.get("chapter_name")),
        role=_clean(row.get("role"), ROLE_MEMBER),
        photo_url=_optional(row.get("photo_url")),
    )


def member_to_row(m: Member) -> dict:
    return {
        "id": m.id,
        "membership_number": m.membership_number or None,
        "first_name": m.first_name or "",
        "last_name": m.last_name or "",
        "national_id": m.national_id or "",
        "category": m.category or DEFAULT_CATEGORY,
        "gender": m.gender if m.gender in GENDERS else "M",
        "email": m.email or "",
        "phone": m.phone or "",
        "birth_date": m.birth_date or None,
        "join_date": m.join_date or None,
        "last_payment_date": m.last_payment_date or None,
        "chapter_name": m.chapter or None,
        "role": m.role or ROLE_MEMBER,
        "photo_url": m.photo_url or None,
    }


def chapter_from_row(row) -> Chapter:
    row = dict(row)
    return Chapter(
        id=_clean(row.get("id")),
        name=_clean(row.get("name")),
        city=_clean(row.get("city")),
        country=_clean(row.get("country"), "Argentina"),
        address=_clean(row.get("address")),
        email=_clean(row.get("email")),
        phone=_clean(row.get("phone")),
        website=_clean(row.get("website")),
        social_instagram=_clean(row.get("social_instagram")),
        chief_officer_name=_clean(row.get("chief_officer_name")),
        chief_officer_id=_optional(row.get("chief_officer_id")),
        liaison_officer_name=_clean(row.get("liaison_officer_name")),
        liaison_officer_id=_optional(row.get("liaison_officer_id")),
        vice_president=_clean(row.get("vice_president")),
        secretary=_clean(row.get("secretary")),
        treasurer=_clean(row.get("treasurer")),
        is_official=_as_bool(row.get("is_official")),
        official_since=_optional(row.get("official_since")),
        logo_url=_optional(row.get("logo_url")),
        banner_url=_optional(row.get("banner_url")),
    )


def chapter_to_row(c: Chapter) -> dict:
    return {
        "id": c.id,
        "name": c.name.strip(),
        "city": c.city or "",
        "country": c.country or "Argentina",
        "address": c.address or "",
        "email": c.email or None,
        "phone": c.phone or None,
        "website": c.website or None,
        "social_instagram": c.social_instagram or None,
        "chief_officer_name": c.chief_officer_name or "",
        "chief_officer_id": c.chief_officer_id or None,
        "liaison_officer_name": c.liaison_officer_name or "",
        "liaison_officer_id": c.liaison_officer_id or None,
        "vice_president": c.vice_president or None,
        "secretary": c.secretary or None,
        "treasurer": c.treasurer or None,
        "is_official": bool(c.is_official),
        "official_since": c.official_since or None,
        "logo_url": c.logo_url or None,
        "banner_url": c.banner_url or None,
    }


def transfer_from_row(row) -> TransferRequest:
    row = dict(row)
    return TransferRequest(
        id=_clean(row.get("id")),
        member_id=_clean(row.get("member_id")),
        member_name=_clean(row.get("member_name")),
        from_chapter_id=_clean(row.get("from_chapter_id")),
        from_chapter_name=_clean(row.get("from_chapter_name")),
        to_chapter_id=_clean(row.get("to_chapter_id")),
        to_chapter_name=_clean(row.get("to_chapter_name")),
        request_date=_clean(row.get("request_date")),
        status=_clean(row.get("status"), TRANSFER_PENDING),
        comment=_clean(row.get("comment")),
    )


def transfer_to_row(t: TransferRequest) -> dict:
    return {
        "id": t.id,
        "member_id": t.member_id,
        "member_name": t.member_name,
        "from_chapter_id": t.from_chapter_id,
        "from_chapter_name": t.from_chapter_name,
        "to_chapter_id": t.to_chapter_id,
        "to_chapter_name": t.to_chapter_name,
        "request_date": t.request_date,
        "status": t.status,
        "comment": t.comment or None,
    }


# ---------- Labels ----------

_GENDERED = {
    "Socio": ("Socio", "Socia", "Socix"),
    "Presidente": ("Presidente", "Presidenta", "Presidentx"),
    "Referente": ("Referente", "Referenta", "Referentx"),
    "Nacido": ("Nacido", "Nacida", "Nacidx"),
}

ROLE_LABELS = {
    ROLE_NONE: "Sin rol",
    ROLE_MEMBER: "Socio",
    ROLE_CHIEF: "Presidente",
    ROLE_LIAISON: "Referente",
}


def gender_label(label: str, gender: str = "M") -> str:
    """Inflect a UI label for M/F/X; unknown labels come back unchanged."""
    forms = _GENDERED.get(label)
    if not forms:
        return label
    return forms[GENDERS.index(gender)] if gender in GENDERS else forms[0]


def role_label(role: str, gender: str = "M") -> str:
    return gender_label(ROLE_LABELS.get(role, role), gender)
