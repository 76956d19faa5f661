"""
utils.py
Dates, dues status, validation, filtering, exports, sample data.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict
from datetime import date, timedelta

import pandas as pd

from errors import ValidationError
from models import (
    CATEGORIES,
    DUES_STATUSES,
    STATUS_ALDIA,
    STATUS_DEBAJA,
    STATUS_ENDEUDA,
    Chapter,
    Member,
)

# Accepted textual date shapes -> (year, month, day) group order
_DATE_PATTERNS = [
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), ("y", "m", "d")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), ("d", "m", "y")),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), ("d", "m", "y")),
    (re.compile(r"^(\d{1,2})/(\d{4})$"), ("m", "y")),
]

# Months without payment before a member counts as lapsed
LAPSE_AFTER_MONTHS = 6


def today_iso() -> str:
    return date.today().isoformat()


def parse_date(text: str | None) -> date | None:
    """
    Parse YYYY-MM-DD, DD-MM-YYYY, DD/MM/YYYY or MM/YYYY (day 1).
    Returns None for empty input, unknown shapes and impossible dates.
    """
    if not text or not text.strip():
        return None
    text = text.strip()
    for pattern, order in _DATE_PATTERNS:
        match = pattern.match(text)
        if not match:
            continue
        parts = dict(zip(order, (int(g) for g in match.groups())))
        try:
            return date(parts["y"], parts["m"], parts.get("d", 1))
        except ValueError:
            return None
    return None


def to_storage(d: date | None) -> str:
    if d is None:
        return ""
    return d.isoformat()


def to_display(d: date | None) -> str:
    if d is None:
        return ""
    return d.strftime("%d/%m/%Y")


def format_as_user_types(raw: str) -> str:
    """
    Live input mask: keep up to 8 digits (DDMMYYYY) and insert '/' after
    the day and the month.
    """
    digits = re.sub(r"\D", "", raw or "")[:8]
    if len(digits) <= 2:
        return digits
    if len(digits) <= 4:
        return f"{digits[:2]}/{digits[2:]}"
    return f"{digits[:2]}/{digits[2:4]}/{digits[4:]}"


def normalize_date(text: str | None, field: str = "date") -> str | None:
    """Storage form for any accepted shape; None when empty."""
    if not text or not text.strip():
        return None
    parsed = parse_date(text)
    if parsed is None:
        raise ValidationError(f"Invalid {field}: {text!r}")
    return to_storage(parsed)


def display_date(text: str | None) -> str:
    """Display form of a stored date, or the raw text if it cannot be parsed."""
    parsed = parse_date(text)
    return to_display(parsed) if parsed else (text or "")


# ---------- Dues status ----------

def infer_status(last_payment_raw: str | None, today: date) -> str:
    """
    Dues status from the last payment date, by whole calendar months.
    Unknown or empty dates count as EN DEUDA.
    """
    paid = parse_date(last_payment_raw)
    if paid is None:
        return STATUS_ENDEUDA
    diff_months = (today.year * 12 + today.month) - (paid.year * 12 + paid.month)
    if diff_months <= 0:
        return STATUS_ALDIA
    if diff_months <= LAPSE_AFTER_MONTHS:
        return STATUS_ENDEUDA
    return STATUS_DEBAJA


def status_summary(members: list[Member], today: date, central_name: str = "SEDE CENTRAL") -> pd.DataFrame:
    """Member counts per chapter and dues status."""
    columns = ["chapter", *DUES_STATUSES, "total"]
    if not members:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame(
        [
            {"chapter": m.chapter or central_name, "status": infer_status(m.last_payment_date, today)}
            for m in members
        ]
    )
    table = pd.crosstab(df["chapter"], df["status"]).reindex(columns=DUES_STATUSES, fill_value=0)
    table.columns.name = None
    table["total"] = table.sum(axis=1)
    return table.reset_index()[columns]


# ---------- Validation ----------

def validate_member_inputs(first_name: str, last_name: str, category: str,
                           birth_date: str, last_payment: str) -> list[str]:
    errors: list[str] = []
    if not first_name.strip():
        errors.append("First name is required.")
    if not last_name.strip():
        errors.append("Last name is required.")
    if category not in CATEGORIES:
        errors.append("Unknown membership category.")
    if birth_date.strip() and parse_date(birth_date) is None:
        errors.append("Birth date must look like DD/MM/YYYY.")
    if last_payment.strip() and parse_date(last_payment) is None:
        errors.append("Last payment must look like DD/MM/YYYY or MM/YYYY.")
    return errors


# ---------- Filtering / pagination ----------

def filter_members(members: list[Member], search: str = "", status: str = "All",
                   today: date | None = None) -> list[Member]:
    today = today or date.today()
    needle = search.strip().lower()
    result = []
    for m in members:
        if needle and not (
            needle in m.full_name.lower()
            or needle in (m.national_id or "").lower()
            or needle in (m.membership_number or "").lower()
        ):
            continue
        if status in DUES_STATUSES and infer_status(m.last_payment_date, today) != status:
            continue
        result.append(m)
    return result


def paginate(items: list, page: int, page_size: int = 25) -> tuple[list, int]:
    """Slice for a 1-based page (clamped to range) plus the page count."""
    total_pages = max(1, math.ceil(len(items) / page_size))
    page = min(max(1, page), total_pages)
    start = (page - 1) * page_size
    return items[start:start + page_size], total_pages


# ---------- Exports ----------

def members_frame(members: list[Member], today: date) -> pd.DataFrame:
    rows = []
    for m in members:
        row = asdict(m)
        row["dues_status"] = infer_status(m.last_payment_date, today)
        rows.append(row)
    return pd.DataFrame(rows)


def members_to_csv_bytes(members: list[Member], today: date) -> bytes:
    return members_frame(members, today).to_csv(index=False).encode("utf-8")


def transfers_to_csv_bytes(transfers) -> bytes:
    df = pd.DataFrame([asdict(t) for t in transfers])
    return df.to_csv(index=False).encode("utf-8")


# ---------- Sample data ----------

def insert_sample_data(cache, today: date | None = None) -> None:
    """
    Insert two chapters and a handful of members through the cache
    (adds new rows each run; chapters are skipped if the name exists).
    """
    today = today or date.today()

    for name, city in (("Consulado Rosario", "Rosario"), ("Consulado Madrid", "Madrid")):
        if cache.get_chapter_by_name(name) is None:
            cache.add_chapter(Chapter(id="", name=name, city=city))

    recent = to_storage(today.replace(day=1))
    three_months = to_storage(today.replace(day=1) - timedelta(days=80))
    a_year = to_storage(today - timedelta(days=400))

    samples = [
        ("Lucía", "Fernández", "F", "ACTIVO", recent, "Consulado Rosario"),
        ("Martín", "Gómez", "M", "ADHERENTE", three_months, "Consulado Rosario"),
        ("Alex", "Pereyra", "X", "INTERNACIONAL", a_year, "Consulado Madrid"),
        ("Carla", "Benítez", "F", "CADETE", None, None),
    ]
    for first, last, gender, category, paid, chapter in samples:
        cache.add_member(
            Member(
                id="",
                membership_number="",
                first_name=first,
                last_name=last,
                gender=gender,
                category=category,
                join_date=to_storage(today),
                last_payment_date=paid,
                chapter=chapter,
            )
        )
