"""
officers.py
Keep member roles consistent with the chief/liaison slots of each chapter.

Chapters reference their officers by member id, with the display name kept
alongside for rows written before ids existed. Reconciliation runs after the
chapter write succeeded; its failures are logged, never raised.
"""

from __future__ import annotations

from dataclasses import replace

from errors import ConsoleError, ValidationError
from logger import get_logger
from models import ROLE_CHIEF, ROLE_LIAISON, ROLE_MEMBER, Chapter, Member

logger = get_logger(__name__)

# slot -> (id field, name field, role)
SLOTS = {
    "chief": ("chief_officer_id", "chief_officer_name", ROLE_CHIEF),
    "liaison": ("liaison_officer_id", "liaison_officer_name", ROLE_LIAISON),
}


def resolve_officer(cache, officer_id: str | None, officer_name: str | None) -> Member | None:
    if officer_id:
        member = cache.get_member(officer_id)
        if member is not None:
            return member
    return cache.find_member_by_name(officer_name or "")


def holds_slot(chapter: Chapter, slot: str, member: Member) -> bool:
    id_field, name_field, _ = SLOTS[slot]
    officer_id = getattr(chapter, id_field)
    if officer_id:
        return officer_id == member.id
    name = getattr(chapter, name_field)
    return bool(name) and name == member.full_name


def holds_slot_elsewhere(cache, slot: str, member: Member, chapter_id: str) -> bool:
    return any(holds_slot(c, slot, member) for c in cache.get_chapters() if c.id != chapter_id)


def _same_officer(slot: str, a: Chapter, b: Chapter) -> bool:
    id_field, name_field, _ = SLOTS[slot]
    if getattr(a, id_field) and getattr(b, id_field):
        return getattr(a, id_field) == getattr(b, id_field)
    return (getattr(a, name_field) or "") == (getattr(b, name_field) or "")


def bind_officer_ids(cache, chapter: Chapter) -> Chapter:
    """Fill officer ids from names; drop ids whose slot name was emptied."""
    changes = {}
    for id_field, name_field, _ in SLOTS.values():
        name = (getattr(chapter, name_field) or "").strip()
        officer_id = getattr(chapter, id_field)
        if not name:
            changes[id_field] = None
            changes[name_field] = ""
            continue
        current = cache.get_member(officer_id) if officer_id else None
        if current is not None and current.full_name == name:
            continue
        match = cache.find_member_by_name(name)
        changes[id_field] = match.id if match else None
    return replace(chapter, **changes)


def _set_role(cache, member: Member, role: str) -> None:
    cache.update_member(replace(member, role=role))
    logger.info("Member %s role %s -> %s", member.id, member.role, role)


def _release_outgoing(cache, slot: str, previous: Chapter, saved: Chapter) -> None:
    id_field, name_field, role = SLOTS[slot]
    if not (getattr(previous, name_field) or getattr(previous, id_field)):
        return
    if _same_officer(slot, previous, saved):
        return
    outgoing = resolve_officer(cache, getattr(previous, id_field), getattr(previous, name_field))
    if outgoing is None or outgoing.role != role:
        return
    if holds_slot_elsewhere(cache, slot, outgoing, saved.id):
        return
    _set_role(cache, outgoing, ROLE_MEMBER)


def _promote_chief(cache, saved: Chapter) -> None:
    member = resolve_officer(cache, saved.chief_officer_id, saved.chief_officer_name)
    if member is None or member.role == ROLE_CHIEF:
        return
    # A chief officer does not keep a liaison slot at another chapter
    for chapter in cache.get_chapters():
        if chapter.id != saved.id and holds_slot(chapter, "liaison", member):
            cache.update_chapter(replace(chapter, liaison_officer_name="", liaison_officer_id=None))
            logger.info("Vacated liaison slot of %s held by new chief officer %s", chapter.name, member.id)
    _set_role(cache, cache.get_member(member.id) or member, ROLE_CHIEF)


def _promote_liaison(cache, saved: Chapter) -> None:
    member = resolve_officer(cache, saved.liaison_officer_id, saved.liaison_officer_name)
    if member is None or member.role in (ROLE_LIAISON, ROLE_CHIEF):
        return
    if any(holds_slot(c, "chief", member) for c in cache.get_chapters()):
        return
    _set_role(cache, member, ROLE_LIAISON)


def reconcile_officers(cache, previous: Chapter | None, saved: Chapter) -> None:
    steps = []
    if previous is not None:
        steps.append(("release chief", lambda: _release_outgoing(cache, "chief", previous, saved)))
        steps.append(("release liaison", lambda: _release_outgoing(cache, "liaison", previous, saved)))
    steps.append(("promote chief", lambda: _promote_chief(cache, saved)))
    steps.append(("promote liaison", lambda: _promote_liaison(cache, cache.get_chapter(saved.id) or saved)))
    for label, step in steps:
        try:
            step()
        except ConsoleError:
            logger.exception("Officer reconciliation step %r failed for chapter %s", label, saved.id)


def save_chapter(cache, chapter: Chapter) -> Chapter:
    """
    Add or update a chapter, then reconcile officer roles (best-effort).
    A member can be chief officer of one chapter only.
    """
    previous = cache.get_chapter(chapter.id) if chapter.id else None
    chapter = bind_officer_ids(cache, chapter)
    chief = resolve_officer(cache, chapter.chief_officer_id, chapter.chief_officer_name)
    if chief is not None and holds_slot_elsewhere(cache, "chief", chief, chapter.id):
        raise ValidationError(f"{chief.full_name} is already chief officer of another chapter.")
    if previous is None:
        saved = cache.add_chapter(chapter)
    else:
        saved = cache.update_chapter(chapter)
    reconcile_officers(cache, previous, saved)
    return saved


def vacate_offices(cache, member_id: str, chapter_id: str) -> None:
    """Clear chief/liaison slots on `chapter_id` held by the member (best-effort)."""
    chapter = cache.get_chapter(chapter_id)
    member = cache.get_member(member_id)
    if chapter is None or member is None:
        return
    changes = {}
    for slot, (id_field, name_field, _) in SLOTS.items():
        if holds_slot(chapter, slot, member):
            changes[id_field] = None
            changes[name_field] = ""
    if not changes:
        return
    try:
        cache.update_chapter(replace(chapter, **changes))
    except ConsoleError:
        logger.exception("Could not vacate offices of member %s on chapter %s", member_id, chapter_id)
