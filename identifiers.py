"""
identifiers.py
Change a member's id (the row key) or public membership number.

The id cannot be renamed in place, so a change is delete-then-insert; when
the insert fails the original row is put back and the insert error is
re-raised, whatever happened to the rollback.
"""

from __future__ import annotations

from dataclasses import replace

from errors import ConsoleError, NotFoundError, ValidationError
from logger import get_logger
from models import Member

logger = get_logger(__name__)

ID_VALID = "VALID"
ID_TAKEN = "TAKEN"


def _clean_candidate(candidate: str) -> str:
    candidate = (candidate or "").strip()
    if not candidate:
        raise ValidationError("The new number cannot be empty.")
    return candidate


def _get_member(cache, member_id: str) -> Member:
    member = cache.get_member(member_id)
    if member is None:
        raise NotFoundError(f"Member {member_id} not found.")
    return member


def propose_new_id(cache, member_id: str, candidate: str) -> str:
    candidate = _clean_candidate(candidate)
    for other in cache.get_members():
        if other.id == member_id:
            continue
        if candidate in (other.id, other.membership_number):
            return ID_TAKEN
    return ID_VALID


def commit_id_change(cache, member_id: str, candidate: str) -> Member:
    original = _get_member(cache, member_id)
    candidate = _clean_candidate(candidate)
    if propose_new_id(cache, member_id, candidate) == ID_TAKEN:
        raise ValidationError(f"Number {candidate} is already in use.")
    if candidate == original.id:
        return original

    number = original.membership_number
    if not number or number == original.id:
        number = candidate
    renamed = replace(original, id=candidate, membership_number=number)

    cache.delete_member(original.id)
    try:
        created = cache.add_member(renamed)
    except Exception:
        # The original row is already gone; put it back whatever the failure
        try:
            cache.add_member(original)
        except Exception:
            logger.exception("Rollback failed: member %s could not be restored", original.id)
        else:
            logger.warning("Id change %s -> %s failed; original restored", original.id, candidate)
        raise

    _repoint_officer_ids(cache, original.id, created.id)
    logger.info("Member id changed %s -> %s", original.id, created.id)
    return created


def _repoint_officer_ids(cache, old_id: str, new_id: str) -> None:
    for chapter in cache.get_chapters():
        changes = {}
        if chapter.chief_officer_id == old_id:
            changes["chief_officer_id"] = new_id
        if chapter.liaison_officer_id == old_id:
            changes["liaison_officer_id"] = new_id
        if not changes:
            continue
        try:
            cache.update_chapter(replace(chapter, **changes))
        except ConsoleError:
            logger.exception("Could not re-point officer id on chapter %s", chapter.id)


def change_membership_number(cache, member_id: str, number: str) -> Member:
    member = _get_member(cache, member_id)
    number = _clean_candidate(number)
    if propose_new_id(cache, member_id, number) == ID_TAKEN:
        raise ValidationError(f"Number {number} is already in use.")
    return cache.update_member(replace(member, membership_number=number))
