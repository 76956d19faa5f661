"""Chief/liaison slots on chapters and the member roles that follow them."""

from dataclasses import replace

import pytest

import officers
from errors import ValidationError
from factories import make_chapter, make_member
from models import ROLE_CHIEF, ROLE_LIAISON, ROLE_MEMBER


def _role(cache, member):
    return cache.get_member(member.id).role


# ---------------------------------------------------------------------------
# bind_officer_ids
# ---------------------------------------------------------------------------


def test_bind_fills_ids_from_names(cache):
    member = cache.add_member(make_member("Lucía", "Fernández"))
    bound = officers.bind_officer_ids(cache, make_chapter(chief_officer_name="Lucía Fernández"))

    assert bound.chief_officer_id == member.id
    assert bound.liaison_officer_id is None


def test_bind_drops_id_when_name_is_cleared_or_changed(cache):
    member = cache.add_member(make_member("Lucía", "Fernández"))
    chapter = make_chapter(
        chief_officer_name="", chief_officer_id=member.id,
        liaison_officer_name="Nobody Known", liaison_officer_id=member.id,
    )
    bound = officers.bind_officer_ids(cache, chapter)

    assert bound.chief_officer_id is None
    assert bound.liaison_officer_id is None
    assert bound.liaison_officer_name == "Nobody Known"


def test_bind_keeps_matching_id(cache):
    member = cache.add_member(make_member("Lucía", "Fernández"))
    chapter = make_chapter(chief_officer_name="Lucía Fernández", chief_officer_id=member.id)
    assert officers.bind_officer_ids(cache, chapter).chief_officer_id == member.id


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------


def test_new_chief_is_promoted(cache):
    member = cache.add_member(make_member())
    saved = officers.save_chapter(cache, make_chapter(chief_officer_name=member.full_name))

    assert saved.chief_officer_id == member.id
    assert _role(cache, member) == ROLE_CHIEF


def test_new_liaison_is_promoted(cache):
    member = cache.add_member(make_member())
    officers.save_chapter(cache, make_chapter(liaison_officer_name=member.full_name))
    assert _role(cache, member) == ROLE_LIAISON


def test_liaison_elsewhere_becomes_chief_and_leaves_that_slot(cache):
    member = cache.add_member(make_member())
    a = officers.save_chapter(cache, make_chapter("Consulado A", liaison_officer_name=member.full_name))
    assert _role(cache, member) == ROLE_LIAISON

    officers.save_chapter(cache, make_chapter("Consulado B", chief_officer_name=member.full_name))

    a = cache.get_chapter(a.id)
    assert a.liaison_officer_name == "" and a.liaison_officer_id is None
    assert _role(cache, member) == ROLE_CHIEF


def test_chief_is_not_downgraded_to_liaison(cache):
    member = cache.add_member(make_member())
    officers.save_chapter(cache, make_chapter("Consulado A", chief_officer_name=member.full_name))
    officers.save_chapter(cache, make_chapter("Consulado B", liaison_officer_name=member.full_name))

    assert _role(cache, member) == ROLE_CHIEF


def test_chief_of_another_chapter_is_refused(cache, store):
    member = cache.add_member(make_member())
    officers.save_chapter(cache, make_chapter("Consulado A", chief_officer_name=member.full_name))
    store.calls.clear()

    with pytest.raises(ValidationError):
        officers.save_chapter(cache, make_chapter("Consulado B", chief_officer_name=member.full_name))

    assert cache.get_chapter_by_name("Consulado B") is None
    assert ("insert", "chapters") not in store.calls


def test_chief_may_be_saved_again_on_own_chapter(cache):
    member = cache.add_member(make_member())
    chapter = officers.save_chapter(cache, make_chapter(chief_officer_name=member.full_name))

    saved = officers.save_chapter(cache, replace(chapter, city="Córdoba"))

    assert saved.chief_officer_id == member.id


def test_same_chapter_chief_and_liaison_keeps_chief(cache):
    member = cache.add_member(make_member())
    officers.save_chapter(
        cache, make_chapter(chief_officer_name=member.full_name, liaison_officer_name=member.full_name)
    )
    assert _role(cache, member) == ROLE_CHIEF


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------


def test_replaced_chief_is_demoted(cache):
    old = cache.add_member(make_member("Old"))
    new = cache.add_member(make_member("New"))
    chapter = officers.save_chapter(cache, make_chapter(chief_officer_name=old.full_name))

    officers.save_chapter(cache, replace(chapter, chief_officer_name=new.full_name, chief_officer_id=None))

    assert _role(cache, old) == ROLE_MEMBER
    assert _role(cache, new) == ROLE_CHIEF
    assert cache.get_chapter(chapter.id).chief_officer_id == new.id


def test_replaced_chief_keeps_role_when_chief_elsewhere(cache):
    """Rows written before the one-chief rule can still name a chief twice."""
    old = cache.add_member(make_member("Old"))
    new = cache.add_member(make_member("New"))
    a = officers.save_chapter(cache, make_chapter("Consulado A", chief_officer_name=old.full_name))
    cache.add_chapter(make_chapter("Consulado B", chief_officer_name=old.full_name, chief_officer_id=old.id))

    officers.save_chapter(cache, replace(a, chief_officer_name=new.full_name, chief_officer_id=None))

    assert _role(cache, old) == ROLE_CHIEF


def test_cleared_liaison_is_demoted(cache):
    member = cache.add_member(make_member())
    chapter = officers.save_chapter(cache, make_chapter(liaison_officer_name=member.full_name))

    officers.save_chapter(cache, replace(chapter, liaison_officer_name=""))

    assert _role(cache, member) == ROLE_MEMBER
    assert cache.get_chapter(chapter.id).liaison_officer_id is None


def test_unchanged_officers_are_left_alone(cache, store):
    member = cache.add_member(make_member())
    chapter = officers.save_chapter(cache, make_chapter(chief_officer_name=member.full_name))
    store.calls.clear()

    officers.save_chapter(cache, replace(chapter, city="Córdoba"))

    assert ("update", "members") not in store.calls
    assert _role(cache, member) == ROLE_CHIEF


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


def test_reconciliation_failure_does_not_fail_the_save(cache, store):
    member = cache.add_member(make_member())
    store.fail("update", "members")

    saved = officers.save_chapter(cache, make_chapter(chief_officer_name=member.full_name))

    assert cache.get_chapter(saved.id) == saved
    assert _role(cache, member) == ROLE_MEMBER


def test_vacate_offices_clears_held_slots(cache):
    member = cache.add_member(make_member())
    chapter = officers.save_chapter(
        cache, make_chapter(chief_officer_name=member.full_name, liaison_officer_name=member.full_name)
    )

    officers.vacate_offices(cache, member.id, chapter.id)

    chapter = cache.get_chapter(chapter.id)
    assert chapter.chief_officer_name == "" and chapter.chief_officer_id is None
    assert chapter.liaison_officer_name == "" and chapter.liaison_officer_id is None


def test_vacate_offices_swallows_store_failure(cache, store):
    member = cache.add_member(make_member())
    chapter = officers.save_chapter(cache, make_chapter(chief_officer_name=member.full_name))
    store.fail("update", "chapters")

    officers.vacate_offices(cache, member.id, chapter.id)

    assert cache.get_chapter(chapter.id).chief_officer_id == member.id


def test_renamed_chapter_keeps_its_members_and_chief(cache):
    chapter = officers.save_chapter(cache, make_chapter("Consulado A"))
    member = cache.add_member(make_member(chapter="Consulado A"))
    chapter = officers.save_chapter(cache, replace(chapter, chief_officer_name=member.full_name))

    officers.save_chapter(cache, replace(chapter, name="Consulado Alfa"))

    assert [m.id for m in cache.get_members("Consulado Alfa")] == [member.id]
    assert cache.get_chapter(chapter.id).chief_officer_id == member.id
    assert _role(cache, member) == ROLE_CHIEF
