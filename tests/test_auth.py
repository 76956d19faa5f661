"""Console accounts: hashing, login, account creation, password change."""

from dataclasses import replace

import pytest

import auth
import db
from errors import PermissionDeniedError, ValidationError
from factories import make_chapter, make_member
from models import ROLE_CHIEF, ROLE_LIAISON, ROLE_MEMBER, ROLE_NONE, ROLES


def test_hash_and_verify():
    hashed = auth.hash_password("secreto1")
    assert hashed != "secreto1"
    assert auth.verify_password("secreto1", hashed)
    assert not auth.verify_password("secreto2", hashed)


def test_long_passwords_are_truncated_to_72_bytes():
    base = "ñ" * 36  # 72 bytes in UTF-8
    hashed = auth.hash_password(base + "tail")
    assert auth.verify_password(base, hashed)


def test_default_admin_can_log_in(sqlite_store):
    user = auth.login(sqlite_store, "admin", "admin123")
    assert user is not None
    assert user.role == auth.USER_SUPERADMIN
    assert auth.is_admin(user)


def test_login_rejects_wrong_password_and_unknown_user(sqlite_store):
    assert auth.login(sqlite_store, "admin", "nope") is None
    assert auth.login(sqlite_store, "ghost", "admin123") is None


def test_inactive_account_cannot_log_in(sqlite_store):
    user = auth.create_user(sqlite_store, "maria", "clave123", auth.USER_ADMIN)
    sqlite_store.update("admin_users", user.id, {"active": False})
    assert auth.login(sqlite_store, "maria", "clave123") is None


def test_create_officer_account(sqlite_store):
    user = auth.create_user(
        sqlite_store, " pres ", "clave123", auth.USER_CHIEF, full_name="Presidenta", chapter_id="c1"
    )
    assert user.username == "pres"
    assert auth.is_officer_of(user, "c1")
    assert not auth.is_officer_of(user, "c2")
    assert not auth.is_admin(user)

    logged = auth.login(sqlite_store, "pres", "clave123")
    assert logged == user


@pytest.mark.parametrize(
    "username, password, role, chapter_id",
    [
        ("", "clave123", auth.USER_ADMIN, None),
        ("pepe", "clave123", "ROOT", None),
        ("pepe", "clave123", auth.USER_LIAISON, None),
        ("pepe", "123", auth.USER_ADMIN, None),
        ("admin", "clave123", auth.USER_ADMIN, None),
    ],
)
def test_create_user_validation(sqlite_store, username, password, role, chapter_id):
    with pytest.raises(ValidationError):
        auth.create_user(sqlite_store, username, password, role, chapter_id=chapter_id)


def test_change_password_clears_forced_change(sqlite_store):
    assert db.is_force_password_change(sqlite_store)

    auth.change_password(sqlite_store, "admin", "nueva-clave")

    assert not db.is_force_password_change(sqlite_store)
    assert auth.login(sqlite_store, "admin", "nueva-clave") is not None
    assert auth.login(sqlite_store, "admin", "admin123") is None


def test_change_password_validation(sqlite_store):
    with pytest.raises(ValidationError):
        auth.change_password(sqlite_store, "admin", "short")
    with pytest.raises(ValidationError):
        auth.change_password(sqlite_store, "ghost", "long-enough")


# ---------------------------------------------------------------------------
# Member edits by account
# ---------------------------------------------------------------------------


def _officer_of(chapter):
    return auth.SessionUser(id="u1", username="pres", full_name="Pres", role=auth.USER_CHIEF, chapter_id=chapter.id)


def test_assignable_roles():
    admin = auth.SessionUser(id="u0", username="admin", full_name="Admin", role=auth.USER_ADMIN)
    officer = auth.SessionUser(id="u1", username="pres", full_name="Pres", role=auth.USER_CHIEF, chapter_id="c1")

    assert auth.assignable_roles(admin) == ROLES
    assert auth.assignable_roles(officer) == [ROLE_NONE, ROLE_MEMBER]
    assert auth.assignable_roles(officer, ROLE_CHIEF) == [ROLE_NONE, ROLE_MEMBER, ROLE_CHIEF]


def test_officer_may_only_add_members_to_own_chapter(cache):
    own = cache.add_chapter(make_chapter("Consulado A"))
    other = cache.add_chapter(make_chapter("Consulado B"))
    officer = _officer_of(own)

    auth.check_member_edit(cache, officer, make_member(chapter=own.name))
    with pytest.raises(PermissionDeniedError):
        auth.check_member_edit(cache, officer, make_member(chapter=other.name))
    with pytest.raises(PermissionDeniedError):
        auth.check_member_edit(cache, officer, make_member(chapter=None))


def test_officer_may_not_hand_out_officer_roles(cache):
    own = cache.add_chapter(make_chapter("Consulado A"))
    officer = _officer_of(own)

    with pytest.raises(PermissionDeniedError):
        auth.check_member_edit(cache, officer, make_member(chapter=own.name, role=ROLE_CHIEF))

    chief = make_member(chapter=own.name, role=ROLE_CHIEF)
    auth.check_member_edit(cache, officer, replace(chief, email="x@example.com"), chief)
    with pytest.raises(PermissionDeniedError):
        auth.check_member_edit(cache, officer, replace(chief, role=ROLE_LIAISON), chief)


def test_admin_may_edit_anywhere(cache):
    admin = auth.SessionUser(id="u0", username="admin", full_name="Admin", role=auth.USER_SUPERADMIN)
    auth.check_member_edit(cache, admin, make_member(chapter=None, role=ROLE_CHIEF))
