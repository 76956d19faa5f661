"""
auth.py
Console accounts: bcrypt hashing, login, password change, role checks.

Accounts are separate from members: a PRESIDENTE or REFERENTE account is
scoped to one chapter through `chapter_id`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import bcrypt

import db
from errors import PermissionDeniedError, ValidationError
from logger import get_logger
from models import ROLE_MEMBER, ROLE_NONE, ROLES, Member

logger = get_logger(__name__)

USER_SUPERADMIN = "SUPERADMIN"
USER_ADMIN = "ADMIN"
USER_CHIEF = "PRESIDENTE"
USER_LIAISON = "REFERENTE"
USER_ROLES = [USER_SUPERADMIN, USER_ADMIN, USER_CHIEF, USER_LIAISON]

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class SessionUser:
    id: str
    username: str
    full_name: str
    role: str
    chapter_id: str | None = None


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    """
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(_to_bcrypt_secret(password), bcrypt.gensalt(rounds=12))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))


def _session_from_row(row: dict) -> SessionUser:
    return SessionUser(
        id=row["id"],
        username=row["username"],
        full_name=row.get("full_name") or row["username"],
        role=row["role"],
        chapter_id=row.get("chapter_id") or None,
    )


def login(store, username: str, password: str) -> SessionUser | None:
    rows = store.select("admin_users", username=username.strip())
    if not rows:
        return None
    row = rows[0]
    if not row.get("active", True):
        logger.info("Login refused for inactive account %r", username)
        return None
    if not verify_password(password, row["password_hash"]):
        return None
    return _session_from_row(row)


def create_user(store, username: str, password: str, role: str, full_name: str = "",
                chapter_id: str | None = None) -> SessionUser:
    username = username.strip()
    if not username:
        raise ValidationError("Username is required.")
    if role not in USER_ROLES:
        raise ValidationError(f"Unknown role {role!r}.")
    if role in (USER_CHIEF, USER_LIAISON) and not chapter_id:
        raise ValidationError("Chapter officers need a chapter.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if store.select("admin_users", username=username):
        raise ValidationError(f"Username {username!r} is already taken.")
    row = {
        "id": str(uuid.uuid4()),
        "username": username,
        "password_hash": hash_password(password),
        "full_name": full_name.strip() or username,
        "role": role,
        "chapter_id": chapter_id,
        "active": True,
        "created_at": db.utc_now_iso(),
    }
    store.insert("admin_users", row)
    return _session_from_row(row)


def change_password(store, username: str, new_password: str) -> None:
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    rows = store.select("admin_users", username=username)
    if not rows:
        raise ValidationError(f"Unknown account {username!r}.")
    store.update("admin_users", rows[0]["id"], {"password_hash": hash_password(new_password)})
    db.clear_force_password_change(store)


def is_admin(user: SessionUser | None) -> bool:
    return user is not None and user.role in (USER_SUPERADMIN, USER_ADMIN)


def is_officer_of(user: SessionUser | None, chapter_id: str | None) -> bool:
    return (
        user is not None
        and user.role in (USER_CHIEF, USER_LIAISON)
        and bool(chapter_id)
        and user.chapter_id == chapter_id
    )


def can_manage_chapter(user: SessionUser | None, chapter_id: str | None) -> bool:
    return is_admin(user) or is_officer_of(user, chapter_id)


def assignable_roles(user: SessionUser | None, current: str | None = None) -> list[str]:
    """
    Member roles an account may pick by hand. Officer roles follow chapter
    slots, so chapter officers only keep whatever role the member already has.
    """
    if is_admin(user):
        return list(ROLES)
    roles = [ROLE_NONE, ROLE_MEMBER]
    if current and current not in roles:
        roles.append(current)
    return roles


def check_member_edit(cache, user: SessionUser | None, member: Member, existing: Member | None = None) -> None:
    chapter = cache.chapter_of(member)
    if not can_manage_chapter(user, chapter.id if chapter else None):
        raise PermissionDeniedError("You can only manage members of your own chapter.")
    if member.role not in assignable_roles(user, existing.role if existing else None):
        raise PermissionDeniedError("Officer roles are assigned from the chapter form.")
