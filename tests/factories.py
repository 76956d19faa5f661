"""Builders for domain objects used across the test suite."""

import uuid

from models import ROLE_MEMBER, Chapter, Member


def make_member(first_name="Ana", last_name=None, **overrides) -> Member:
    data = dict(
        id="",
        membership_number="",
        first_name=first_name,
        last_name=last_name or f"Test{uuid.uuid4().hex[:6]}",
        category="ACTIVO",
        gender="F",
        role=ROLE_MEMBER,
    )
    data.update(overrides)
    return Member(**data)


def make_chapter(name=None, **overrides) -> Chapter:
    data = dict(id="", name=name or f"Consulado {uuid.uuid4().hex[:6]}", city="Rosario")
    data.update(overrides)
    return Chapter(**data)
