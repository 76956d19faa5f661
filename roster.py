"""
roster.py
In-memory mirror of the members, chapters and transfer_requests tables.

Every mutator writes to the store first, then updates memory, then notifies
subscribers (no payload: subscribers re-read through the getters). A failed
write leaves memory untouched.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Callable

from errors import ConsoleError, InvalidTransitionError, NotFoundError, ValidationError
from logger import get_logger
from models import (
    Chapter,
    Member,
    TransferRequest,
    can_transition,
    chapter_from_row,
    chapter_to_row,
    member_from_row,
    member_to_row,
    transfer_from_row,
    transfer_to_row,
)
from utils import normalize_date

logger = get_logger(__name__)

Subscriber = Callable[[], None]


def new_member_id() -> str:
    # 10 digits, same shape as the numbers admins type by hand
    return str(uuid.uuid4().int)[-10:]


class RosterCache:
    def __init__(self, store, central_chapter_name: str = "SEDE CENTRAL"):
        self.store = store
        self.central_chapter_name = central_chapter_name
        self._members: list[Member] = []
        self._chapters: list[Chapter] = []
        self._transfers: list[TransferRequest] = []
        self._subscribers: list[Subscriber] = []
        self._ready = False

    # ---------- lifecycle ----------

    @property
    def is_ready(self) -> bool:
        return self._ready

    def init(self) -> None:
        """Load all three tables; raises RemoteStoreError if any read fails."""
        members = [member_from_row(r) for r in self.store.select("members")]
        chapters = [chapter_from_row(r) for r in self.store.select("chapters", order_by="name")]
        transfers = [
            transfer_from_row(r) for r in self.store.select("transfer_requests", order_by="-request_date")
        ]
        self._members, self._chapters, self._transfers = members, chapters, transfers
        logger.info(
            "Roster loaded: %d members, %d chapters, %d transfer requests",
            len(members), len(chapters), len(transfers),
        )
        self._ensure_central_chapter()
        self._ready = True
        self._notify()

    def shutdown(self) -> None:
        self._subscribers = []
        self._members, self._chapters, self._transfers = [], [], []
        self._ready = False

    def _ensure_central_chapter(self) -> None:
        if self.central_chapter() is not None:
            return
        central = Chapter(id=str(uuid.uuid4()), name=self.central_chapter_name, is_official=True)
        try:
            self.store.insert("chapters", chapter_to_row(central))
        except ConsoleError:
            logger.exception("Could not create central chapter %r", self.central_chapter_name)
            return
        self._chapters.append(central)
        logger.info("Created central chapter %r", self.central_chapter_name)

    # ---------- subscriptions ----------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception:
                logger.exception("Roster subscriber %r failed", callback)

    # ---------- readers ----------

    def is_central(self, chapter_name: str | None) -> bool:
        return not (chapter_name or "").strip() or (
            chapter_name.strip().upper() == self.central_chapter_name.upper()
        )

    def get_members(self, chapter_name: str | None = None) -> list[Member]:
        if not chapter_name:
            return list(self._members)
        if self.is_central(chapter_name):
            return [m for m in self._members if self.is_central(m.chapter)]
        return [m for m in self._members if m.chapter == chapter_name]

    def get_member(self, member_id: str) -> Member | None:
        return next((m for m in self._members if m.id == member_id), None)

    def find_member_by_name(self, full_name: str) -> Member | None:
        full_name = (full_name or "").strip()
        if not full_name:
            return None
        return next((m for m in self._members if m.full_name == full_name), None)

    def get_chapters(self) -> list[Chapter]:
        return list(self._chapters)

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        return next((c for c in self._chapters if c.id == chapter_id), None)

    def get_chapter_by_name(self, name: str | None) -> Chapter | None:
        key = (name or "").strip().upper()
        if not key:
            return None
        return next((c for c in self._chapters if c.name.upper() == key), None)

    def central_chapter(self) -> Chapter | None:
        return self.get_chapter_by_name(self.central_chapter_name)

    def chapter_of(self, member: Member) -> Chapter | None:
        if self.is_central(member.chapter):
            return self.central_chapter()
        return self.get_chapter_by_name(member.chapter)

    def get_transfers(self, chapter_name: str) -> dict[str, list[TransferRequest]]:
        """Requests into and out of a chapter, matched by chapter id when it is known."""
        chapter = self.get_chapter_by_name(chapter_name)
        if chapter is None:
            return {
                "incoming": [t for t in self._transfers if t.to_chapter_name == chapter_name],
                "outgoing": [t for t in self._transfers if t.from_chapter_name == chapter_name],
            }

        def matches(chapter_id: str, name: str) -> bool:
            # Rows without an id predate id tracking
            return chapter_id == chapter.id if chapter_id else name.upper() == chapter.name.upper()

        return {
            "incoming": [t for t in self._transfers if matches(t.to_chapter_id, t.to_chapter_name)],
            "outgoing": [t for t in self._transfers if matches(t.from_chapter_id, t.from_chapter_name)],
        }

    def get_all_transfers(self) -> list[TransferRequest]:
        return list(self._transfers)

    def get_transfer(self, transfer_id: str) -> TransferRequest | None:
        return next((t for t in self._transfers if t.id == transfer_id), None)

    def get_member_transfers(self, member_id: str) -> list[TransferRequest]:
        return [t for t in self._transfers if t.member_id == member_id]

    # ---------- member mutators ----------

    def _prepare_member(self, member: Member, replacing: str | None = None) -> Member:
        if not member.first_name.strip() or not member.last_name.strip():
            raise ValidationError("First and last name are required.")
        member = replace(
            member,
            first_name=member.first_name.strip(),
            last_name=member.last_name.strip(),
            birth_date=normalize_date(member.birth_date, "birth date"),
            join_date=normalize_date(member.join_date, "join date"),
            last_payment_date=normalize_date(member.last_payment_date, "last payment date"),
            chapter=(member.chapter or "").strip() or None,
        )
        others = [m for m in self._members if m.id != replacing]
        if any(m.id == member.id for m in others):
            raise ValidationError(f"Member id {member.id} already exists.")
        if any(m.membership_number == member.membership_number for m in others):
            raise ValidationError(f"Membership number {member.membership_number} is already taken.")
        return member

    def add_member(self, member: Member) -> Member:
        if not member.id:
            member = replace(member, id=new_member_id())
        if not member.membership_number:
            member = replace(member, membership_number=member.id)
        member = self._prepare_member(member)
        self.store.insert("members", member_to_row(member))
        self._members.insert(0, member)
        self._notify()
        return member

    def update_member(self, member: Member) -> Member:
        if self.get_member(member.id) is None:
            raise NotFoundError(f"Member {member.id} not found.")
        if not member.membership_number:
            member = replace(member, membership_number=member.id)
        member = self._prepare_member(member, replacing=member.id)
        self.store.update("members", member.id, member_to_row(member))
        self._members = [member if m.id == member.id else m for m in self._members]
        self._notify()
        return member

    def delete_member(self, member_id: str) -> None:
        if self.get_member(member_id) is None:
            raise NotFoundError(f"Member {member_id} not found.")
        self.store.delete("members", member_id)
        self._members = [m for m in self._members if m.id != member_id]
        self._notify()

    def assign_unaffiliated_to_central(self) -> int:
        """Write the central chapter name onto members with no affiliation."""
        assigned = 0
        for member in [m for m in self._members if not (m.chapter or "").strip()]:
            try:
                self.store.update("members", member.id, {"chapter_name": self.central_chapter_name})
            except ConsoleError:
                logger.warning("Could not assign member %s to the central chapter", member.id)
                continue
            updated = replace(member, chapter=self.central_chapter_name)
            self._members = [updated if m.id == member.id else m for m in self._members]
            assigned += 1
        if assigned:
            logger.info("Assigned %d member(s) to %s", assigned, self.central_chapter_name)
            self._notify()
        return assigned

    # ---------- chapter mutators ----------

    def _prepare_chapter(self, chapter: Chapter) -> Chapter:
        name = chapter.name.strip()
        if not name:
            raise ValidationError("Chapter name is required.")
        if any(c.name.upper() == name.upper() for c in self._chapters if c.id != chapter.id):
            raise ValidationError(f"A chapter named {name!r} already exists.")
        return replace(chapter, name=name)

    def _follows(self, member: Member, chapter: Chapter) -> bool:
        return bool(member.chapter) and member.chapter.strip().upper() == chapter.name.upper()

    def _write_affiliation(self, members: list[Member], chapter_name: str) -> None:
        """Point `members` at `chapter_name` in the store; all or none."""
        written = []
        try:
            for member in members:
                self.store.update("members", member.id, {"chapter_name": chapter_name})
                written.append(member)
        except ConsoleError:
            self._restore_affiliation(written)
            raise

    def _restore_affiliation(self, members: list[Member]) -> None:
        for member in members:
            try:
                self.store.update("members", member.id, {"chapter_name": member.chapter})
            except ConsoleError:
                logger.exception("Could not restore chapter of member %s", member.id)

    def _move_members(self, members: list[Member], chapter_name: str) -> None:
        moved = {m.id for m in members}
        self._members = [
            replace(m, chapter=chapter_name) if m.id in moved else m for m in self._members
        ]

    def add_chapter(self, chapter: Chapter) -> Chapter:
        if not chapter.id:
            chapter = replace(chapter, id=str(uuid.uuid4()))
        if self.get_chapter(chapter.id) is not None:
            raise ValidationError(f"Chapter id {chapter.id} already exists.")
        chapter = self._prepare_chapter(chapter)
        self.store.insert("chapters", chapter_to_row(chapter))
        self._chapters.append(chapter)
        self._notify()
        return chapter

    def update_chapter(self, chapter: Chapter) -> Chapter:
        """
        Save a chapter. A rename carries its members along: their
        affiliation is rewritten in the store, and a failure there puts the
        chapter row back before the error propagates.
        """
        previous = self.get_chapter(chapter.id)
        if previous is None:
            raise NotFoundError(f"Chapter {chapter.id} not found.")
        chapter = self._prepare_chapter(chapter)
        renamed = chapter.name != previous.name
        if renamed and self.is_central(previous.name):
            raise ValidationError("The central chapter cannot be renamed.")

        followers = [m for m in self._members if self._follows(m, previous)] if renamed else []
        self.store.update("chapters", chapter.id, chapter_to_row(chapter))
        if followers:
            try:
                self._write_affiliation(followers, chapter.name)
            except ConsoleError:
                try:
                    self.store.update("chapters", previous.id, chapter_to_row(previous))
                except ConsoleError:
                    logger.exception("Could not restore chapter %s after failed rename", previous.id)
                raise

        self._chapters = [chapter if c.id == chapter.id else c for c in self._chapters]
        if renamed:
            self._move_members(followers, chapter.name)
            self._rename_in_transfers(previous, chapter)
            logger.info("Chapter %s renamed %r -> %r (%d members)", chapter.id, previous.name, chapter.name, len(followers))
        self._notify()
        return chapter

    def _rename_in_transfers(self, previous: Chapter, chapter: Chapter) -> None:
        # Buckets match on chapter id, so a failed write only leaves a stale label
        updated = []
        for t in self._transfers:
            changes = {}
            if t.from_chapter_id == chapter.id or (not t.from_chapter_id and t.from_chapter_name == previous.name):
                changes["from_chapter_name"] = chapter.name
            if t.to_chapter_id == chapter.id or (not t.to_chapter_id and t.to_chapter_name == previous.name):
                changes["to_chapter_name"] = chapter.name
            if changes:
                try:
                    self.store.update("transfer_requests", t.id, changes)
                except ConsoleError:
                    logger.exception("Could not relabel transfer request %s", t.id)
                else:
                    t = replace(t, **changes)
            updated.append(t)
        self._transfers = updated

    def delete_chapter(self, chapter_id: str, confirmation: str) -> None:
        """Delete a chapter; its members move to the central chapter."""
        chapter = self.get_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError(f"Chapter {chapter_id} not found.")
        if confirmation != chapter.name:
            raise ValidationError("Type the exact chapter name to confirm deletion.")
        if self.is_central(chapter.name):
            raise ValidationError("The central chapter cannot be deleted.")

        followers = [m for m in self._members if self._follows(m, chapter)]
        self._write_affiliation(followers, self.central_chapter_name)
        try:
            self.store.delete("chapters", chapter_id)
        except ConsoleError:
            self._restore_affiliation(followers)
            raise

        self._move_members(followers, self.central_chapter_name)
        self._chapters = [c for c in self._chapters if c.id != chapter_id]
        if followers:
            logger.info("Moved %d member(s) of %r to %s", len(followers), chapter.name, self.central_chapter_name)
        self._notify()

    # ---------- transfer mutators ----------

    def create_transfer_request(self, request: TransferRequest) -> TransferRequest:
        if not request.id:
            request = replace(request, id=str(uuid.uuid4()))
        if self.get_transfer(request.id) is not None:
            raise ValidationError(f"Transfer request {request.id} already exists.")
        self.store.insert("transfer_requests", transfer_to_row(request))
        self._transfers.insert(0, request)
        self._notify()
        return request

    def update_transfer_status(self, transfer_id: str, status: str,
                               member: Member | None = None) -> TransferRequest:
        """
        Move a request to `status`. When `member` is given it is written
        together with the status: if the status write fails, the previous
        member row is restored before the error propagates.
        """
        current = self.get_transfer(transfer_id)
        if current is None:
            raise NotFoundError(f"Transfer request {transfer_id} not found.")
        if not can_transition(current.status, status):
            raise InvalidTransitionError(f"Cannot move a {current.status} request to {status}.")

        previous_member = None
        if member is not None:
            previous_member = self.get_member(member.id)
            if previous_member is None:
                raise NotFoundError(f"Member {member.id} not found.")
            member = self._prepare_member(member, replacing=member.id)
            self.store.update("members", member.id, member_to_row(member))

        try:
            self.store.update("transfer_requests", transfer_id, {"status": status})
        except ConsoleError:
            if previous_member is not None:
                try:
                    self.store.update("members", previous_member.id, member_to_row(previous_member))
                except ConsoleError:
                    logger.exception("Could not restore member %s after failed status write", previous_member.id)
            raise

        updated = replace(current, status=status)
        self._transfers = [updated if t.id == transfer_id else t for t in self._transfers]
        if member is not None:
            self._members = [member if m.id == member.id else m for m in self._members]
        self._notify()
        return updated
