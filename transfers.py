"""
transfers.py
Chapter transfer requests: the source chapter proposes, the target chapter
decides.

    PENDING -> APPROVED | REJECTED   (target chapter officer or admin)
    PENDING -> CANCELLED             (source chapter officer or admin)

Terminal requests never move again. Approval rewrites the member's
affiliation and drops any officer role in the same unit as the status write.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

from auth import SessionUser, is_admin, is_officer_of
from errors import NotFoundError, PermissionDeniedError, ValidationError
from logger import get_logger
from models import (
    OFFICER_ROLES,
    ROLE_MEMBER,
    TRANSFER_APPROVED,
    TRANSFER_CANCELLED,
    TRANSFER_PENDING,
    TRANSFER_REJECTED,
    TransferRequest,
)
from officers import vacate_offices
from utils import to_storage

logger = get_logger(__name__)


def _allowed(actor: SessionUser | None, chapter_id: str | None) -> bool:
    # No actor means an internal/system call
    return actor is None or is_admin(actor) or is_officer_of(actor, chapter_id)


def pending_for_member(cache, member_id: str) -> TransferRequest | None:
    return next(
        (t for t in cache.get_member_transfers(member_id) if t.status == TRANSFER_PENDING),
        None,
    )


def request_transfer(cache, member_id: str, to_chapter_id: str, comment: str = "",
                     actor: SessionUser | None = None, today: date | None = None) -> TransferRequest:
    member = cache.get_member(member_id)
    if member is None:
        raise NotFoundError(f"Member {member_id} not found.")
    target = cache.get_chapter(to_chapter_id)
    if target is None:
        raise NotFoundError("Destination chapter not found.")

    source = cache.chapter_of(member)
    source_name = source.name if source else (member.chapter or cache.central_chapter_name)
    if target.name.upper() == source_name.upper():
        raise ValidationError(f"{member.full_name} already belongs to {target.name}.")
    if not _allowed(actor, source.id if source else None):
        raise PermissionDeniedError("Only the member's chapter can propose a transfer.")
    if pending_for_member(cache, member_id) is not None:
        raise ValidationError(f"{member.full_name} already has a pending transfer request.")

    request = TransferRequest(
        id="",
        member_id=member.id,
        member_name=member.full_name,
        from_chapter_id=source.id if source else "",
        from_chapter_name=source_name,
        to_chapter_id=target.id,
        to_chapter_name=target.name,
        request_date=to_storage(today or date.today()),
        status=TRANSFER_PENDING,
        comment=comment.strip(),
    )
    created = cache.create_transfer_request(request)
    logger.info("Transfer %s requested: %s %s -> %s", created.id, member.id, source_name, target.name)
    return created


def _get(cache, transfer_id: str) -> TransferRequest:
    request = cache.get_transfer(transfer_id)
    if request is None:
        raise NotFoundError(f"Transfer request {transfer_id} not found.")
    return request


def approve_transfer(cache, transfer_id: str, actor: SessionUser | None = None) -> TransferRequest:
    request = _get(cache, transfer_id)
    if not _allowed(actor, request.to_chapter_id):
        raise PermissionDeniedError("Only the destination chapter can approve a transfer.")
    if request.status == TRANSFER_PENDING:
        target = cache.get_chapter(request.to_chapter_id)
        if target is None:
            raise ValidationError("Destination chapter no longer exists.")
        member = cache.get_member(request.member_id)
        if member is None:
            raise NotFoundError(f"Member {request.member_id} not found.")
        moved = replace(
            member,
            chapter=target.name,
            role=ROLE_MEMBER if member.role in OFFICER_ROLES else member.role,
        )
        updated = cache.update_transfer_status(transfer_id, TRANSFER_APPROVED, member=moved)
        if request.from_chapter_id:
            vacate_offices(cache, member.id, request.from_chapter_id)
        logger.info("Transfer %s approved: %s now in %s", transfer_id, member.id, target.name)
        return updated
    # Lets the cache raise the invalid-transition error
    return cache.update_transfer_status(transfer_id, TRANSFER_APPROVED)


def reject_transfer(cache, transfer_id: str, actor: SessionUser | None = None) -> TransferRequest:
    request = _get(cache, transfer_id)
    if not _allowed(actor, request.to_chapter_id):
        raise PermissionDeniedError("Only the destination chapter can reject a transfer.")
    updated = cache.update_transfer_status(transfer_id, TRANSFER_REJECTED)
    logger.info("Transfer %s rejected", transfer_id)
    return updated


def cancel_transfer(cache, transfer_id: str, actor: SessionUser | None = None) -> TransferRequest:
    request = _get(cache, transfer_id)
    if not _allowed(actor, request.from_chapter_id):
        raise PermissionDeniedError("Only the requesting chapter can cancel a transfer.")
    updated = cache.update_transfer_status(transfer_id, TRANSFER_CANCELLED)
    logger.info("Transfer %s cancelled", transfer_id)
    return updated


_ACTIONS = {
    TRANSFER_APPROVED: approve_transfer,
    TRANSFER_REJECTED: reject_transfer,
    TRANSFER_CANCELLED: cancel_transfer,
}


def update_transfer_status(cache, transfer_id: str, status: str,
                           actor: SessionUser | None = None) -> TransferRequest:
    action = _ACTIONS.get(status)
    if action is None:
        raise ValidationError(f"Unknown target status {status!r}.")
    return action(cache, transfer_id, actor=actor)
