"""
Club + membership service: lookups and the permission gates every other
service goes through.

Only ACTIVE memberships count. ADMIN and OWNER roles may drive club
transitions; any ACTIVE member may suggest, vote and RSVP.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from bookclub.core.clock import utcnow
from bookclub.core.errors import (
    AdminRequiredError,
    AlreadyMemberError,
    BookNotFoundError,
    ClubNotFoundError,
    NotAMemberError,
    OwnerCannotLeaveError,
    PermissionDeniedError,
)
from bookclub.models.book import Book
from bookclub.models.club import Club, ClubMembership, ClubRole, MembershipStatus

logger = logging.getLogger(__name__)

_ADMIN_ROLES = (ClubRole.ADMIN, ClubRole.OWNER)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_club(db: Session, club_id: int) -> Club:
    club = db.get(Club, club_id)
    if club is None:
        raise ClubNotFoundError(club_id)
    return club


def get_book(db: Session, book_id: int) -> Book:
    book = db.get(Book, book_id)
    if book is None:
        raise BookNotFoundError(book_id)
    return book


def get_membership(db: Session, club_id: int, user_id: str) -> Optional[ClubMembership]:
    return (
        db.query(ClubMembership)
        .filter(ClubMembership.club_id == club_id, ClubMembership.user_id == user_id)
        .first()
    )


def is_admin(membership: Optional[ClubMembership]) -> bool:
    return (
        membership is not None
        and membership.status == MembershipStatus.ACTIVE
        and membership.role in _ADMIN_ROLES
    )


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

def require_member(db: Session, club_id: int, user_id: str) -> ClubMembership:
    get_club(db, club_id)
    membership = get_membership(db, club_id, user_id)
    if membership is None or membership.status != MembershipStatus.ACTIVE:
        raise NotAMemberError(club_id)
    return membership


def require_admin(db: Session, club_id: int, user_id: str) -> ClubMembership:
    membership = require_member(db, club_id, user_id)
    if not is_admin(membership):
        raise AdminRequiredError(club_id)
    return membership


def active_member_ids(db: Session, club_id: int) -> list[str]:
    rows = (
        db.query(ClubMembership.user_id)
        .filter(
            ClubMembership.club_id == club_id,
            ClubMembership.status == MembershipStatus.ACTIVE,
        )
        .order_by(ClubMembership.id)
        .all()
    )
    return [r.user_id for r in rows]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def create_club(
    db: Session,
    owner_id: str,
    name: str,
    description: Optional[str] = None,
) -> Club:
    club = Club(
        name=name,
        description=description,
        owner_id=owner_id,
        member_count=1,
        voting_cycle_active=False,
    )
    db.add(club)
    db.flush()
    db.add(ClubMembership(
        user_id=owner_id,
        club_id=club.id,
        role=ClubRole.OWNER,
        status=MembershipStatus.ACTIVE,
        joined_at=utcnow(),
    ))
    db.commit()
    db.refresh(club)
    logger.info("Club %s created by %s", club.id, owner_id)
    return club


def join_club(db: Session, club_id: int, user_id: str) -> ClubMembership:
    """Join as an ACTIVE member. A member who left earlier is re-activated."""
    club = get_club(db, club_id)
    membership = get_membership(db, club_id, user_id)

    if membership is not None:
        if membership.status == MembershipStatus.ACTIVE:
            raise AlreadyMemberError(club_id)
        if membership.status == MembershipStatus.BANNED:
            raise PermissionDeniedError(
                message="You are banned from this club.",
                details={"club_id": club_id},
            )
        membership.status = MembershipStatus.ACTIVE
        membership.role = ClubRole.MEMBER
        membership.joined_at = utcnow()
    else:
        membership = ClubMembership(
            user_id=user_id,
            club_id=club_id,
            role=ClubRole.MEMBER,
            status=MembershipStatus.ACTIVE,
            joined_at=utcnow(),
        )
        db.add(membership)

    club.member_count = (club.member_count or 0) + 1
    db.commit()
    db.refresh(membership)
    return membership


def leave_club(db: Session, club_id: int, user_id: str) -> ClubMembership:
    """ACTIVE -> LEFT. The row is kept so a later join re-activates it."""
    club = get_club(db, club_id)
    membership = require_member(db, club_id, user_id)
    if club.owner_id == user_id:
        raise OwnerCannotLeaveError(club_id)

    membership.status = MembershipStatus.LEFT
    membership.role = ClubRole.MEMBER
    club.member_count = max((club.member_count or 0) - 1, 0)
    db.commit()
    db.refresh(membership)
    logger.info("User %s left club %s", user_id, club_id)
    return membership


def set_member_role(
    db: Session,
    club_id: int,
    acting_user_id: str,
    target_user_id: str,
    role: ClubRole,
) -> ClubMembership:
    """Owner-only promotion/demotion between MEMBER and ADMIN."""
    club = get_club(db, club_id)
    require_admin(db, club_id, acting_user_id)
    if club.owner_id != acting_user_id:
        raise PermissionDeniedError(
            message="Only the club owner can change member roles.",
            details={"club_id": club_id},
        )
    if role == ClubRole.OWNER:
        raise PermissionDeniedError(
            message="Ownership cannot be assigned through a role change.",
            details={"club_id": club_id},
        )
    target = require_member(db, club_id, target_user_id)
    if target.role == ClubRole.OWNER:
        raise PermissionDeniedError(
            message="The owner's role cannot be changed.",
            details={"club_id": club_id},
        )
    target.role = role
    db.commit()
    db.refresh(target)
    return target
