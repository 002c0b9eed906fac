"""
Clubs router: club lifecycle, membership and the current-book endpoints.

POST   /clubs                              — create a club (caller becomes OWNER)
GET    /clubs/abandon-reasons              — the closed list of abandon reason codes
GET    /clubs/{club_id}                    — club + derived voting state (applies lazy expiry)
POST   /clubs/{club_id}/join               — join as an ACTIVE member
POST   /clubs/{club_id}/leave              — ACTIVE -> LEFT (not the owner)
PUT    /clubs/{club_id}/members/{user_id}/role — owner promotes/demotes a member
GET    /clubs/{club_id}/books              — reading history, newest first
PUT    /clubs/{club_id}/current-book       — admin override, no history
DELETE /clubs/{club_id}/current-book       — admin override, no history
POST   /clubs/{club_id}/complete-book      — close the current book as COMPLETED
POST   /clubs/{club_id}/abandon-book       — close the current book as ABANDONED
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bookclub.core.auth import AuthenticatedUser, get_current_user
from bookclub.db.base import get_db
from bookclub.models.club import ClubMembership
from bookclub.routers.serializers import club_book_out, club_out, enum_value, iso
from bookclub.schemas.club import (
    AbandonBookRequest,
    AbandonReasonOut,
    ClubBookOut,
    ClubCreate,
    ClubOut,
    CompleteBookRequest,
    CurrentBookSet,
    MembershipOut,
    RoleUpdate,
)
from bookclub.schemas.common import ERROR_RESPONSES
from bookclub.services import activity, club_books, membership, voting

router = APIRouter(prefix="/clubs", tags=["clubs"], responses=ERROR_RESPONSES)


def _overview_out(db: Session, club_id: int, user_id: str) -> ClubOut:
    overview = voting.get_club_overview(db, club_id, user_id)
    return club_out(
        overview.club,
        overview.state,
        pending=overview.pending_winners,
        events=overview.events,
        is_admin=overview.is_admin,
    )


def _membership_out(m: ClubMembership, awarded: list[str] = ()) -> MembershipOut:
    return MembershipOut(
        club_id=m.club_id,
        user_id=m.user_id,
        role=enum_value(m.role),
        status=enum_value(m.status),
        joined_at=iso(m.joined_at) or "",
        achievements_awarded=list(awarded),
    )


# ---------------------------------------------------------------------------
# Clubs + membership
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=ClubOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a club",
)
def create_club(
    body: ClubCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    club = membership.create_club(db, user.id, body.name, body.description)
    return _overview_out(db, club.id, user.id)


@router.get(
    "/abandon-reasons",
    response_model=list[AbandonReasonOut],
    summary="List abandon reason codes",
)
def list_abandon_reasons():
    return [
        AbandonReasonOut(code=code, label=label)
        for code, label in club_books.ABANDON_REASONS.items()
    ]


@router.get(
    "/{club_id}",
    response_model=ClubOut,
    summary="Get a club and its voting state",
)
def get_club(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Reading a club is a voting-expiry check: if the window has elapsed the
    cycle is closed here and `events` reports `voting_expired`.
    """
    return _overview_out(db, club_id, user.id)


@router.post(
    "/{club_id}/join",
    response_model=MembershipOut,
    status_code=status.HTTP_201_CREATED,
    summary="Join a club",
)
def join_club(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    joined = activity.join_club(db, club_id, user.id)
    return _membership_out(joined.membership, joined.achievements.awarded)


@router.post(
    "/{club_id}/leave",
    response_model=MembershipOut,
    summary="Leave a club",
)
def leave_club(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The owner cannot leave. Joining again later restores an ACTIVE membership."""
    return _membership_out(membership.leave_club(db, club_id, user.id))


@router.put(
    "/{club_id}/members/{member_id}/role",
    response_model=MembershipOut,
    summary="Change a member's role (owner only)",
)
def set_member_role(
    club_id: int,
    member_id: str,
    body: RoleUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = membership.set_member_role(db, club_id, user.id, member_id, body.role)
    return _membership_out(updated)


# ---------------------------------------------------------------------------
# Current book + history
# ---------------------------------------------------------------------------

@router.get(
    "/{club_id}/books",
    response_model=list[ClubBookOut],
    summary="Reading history, newest first",
)
def get_book_history(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [club_book_out(row) for row in club_books.get_book_history(db, club_id, user.id)]


@router.put(
    "/{club_id}/current-book",
    response_model=ClubOut,
    summary="Set the current book directly (admin override)",
)
def set_current_book(
    club_id: int,
    body: CurrentBookSet,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Bypasses voting and writes no history row. Rejected while voting is active."""
    club_books.set_current_book_override(db, club_id, user.id, body.book_id)
    return _overview_out(db, club_id, user.id)


@router.delete(
    "/{club_id}/current-book",
    response_model=ClubOut,
    summary="Clear the current book (admin override)",
)
def clear_current_book(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    club_books.clear_current_book_override(db, club_id, user.id)
    return _overview_out(db, club_id, user.id)


@router.post(
    "/{club_id}/complete-book",
    response_model=ClubBookOut,
    summary="Mark the current book as completed",
)
def complete_book(
    club_id: int,
    body: CompleteBookRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = club_books.complete_current_book(db, club_id, user.id, body.rating, body.notes)
    return club_book_out(row)


@router.post(
    "/{club_id}/abandon-book",
    response_model=ClubBookOut,
    summary="Mark the current book as abandoned",
)
def abandon_book(
    club_id: int,
    body: AbandonBookRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = club_books.abandon_current_book(db, club_id, user.id, body.reason_code, body.notes)
    return club_book_out(row)
