"""
Voting router: voting cycle transitions, suggestions and votes.

Every endpoint here first applies any pending voting expiry for the club.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from bookclub.core.auth import AuthenticatedUser, get_current_user
from bookclub.db.base import get_db
from bookclub.routers.serializers import club_book_out, club_out, iso, suggestion_out
from bookclub.schemas.common import ERROR_RESPONSES
from bookclub.schemas.voting import (
    SelectWinnerRequest,
    SuggestionCreate,
    SuggestionListOut,
    SuggestionOut,
    VoteOut,
    VotingOut,
    VotingStartRequest,
    WinnerSelectionOut,
)
from bookclub.services import voting
from bookclub.services.voting import VotingOutcome

router = APIRouter(prefix="/clubs/{club_id}", tags=["voting"], responses=ERROR_RESPONSES)


def _voting_out(outcome: VotingOutcome) -> VotingOut:
    return VotingOut(
        club=club_out(outcome.club, outcome.state, pending=outcome.winners, events=outcome.events,
                      is_admin=outcome.is_admin),
        events=outcome.events,
        winners=[suggestion_out(s) for s in outcome.winners],
    )


# ---------------------------------------------------------------------------
# Cycle transitions
# ---------------------------------------------------------------------------

@router.post(
    "/voting/start",
    response_model=VotingOut,
    summary="Open a voting cycle (admin)",
)
def start_voting(
    club_id: int,
    body: VotingStartRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Requires a club with no current book, no active cycle and no winners
    waiting to be picked.
    """
    outcome = voting.start_voting(
        db, club_id, user.id, duration_days=body.duration_days, starts_at=body.starts_at
    )
    return _voting_out(outcome)


@router.post(
    "/voting/end",
    response_model=VotingOut,
    summary="Close the voting cycle now (admin)",
)
def end_voting(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    The top-voted suggestions become WINNER (ties are all kept), the rest
    REJECTED. With no votes at all every suggestion becomes EXPIRED.
    """
    return _voting_out(voting.end_voting(db, club_id, user.id))


@router.post(
    "/voting/select-winner",
    response_model=WinnerSelectionOut,
    summary="Pick the winning book (admin)",
)
def select_winner(
    club_id: int,
    body: SelectWinnerRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    picked = voting.select_winner(db, club_id, user.id, body.book_id)
    overview = voting.get_club_overview(db, club_id, user.id)
    return WinnerSelectionOut(
        club=club_out(overview.club, overview.state, is_admin=overview.is_admin),
        suggestion=suggestion_out(picked.suggestion),
        club_book=club_book_out(picked.club_book),
    )


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

@router.post(
    "/suggestions",
    response_model=SuggestionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Suggest a book for the next vote",
)
def create_suggestion(
    club_id: int,
    body: SuggestionCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    suggestion = voting.create_suggestion(db, club_id, user.id, body.book_id, body.reason)
    return suggestion_out(suggestion)


@router.get(
    "/suggestions",
    response_model=SuggestionListOut,
    summary="Open and winning suggestions, most votes first",
)
def list_suggestions(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    board = voting.list_suggestions(db, club_id, user.id)
    return SuggestionListOut(
        state=board.state.value,
        voting_ends_at=iso(board.club.voting_ends_at),
        items=[suggestion_out(e.suggestion, e.vote_count, e.has_voted) for e in board.entries],
    )


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------

@router.post(
    "/suggestions/{suggestion_id}/vote",
    response_model=VoteOut,
    status_code=status.HTTP_201_CREATED,
    summary="Vote for a suggestion",
)
def cast_vote(
    club_id: int,
    suggestion_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    vote = voting.cast_vote(db, club_id, suggestion_id, user.id)
    return VoteOut(
        suggestion_id=vote.suggestion_id,
        user_id=vote.user_id,
        created_at=iso(vote.created_at) or "",
    )


@router.delete(
    "/suggestions/{suggestion_id}/vote",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Withdraw your vote",
)
def remove_vote(
    club_id: int,
    suggestion_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    voting.remove_vote(db, club_id, suggestion_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
