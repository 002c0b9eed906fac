"""
Voting cycle service — the persisted side of voting_state.

Every read boundary goes through `refresh_voting_state`, which runs the pure
`check_and_transition` against the club row and, when the window has elapsed,
writes the outcome back: flag and window cleared, ACTIVE suggestions moved to
WINNER / REJECTED (or EXPIRED when nobody voted).

Public API
----------
get_club_overview(db, club_id, user_id)                          -> ClubOverview
start_voting(db, club_id, user_id, duration_days, starts_at)     -> VotingOutcome
end_voting(db, club_id, user_id)                                 -> VotingOutcome
select_winner(db, club_id, user_id, book_id)                     -> WinnerSelection
create_suggestion(db, club_id, user_id, book_id, reason)         -> BookSuggestion
list_suggestions(db, club_id, user_id)                           -> SuggestionBoard
cast_vote(db, club_id, suggestion_id, user_id)                   -> SuggestionVote
remove_vote(db, club_id, suggestion_id, user_id)                 -> None

Every public function takes an optional `now` so tests can move the clock.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookclub.core.clock import as_utc, utcnow
from bookclub.core.config import settings
from bookclub.core.errors import (
    AlreadyVotedError,
    CurrentBookExistsError,
    DuplicateSuggestionError,
    SuggestionLimitReachedError,
    SuggestionNotFoundError,
    ValidationFailedError,
    VoteNotFoundError,
    VotingAlreadyActiveError,
    VotingNotActiveError,
    VotingWindowClosedError,
    WinnerSelectionPendingError,
)
from bookclub.models.club import Club
from bookclub.models.club_book import ClubBook
from bookclub.models.suggestion import BookSuggestion, SuggestionStatus, SuggestionVote
from bookclub.services import club_books, voting_state
from bookclub.services.membership import (
    get_book,
    get_club,
    get_membership,
    is_admin,
    require_admin,
    require_member,
)
from bookclub.services.voting_state import ClubState, VotingEvent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class VotingOutcome:
    club: Club
    state: ClubState
    events: list[str] = field(default_factory=list)
    winners: list[BookSuggestion] = field(default_factory=list)
    is_admin: bool = False


@dataclass
class ClubOverview:
    club: Club
    state: ClubState
    events: list[str]
    pending_winners: list[BookSuggestion]
    is_admin: bool


@dataclass
class WinnerSelection:
    club: Club
    suggestion: BookSuggestion
    club_book: ClubBook


@dataclass
class SuggestionEntry:
    suggestion: BookSuggestion
    vote_count: int
    has_voted: bool


@dataclass
class SuggestionBoard:
    club: Club
    state: ClubState
    entries: list[SuggestionEntry]


# ---------------------------------------------------------------------------
# Internal helpers (flush only; the public caller commits)
# ---------------------------------------------------------------------------

def tally(db: Session, club_id: int) -> list[voting_state.Tally]:
    """(suggestion_id, vote_count) for every ACTIVE suggestion, zero-vote ones included."""
    rows = (
        db.query(BookSuggestion.id, func.count(SuggestionVote.id))
        .outerjoin(SuggestionVote, SuggestionVote.suggestion_id == BookSuggestion.id)
        .filter(
            BookSuggestion.club_id == club_id,
            BookSuggestion.status == SuggestionStatus.ACTIVE,
        )
        .group_by(BookSuggestion.id)
        .order_by(BookSuggestion.id)
        .all()
    )
    return [(suggestion_id, int(count)) for suggestion_id, count in rows]


def pending_winners(db: Session, club_id: int) -> list[BookSuggestion]:
    return (
        db.query(BookSuggestion)
        .filter(
            BookSuggestion.club_id == club_id,
            BookSuggestion.status == SuggestionStatus.WINNER,
        )
        .order_by(BookSuggestion.id)
        .all()
    )


def _snapshot(db: Session, club: Club) -> voting_state.VotingSnapshot:
    return voting_state.snapshot_of(club, [s.id for s in pending_winners(db, club.id)])


def _persist_closed_cycle(
    db: Session,
    club: Club,
    closed: voting_state.VotingSnapshot,
) -> None:
    club.voting_cycle_active = closed.voting_cycle_active
    club.voting_starts_at = closed.voting_starts_at
    club.voting_ends_at = closed.voting_ends_at
    club.voting_started_by = None

    winner_ids = set(closed.pending_winner_ids)
    loser_status = SuggestionStatus.REJECTED if winner_ids else SuggestionStatus.EXPIRED
    active = (
        db.query(BookSuggestion)
        .filter(
            BookSuggestion.club_id == club.id,
            BookSuggestion.status == SuggestionStatus.ACTIVE,
        )
        .all()
    )
    for suggestion in active:
        suggestion.status = (
            SuggestionStatus.WINNER if suggestion.id in winner_ids else loser_status
        )
    db.flush()


def refresh_voting_state(db: Session, club: Club, now: datetime) -> list[str]:
    """Lazy expiry. Returns the emitted events; an empty list means nothing changed."""
    snapshot = _snapshot(db, club)
    if not voting_state.is_expired(snapshot, now):
        return []
    closed, events = voting_state.check_and_transition(snapshot, now, tally(db, club.id))
    _persist_closed_cycle(db, club, closed)
    logger.info(
        "Club %s voting window elapsed at %s; events=%s winners=%s",
        club.id, snapshot.voting_ends_at, events, list(closed.pending_winner_ids),
    )
    return events


def _current_state(db: Session, club: Club, now: datetime) -> ClubState:
    return voting_state.derive_state(_snapshot(db, club), now)


def _load_refreshed(db: Session, club_id: int, now: datetime) -> tuple[Club, list[str]]:
    club = get_club(db, club_id)
    events = refresh_voting_state(db, club, now)
    return club, events


# ---------------------------------------------------------------------------
# Public — club overview (lazy expiry on read)
# ---------------------------------------------------------------------------

def get_club_overview(
    db: Session,
    club_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> ClubOverview:
    now = now or utcnow()
    club, events = _load_refreshed(db, club_id, now)
    if events:
        db.commit()
        db.refresh(club)
    return ClubOverview(
        club=club,
        state=_current_state(db, club, now),
        events=events,
        pending_winners=pending_winners(db, club_id),
        is_admin=is_admin(get_membership(db, club_id, user_id)),
    )


# ---------------------------------------------------------------------------
# Public — cycle transitions (admin only)
# ---------------------------------------------------------------------------

def start_voting(
    db: Session,
    club_id: int,
    user_id: str,
    duration_days: Optional[int] = None,
    starts_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> VotingOutcome:
    now = now or utcnow()
    duration_days = settings.DEFAULT_VOTING_DAYS if duration_days is None else duration_days
    if duration_days < 1:
        raise ValidationFailedError("Voting must last at least one day.", field="duration_days")
    starts_at = as_utc(starts_at) or now
    if starts_at < now:
        raise ValidationFailedError("Voting cannot start in the past.", field="starts_at")

    caller = require_admin(db, club_id, user_id)
    club, events = _load_refreshed(db, club_id, now)

    if club.current_book_id is not None:
        raise CurrentBookExistsError(club_id, club.current_book_id)
    if club.voting_cycle_active:
        raise VotingAlreadyActiveError(club_id)
    waiting = pending_winners(db, club_id)
    if waiting:
        # The expiry we may have just persisted must survive the rejection.
        db.commit()
        raise WinnerSelectionPendingError(club_id, [s.id for s in waiting])

    window_start, window_end = voting_state.voting_window(starts_at, duration_days)
    club.voting_cycle_active = True
    club.voting_starts_at = window_start
    club.voting_ends_at = window_end
    club.voting_started_by = user_id
    db.commit()
    db.refresh(club)

    logger.info(
        "Club %s voting started by %s, window %s -> %s",
        club_id, user_id, window_start.isoformat(), window_end.isoformat(),
    )
    return VotingOutcome(
        club=club,
        state=_current_state(db, club, now),
        events=events,
        is_admin=is_admin(caller),
    )


def end_voting(
    db: Session,
    club_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> VotingOutcome:
    """
    Close the cycle early. If the window already elapsed, the lazy expiry does
    the closing and its events are returned instead.
    """
    now = now or utcnow()
    caller = require_admin(db, club_id, user_id)
    club, events = _load_refreshed(db, club_id, now)

    if not events:
        if not club.voting_cycle_active:
            raise VotingNotActiveError(club_id)
        closed, close_events = voting_state.close_cycle(_snapshot(db, club), tally(db, club_id))
        _persist_closed_cycle(db, club, closed)
        events = [VotingEvent.VOTING_ENDED, *close_events]
        logger.info(
            "Club %s voting ended early by %s; winners=%s",
            club_id, user_id, list(closed.pending_winner_ids),
        )

    db.commit()
    db.refresh(club)
    return VotingOutcome(
        club=club,
        state=_current_state(db, club, now),
        events=events,
        winners=pending_winners(db, club_id),
        is_admin=is_admin(caller),
    )


def select_winner(
    db: Session,
    club_id: int,
    user_id: str,
    book_id: int,
    now: Optional[datetime] = None,
) -> WinnerSelection:
    now = now or utcnow()
    require_admin(db, club_id, user_id)
    club, events = _load_refreshed(db, club_id, now)

    if club.voting_cycle_active:
        raise VotingAlreadyActiveError(club_id)
    if club.current_book_id is not None:
        raise CurrentBookExistsError(club_id, club.current_book_id)

    chosen = (
        db.query(BookSuggestion)
        .filter(
            BookSuggestion.club_id == club_id,
            BookSuggestion.book_id == book_id,
            BookSuggestion.status == SuggestionStatus.WINNER,
        )
        .first()
    )
    if chosen is None:
        if events:
            db.commit()
        raise SuggestionNotFoundError(
            "No winning suggestion for this book.", club_id=club_id, book_id=book_id
        )

    chosen.status = SuggestionStatus.SELECTED
    others = (
        db.query(BookSuggestion)
        .filter(
            BookSuggestion.club_id == club_id,
            BookSuggestion.id != chosen.id,
            BookSuggestion.status.in_([SuggestionStatus.WINNER, SuggestionStatus.ACTIVE]),
        )
        .all()
    )
    for suggestion in others:
        suggestion.status = SuggestionStatus.REJECTED

    club_book = club_books.begin_reading(db, club, book_id, now)
    db.commit()
    db.refresh(club)
    db.refresh(club_book)
    db.refresh(chosen)

    logger.info("Club %s selected book %s (suggestion %s)", club_id, book_id, chosen.id)
    return WinnerSelection(club=club, suggestion=chosen, club_book=club_book)


# ---------------------------------------------------------------------------
# Public — suggestions
# ---------------------------------------------------------------------------

def create_suggestion(
    db: Session,
    club_id: int,
    user_id: str,
    book_id: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BookSuggestion:
    now = now or utcnow()
    require_member(db, club_id, user_id)
    get_book(db, book_id)
    club, events = _load_refreshed(db, club_id, now)

    if club.current_book_id is not None:
        raise CurrentBookExistsError(club_id, club.current_book_id)

    duplicate = (
        db.query(BookSuggestion.id)
        .filter(
            BookSuggestion.club_id == club_id,
            BookSuggestion.book_id == book_id,
            BookSuggestion.status == SuggestionStatus.ACTIVE,
        )
        .first()
    )
    if duplicate is not None:
        raise DuplicateSuggestionError(book_id)

    open_count = (
        db.query(func.count(BookSuggestion.id))
        .filter(
            BookSuggestion.club_id == club_id,
            BookSuggestion.suggested_by == user_id,
            BookSuggestion.status == SuggestionStatus.ACTIVE,
        )
        .scalar()
    )
    if open_count >= settings.MAX_SUGGESTIONS_PER_MEMBER:
        raise SuggestionLimitReachedError(settings.MAX_SUGGESTIONS_PER_MEMBER)

    suggestion = BookSuggestion(
        club_id=club_id,
        book_id=book_id,
        suggested_by=user_id,
        reason=(reason or "").strip() or None,
        status=SuggestionStatus.ACTIVE,
        created_at=now,
    )
    db.add(suggestion)
    db.commit()
    db.refresh(suggestion)
    return suggestion


def list_suggestions(
    db: Session,
    club_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> SuggestionBoard:
    """ACTIVE and WINNER suggestions, most votes first."""
    now = now or utcnow()
    require_member(db, club_id, user_id)
    club, events = _load_refreshed(db, club_id, now)
    if events:
        db.commit()
        db.refresh(club)

    vote_counts = (
        db.query(SuggestionVote.suggestion_id, func.count(SuggestionVote.id))
        .join(BookSuggestion, BookSuggestion.id == SuggestionVote.suggestion_id)
        .filter(BookSuggestion.club_id == club_id)
        .group_by(SuggestionVote.suggestion_id)
        .all()
    )
    counts = {sid: int(n) for sid, n in vote_counts}
    mine = {
        sid for (sid,) in (
            db.query(SuggestionVote.suggestion_id)
            .join(BookSuggestion, BookSuggestion.id == SuggestionVote.suggestion_id)
            .filter(BookSuggestion.club_id == club_id, SuggestionVote.user_id == user_id)
            .all()
        )
    }
    suggestions = (
        db.query(BookSuggestion)
        .filter(
            BookSuggestion.club_id == club_id,
            BookSuggestion.status.in_([SuggestionStatus.ACTIVE, SuggestionStatus.WINNER]),
        )
        .order_by(BookSuggestion.created_at, BookSuggestion.id)
        .all()
    )
    entries = [
        SuggestionEntry(suggestion=s, vote_count=counts.get(s.id, 0), has_voted=s.id in mine)
        for s in suggestions
    ]
    entries.sort(key=lambda e: e.vote_count, reverse=True)
    return SuggestionBoard(club=club, state=_current_state(db, club, now), entries=entries)


# ---------------------------------------------------------------------------
# Public — votes
# ---------------------------------------------------------------------------

def _open_suggestion(db: Session, club: Club, suggestion_id: int, now: datetime) -> BookSuggestion:
    """Suggestion that can take or drop a vote right now; raises otherwise."""
    if not club.voting_cycle_active:
        raise VotingNotActiveError(club.id)
    starts_at = as_utc(club.voting_starts_at)
    if starts_at is not None and now < starts_at:
        raise VotingWindowClosedError(club.id, reason="voting has not started yet")

    suggestion = db.get(BookSuggestion, suggestion_id)
    if suggestion is None or suggestion.club_id != club.id:
        raise SuggestionNotFoundError(
            f"Suggestion {suggestion_id} not found in this club.",
            suggestion_id=suggestion_id,
        )
    if suggestion.status != SuggestionStatus.ACTIVE:
        raise VotingWindowClosedError(club.id, reason=f"suggestion is {suggestion.status.value}")
    return suggestion


def _reject_after_expiry(db: Session, club: Club, events: list[str]) -> None:
    if VotingEvent.VOTING_EXPIRED in events:
        db.commit()
        raise VotingWindowClosedError(club.id, reason="the voting window has closed")


def cast_vote(
    db: Session,
    club_id: int,
    suggestion_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> SuggestionVote:
    now = now or utcnow()
    require_member(db, club_id, user_id)
    club, events = _load_refreshed(db, club_id, now)
    _reject_after_expiry(db, club, events)
    suggestion = _open_suggestion(db, club, suggestion_id, now)

    existing = (
        db.query(SuggestionVote.id)
        .filter(SuggestionVote.suggestion_id == suggestion.id, SuggestionVote.user_id == user_id)
        .first()
    )
    if existing is not None:
        raise AlreadyVotedError(suggestion.id)

    vote = SuggestionVote(suggestion_id=suggestion.id, user_id=user_id, created_at=now)
    db.add(vote)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AlreadyVotedError(suggestion.id)
    db.refresh(vote)
    return vote


def remove_vote(
    db: Session,
    club_id: int,
    suggestion_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> None:
    now = now or utcnow()
    require_member(db, club_id, user_id)
    club, events = _load_refreshed(db, club_id, now)
    _reject_after_expiry(db, club, events)
    suggestion = _open_suggestion(db, club, suggestion_id, now)

    vote = (
        db.query(SuggestionVote)
        .filter(SuggestionVote.suggestion_id == suggestion.id, SuggestionVote.user_id == user_id)
        .first()
    )
    if vote is None:
        raise VoteNotFoundError(suggestion.id)
    db.delete(vote)
    db.commit()
