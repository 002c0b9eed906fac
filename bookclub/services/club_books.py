"""
Current book + reading history service.

Public API
----------
complete_current_book(db, club_id, user_id, rating, notes)         -> ClubBook
abandon_current_book(db, club_id, user_id, reason_code, notes)     -> ClubBook
set_current_book_override(db, club_id, user_id, book_id, now)      -> Club
clear_current_book_override(db, club_id, user_id)                  -> Club
get_book_history(db, club_id, user_id)                             -> list[ClubBook]

Flush-only helpers shared with the voting and meeting services
--------------------------------------------------------------
begin_reading(db, club, book_id, now)                -> ClubBook
validate_book_outcome(outcome)                       -> None   (raises)
apply_book_outcome(db, club, outcome, now)           -> ClubBook

Validation always runs before the first write, so a rejected request
leaves no partial state behind.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from bookclub.core.clock import utcnow
from bookclub.core.errors import (
    CurrentBookExistsError,
    NoCurrentBookError,
    ValidationFailedError,
    VotingAlreadyActiveError,
)
from bookclub.models.club import Club
from bookclub.models.club_book import ClubBook, ClubBookStatus
from bookclub.services import voting
from bookclub.services.membership import get_book, get_club, require_admin, require_member

logger = logging.getLogger(__name__)


# Closed vocabulary for "why didn't the club finish this book".
ABANDON_REASONS: dict[int, str] = {
    1: "Lost interest",
    2: "Pacing was too slow",
    3: "Book was too long",
    4: "Writing style didn't work for the group",
    5: "Content was too difficult",
    6: "Content was uncomfortable or offensive",
    7: "Members didn't have time to read",
    8: "Book was hard to get hold of",
    9: "Chose to switch to another book",
    10: "Other",
}
OTHER_REASON_CODE = 10

MIN_RATING = 1
MAX_RATING = 5


@dataclass
class BookOutcome:
    """What happened to the current book: COMPLETED (rated) or ABANDONED (with a reason)."""
    status: ClubBookStatus
    notes: str
    rating: Optional[int] = None
    reason_code: Optional[int] = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_book_outcome(outcome: BookOutcome) -> None:
    if outcome.status not in (ClubBookStatus.COMPLETED, ClubBookStatus.ABANDONED):
        raise ValidationFailedError(
            "Book outcome must be COMPLETED or ABANDONED.", field="status"
        )
    if not outcome.notes or not outcome.notes.strip():
        raise ValidationFailedError("Discussion notes are required.", field="notes")

    if outcome.status == ClubBookStatus.COMPLETED:
        if outcome.rating is None:
            raise ValidationFailedError(
                "A rating is required when completing a book.", field="rating"
            )
        if not MIN_RATING <= outcome.rating <= MAX_RATING:
            raise ValidationFailedError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}.", field="rating"
            )
    else:
        if outcome.reason_code not in ABANDON_REASONS:
            raise ValidationFailedError(
                f"Reason code must be one of {min(ABANDON_REASONS)}-{max(ABANDON_REASONS)}.",
                field="reason_code",
            )


def abandon_notes(reason_code: int, notes: str) -> str:
    return f"Reason: {ABANDON_REASONS[reason_code]}\nNotes: {notes.strip()}"


# ---------------------------------------------------------------------------
# Flush-only helpers
# ---------------------------------------------------------------------------

def _in_progress_row(db: Session, club_id: int) -> Optional[ClubBook]:
    return (
        db.query(ClubBook)
        .filter(ClubBook.club_id == club_id, ClubBook.status == ClubBookStatus.IN_PROGRESS)
        .order_by(ClubBook.started_at.desc(), ClubBook.id.desc())
        .first()
    )


def begin_reading(db: Session, club: Club, book_id: int, now: datetime) -> ClubBook:
    """Make `book_id` current and open its IN_PROGRESS history row."""
    if club.current_book_id is not None:
        raise CurrentBookExistsError(club.id, club.current_book_id)
    club.current_book_id = book_id
    row = ClubBook(
        club_id=club.id,
        book_id=book_id,
        started_at=now,
        status=ClubBookStatus.IN_PROGRESS,
    )
    db.add(row)
    db.flush()
    return row


def apply_book_outcome(db: Session, club: Club, outcome: BookOutcome, now: datetime) -> ClubBook:
    """
    Close the active history row for the club's current book and clear the
    current book. If the book was set through the override (no history row),
    the row is created here, already closed.
    """
    if club.current_book_id is None:
        raise NoCurrentBookError(club.id)

    row = _in_progress_row(db, club.id)
    if row is None or row.book_id != club.current_book_id:
        row = ClubBook(club_id=club.id, book_id=club.current_book_id, started_at=now)
        db.add(row)

    row.status = outcome.status
    row.finished_at = now
    if outcome.status == ClubBookStatus.COMPLETED:
        row.rating = outcome.rating
        row.discussion_notes = outcome.notes.strip()
    else:
        row.abandon_reason_code = outcome.reason_code
        row.discussion_notes = abandon_notes(outcome.reason_code, outcome.notes)

    club.current_book_id = None
    db.flush()
    return row


# ---------------------------------------------------------------------------
# Public — completion / abandonment
# ---------------------------------------------------------------------------

def _close_current_book(
    db: Session,
    club_id: int,
    user_id: str,
    outcome: BookOutcome,
    now: Optional[datetime],
) -> ClubBook:
    validate_book_outcome(outcome)
    require_admin(db, club_id, user_id)
    club = get_club(db, club_id)
    if club.current_book_id is None:
        raise NoCurrentBookError(club_id)

    row = apply_book_outcome(db, club, outcome, now or utcnow())
    db.commit()
    db.refresh(row)
    logger.info(
        "Club %s closed book %s as %s", club_id, row.book_id, outcome.status.value
    )
    return row


def complete_current_book(
    db: Session,
    club_id: int,
    user_id: str,
    rating: Optional[int],
    notes: str,
    now: Optional[datetime] = None,
) -> ClubBook:
    outcome = BookOutcome(status=ClubBookStatus.COMPLETED, notes=notes, rating=rating)
    return _close_current_book(db, club_id, user_id, outcome, now)


def abandon_current_book(
    db: Session,
    club_id: int,
    user_id: str,
    reason_code: Optional[int],
    notes: str,
    now: Optional[datetime] = None,
) -> ClubBook:
    outcome = BookOutcome(status=ClubBookStatus.ABANDONED, notes=notes, reason_code=reason_code)
    return _close_current_book(db, club_id, user_id, outcome, now)


# ---------------------------------------------------------------------------
# Public — admin override (no history)
# ---------------------------------------------------------------------------

def _discard_stale_in_progress(db: Session, club: Club) -> None:
    """A replaced current book never finished; its open row is dropped, not closed."""
    row = _in_progress_row(db, club.id)
    if row is not None:
        logger.info(
            "Club %s override discards open history row %s (book %s)",
            club.id, row.id, row.book_id,
        )
        db.delete(row)


def set_current_book_override(
    db: Session,
    club_id: int,
    user_id: str,
    book_id: int,
    now: Optional[datetime] = None,
) -> Club:
    require_admin(db, club_id, user_id)
    get_book(db, book_id)
    club = get_club(db, club_id)
    if voting.refresh_voting_state(db, club, now or utcnow()):
        # The elapsed window stays closed even if the override is refused.
        db.commit()
    if club.voting_cycle_active:
        raise VotingAlreadyActiveError(club_id)

    _discard_stale_in_progress(db, club)
    club.current_book_id = book_id
    db.commit()
    db.refresh(club)
    return club


def clear_current_book_override(db: Session, club_id: int, user_id: str) -> Club:
    require_admin(db, club_id, user_id)
    club = get_club(db, club_id)
    _discard_stale_in_progress(db, club)
    club.current_book_id = None
    db.commit()
    db.refresh(club)
    return club


# ---------------------------------------------------------------------------
# Public — history
# ---------------------------------------------------------------------------

def get_book_history(db: Session, club_id: int, user_id: str) -> list[ClubBook]:
    require_member(db, club_id, user_id)
    return (
        db.query(ClubBook)
        .filter(ClubBook.club_id == club_id)
        .order_by(ClubBook.started_at.desc(), ClubBook.id.desc())
        .all()
    )
