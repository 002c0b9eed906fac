"""
User activity writes that feed the achievement engine.

Each function commits the user's own change first, then runs an
achievement pass. The pass never raises, so a broken rule cannot undo or
fail the action that triggered it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from bookclub.core.clock import utcnow
from bookclub.core.errors import ValidationFailedError
from bookclub.models.book import Book, BookRecommendation, ShelfStatus, UserBook
from bookclub.models.club import ClubMembership
from bookclub.services import membership
from bookclub.services.achievement_engine import (
    ActivityType,
    EvaluationResult,
    evaluate_achievements,
)
from bookclub.services.membership import get_book

logger = logging.getLogger(__name__)


@dataclass
class ShelfUpdate:
    user_book: UserBook
    achievements: EvaluationResult


@dataclass
class RecommendationSent:
    recommendation: BookRecommendation
    sender_achievements: EvaluationResult
    recipient_achievements: EvaluationResult


@dataclass
class ClubJoined:
    membership: ClubMembership
    achievements: EvaluationResult


def add_book(db: Session, title: str, author: Optional[str] = None) -> Book:
    if not title or not title.strip():
        raise ValidationFailedError("Title is required.", field="title")
    book = Book(title=title.strip(), author=(author or "").strip() or None)
    db.add(book)
    db.commit()
    db.refresh(book)
    return book


def set_shelf_status(
    db: Session,
    user_id: str,
    book_id: int,
    status: ShelfStatus,
    now: Optional[datetime] = None,
) -> ShelfUpdate:
    """
    Put a book on the caller's shelf or move it. Moving to `finished` stamps
    `finished_at`; moving away from it clears the stamp.
    """
    now = now or utcnow()
    get_book(db, book_id)
    row = (
        db.query(UserBook)
        .filter(UserBook.user_id == user_id, UserBook.book_id == book_id)
        .first()
    )
    if row is None:
        row = UserBook(user_id=user_id, book_id=book_id, added_at=now)
        db.add(row)

    was_finished = row.status == ShelfStatus.finished
    row.status = status
    if status == ShelfStatus.finished:
        if not was_finished or row.finished_at is None:
            row.finished_at = now
    else:
        row.finished_at = None
    db.commit()
    db.refresh(row)

    result = EvaluationResult(user_id=user_id, activity_type=None)
    if status == ShelfStatus.finished and not was_finished:
        result = evaluate_achievements(db, user_id, ActivityType.BOOK_FINISHED.value, now=now)
    return ShelfUpdate(user_book=row, achievements=result)


def send_recommendation(
    db: Session,
    from_user_id: str,
    to_user_id: str,
    book_id: int,
    message: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RecommendationSent:
    now = now or utcnow()
    if not to_user_id or not to_user_id.strip():
        raise ValidationFailedError("A recipient is required.", field="to_user_id")
    if to_user_id == from_user_id:
        raise ValidationFailedError("You cannot recommend a book to yourself.", field="to_user_id")
    get_book(db, book_id)

    rec = BookRecommendation(
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        book_id=book_id,
        message=message,
        created_at=now,
    )
    db.add(rec)
    db.commit()
    db.refresh(rec)
    logger.info("User %s recommended book %s to %s", from_user_id, book_id, to_user_id)

    return RecommendationSent(
        recommendation=rec,
        sender_achievements=evaluate_achievements(
            db, from_user_id, ActivityType.RECOMMENDATION_SENT.value, now=now
        ),
        recipient_achievements=evaluate_achievements(
            db, to_user_id, ActivityType.RECOMMENDATION_RECEIVED.value, now=now
        ),
    )


def join_club(db: Session, club_id: int, user_id: str) -> ClubJoined:
    joined = membership.join_club(db, club_id, user_id)
    return ClubJoined(
        membership=joined,
        achievements=evaluate_achievements(db, user_id, ActivityType.CLUB_JOINED.value),
    )
