"""
Reading activity router: catalogue, shelf and recommendations.

These are the writes that trigger achievement evaluation.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bookclub.core.auth import AuthenticatedUser, get_current_user
from bookclub.db.base import get_db
from bookclub.routers.serializers import enum_value, iso
from bookclub.schemas.activity import (
    BookCreate,
    RecommendationIn,
    RecommendationOut,
    ShelfEntryOut,
    ShelfUpdateIn,
)
from bookclub.schemas.common import ERROR_RESPONSES, BookOut
from bookclub.services import activity

router = APIRouter(tags=["activity"], responses=ERROR_RESPONSES)


@router.post(
    "/books",
    response_model=BookOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register a book",
)
def add_book(
    body: BookCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return BookOut.model_validate(activity.add_book(db, body.title, body.author))


@router.put(
    "/shelf",
    response_model=ShelfEntryOut,
    summary="Put a book on your shelf or move it",
)
def set_shelf_status(
    body: ShelfUpdateIn,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Moving a book to `finished` runs an achievement check."""
    update = activity.set_shelf_status(db, user.id, body.book_id, body.status)
    row = update.user_book
    return ShelfEntryOut(
        book_id=row.book_id,
        status=enum_value(row.status),
        added_at=iso(row.added_at) or "",
        finished_at=iso(row.finished_at),
        achievements_awarded=update.achievements.awarded,
    )


@router.post(
    "/recommendations",
    response_model=RecommendationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Recommend a book to another reader",
)
def send_recommendation(
    body: RecommendationIn,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sent = activity.send_recommendation(
        db, user.id, body.to_user_id, body.book_id, body.message
    )
    rec = sent.recommendation
    return RecommendationOut(
        id=rec.id,
        from_user_id=rec.from_user_id,
        to_user_id=rec.to_user_id,
        book_id=rec.book_id,
        message=rec.message,
        created_at=iso(rec.created_at) or "",
        achievements_awarded=sent.sender_achievements.awarded,
    )
