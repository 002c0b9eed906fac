"""
Book suggestions and the member votes they collect during a voting cycle.

status values:
  ACTIVE    — open, collecting votes
  WINNER    — tied for the most votes when the cycle ended; awaiting admin pick
  SELECTED  — the winner that became the club's current book
  REJECTED  — lost the vote, or lost the admin pick among tied winners
  EXPIRED   — the cycle ended without a single vote
"""
from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, Enum, ForeignKey, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
import enum

from bookclub.db.base import Base


class SuggestionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    WINNER = "WINNER"
    SELECTED = "SELECTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class BookSuggestion(Base):
    __tablename__ = "club_book_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False)
    suggested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        Enum(SuggestionStatus, name="suggestion_status_enum"),
        nullable=False,
        default=SuggestionStatus.ACTIVE,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class SuggestionVote(Base):
    __tablename__ = "club_book_suggestion_votes"
    __table_args__ = (
        UniqueConstraint("suggestion_id", "user_id", name="uq_suggestion_vote_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    suggestion_id: Mapped[int] = mapped_column(
        ForeignKey("club_book_suggestions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
