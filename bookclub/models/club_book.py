"""
ClubBook — one club's reading period for one book (the history log).

Created IN_PROGRESS when a book becomes current, then moved exactly once to
COMPLETED or ABANDONED. At most one IN_PROGRESS row per club.
"""
from datetime import datetime
from sqlalchemy import Integer, SmallInteger, Text, DateTime, Enum, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column
import enum

from bookclub.db.base import Base


class ClubBookStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


class ClubBook(Base):
    __tablename__ = "club_books"
    __table_args__ = (
        Index(
            "uq_club_books_one_in_progress",
            "club_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        Enum(ClubBookStatus, name="club_book_status_enum"),
        nullable=False,
        default=ClubBookStatus.IN_PROGRESS,
    )
    rating: Mapped[int | None] = mapped_column(
        SmallInteger, nullable=True,
        comment="1-5, only set when COMPLETED",
    )
    discussion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    abandon_reason_code: Mapped[int | None] = mapped_column(
        SmallInteger, nullable=True,
        comment="1-10, see ABANDON_REASONS; only set when ABANDONED",
    )
