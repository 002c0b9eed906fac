"""
ClubMeeting + MeetingAttendee.

Meeting status flow: SCHEDULED -> IN_PROGRESS -> COMPLETED, with CANCELLED
reachable from either open state. COMPLETED and CANCELLED are terminal.

Attendee rows carry the member's RSVP (`status`) and, once the meeting is
completed, the admin-recorded `actually_attended`.
"""
from datetime import datetime
from sqlalchemy import Integer, String, Text, Boolean, DateTime, Enum, ForeignKey, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
import enum

from bookclub.db.base import Base


class MeetingType(str, enum.Enum):
    DISCUSSION = "DISCUSSION"
    BOOK_SELECTION = "BOOK_SELECTION"
    AUTHOR_QA = "AUTHOR_QA"
    SOCIAL = "SOCIAL"
    OTHER = "OTHER"


class MeetingMode(str, enum.Enum):
    IN_PERSON = "IN_PERSON"
    VIRTUAL = "VIRTUAL"


class MeetingStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RsvpStatus(str, enum.Enum):
    NOT_RESPONDED = "NOT_RESPONDED"
    ATTENDING = "ATTENDING"
    NOT_ATTENDING = "NOT_ATTENDING"
    MAYBE = "MAYBE"


class ClubMeeting(Base):
    __tablename__ = "club_meetings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    meeting_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    location: Mapped[str | None] = mapped_column(String(512), nullable=True)
    meeting_mode: Mapped[str] = mapped_column(
        Enum(MeetingMode, name="meeting_mode_enum"),
        nullable=False,
        default=MeetingMode.IN_PERSON,
    )
    meeting_type: Mapped[str] = mapped_column(
        Enum(MeetingType, name="meeting_type_enum"),
        nullable=False,
        default=MeetingType.DISCUSSION,
    )
    status: Mapped[str] = mapped_column(
        Enum(MeetingStatus, name="meeting_status_enum"),
        nullable=False,
        default=MeetingStatus.SCHEDULED,
    )
    book_id: Mapped[int | None] = mapped_column(ForeignKey("books.id"), nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    meeting_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class MeetingAttendee(Base):
    __tablename__ = "club_meeting_attendees"
    __table_args__ = (
        UniqueConstraint("meeting_id", "user_id", name="uq_meeting_attendee_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    meeting_id: Mapped[int] = mapped_column(
        ForeignKey("club_meetings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(RsvpStatus, name="rsvp_status_enum"),
        nullable=False,
        default=RsvpStatus.NOT_RESPONDED,
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actually_attended: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    marked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
