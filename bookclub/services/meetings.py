"""
Meeting lifecycle service.

Status flow
-----------
  SCHEDULED --start--> IN_PROGRESS --complete--> COMPLETED
      |                    |
      +------cancel--------+--------> CANCELLED

COMPLETED and CANCELLED are terminal. Editing is only allowed while
SCHEDULED. Completing may also close the club's current book in the same
transaction when the meeting is a DISCUSSION of that book.

Attendance
----------
Creating a meeting seeds one NOT_RESPONDED attendee row per ACTIVE member.
On completion each attendee's `actually_attended` comes from the admin's
override if given, else from the RSVP: ATTENDING / MAYBE -> attended,
NOT_ATTENDING / NOT_RESPONDED -> not attended.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.orm import Session

from bookclub.core.clock import as_utc, utcnow
from bookclub.core.errors import (
    MeetingAlreadyCompletedError,
    MeetingNotFoundError,
    MeetingStateError,
    ValidationFailedError,
)
from bookclub.models.club_book import ClubBook, ClubBookStatus
from bookclub.models.meeting import (
    ClubMeeting,
    MeetingAttendee,
    MeetingMode,
    MeetingStatus,
    MeetingType,
    RsvpStatus,
)
from bookclub.services.club_books import (
    OTHER_REASON_CODE,
    BookOutcome,
    apply_book_outcome,
    validate_book_outcome,
)
from bookclub.services.membership import (
    active_member_ids,
    get_book,
    get_club,
    require_admin,
    require_member,
)

logger = logging.getLogger(__name__)

_OPEN_STATUSES = (MeetingStatus.SCHEDULED, MeetingStatus.IN_PROGRESS)
_ATTENDING_RSVPS = (RsvpStatus.ATTENDING, RsvpStatus.MAYBE)
_EDITABLE_FIELDS = (
    "title", "description", "meeting_date", "duration_minutes",
    "location", "meeting_mode", "meeting_type", "book_id",
)


# ---------------------------------------------------------------------------
# Input / result types
# ---------------------------------------------------------------------------

@dataclass
class MeetingDraft:
    title: str
    meeting_date: datetime
    description: Optional[str] = None
    duration_minutes: int = 90
    location: Optional[str] = None
    meeting_mode: MeetingMode = MeetingMode.IN_PERSON
    meeting_type: MeetingType = MeetingType.DISCUSSION
    book_id: Optional[int] = None


@dataclass
class AttendanceMark:
    user_id: str
    actually_attended: bool


@dataclass
class AttendanceSummary:
    total_registered: int
    actually_attended: int
    no_shows: int
    attendance_rate: int


@dataclass
class MeetingCompletion:
    meeting: ClubMeeting
    attendees: list[MeetingAttendee]
    summary: AttendanceSummary
    book_outcome: Optional[ClubBook] = None


@dataclass
class CompletionFormEntry:
    attendee: MeetingAttendee
    default_attended: bool


@dataclass
class CompletionForm:
    meeting: ClubMeeting
    current_book_id: Optional[int]
    book_outcome_applies: bool
    entries: list[CompletionFormEntry] = field(default_factory=list)


@dataclass
class MeetingListing:
    upcoming: list[ClubMeeting]
    past: list[ClubMeeting]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def default_attendance(rsvp: RsvpStatus) -> bool:
    return rsvp in _ATTENDING_RSVPS


def resolve_attendance(
    attendees: list[MeetingAttendee],
    overrides: dict[str, bool],
) -> dict[str, bool]:
    """Final attended flag per user: override if given, RSVP default otherwise."""
    return {
        a.user_id: overrides.get(a.user_id, default_attendance(a.status))
        for a in attendees
    }


def summarize_attendance(attended: dict[str, bool]) -> AttendanceSummary:
    total = len(attended)
    present = sum(1 for flag in attended.values() if flag)
    rate = 0
    if total:
        rate = int((Decimal(present) * 100 / Decimal(total)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        ))
    return AttendanceSummary(
        total_registered=total,
        actually_attended=present,
        no_shows=total - present,
        attendance_rate=rate,
    )


def _require_future(meeting_date: datetime, now: datetime) -> datetime:
    when = as_utc(meeting_date)
    if when is None or when <= now:
        raise ValidationFailedError("Meeting date must be in the future.", field="meeting_date")
    return when


def _require_status(meeting: ClubMeeting, allowed: tuple, action: str) -> None:
    if meeting.status not in allowed:
        raise MeetingStateError(meeting.id, meeting.status.value, action)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_meeting(db: Session, club_id: int, meeting_id: int) -> ClubMeeting:
    meeting = db.get(ClubMeeting, meeting_id)
    if meeting is None or meeting.club_id != club_id:
        raise MeetingNotFoundError(meeting_id)
    return meeting


def get_attendees(db: Session, meeting_id: int) -> list[MeetingAttendee]:
    return (
        db.query(MeetingAttendee)
        .filter(MeetingAttendee.meeting_id == meeting_id)
        .order_by(MeetingAttendee.id)
        .all()
    )


def book_outcome_applies(meeting: ClubMeeting, current_book_id: Optional[int]) -> bool:
    return (
        meeting.meeting_type == MeetingType.DISCUSSION
        and current_book_id is not None
        and meeting.book_id == current_book_id
    )


# ---------------------------------------------------------------------------
# Public — create / list / edit
# ---------------------------------------------------------------------------

def create_meeting(
    db: Session,
    club_id: int,
    user_id: str,
    draft: MeetingDraft,
    now: Optional[datetime] = None,
) -> ClubMeeting:
    now = now or utcnow()
    if not draft.title or not draft.title.strip():
        raise ValidationFailedError("Title is required.", field="title")
    when = _require_future(draft.meeting_date, now)
    if draft.duration_minutes < 1:
        raise ValidationFailedError("Duration must be positive.", field="duration_minutes")
    require_admin(db, club_id, user_id)
    if draft.book_id is not None:
        get_book(db, draft.book_id)

    meeting = ClubMeeting(
        club_id=club_id,
        title=draft.title.strip(),
        description=draft.description,
        meeting_date=when,
        duration_minutes=draft.duration_minutes,
        location=draft.location,
        meeting_mode=draft.meeting_mode,
        meeting_type=draft.meeting_type,
        status=MeetingStatus.SCHEDULED,
        book_id=draft.book_id,
        created_by=user_id,
    )
    db.add(meeting)
    db.flush()

    for member_id in active_member_ids(db, club_id):
        db.add(MeetingAttendee(
            meeting_id=meeting.id,
            user_id=member_id,
            status=RsvpStatus.NOT_RESPONDED,
        ))

    db.commit()
    db.refresh(meeting)
    logger.info("Club %s meeting %s scheduled for %s", club_id, meeting.id, when.isoformat())
    return meeting


def list_meetings(
    db: Session,
    club_id: int,
    user_id: str,
    now: Optional[datetime] = None,
) -> MeetingListing:
    """Upcoming soonest first, past most recent first."""
    now = now or utcnow()
    require_member(db, club_id, user_id)
    meetings = (
        db.query(ClubMeeting)
        .filter(ClubMeeting.club_id == club_id)
        .order_by(ClubMeeting.meeting_date, ClubMeeting.id)
        .all()
    )
    upcoming = [m for m in meetings if as_utc(m.meeting_date) >= now]
    past = [m for m in meetings if as_utc(m.meeting_date) < now]
    past.reverse()
    return MeetingListing(upcoming=upcoming, past=past)


def update_meeting(
    db: Session,
    club_id: int,
    meeting_id: int,
    user_id: str,
    changes: dict,
    now: Optional[datetime] = None,
) -> ClubMeeting:
    """Apply a partial edit. Only keys in `changes` are touched; status never changes."""
    now = now or utcnow()
    unknown = set(changes) - set(_EDITABLE_FIELDS)
    if unknown:
        raise ValidationFailedError(
            f"Fields cannot be edited: {', '.join(sorted(unknown))}.", field=sorted(unknown)[0]
        )
    if "title" in changes and not (changes["title"] or "").strip():
        raise ValidationFailedError("Title is required.", field="title")
    if "meeting_date" in changes:
        changes = {**changes, "meeting_date": _require_future(changes["meeting_date"], now)}
    if "duration_minutes" in changes and (changes["duration_minutes"] or 0) < 1:
        raise ValidationFailedError("Duration must be positive.", field="duration_minutes")
    for key in ("meeting_mode", "meeting_type"):
        if key in changes and changes[key] is None:
            raise ValidationFailedError(f"{key} cannot be cleared.", field=key)

    require_admin(db, club_id, user_id)
    meeting = get_meeting(db, club_id, meeting_id)
    _require_status(meeting, (MeetingStatus.SCHEDULED,), "edit")
    if changes.get("book_id") is not None:
        get_book(db, changes["book_id"])

    for key, value in changes.items():
        setattr(meeting, key, value.strip() if key == "title" else value)
    db.commit()
    db.refresh(meeting)
    return meeting


# ---------------------------------------------------------------------------
# Public — status transitions
# ---------------------------------------------------------------------------

def start_meeting(db: Session, club_id: int, meeting_id: int, user_id: str) -> ClubMeeting:
    require_admin(db, club_id, user_id)
    meeting = get_meeting(db, club_id, meeting_id)
    _require_status(meeting, (MeetingStatus.SCHEDULED,), "start")
    meeting.status = MeetingStatus.IN_PROGRESS
    db.commit()
    db.refresh(meeting)
    return meeting


def cancel_meeting(db: Session, club_id: int, meeting_id: int, user_id: str) -> ClubMeeting:
    require_admin(db, club_id, user_id)
    meeting = get_meeting(db, club_id, meeting_id)
    _require_status(meeting, _OPEN_STATUSES, "cancel")
    meeting.status = MeetingStatus.CANCELLED
    db.commit()
    db.refresh(meeting)
    logger.info("Club %s meeting %s cancelled by %s", club_id, meeting_id, user_id)
    return meeting


# ---------------------------------------------------------------------------
# Public — RSVP
# ---------------------------------------------------------------------------

def set_rsvp(
    db: Session,
    club_id: int,
    meeting_id: int,
    user_id: str,
    rsvp: RsvpStatus,
    now: Optional[datetime] = None,
) -> MeetingAttendee:
    now = now or utcnow()
    if rsvp == RsvpStatus.NOT_RESPONDED:
        raise ValidationFailedError(
            "RSVP must be ATTENDING, NOT_ATTENDING or MAYBE.", field="status"
        )
    require_member(db, club_id, user_id)
    meeting = get_meeting(db, club_id, meeting_id)
    _require_status(meeting, _OPEN_STATUSES, "RSVP to")

    attendee = (
        db.query(MeetingAttendee)
        .filter(MeetingAttendee.meeting_id == meeting_id, MeetingAttendee.user_id == user_id)
        .first()
    )
    if attendee is None:
        # Joined the club after the meeting was scheduled.
        attendee = MeetingAttendee(meeting_id=meeting_id, user_id=user_id)
        db.add(attendee)
    attendee.status = rsvp
    attendee.responded_at = now
    db.commit()
    db.refresh(attendee)
    return attendee


# ---------------------------------------------------------------------------
# Public — completion
# ---------------------------------------------------------------------------

def get_completion_form(db: Session, club_id: int, meeting_id: int, user_id: str) -> CompletionForm:
    require_admin(db, club_id, user_id)
    meeting = get_meeting(db, club_id, meeting_id)
    club = get_club(db, club_id)
    return CompletionForm(
        meeting=meeting,
        current_book_id=club.current_book_id,
        book_outcome_applies=book_outcome_applies(meeting, club.current_book_id),
        entries=[
            CompletionFormEntry(attendee=a, default_attended=default_attendance(a.status))
            for a in get_attendees(db, meeting_id)
        ],
    )


def complete_meeting(
    db: Session,
    club_id: int,
    meeting_id: int,
    user_id: str,
    meeting_notes: str,
    attendance: Optional[list[AttendanceMark]] = None,
    book_outcome: Optional[BookOutcome] = None,
    now: Optional[datetime] = None,
) -> MeetingCompletion:
    """
    Close the meeting, record attendance, and optionally close the current
    book. Everything is validated first; the writes share one commit.
    """
    now = now or utcnow()
    require_admin(db, club_id, user_id)
    meeting = get_meeting(db, club_id, meeting_id)
    if meeting.status == MeetingStatus.COMPLETED:
        raise MeetingAlreadyCompletedError(meeting_id)
    _require_status(meeting, _OPEN_STATUSES, "complete")

    if not meeting_notes or not meeting_notes.strip():
        raise ValidationFailedError("Meeting notes are required.", field="meeting_notes")

    attendees = get_attendees(db, meeting_id)
    known = {a.user_id for a in attendees}
    overrides: dict[str, bool] = {}
    for mark in attendance or []:
        if mark.user_id not in known:
            raise ValidationFailedError(
                f"User {mark.user_id} is not registered for this meeting.", field="attendance"
            )
        overrides[mark.user_id] = mark.actually_attended

    club = get_club(db, club_id)
    if book_outcome is not None:
        if not book_outcome_applies(meeting, club.current_book_id):
            raise ValidationFailedError(
                "A book outcome can only be recorded at a discussion of the club's current book.",
                field="book_outcome",
            )
        if (
            book_outcome.status == ClubBookStatus.ABANDONED
            and book_outcome.reason_code is None
        ):
            book_outcome.reason_code = OTHER_REASON_CODE
        validate_book_outcome(book_outcome)

    attended = resolve_attendance(attendees, overrides)
    for attendee in attendees:
        attendee.actually_attended = attended[attendee.user_id]
        attendee.marked_at = now

    meeting.status = MeetingStatus.COMPLETED
    meeting.meeting_notes = meeting_notes.strip()
    meeting.completed_at = now

    closed_book = None
    if book_outcome is not None:
        closed_book = apply_book_outcome(db, club, book_outcome, now)

    db.commit()
    db.refresh(meeting)
    if closed_book is not None:
        db.refresh(closed_book)

    summary = summarize_attendance(attended)
    logger.info(
        "Club %s meeting %s completed: %s/%s attended%s",
        club_id, meeting_id, summary.actually_attended, summary.total_registered,
        f", book {closed_book.book_id} {closed_book.status.value}" if closed_book else "",
    )
    return MeetingCompletion(
        meeting=meeting,
        attendees=get_attendees(db, meeting_id),
        summary=summary,
        book_outcome=closed_book,
    )
