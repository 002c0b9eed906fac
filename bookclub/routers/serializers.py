"""
ORM row / service result → response schema helpers shared by the routers.

Timestamps are rendered as UTC ISO-8601 strings.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from bookclub.core.clock import as_utc
from bookclub.models.club import Club
from bookclub.models.club_book import ClubBook
from bookclub.models.meeting import ClubMeeting, MeetingAttendee
from bookclub.models.suggestion import BookSuggestion
from bookclub.schemas.club import ClubBookOut, ClubOut, SuggestionBrief
from bookclub.schemas.meeting import AttendeeOut, MeetingOut
from bookclub.schemas.voting import SuggestionOut
from bookclub.services.voting_state import ClubState


def iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def enum_value(value) -> Optional[str]:
    return getattr(value, "value", value)


def club_out(
    club: Club,
    state: ClubState,
    pending: list[BookSuggestion] = (),
    events: list[str] = (),
    is_admin: bool = False,
) -> ClubOut:
    return ClubOut(
        id=club.id,
        name=club.name,
        description=club.description,
        owner_id=club.owner_id,
        member_count=club.member_count,
        current_book_id=club.current_book_id,
        state=state.value,
        voting_cycle_active=club.voting_cycle_active,
        voting_starts_at=iso(club.voting_starts_at),
        voting_ends_at=iso(club.voting_ends_at),
        pending_winners=[
            SuggestionBrief(id=s.id, book_id=s.book_id, status=enum_value(s.status))
            for s in pending
        ],
        events=list(events),
        is_admin=is_admin,
    )


def club_book_out(row: ClubBook) -> ClubBookOut:
    return ClubBookOut(
        id=row.id,
        club_id=row.club_id,
        book_id=row.book_id,
        status=enum_value(row.status),
        started_at=iso(row.started_at),
        finished_at=iso(row.finished_at),
        rating=row.rating,
        discussion_notes=row.discussion_notes,
        abandon_reason_code=row.abandon_reason_code,
    )


def suggestion_out(s: BookSuggestion, vote_count: int = 0, has_voted: bool = False) -> SuggestionOut:
    return SuggestionOut(
        id=s.id,
        club_id=s.club_id,
        book_id=s.book_id,
        suggested_by=s.suggested_by,
        reason=s.reason,
        status=enum_value(s.status),
        created_at=iso(s.created_at) or "",
        vote_count=vote_count,
        has_voted=has_voted,
    )


def meeting_out(m: ClubMeeting) -> MeetingOut:
    return MeetingOut(
        id=m.id,
        club_id=m.club_id,
        title=m.title,
        description=m.description,
        meeting_date=iso(m.meeting_date),
        duration_minutes=m.duration_minutes,
        location=m.location,
        meeting_mode=enum_value(m.meeting_mode),
        meeting_type=enum_value(m.meeting_type),
        status=enum_value(m.status),
        book_id=m.book_id,
        created_by=m.created_by,
        meeting_notes=m.meeting_notes,
        completed_at=iso(m.completed_at),
    )


def attendee_fields(a: MeetingAttendee) -> dict:
    return {
        "user_id": a.user_id,
        "rsvp_status": enum_value(a.status),
        "responded_at": iso(a.responded_at),
        "actually_attended": a.actually_attended,
        "marked_at": iso(a.marked_at),
    }


def attendee_out(a: MeetingAttendee) -> AttendeeOut:
    return AttendeeOut(**attendee_fields(a))
