"""
Meetings router.

POST  /clubs/{club_id}/meetings                          — schedule (admin)
GET   /clubs/{club_id}/meetings                          — {upcoming, past} (member)
PATCH /clubs/{club_id}/meetings/{meeting_id}             — edit a SCHEDULED meeting (admin)
POST  /clubs/{club_id}/meetings/{meeting_id}/start       — SCHEDULED → IN_PROGRESS (admin)
POST  /clubs/{club_id}/meetings/{meeting_id}/cancel      — → CANCELLED (admin)
PUT   /clubs/{club_id}/meetings/{meeting_id}/rsvp        — own RSVP (member)
GET   /clubs/{club_id}/meetings/{meeting_id}/complete    — completion form (admin)
POST  /clubs/{club_id}/meetings/{meeting_id}/complete    — complete (admin)
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from bookclub.core.auth import AuthenticatedUser, get_current_user
from bookclub.db.base import get_db
from bookclub.models.club_book import ClubBookStatus
from bookclub.models.meeting import RsvpStatus
from bookclub.routers.serializers import (
    attendee_fields,
    attendee_out,
    club_book_out,
    meeting_out,
)
from bookclub.schemas.common import ERROR_RESPONSES
from bookclub.schemas.meeting import (
    AttendanceSummaryOut,
    AttendeeOut,
    CompletionFormAttendee,
    CompletionFormOut,
    MeetingCompleteRequest,
    MeetingCompletionOut,
    MeetingCreate,
    MeetingListOut,
    MeetingOut,
    MeetingUpdate,
    RsvpRequest,
)
from bookclub.services import meetings
from bookclub.services.club_books import BookOutcome

router = APIRouter(
    prefix="/clubs/{club_id}/meetings", tags=["meetings"], responses=ERROR_RESPONSES
)


def _completion_message(result: meetings.MeetingCompletion) -> str:
    s = result.summary
    message = (
        f"Meeting completed. {s.actually_attended} of {s.total_registered} members attended."
    )
    if result.book_outcome is not None:
        verb = (
            "completed" if result.book_outcome.status == ClubBookStatus.COMPLETED
            else "not completed"
        )
        message += f" The current book was marked {verb} and moved to history."
    return message


@router.post(
    "",
    response_model=MeetingOut,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a meeting",
)
def create_meeting(
    club_id: int,
    body: MeetingCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Every ACTIVE member gets a NOT_RESPONDED attendee row."""
    draft = meetings.MeetingDraft(**body.model_dump())
    return meeting_out(meetings.create_meeting(db, club_id, user.id, draft))


@router.get(
    "",
    response_model=MeetingListOut,
    summary="List meetings split into upcoming and past",
)
def list_meetings(
    club_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    listing = meetings.list_meetings(db, club_id, user.id)
    return MeetingListOut(
        upcoming=[meeting_out(m) for m in listing.upcoming],
        past=[meeting_out(m) for m in listing.past],
    )


@router.patch(
    "/{meeting_id}",
    response_model=MeetingOut,
    summary="Edit a scheduled meeting",
)
def update_meeting(
    club_id: int,
    meeting_id: int,
    body: MeetingUpdate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    return meeting_out(meetings.update_meeting(db, club_id, meeting_id, user.id, changes))


@router.post(
    "/{meeting_id}/start",
    response_model=MeetingOut,
    summary="Start a scheduled meeting",
)
def start_meeting(
    club_id: int,
    meeting_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return meeting_out(meetings.start_meeting(db, club_id, meeting_id, user.id))


@router.post(
    "/{meeting_id}/cancel",
    response_model=MeetingOut,
    summary="Cancel a meeting (irreversible)",
)
def cancel_meeting(
    club_id: int,
    meeting_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return meeting_out(meetings.cancel_meeting(db, club_id, meeting_id, user.id))


@router.put(
    "/{meeting_id}/rsvp",
    response_model=AttendeeOut,
    summary="Set your RSVP",
)
def set_rsvp(
    club_id: int,
    meeting_id: int,
    body: RsvpRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    attendee = meetings.set_rsvp(db, club_id, meeting_id, user.id, RsvpStatus(body.status))
    return attendee_out(attendee)


@router.get(
    "/{meeting_id}/complete",
    response_model=CompletionFormOut,
    summary="Data for the meeting completion form",
)
def get_completion_form(
    club_id: int,
    meeting_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    form = meetings.get_completion_form(db, club_id, meeting_id, user.id)
    return CompletionFormOut(
        meeting=meeting_out(form.meeting),
        current_book_id=form.current_book_id,
        book_outcome_applies=form.book_outcome_applies,
        attendees=[
            CompletionFormAttendee(**attendee_fields(e.attendee), default_attended=e.default_attended)
            for e in form.entries
        ],
    )


@router.post(
    "/{meeting_id}/complete",
    response_model=MeetingCompletionOut,
    summary="Complete a meeting",
)
def complete_meeting(
    club_id: int,
    meeting_id: int,
    body: MeetingCompleteRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Records attendance (overrides first, RSVP defaults for everyone else) and,
    for a DISCUSSION of the club's current book, optionally closes that book
    in the same transaction.
    """
    outcome = None
    if body.book_outcome is not None:
        outcome = BookOutcome(
            status=ClubBookStatus(body.book_outcome.status),
            notes=body.book_outcome.notes,
            rating=body.book_outcome.rating,
            reason_code=body.book_outcome.reason_code,
        )
    result = meetings.complete_meeting(
        db,
        club_id,
        meeting_id,
        user.id,
        meeting_notes=body.meeting_notes,
        attendance=[
            meetings.AttendanceMark(user_id=m.user_id, actually_attended=m.actually_attended)
            for m in body.attendance
        ],
        book_outcome=outcome,
    )
    return MeetingCompletionOut(
        meeting=meeting_out(result.meeting),
        attendees=[attendee_out(a) for a in result.attendees],
        attendance_summary=AttendanceSummaryOut(**vars(result.summary)),
        book_outcome=club_book_out(result.book_outcome) if result.book_outcome else None,
        message=_completion_message(result),
    )
