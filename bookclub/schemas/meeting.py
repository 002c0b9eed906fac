"""
Meeting schemas.

POST  /clubs/{id}/meetings                         → MeetingCreate        → MeetingOut
GET   /clubs/{id}/meetings                         →                        MeetingListOut
PATCH /clubs/{id}/meetings/{mid}                   → MeetingUpdate        → MeetingOut
POST  /clubs/{id}/meetings/{mid}/start             →                        MeetingOut
POST  /clubs/{id}/meetings/{mid}/cancel            →                        MeetingOut
PUT   /clubs/{id}/meetings/{mid}/rsvp              → RsvpRequest          → AttendeeOut
GET   /clubs/{id}/meetings/{mid}/complete          →                        CompletionFormOut
POST  /clubs/{id}/meetings/{mid}/complete          → MeetingCompleteRequest → MeetingCompletionOut
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from bookclub.models.meeting import MeetingMode, MeetingType
from bookclub.schemas.club import ClubBookOut


class MeetingCreate(BaseModel):
    title: Annotated[str, Field(min_length=1, max_length=256, examples=["March discussion"])]
    meeting_date: datetime = Field(description="Must be in the future.")
    description: Optional[str] = Field(default=None, max_length=5000)
    duration_minutes: int = Field(default=90, ge=1, le=24 * 60)
    location: Optional[str] = Field(default=None, max_length=512)
    meeting_mode: MeetingMode = MeetingMode.IN_PERSON
    meeting_type: MeetingType = MeetingType.DISCUSSION
    book_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: str) -> str:
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("title must not be empty after stripping whitespace")
        return stripped


class MeetingUpdate(BaseModel):
    """Partial edit; omitted fields are left untouched. Only SCHEDULED meetings can be edited."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=256)
    meeting_date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=5000)
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=24 * 60)
    location: Optional[str] = Field(default=None, max_length=512)
    meeting_mode: Optional[MeetingMode] = None
    meeting_type: Optional[MeetingType] = None
    book_id: Optional[int] = Field(default=None, gt=0)


class MeetingOut(BaseModel):
    id: int
    club_id: int
    title: str
    description: Optional[str] = None
    meeting_date: str
    duration_minutes: int
    location: Optional[str] = None
    meeting_mode: str
    meeting_type: str
    status: str = Field(description='"SCHEDULED" | "IN_PROGRESS" | "COMPLETED" | "CANCELLED"')
    book_id: Optional[int] = None
    created_by: str
    meeting_notes: Optional[str] = None
    completed_at: Optional[str] = None


class MeetingListOut(BaseModel):
    upcoming: list[MeetingOut]
    past: list[MeetingOut]


class RsvpRequest(BaseModel):
    status: Literal["ATTENDING", "NOT_ATTENDING", "MAYBE"]


class AttendeeOut(BaseModel):
    user_id: str
    rsvp_status: str
    responded_at: Optional[str] = None
    actually_attended: Optional[bool] = None
    marked_at: Optional[str] = None


class CompletionFormAttendee(AttendeeOut):
    default_attended: bool = Field(description="Pre-filled value: true for ATTENDING or MAYBE.")


class CompletionFormOut(BaseModel):
    meeting: MeetingOut
    current_book_id: Optional[int] = None
    book_outcome_applies: bool
    attendees: list[CompletionFormAttendee]


class AttendanceMarkIn(BaseModel):
    user_id: str = Field(min_length=1)
    actually_attended: bool


class BookOutcomeIn(BaseModel):
    """Close the club's current book as part of completing a discussion of it."""
    status: Literal["COMPLETED", "ABANDONED"]
    notes: Annotated[str, Field(min_length=1, max_length=10_000)]
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    reason_code: Optional[int] = Field(
        default=None, ge=1, le=10, description="ABANDONED only; defaults to 10 (Other)."
    )

    @model_validator(mode="after")
    def rating_for_completed(self) -> "BookOutcomeIn":
        if self.status == "COMPLETED" and self.rating is None:
            raise ValueError("rating is required when status is COMPLETED")
        return self


class MeetingCompleteRequest(BaseModel):
    meeting_notes: Annotated[str, Field(min_length=1, max_length=20_000)]
    attendance: list[AttendanceMarkIn] = Field(
        default_factory=list,
        description="Overrides. Attendees left out default from their RSVP.",
    )
    book_outcome: Optional[BookOutcomeIn] = None

    @field_validator("meeting_notes", mode="before")
    @classmethod
    def strip_notes(cls, v: str) -> str:
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("meeting_notes must not be empty after stripping whitespace")
        return stripped


class AttendanceSummaryOut(BaseModel):
    total_registered: int
    actually_attended: int
    no_shows: int
    attendance_rate: int = Field(description="Percentage, rounded half up.")


class MeetingCompletionOut(BaseModel):
    meeting: MeetingOut
    attendees: list[AttendeeOut]
    attendance_summary: AttendanceSummaryOut
    book_outcome: Optional[ClubBookOut] = None
    message: str
