"""
Club, membership and reading-history schemas.

POST   /clubs                                 → ClubCreate         → ClubOut
GET    /clubs/{id}                            →                      ClubOut
POST   /clubs/{id}/join                       →                      MembershipOut
PUT    /clubs/{id}/members/{user_id}/role     → RoleUpdate         → MembershipOut
GET    /clubs/{id}/books                      →                      list[ClubBookOut]
PUT    /clubs/{id}/current-book               → CurrentBookSet     → ClubOut
DELETE /clubs/{id}/current-book               →                      ClubOut
POST   /clubs/{id}/complete-book              → CompleteBookRequest → ClubBookOut
POST   /clubs/{id}/abandon-book               → AbandonBookRequest  → ClubBookOut
GET    /clubs/abandon-reasons                 →                      list[AbandonReasonOut]
"""
from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookclub.models.club import ClubRole


def _strip_required(v):
    stripped = v.strip() if isinstance(v, str) else v
    if not stripped:
        raise ValueError("must not be empty after stripping whitespace")
    return stripped


class ClubCreate(BaseModel):
    name: Annotated[str, Field(min_length=1, max_length=128, examples=["Tuesday Night Readers"])]
    description: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip_required(v)


class SuggestionBrief(BaseModel):
    id: int
    book_id: int
    status: str


class ClubOut(BaseModel):
    """A club plus its derived voting state. Reading it applies any pending voting expiry."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    owner_id: str
    member_count: int
    current_book_id: Optional[int] = None
    state: str = Field(
        description='"NoBook" | "VotingActive" | "VotingExpired" | "WinnerPending" | "CurrentBookSet"'
    )
    voting_cycle_active: bool
    voting_starts_at: Optional[str] = None
    voting_ends_at: Optional[str] = None
    pending_winners: list[SuggestionBrief] = Field(
        default_factory=list,
        description="WINNER suggestions awaiting an admin pick (ties are all listed).",
    )
    events: list[str] = Field(
        default_factory=list,
        description="Transitions applied while serving this request, e.g. voting_expired.",
    )
    is_admin: bool = False


class MembershipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    club_id: int
    user_id: str
    role: str
    status: str
    joined_at: str
    achievements_awarded: list[str] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    role: ClubRole = Field(description="MEMBER or ADMIN. Ownership cannot be assigned.")


class ClubBookOut(BaseModel):
    """One row of the club's reading history."""
    id: int
    club_id: int
    book_id: int
    status: str = Field(description='"IN_PROGRESS" | "COMPLETED" | "ABANDONED"')
    started_at: str
    finished_at: Optional[str] = None
    rating: Optional[int] = None
    discussion_notes: Optional[str] = None
    abandon_reason_code: Optional[int] = None


class CurrentBookSet(BaseModel):
    book_id: int = Field(gt=0)


class CompleteBookRequest(BaseModel):
    rating: int = Field(ge=1, le=5, description="Club rating, 1-5.")
    notes: Annotated[str, Field(min_length=1, max_length=10_000)]

    @field_validator("notes", mode="before")
    @classmethod
    def strip_notes(cls, v: str) -> str:
        return _strip_required(v)


class AbandonBookRequest(BaseModel):
    reason_code: int = Field(ge=1, le=10, description="See GET /clubs/abandon-reasons.")
    notes: Annotated[str, Field(min_length=1, max_length=10_000)]

    @field_validator("notes", mode="before")
    @classmethod
    def strip_notes(cls, v: str) -> str:
        return _strip_required(v)


class AbandonReasonOut(BaseModel):
    code: int
    label: str
