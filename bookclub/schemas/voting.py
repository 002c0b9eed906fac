"""
Voting cycle + suggestion schemas.

POST   /clubs/{id}/voting/start                         → VotingStartRequest → VotingOut
POST   /clubs/{id}/voting/end                           →                      VotingOut
POST   /clubs/{id}/voting/select-winner                 → SelectWinnerRequest → WinnerSelectionOut
POST   /clubs/{id}/suggestions                          → SuggestionCreate   → SuggestionOut
GET    /clubs/{id}/suggestions                          →                      SuggestionListOut
POST   /clubs/{id}/suggestions/{sid}/vote               →                      VoteOut
DELETE /clubs/{id}/suggestions/{sid}/vote               →                      204
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from bookclub.schemas.club import ClubBookOut, ClubOut


class VotingStartRequest(BaseModel):
    duration_days: Optional[int] = Field(
        default=None,
        ge=1,
        le=60,
        description="Length of the voting window. Defaults to DEFAULT_VOTING_DAYS.",
        examples=[7],
    )
    starts_at: Optional[datetime] = Field(
        default=None,
        description="When voting opens. Defaults to now; must not be in the past.",
    )


class SuggestionOut(BaseModel):
    id: int
    club_id: int
    book_id: int
    suggested_by: str
    reason: Optional[str] = None
    status: str = Field(description='"ACTIVE" | "WINNER" | "SELECTED" | "REJECTED" | "EXPIRED"')
    created_at: str
    vote_count: int = 0
    has_voted: bool = False


class VotingOut(BaseModel):
    club: ClubOut
    events: list[str]
    winners: list[SuggestionOut] = Field(default_factory=list)


class SelectWinnerRequest(BaseModel):
    book_id: int = Field(gt=0)


class WinnerSelectionOut(BaseModel):
    club: ClubOut
    suggestion: SuggestionOut
    club_book: ClubBookOut


class SuggestionCreate(BaseModel):
    book_id: int = Field(gt=0)
    reason: Optional[str] = Field(default=None, max_length=2000)


class SuggestionListOut(BaseModel):
    state: str
    voting_ends_at: Optional[str] = None
    items: list[SuggestionOut]


class VoteOut(BaseModel):
    suggestion_id: int
    user_id: str
    created_at: str
