"""
Reading activity schemas.

POST /books             → BookCreate      → BookOut
PUT  /shelf             → ShelfUpdateIn   → ShelfEntryOut
POST /recommendations   → RecommendationIn → RecommendationOut
"""
from __future__ import annotations

from typing import Annotated, Optional

from pydantic import BaseModel, Field, field_validator

from bookclub.models.book import ShelfStatus


class BookCreate(BaseModel):
    title: Annotated[str, Field(min_length=1, max_length=512, examples=["The Left Hand of Darkness"])]
    author: Optional[str] = Field(default=None, max_length=256, examples=["Ursula K. Le Guin"])

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: str) -> str:
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("title must not be empty after stripping whitespace")
        return stripped


class ShelfUpdateIn(BaseModel):
    book_id: int = Field(gt=0)
    status: ShelfStatus


class ShelfEntryOut(BaseModel):
    book_id: int
    status: str
    added_at: str
    finished_at: Optional[str] = None
    achievements_awarded: list[str] = Field(default_factory=list)


class RecommendationIn(BaseModel):
    to_user_id: Annotated[str, Field(min_length=1, max_length=64)]
    book_id: int = Field(gt=0)
    message: Optional[str] = Field(default=None, max_length=2000)


class RecommendationOut(BaseModel):
    id: int
    from_user_id: str
    to_user_id: str
    book_id: int
    message: Optional[str] = None
    created_at: str
    achievements_awarded: list[str] = Field(default_factory=list)
