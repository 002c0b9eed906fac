"""
Shared schema primitives used across the API.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """A single field-level validation error."""
    field: str
    message: str
    type: str


class ErrorResponse(BaseModel):
    """Standard `{code, message, details}` envelope returned for every 4xx/5xx."""
    code: str = Field(examples=["VOTING_ALREADY_ACTIVE"])
    message: str
    details: Optional[dict[str, Any]] = None


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: Optional[str] = None


# Reused in every router's `responses=` so the docs show the envelope.
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"model": ErrorResponse, "description": "Missing or invalid bearer token."},
    403: {"model": ErrorResponse, "description": "Not a member, or not an admin."},
    404: {"model": ErrorResponse, "description": "Club, book, meeting or suggestion not found."},
    409: {"model": ErrorResponse, "description": "Not allowed in the current state."},
    422: {"model": ErrorResponse, "description": "Invalid input; nothing was written."},
}
