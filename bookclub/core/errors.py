"""
Custom exception hierarchy for the book club API.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Taxonomy
--------
  ValidationFailedError   422  bad or missing input, rejected before any write
  AuthenticationRequired  401  no verifiable identity token
  PermissionDeniedError   403  not a member / not an admin
  NotFoundError           404  club, meeting, book, suggestion missing
  StateConflictError      409  transition not allowed from the current state
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------

class BookClubException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailedError(BookClubException):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_INPUT"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )


class AuthenticationRequiredError(BookClubException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_REQUIRED"

    def __init__(self, reason: str = "missing_token"):
        super().__init__(
            message="A valid bearer token is required.",
            details={"reason": reason},
        )


class PermissionDeniedError(BookClubException):
    http_status = status.HTTP_403_FORBIDDEN
    code = "PERMISSION_DENIED"


class NotFoundError(BookClubException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class StateConflictError(BookClubException):
    http_status = status.HTTP_409_CONFLICT
    code = "STATE_CONFLICT"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class NotAMemberError(PermissionDeniedError):
    code = "NOT_A_MEMBER"

    def __init__(self, club_id: int):
        super().__init__(
            message=f"You must be an active member of club {club_id}.",
            details={"club_id": club_id},
        )


class AdminRequiredError(PermissionDeniedError):
    code = "ADMIN_REQUIRED"

    def __init__(self, club_id: int):
        super().__init__(
            message=f"Only admins and owners of club {club_id} can do this.",
            details={"club_id": club_id},
        )


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class ClubNotFoundError(NotFoundError):
    code = "CLUB_NOT_FOUND"

    def __init__(self, club_id: int):
        super().__init__(message=f"Club {club_id} not found.", details={"club_id": club_id})


class BookNotFoundError(NotFoundError):
    code = "BOOK_NOT_FOUND"

    def __init__(self, book_id: int):
        super().__init__(message=f"Book {book_id} not found.", details={"book_id": book_id})


class MeetingNotFoundError(NotFoundError):
    code = "MEETING_NOT_FOUND"

    def __init__(self, meeting_id: int):
        super().__init__(
            message=f"Meeting {meeting_id} not found in this club.",
            details={"meeting_id": meeting_id},
        )


class SuggestionNotFoundError(NotFoundError):
    code = "SUGGESTION_NOT_FOUND"

    def __init__(self, message: str, **details: Any):
        super().__init__(message=message, details=details)


class VoteNotFoundError(NotFoundError):
    code = "VOTE_NOT_FOUND"

    def __init__(self, suggestion_id: int):
        super().__init__(
            message="You have not voted for this suggestion.",
            details={"suggestion_id": suggestion_id},
        )


# ---------------------------------------------------------------------------
# State preconditions
# ---------------------------------------------------------------------------

class AlreadyMemberError(StateConflictError):
    code = "ALREADY_MEMBER"

    def __init__(self, club_id: int):
        super().__init__(
            message=f"You already belong to club {club_id}.",
            details={"club_id": club_id},
        )


class OwnerCannotLeaveError(StateConflictError):
    code = "OWNER_CANNOT_LEAVE"

    def __init__(self, club_id: int):
        super().__init__(
            message="The club owner cannot leave their own club.",
            details={"club_id": club_id},
        )


class CurrentBookExistsError(StateConflictError):
    code = "CURRENT_BOOK_EXISTS"

    def __init__(self, club_id: int, book_id: int):
        super().__init__(
            message="The club already has a current book.",
            details={"club_id": club_id, "current_book_id": book_id},
        )


class NoCurrentBookError(StateConflictError):
    code = "NO_CURRENT_BOOK"

    def __init__(self, club_id: int):
        super().__init__(
            message="No current book is set for this club.",
            details={"club_id": club_id},
        )


class VotingAlreadyActiveError(StateConflictError):
    code = "VOTING_ALREADY_ACTIVE"

    def __init__(self, club_id: int):
        super().__init__(
            message="A voting cycle is already active for this club.",
            details={"club_id": club_id},
        )


class VotingNotActiveError(StateConflictError):
    code = "VOTING_NOT_ACTIVE"

    def __init__(self, club_id: int):
        super().__init__(
            message="No active voting cycle for this club.",
            details={"club_id": club_id},
        )


class VotingWindowClosedError(StateConflictError):
    code = "VOTING_WINDOW_CLOSED"

    def __init__(self, club_id: int, reason: str):
        super().__init__(
            message=f"Votes are not accepted right now: {reason}.",
            details={"club_id": club_id, "reason": reason},
        )


class WinnerSelectionPendingError(StateConflictError):
    code = "WINNER_SELECTION_PENDING"

    def __init__(self, club_id: int, suggestion_ids: list[int]):
        super().__init__(
            message="Pick one of the winning suggestions before starting a new cycle.",
            details={"club_id": club_id, "winning_suggestion_ids": suggestion_ids},
        )


class AlreadyVotedError(StateConflictError):
    code = "ALREADY_VOTED"

    def __init__(self, suggestion_id: int):
        super().__init__(
            message="You have already voted for this suggestion.",
            details={"suggestion_id": suggestion_id},
        )


class DuplicateSuggestionError(StateConflictError):
    code = "DUPLICATE_SUGGESTION"

    def __init__(self, book_id: int):
        super().__init__(
            message="This book has already been suggested for this club.",
            details={"book_id": book_id},
        )


class SuggestionLimitReachedError(StateConflictError):
    code = "SUGGESTION_LIMIT_REACHED"

    def __init__(self, limit: int):
        super().__init__(
            message=f"You can only have {limit} open suggestions per voting cycle.",
            details={"limit": limit},
        )


class MeetingStateError(StateConflictError):
    code = "INVALID_MEETING_STATE"

    def __init__(self, meeting_id: int, current: str, action: str):
        super().__init__(
            message=f"Cannot {action} a meeting that is {current}.",
            details={"meeting_id": meeting_id, "status": current, "action": action},
        )


class MeetingAlreadyCompletedError(MeetingStateError):
    code = "MEETING_ALREADY_COMPLETED"

    def __init__(self, meeting_id: int):
        super().__init__(meeting_id=meeting_id, current="COMPLETED", action="complete")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def bookclub_exception_handler(request: Request, exc: BookClubException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
