"""
Club book / voting state machine — pure functions, no session, no I/O.

States
------
  NoBook          no current book, no cycle, nothing pending
  VotingActive    cycle flag set and the window has not elapsed
  VotingExpired   cycle flag still set but voting_ends_at <= now
  WinnerPending   cycle closed, one or more WINNER suggestions await a pick
  CurrentBookSet  the club is reading a book

Expiry is detected lazily: every read boundary calls
`check_and_transition(snapshot, now, tallies)` and persists whatever the
returned snapshot says. There is no timer.

Public API
----------
snapshot_of(club, pending_winner_ids)      -> VotingSnapshot
derive_state(snapshot, now)                -> ClubState
check_and_transition(snapshot, now, tallies) -> (VotingSnapshot, list[str])
close_cycle(snapshot, tallies)             -> (VotingSnapshot, list[str])
pick_winners(tallies)                      -> list[int]
voting_window(starts_at, duration_days)    -> (datetime, datetime)
invariant_violations(snapshot)             -> list[str]
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from bookclub.core.clock import as_utc


class ClubState(str, enum.Enum):
    NO_BOOK = "NoBook"
    VOTING_ACTIVE = "VotingActive"
    VOTING_EXPIRED = "VotingExpired"
    WINNER_PENDING = "WinnerPending"
    CURRENT_BOOK_SET = "CurrentBookSet"


class VotingEvent:
    VOTING_EXPIRED = "voting_expired"
    VOTING_ENDED = "voting_ended"
    WINNERS_PENDING = "winners_pending"
    NO_VOTES = "no_votes"


@dataclass(frozen=True)
class VotingSnapshot:
    club_id: int
    voting_cycle_active: bool
    voting_starts_at: Optional[datetime]
    voting_ends_at: Optional[datetime]
    current_book_id: Optional[int]
    pending_winner_ids: tuple[int, ...] = ()


# (suggestion_id, vote_count)
Tally = tuple[int, int]


def snapshot_of(club, pending_winner_ids: Iterable[int] = ()) -> VotingSnapshot:
    """Build a snapshot from anything shaped like a Club row."""
    return VotingSnapshot(
        club_id=club.id,
        voting_cycle_active=bool(club.voting_cycle_active),
        voting_starts_at=as_utc(club.voting_starts_at),
        voting_ends_at=as_utc(club.voting_ends_at),
        current_book_id=club.current_book_id,
        pending_winner_ids=tuple(pending_winner_ids),
    )


def is_expired(snapshot: VotingSnapshot, now: datetime) -> bool:
    return (
        snapshot.voting_cycle_active
        and snapshot.voting_ends_at is not None
        and snapshot.voting_ends_at <= now
    )


def derive_state(snapshot: VotingSnapshot, now: datetime) -> ClubState:
    if snapshot.current_book_id is not None:
        return ClubState.CURRENT_BOOK_SET
    if snapshot.voting_cycle_active:
        if is_expired(snapshot, now):
            return ClubState.VOTING_EXPIRED
        return ClubState.VOTING_ACTIVE
    if snapshot.pending_winner_ids:
        return ClubState.WINNER_PENDING
    return ClubState.NO_BOOK


def pick_winners(tallies: Sequence[Tally]) -> list[int]:
    """All suggestions sharing the maximum vote count. Ties are kept; zero votes win nothing."""
    if not tallies:
        return []
    top = max(count for _, count in tallies)
    if top <= 0:
        return []
    return [suggestion_id for suggestion_id, count in tallies if count == top]


def close_cycle(
    snapshot: VotingSnapshot,
    tallies: Sequence[Tally],
) -> tuple[VotingSnapshot, list[str]]:
    """End the cycle now, whatever the window says."""
    winners = pick_winners(tallies)
    closed = replace(
        snapshot,
        voting_cycle_active=False,
        voting_starts_at=None,
        voting_ends_at=None,
        pending_winner_ids=tuple(winners),
    )
    events = [VotingEvent.WINNERS_PENDING if winners else VotingEvent.NO_VOTES]
    return closed, events


def check_and_transition(
    snapshot: VotingSnapshot,
    now: datetime,
    tallies: Sequence[Tally] = (),
) -> tuple[VotingSnapshot, list[str]]:
    """
    Lazy expiry check. Returns the snapshot unchanged and no events unless
    the voting window has elapsed while the cycle flag is still set.
    """
    if not is_expired(snapshot, now):
        return snapshot, []
    closed, events = close_cycle(snapshot, tallies)
    return closed, [VotingEvent.VOTING_EXPIRED, *events]


def voting_window(starts_at: datetime, duration_days: int) -> tuple[datetime, datetime]:
    if duration_days < 1:
        raise ValueError("duration_days must be at least 1")
    return starts_at, starts_at + timedelta(days=duration_days)


def invariant_violations(snapshot: VotingSnapshot) -> list[str]:
    problems = []
    if snapshot.voting_cycle_active and snapshot.current_book_id is not None:
        problems.append("voting cycle active while a current book is set")
    if snapshot.voting_cycle_active and snapshot.voting_ends_at is None:
        problems.append("voting cycle active without an end time")
    return problems
