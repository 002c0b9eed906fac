"""
Club + ClubMembership.

The voting columns on `clubs` are the persisted half of the voting state
machine (see bookclub/services/voting_state.py). Invariant kept by the
services: voting_cycle_active implies voting_ends_at is set and
current_book_id is null.
"""
from datetime import datetime
from sqlalchemy import Integer, String, Text, Boolean, DateTime, Enum, ForeignKey, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
import enum

from bookclub.db.base import Base


class ClubRole(str, enum.Enum):
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


class MembershipStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    REJECTED = "REJECTED"
    LEFT = "LEFT"
    BANNED = "BANNED"


class Club(Base):
    __tablename__ = "clubs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    member_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    current_book_id: Mapped[int | None] = mapped_column(
        ForeignKey("books.id"), nullable=True
    )
    voting_cycle_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    voting_starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voting_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voting_started_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ClubMembership(Base):
    __tablename__ = "club_memberships"
    __table_args__ = (
        UniqueConstraint("user_id", "club_id", name="uq_club_membership_user_club"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    club_id: Mapped[int] = mapped_column(ForeignKey("clubs.id"), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        Enum(ClubRole, name="club_role_enum"),
        nullable=False,
        default=ClubRole.MEMBER,
    )
    status: Mapped[str] = mapped_column(
        Enum(MembershipStatus, name="membership_status_enum"),
        nullable=False,
        default=MembershipStatus.ACTIVE,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
