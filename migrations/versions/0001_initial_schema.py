"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    "shelf_status_enum": ("want_to_read", "reading", "finished"),
    "club_role_enum": ("MEMBER", "ADMIN", "OWNER"),
    "membership_status_enum": ("ACTIVE", "PENDING", "REJECTED", "LEFT", "BANNED"),
    "club_book_status_enum": ("IN_PROGRESS", "COMPLETED", "ABANDONED"),
    "suggestion_status_enum": ("ACTIVE", "WINNER", "SELECTED", "REJECTED", "EXPIRED"),
    "meeting_mode_enum": ("IN_PERSON", "VIRTUAL"),
    "meeting_type_enum": ("DISCUSSION", "BOOK_SELECTION", "AUTHOR_QA", "SOCIAL", "OTHER"),
    "meeting_status_enum": ("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED"),
    "rsvp_status_enum": ("NOT_RESPONDED", "ATTENDING", "NOT_ATTENDING", "MAYBE"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- ENUM types ---
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- books ---
    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("author", sa.String(256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_books_id", "books", ["id"])

    # --- clubs ---
    op.create_table(
        "clubs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("member_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("current_book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=True),
        sa.Column("voting_cycle_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("voting_starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voting_started_by", sa.String(64), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_clubs_id", "clubs", ["id"])
    op.create_index("ix_clubs_owner_id", "clubs", ["owner_id"])

    # --- club_memberships ---
    op.create_table(
        "club_memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("club_id", sa.Integer(), sa.ForeignKey("clubs.id"), nullable=False),
        sa.Column("role", _enum("club_role_enum"), nullable=False),
        sa.Column("status", _enum("membership_status_enum"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "club_id", name="uq_club_membership_user_club"),
    )
    op.create_index("ix_club_memberships_id", "club_memberships", ["id"])
    op.create_index("ix_club_memberships_user_id", "club_memberships", ["user_id"])
    op.create_index("ix_club_memberships_club_id", "club_memberships", ["club_id"])

    # --- club_books ---
    op.create_table(
        "club_books",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("club_id", sa.Integer(), sa.ForeignKey("clubs.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", _enum("club_book_status_enum"), nullable=False),
        sa.Column("rating", sa.SmallInteger(), nullable=True),
        sa.Column("discussion_notes", sa.Text(), nullable=True),
        sa.Column("abandon_reason_code", sa.SmallInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_club_books_id", "club_books", ["id"])
    op.create_index("ix_club_books_club_id", "club_books", ["club_id"])
    # At most one reading period open per club.
    op.create_index(
        "uq_club_books_one_in_progress",
        "club_books",
        ["club_id"],
        unique=True,
        postgresql_where=sa.text("status = 'IN_PROGRESS'"),
        sqlite_where=sa.text("status = 'IN_PROGRESS'"),
    )

    # --- club_book_suggestions ---
    op.create_table(
        "club_book_suggestions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("club_id", sa.Integer(), sa.ForeignKey("clubs.id"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("suggested_by", sa.String(64), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", _enum("suggestion_status_enum"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_club_book_suggestions_id", "club_book_suggestions", ["id"])
    op.create_index("ix_club_book_suggestions_club_id", "club_book_suggestions", ["club_id"])
    op.create_index("ix_club_book_suggestions_status", "club_book_suggestions", ["status"])

    # --- club_book_suggestion_votes ---
    op.create_table(
        "club_book_suggestion_votes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "suggestion_id", sa.Integer(),
            sa.ForeignKey("club_book_suggestions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("suggestion_id", "user_id", name="uq_suggestion_vote_user"),
    )
    op.create_index("ix_club_book_suggestion_votes_id", "club_book_suggestion_votes", ["id"])
    op.create_index(
        "ix_club_book_suggestion_votes_suggestion_id", "club_book_suggestion_votes", ["suggestion_id"]
    )

    # --- club_meetings ---
    op.create_table(
        "club_meetings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("club_id", sa.Integer(), sa.ForeignKey("clubs.id"), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meeting_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="90"),
        sa.Column("location", sa.String(512), nullable=True),
        sa.Column("meeting_mode", _enum("meeting_mode_enum"), nullable=False),
        sa.Column("meeting_type", _enum("meeting_type_enum"), nullable=False),
        sa.Column("status", _enum("meeting_status_enum"), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("meeting_notes", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_club_meetings_id", "club_meetings", ["id"])
    op.create_index("ix_club_meetings_club_id", "club_meetings", ["club_id"])
    op.create_index("ix_club_meetings_meeting_date", "club_meetings", ["meeting_date"])

    # --- club_meeting_attendees ---
    op.create_table(
        "club_meeting_attendees",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "meeting_id", sa.Integer(),
            sa.ForeignKey("club_meetings.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("status", _enum("rsvp_status_enum"), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actually_attended", sa.Boolean(), nullable=True),
        sa.Column("marked_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_meeting_attendee_user"),
    )
    op.create_index("ix_club_meeting_attendees_id", "club_meeting_attendees", ["id"])
    op.create_index("ix_club_meeting_attendees_meeting_id", "club_meeting_attendees", ["meeting_id"])

    # --- achievements ---
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(16), nullable=True),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("difficulty", sa.String(32), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("criteria", sa.Text(), nullable=False, comment="JSON-encoded {type, threshold, timeframe}"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_achievements_name"),
    )
    op.create_index("ix_achievements_id", "achievements", ["id"])

    # --- user_achievements ---
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("achievement_id", sa.Integer(), sa.ForeignKey("achievements.id"), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("progress_data", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
    op.create_index("ix_user_achievements_id", "user_achievements", ["id"])
    op.create_index("ix_user_achievements_user_id", "user_achievements", ["user_id"])

    # --- achievement_progress ---
    op.create_table(
        "achievement_progress",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("achievement_id", sa.Integer(), sa.ForeignKey("achievements.id"), nullable=False),
        sa.Column("current_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("target_value", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_achievement_progress"),
    )
    op.create_index("ix_achievement_progress_id", "achievement_progress", ["id"])
    op.create_index("ix_achievement_progress_user_id", "achievement_progress", ["user_id"])

    # --- user_books ---
    op.create_table(
        "user_books",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("status", _enum("shelf_status_enum"), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "book_id", name="uq_user_book"),
    )
    op.create_index("ix_user_books_id", "user_books", ["id"])
    op.create_index("ix_user_books_user_id", "user_books", ["user_id"])

    # --- book_recommendations ---
    op.create_table(
        "book_recommendations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("from_user_id", sa.String(64), nullable=False),
        sa.Column("to_user_id", sa.String(64), nullable=False),
        sa.Column("book_id", sa.Integer(), sa.ForeignKey("books.id"), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_book_recommendations_id", "book_recommendations", ["id"])
    op.create_index("ix_book_recommendations_from_user_id", "book_recommendations", ["from_user_id"])
    op.create_index("ix_book_recommendations_to_user_id", "book_recommendations", ["to_user_id"])

    # --- seed the predefined achievement catalogue ---
    op.execute("""
        INSERT INTO achievements (name, description, icon, category, difficulty, points, criteria, is_active)
        VALUES
          ('First Steps',           'Read your first book',                '📚', 'READING_MILESTONE', 'BRONZE',  10,   '{"type": "books_read", "threshold": 1, "timeframe": "all_time"}',   true),
          ('Book Lover',            'Read 10 books',                       '📖', 'READING_MILESTONE', 'BRONZE',  50,   '{"type": "books_read", "threshold": 10, "timeframe": "all_time"}',  true),
          ('Bookworm',              'Read 50 books',                       '🐛', 'READING_MILESTONE', 'SILVER',  200,  '{"type": "books_read", "threshold": 50, "timeframe": "all_time"}',  true),
          ('Literary Master',       'Read 100 books',                      '🏆', 'READING_MILESTONE', 'GOLD',    500,  '{"type": "books_read", "threshold": 100, "timeframe": "all_time"}', true),
          ('Reading Legend',        'Read 500 books',                      '👑', 'READING_MILESTONE', 'DIAMOND', 2000, '{"type": "books_read", "threshold": 500, "timeframe": "all_time"}', true),
          ('Sharing is Caring',     'Send your first book recommendation', '💌', 'RECOMMENDER',       'BRONZE',  15,   '{"type": "recommendations_sent", "threshold": 1, "timeframe": "all_time"}',  true),
          ('Book Recommender',      'Send 5 book recommendations',         '🎯', 'RECOMMENDER',       'BRONZE',  30,   '{"type": "recommendations_sent", "threshold": 5, "timeframe": "all_time"}',  true),
          ('Recommendation Expert', 'Send 25 book recommendations',        '🏅', 'RECOMMENDER',       'SILVER',  100,  '{"type": "recommendations_sent", "threshold": 25, "timeframe": "all_time"}', true)
    """)


def downgrade() -> None:
    for table in (
        "book_recommendations",
        "user_books",
        "achievement_progress",
        "user_achievements",
        "achievements",
        "club_meeting_attendees",
        "club_meetings",
        "club_book_suggestion_votes",
        "club_book_suggestions",
        "club_books",
        "club_memberships",
        "clubs",
        "books",
    ):
        op.drop_table(table)
    for name in reversed(list(ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
