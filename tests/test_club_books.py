"""
Tests for the current book and the club's reading history.

Covered scenarios:
  A) outcome validation — rating range, reason codes, notes, nothing written on failure
  B) complete / abandon — history row closed, current book cleared
  C) abandon notes format "Reason: <label>\nNotes: <notes>"
  D) admin override — no history row, stale IN_PROGRESS row dropped, blocked during voting
  E) at most one IN_PROGRESS row per club
  F) HTTP — abandon-reasons list, history newest first, 422 / 409 paths
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from bookclub.core.clock import utcnow
from bookclub.core.errors import (
    AdminRequiredError,
    CurrentBookExistsError,
    NoCurrentBookError,
    ValidationFailedError,
    VotingAlreadyActiveError,
)
from bookclub.models.club_book import ClubBook, ClubBookStatus
from bookclub.services import club_books, voting
from bookclub.services.club_books import (
    ABANDON_REASONS,
    BookOutcome,
    abandon_notes,
    begin_reading,
    validate_book_outcome,
)


def _reading_club(db, club_setup, new_book):
    """Club currently reading a book picked through begin_reading (so it has history)."""
    setup = club_setup()
    book = new_book("Current")
    club = setup["club"]
    begin_reading(db, club, book.id, utcnow() - timedelta(days=20))
    db.commit()
    db.refresh(club)
    return {**setup, "book": book}


def _in_progress_rows(db, club_id):
    return (
        db.query(ClubBook)
        .filter(ClubBook.club_id == club_id, ClubBook.status == ClubBookStatus.IN_PROGRESS)
        .all()
    )


class TestValidateBookOutcome:
    def test_completed_requires_rating(self):
        with pytest.raises(ValidationFailedError) as exc:
            validate_book_outcome(BookOutcome(status=ClubBookStatus.COMPLETED, notes="good"))
        assert exc.value.details == {"field": "rating"}

    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range(self, rating):
        with pytest.raises(ValidationFailedError):
            validate_book_outcome(
                BookOutcome(status=ClubBookStatus.COMPLETED, notes="ok", rating=rating)
            )

    @pytest.mark.parametrize("code", [0, 11, None])
    def test_unknown_reason_code(self, code):
        with pytest.raises(ValidationFailedError) as exc:
            validate_book_outcome(
                BookOutcome(status=ClubBookStatus.ABANDONED, notes="meh", reason_code=code)
            )
        assert exc.value.details == {"field": "reason_code"}

    def test_blank_notes(self):
        with pytest.raises(ValidationFailedError):
            validate_book_outcome(
                BookOutcome(status=ClubBookStatus.COMPLETED, notes="   ", rating=4)
            )

    def test_in_progress_is_not_an_outcome(self):
        with pytest.raises(ValidationFailedError):
            validate_book_outcome(BookOutcome(status=ClubBookStatus.IN_PROGRESS, notes="x"))

    def test_valid_outcomes(self):
        validate_book_outcome(BookOutcome(status=ClubBookStatus.COMPLETED, notes="x", rating=5))
        validate_book_outcome(
            BookOutcome(status=ClubBookStatus.ABANDONED, notes="x", reason_code=10)
        )


class TestAbandonNotes:
    def test_format(self):
        assert abandon_notes(2, "  lost interest by chapter 4 ") == (
            f"Reason: {ABANDON_REASONS[2]}\nNotes: lost interest by chapter 4"
        )

    def test_ten_reason_codes_with_other_last(self):
        assert sorted(ABANDON_REASONS) == list(range(1, 11))
        assert ABANDON_REASONS[10] == "Other"


class TestCompleteAndAbandon:
    def test_complete_closes_history_row(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        row = club_books.complete_current_book(
            db, ctx["club"].id, ctx["admin"], 4, "  Loved the ending.  "
        )
        assert row.status == ClubBookStatus.COMPLETED
        assert row.rating == 4
        assert row.discussion_notes == "Loved the ending."
        assert row.finished_at is not None
        db.refresh(ctx["club"])
        assert ctx["club"].current_book_id is None
        assert _in_progress_rows(db, ctx["club"].id) == []

    def test_abandon_records_reason(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        row = club_books.abandon_current_book(
            db, ctx["club"].id, ctx["owner"], 3, "Too slow"
        )
        assert row.status == ClubBookStatus.ABANDONED
        assert row.abandon_reason_code == 3
        assert row.discussion_notes == f"Reason: {ABANDON_REASONS[3]}\nNotes: Too slow"
        assert row.rating is None

    def test_invalid_rating_writes_nothing(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        with pytest.raises(ValidationFailedError):
            club_books.complete_current_book(db, ctx["club"].id, ctx["admin"], 9, "notes")
        db.refresh(ctx["club"])
        assert ctx["club"].current_book_id == ctx["book"].id
        assert len(_in_progress_rows(db, ctx["club"].id)) == 1

    def test_plain_member_cannot_complete(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        with pytest.raises(AdminRequiredError):
            club_books.complete_current_book(db, ctx["club"].id, ctx["members"][0], 4, "notes")

    def test_nothing_to_complete(self, db, club_setup):
        setup = club_setup()
        with pytest.raises(NoCurrentBookError):
            club_books.complete_current_book(db, setup["club"].id, setup["admin"], 4, "notes")

    def test_complete_after_override_creates_closed_row(self, db, club_setup, new_book):
        setup = club_setup()
        book = new_book()
        club_books.set_current_book_override(db, setup["club"].id, setup["admin"], book.id)
        row = club_books.complete_current_book(db, setup["club"].id, setup["admin"], 3, "fine")
        assert row.book_id == book.id
        assert row.status == ClubBookStatus.COMPLETED


class TestOverride:
    def test_override_writes_no_history(self, db, club_setup, new_book):
        setup = club_setup()
        club = club_books.set_current_book_override(
            db, setup["club"].id, setup["admin"], new_book().id
        )
        assert club.current_book_id is not None
        assert club_books.get_book_history(db, club.id, setup["members"][0]) == []

    def test_override_drops_stale_in_progress_row(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        replacement = new_book("Replacement")
        club = club_books.set_current_book_override(
            db, ctx["club"].id, ctx["admin"], replacement.id
        )
        assert club.current_book_id == replacement.id
        assert _in_progress_rows(db, club.id) == []

    def test_clear_override(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        club = club_books.clear_current_book_override(db, ctx["club"].id, ctx["admin"])
        assert club.current_book_id is None
        assert _in_progress_rows(db, club.id) == []

    def test_override_blocked_while_voting(self, db, club_setup, new_book):
        setup = club_setup()
        voting.start_voting(db, setup["club"].id, setup["admin"])
        with pytest.raises(VotingAlreadyActiveError):
            club_books.set_current_book_override(
                db, setup["club"].id, setup["admin"], new_book().id
            )

    def test_override_after_unread_window_elapsed(self, db, club_setup, new_book):
        setup = club_setup()
        voting.start_voting(
            db, setup["club"].id, setup["admin"], duration_days=7,
            now=utcnow() - timedelta(days=8),
        )
        book = new_book()
        club = club_books.set_current_book_override(db, setup["club"].id, setup["admin"], book.id)
        assert club.current_book_id == book.id
        assert club.voting_cycle_active is False
        assert club.voting_ends_at is None


class TestSingleInProgressRow:
    def test_begin_reading_refuses_second_book(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        with pytest.raises(CurrentBookExistsError):
            begin_reading(db, ctx["club"], new_book().id, utcnow())

    def test_database_rejects_second_in_progress_row(self, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        db.add(ClubBook(
            club_id=ctx["club"].id,
            book_id=new_book().id,
            started_at=utcnow(),
            status=ClubBookStatus.IN_PROGRESS,
        ))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()


class TestClubBookEndpoints:
    def test_abandon_reasons(self, client):
        r = client.get("/clubs/abandon-reasons")
        assert r.status_code == 200
        body = r.json()
        assert len(body) == 10
        assert body[-1] == {"code": 10, "label": "Other"}

    def test_history_newest_first(self, client, auth, db, club_setup, new_book):
        setup = club_setup()
        club_id, admin = setup["club"].id, setup["admin"]
        first, second = new_book("First"), new_book("Second")

        begin_reading(db, setup["club"], first.id, utcnow() - timedelta(days=60))
        db.commit()
        r = client.post(
            f"/clubs/{club_id}/complete-book",
            json={"rating": 5, "notes": "Great"},
            headers=auth(admin),
        )
        assert r.status_code == 200
        assert r.json()["status"] == "COMPLETED"

        db.refresh(setup["club"])
        begin_reading(db, setup["club"], second.id, utcnow() - timedelta(days=5))
        db.commit()
        r = client.post(
            f"/clubs/{club_id}/abandon-book",
            json={"reason_code": 1, "notes": "Dragged"},
            headers=auth(admin),
        )
        assert r.status_code == 200
        assert r.json()["abandon_reason_code"] == 1

        r = client.get(f"/clubs/{club_id}/books", headers=auth(setup["members"][0]))
        assert r.status_code == 200
        assert [row["book_id"] for row in r.json()] == [second.id, first.id]

    def test_rating_out_of_range_is_422(self, client, auth, db, club_setup, new_book):
        ctx = _reading_club(db, club_setup, new_book)
        r = client.post(
            f"/clubs/{ctx['club'].id}/complete-book",
            json={"rating": 6, "notes": "x"},
            headers=auth(ctx["admin"]),
        )
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_complete_without_current_book_is_409(self, client, auth, club_setup):
        setup = club_setup()
        r = client.post(
            f"/clubs/{setup['club'].id}/complete-book",
            json={"rating": 4, "notes": "x"},
            headers=auth(setup["admin"]),
        )
        assert r.status_code == 409
        assert r.json()["code"] == "NO_CURRENT_BOOK"

    def test_override_and_clear(self, client, auth, club_setup, new_book):
        setup = club_setup()
        book = new_book()
        url = f"/clubs/{setup['club'].id}/current-book"
        r = client.put(url, json={"book_id": book.id}, headers=auth(setup["admin"]))
        assert r.status_code == 200
        assert r.json()["state"] == "CurrentBookSet"

        r = client.delete(url, headers=auth(setup["admin"]))
        assert r.status_code == 200
        assert r.json()["state"] == "NoBook"
        assert r.json()["current_book_id"] is None

    def test_owner_promotes_member(self, client, auth, club_setup):
        setup = club_setup()
        member = setup["members"][0]
        r = client.put(
            f"/clubs/{setup['club'].id}/members/{member}/role",
            json={"role": "ADMIN"},
            headers=auth(setup["owner"]),
        )
        assert r.status_code == 200
        assert r.json()["role"] == "ADMIN"

        r = client.put(
            f"/clubs/{setup['club'].id}/members/{member}/role",
            json={"role": "OWNER"},
            headers=auth(setup["owner"]),
        )
        assert r.status_code == 403
