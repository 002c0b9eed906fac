"""
Tests for the meeting lifecycle.

Covered scenarios:
  A) attendance math — RSVP defaults, overrides win, rate rounded half up
  B) scheduling — admin only, future date, one NOT_RESPONDED row per active member
  C) edit / start / cancel — status guards
  D) RSVP — open meetings only, late joiners get a row
  E) completion — attendance written, twice is a 409, notes required
  F) completion bundle — DISCUSSION of the current book closes it in the same commit
  G) HTTP — create, list split, form defaults, complete message
"""
from datetime import timedelta

import pytest

from bookclub.core.clock import utcnow
from bookclub.core.errors import (
    AdminRequiredError,
    MeetingAlreadyCompletedError,
    MeetingNotFoundError,
    MeetingStateError,
    ValidationFailedError,
)
from bookclub.models.club_book import ClubBook, ClubBookStatus
from bookclub.models.meeting import MeetingStatus, MeetingType, RsvpStatus
from bookclub.services import meetings, membership
from bookclub.services.club_books import ABANDON_REASONS, BookOutcome, begin_reading
from bookclub.services.meetings import (
    AttendanceMark,
    MeetingDraft,
    default_attendance,
    resolve_attendance,
    summarize_attendance,
)


def _schedule(db, setup, days=3, **kw):
    draft = MeetingDraft(
        title=kw.pop("title", "Monthly discussion"),
        meeting_date=utcnow() + timedelta(days=days),
        **kw,
    )
    return meetings.create_meeting(db, setup["club"].id, setup["admin"], draft)


def _rsvp(db, setup, meeting, user_id, rsvp):
    return meetings.set_rsvp(db, setup["club"].id, meeting.id, user_id, rsvp)


def _reading(db, setup, book):
    begin_reading(db, setup["club"], book.id, utcnow() - timedelta(days=25))
    db.commit()
    db.refresh(setup["club"])


class TestAttendanceMath:
    @pytest.mark.parametrize("rsvp,expected", [
        (RsvpStatus.ATTENDING, True),
        (RsvpStatus.MAYBE, True),
        (RsvpStatus.NOT_ATTENDING, False),
        (RsvpStatus.NOT_RESPONDED, False),
    ])
    def test_default_attendance(self, rsvp, expected):
        assert default_attendance(rsvp) is expected

    def test_override_beats_rsvp(self):
        class Row:
            def __init__(self, user_id, status):
                self.user_id, self.status = user_id, status

        rows = [Row("a", RsvpStatus.ATTENDING), Row("b", RsvpStatus.NOT_ATTENDING)]
        assert resolve_attendance(rows, {"a": False}) == {"a": False, "b": False}
        assert resolve_attendance(rows, {"b": True}) == {"a": True, "b": True}

    def test_rate_rounds_half_up(self):
        summary = summarize_attendance({"a": True, "b": True, "c": False})
        assert summary.total_registered == 3
        assert summary.actually_attended == 2
        assert summary.no_shows == 1
        assert summary.attendance_rate == 67

        # 1/8 = 12.5%
        eight = {str(i): i == 0 for i in range(8)}
        assert summarize_attendance(eight).attendance_rate == 13

    def test_empty_meeting_rate_is_zero(self):
        assert summarize_attendance({}).attendance_rate == 0


class TestScheduling:
    def test_every_active_member_gets_a_row(self, db, club_setup):
        setup = club_setup(members=3)
        meeting = _schedule(db, setup)
        rows = meetings.get_attendees(db, meeting.id)
        expected = {setup["owner"], setup["admin"], *setup["members"]}
        assert {r.user_id for r in rows} == expected
        assert {r.status for r in rows} == {RsvpStatus.NOT_RESPONDED}
        assert meeting.status == MeetingStatus.SCHEDULED
        assert meeting.duration_minutes == 90

    def test_past_date_rejected(self, db, club_setup):
        setup = club_setup()
        with pytest.raises(ValidationFailedError) as exc:
            _schedule(db, setup, days=-1)
        assert exc.value.details == {"field": "meeting_date"}

    def test_blank_title_rejected(self, db, club_setup):
        setup = club_setup()
        with pytest.raises(ValidationFailedError):
            _schedule(db, setup, title="   ")

    def test_member_cannot_schedule(self, db, club_setup):
        setup = club_setup()
        draft = MeetingDraft(title="Mine", meeting_date=utcnow() + timedelta(days=1))
        with pytest.raises(AdminRequiredError):
            meetings.create_meeting(db, setup["club"].id, setup["members"][0], draft)

    def test_meeting_from_another_club_is_not_found(self, db, club_setup):
        a, b = club_setup(), club_setup()
        meeting = _schedule(db, a)
        with pytest.raises(MeetingNotFoundError):
            meetings.get_meeting(db, b["club"].id, meeting.id)


class TestTransitions:
    def test_edit_scheduled_meeting(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        edited = meetings.update_meeting(
            db, setup["club"].id, meeting.id, setup["admin"],
            {"title": "  Renamed ", "location": "Library"},
        )
        assert edited.title == "Renamed"
        assert edited.location == "Library"
        assert edited.status == MeetingStatus.SCHEDULED

    def test_edit_rejects_unknown_field(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        with pytest.raises(ValidationFailedError):
            meetings.update_meeting(
                db, setup["club"].id, meeting.id, setup["admin"], {"status": "COMPLETED"}
            )

    def test_edit_rejects_clearing_type(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        with pytest.raises(ValidationFailedError):
            meetings.update_meeting(
                db, setup["club"].id, meeting.id, setup["admin"], {"meeting_type": None}
            )

    def test_start_then_edit_is_rejected(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        started = meetings.start_meeting(db, setup["club"].id, meeting.id, setup["admin"])
        assert started.status == MeetingStatus.IN_PROGRESS
        with pytest.raises(MeetingStateError):
            meetings.update_meeting(
                db, setup["club"].id, meeting.id, setup["admin"], {"title": "Late"}
            )

    def test_cancel_is_terminal(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        cancelled = meetings.cancel_meeting(db, setup["club"].id, meeting.id, setup["admin"])
        assert cancelled.status == MeetingStatus.CANCELLED
        with pytest.raises(MeetingStateError):
            meetings.cancel_meeting(db, setup["club"].id, meeting.id, setup["admin"])
        with pytest.raises(MeetingStateError):
            meetings.complete_meeting(
                db, setup["club"].id, meeting.id, setup["admin"], "notes"
            )


class TestRsvp:
    def test_member_sets_rsvp(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        row = _rsvp(db, setup, meeting, setup["members"][0], RsvpStatus.MAYBE)
        assert row.status == RsvpStatus.MAYBE
        assert row.responded_at is not None

    def test_not_responded_is_not_a_choice(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        with pytest.raises(ValidationFailedError):
            _rsvp(db, setup, meeting, setup["members"][0], RsvpStatus.NOT_RESPONDED)

    def test_late_joiner_gets_a_row(self, db, club_setup, new_user):
        setup = club_setup()
        meeting = _schedule(db, setup)
        late = new_user("late")
        membership.join_club(db, setup["club"].id, late)
        row = _rsvp(db, setup, meeting, late, RsvpStatus.ATTENDING)
        assert row.user_id == late
        assert late in {a.user_id for a in meetings.get_attendees(db, meeting.id)}

    def test_rsvp_to_cancelled_meeting(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        meetings.cancel_meeting(db, setup["club"].id, meeting.id, setup["admin"])
        with pytest.raises(MeetingStateError):
            _rsvp(db, setup, meeting, setup["members"][0], RsvpStatus.ATTENDING)


class TestCompletion:
    def test_defaults_from_rsvp_and_overrides(self, db, club_setup):
        setup = club_setup(members=3)
        m = setup["members"]
        meeting = _schedule(db, setup, meeting_type=MeetingType.SOCIAL)
        _rsvp(db, setup, meeting, m[0], RsvpStatus.ATTENDING)
        _rsvp(db, setup, meeting, m[1], RsvpStatus.MAYBE)
        _rsvp(db, setup, meeting, m[2], RsvpStatus.NOT_ATTENDING)

        form = meetings.get_completion_form(db, setup["club"].id, meeting.id, setup["admin"])
        defaults = {e.attendee.user_id: e.default_attended for e in form.entries}
        assert defaults[m[0]] is True
        assert defaults[m[1]] is True
        assert defaults[m[2]] is False
        assert form.book_outcome_applies is False

        result = meetings.complete_meeting(
            db, setup["club"].id, meeting.id, setup["admin"], "  Good chat.  ",
            attendance=[AttendanceMark(m[1], False), AttendanceMark(m[2], True)],
        )
        attended = {a.user_id: a.actually_attended for a in result.attendees}
        assert attended[m[0]] is True
        assert attended[m[1]] is False
        assert attended[m[2]] is True
        assert attended[setup["owner"]] is False
        assert result.summary.total_registered == 5
        assert result.summary.actually_attended == 2
        assert result.summary.attendance_rate == 40
        assert result.meeting.status == MeetingStatus.COMPLETED
        assert result.meeting.meeting_notes == "Good chat."
        assert result.book_outcome is None

    def test_complete_twice(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        meetings.complete_meeting(db, setup["club"].id, meeting.id, setup["admin"], "notes")
        with pytest.raises(MeetingAlreadyCompletedError) as exc:
            meetings.complete_meeting(db, setup["club"].id, meeting.id, setup["admin"], "again")
        assert exc.value.http_status == 409

    def test_notes_required(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        with pytest.raises(ValidationFailedError):
            meetings.complete_meeting(db, setup["club"].id, meeting.id, setup["admin"], "  ")
        db.refresh(meeting)
        assert meeting.status == MeetingStatus.SCHEDULED

    def test_unknown_attendee_rejected(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        with pytest.raises(ValidationFailedError):
            meetings.complete_meeting(
                db, setup["club"].id, meeting.id, setup["admin"], "notes",
                attendance=[AttendanceMark("nobody", True)],
            )

    def test_complete_in_progress_meeting(self, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        meetings.start_meeting(db, setup["club"].id, meeting.id, setup["admin"])
        result = meetings.complete_meeting(
            db, setup["club"].id, meeting.id, setup["admin"], "done"
        )
        assert result.meeting.status == MeetingStatus.COMPLETED


class TestCompletionBundle:
    def test_discussion_completes_current_book(self, db, club_setup, new_book):
        setup = club_setup()
        book = new_book()
        _reading(db, setup, book)
        meeting = _schedule(db, setup, book_id=book.id)

        form = meetings.get_completion_form(db, setup["club"].id, meeting.id, setup["admin"])
        assert form.book_outcome_applies is True
        assert form.current_book_id == book.id

        result = meetings.complete_meeting(
            db, setup["club"].id, meeting.id, setup["admin"], "Wrapped it up",
            book_outcome=BookOutcome(status=ClubBookStatus.COMPLETED, notes="Loved it", rating=5),
        )
        assert result.book_outcome.status == ClubBookStatus.COMPLETED
        assert result.book_outcome.rating == 5
        db.refresh(setup["club"])
        assert setup["club"].current_book_id is None

    def test_abandon_without_reason_defaults_to_other(self, db, club_setup, new_book):
        setup = club_setup()
        book = new_book()
        _reading(db, setup, book)
        meeting = _schedule(db, setup, book_id=book.id)
        result = meetings.complete_meeting(
            db, setup["club"].id, meeting.id, setup["admin"], "Gave up",
            book_outcome=BookOutcome(status=ClubBookStatus.ABANDONED, notes="Nobody finished"),
        )
        assert result.book_outcome.abandon_reason_code == 10
        assert result.book_outcome.discussion_notes == (
            f"Reason: {ABANDON_REASONS[10]}\nNotes: Nobody finished"
        )

    def test_invalid_rating_leaves_meeting_open(self, db, club_setup, new_book):
        setup = club_setup()
        book = new_book()
        _reading(db, setup, book)
        meeting = _schedule(db, setup, book_id=book.id)
        with pytest.raises(ValidationFailedError):
            meetings.complete_meeting(
                db, setup["club"].id, meeting.id, setup["admin"], "notes",
                book_outcome=BookOutcome(status=ClubBookStatus.COMPLETED, notes="x", rating=7),
            )
        db.expire_all()
        assert meeting.status == MeetingStatus.SCHEDULED
        assert setup["club"].current_book_id == book.id
        open_rows = (
            db.query(ClubBook)
            .filter(
                ClubBook.club_id == setup["club"].id,
                ClubBook.status == ClubBookStatus.IN_PROGRESS,
            )
            .count()
        )
        assert open_rows == 1

    def test_outcome_for_another_book_rejected(self, db, club_setup, new_book):
        setup = club_setup()
        _reading(db, setup, new_book("Current"))
        meeting = _schedule(db, setup, book_id=new_book("Other").id)
        with pytest.raises(ValidationFailedError) as exc:
            meetings.complete_meeting(
                db, setup["club"].id, meeting.id, setup["admin"], "notes",
                book_outcome=BookOutcome(status=ClubBookStatus.COMPLETED, notes="x", rating=3),
            )
        assert exc.value.details == {"field": "book_outcome"}


class TestMeetingEndpoints:
    def test_schedule_list_and_complete(self, client, auth, club_setup):
        setup = club_setup()
        base = f"/clubs/{setup['club'].id}/meetings"
        when = (utcnow() + timedelta(days=5)).isoformat()

        r = client.post(
            base,
            json={"title": " Kickoff ", "meeting_date": when, "meeting_type": "SOCIAL"},
            headers=auth(setup["admin"]),
        )
        assert r.status_code == 201
        meeting = r.json()
        assert meeting["title"] == "Kickoff"
        assert meeting["status"] == "SCHEDULED"

        r = client.put(
            f"{base}/{meeting['id']}/rsvp",
            json={"status": "ATTENDING"},
            headers=auth(setup["members"][0]),
        )
        assert r.status_code == 200
        assert r.json()["rsvp_status"] == "ATTENDING"

        r = client.get(base, headers=auth(setup["members"][1]))
        assert r.status_code == 200
        assert [m["id"] for m in r.json()["upcoming"]] == [meeting["id"]]
        assert r.json()["past"] == []

        r = client.get(f"{base}/{meeting['id']}/complete", headers=auth(setup["admin"]))
        assert r.status_code == 200
        form = {a["user_id"]: a["default_attended"] for a in r.json()["attendees"]}
        assert form[setup["members"][0]] is True
        assert form[setup["members"][1]] is False

        r = client.post(
            f"{base}/{meeting['id']}/complete",
            json={"meeting_notes": "Fun evening"},
            headers=auth(setup["admin"]),
        )
        assert r.status_code == 200
        body = r.json()
        assert body["attendance_summary"]["actually_attended"] == 1
        assert body["attendance_summary"]["total_registered"] == 4
        assert body["message"].startswith("Meeting completed. 1 of 4")

        r = client.post(
            f"{base}/{meeting['id']}/complete",
            json={"meeting_notes": "Again"},
            headers=auth(setup["admin"]),
        )
        assert r.status_code == 409
        assert r.json()["code"] == "MEETING_ALREADY_COMPLETED"

    def test_invalid_rsvp_value(self, client, auth, db, club_setup):
        setup = club_setup()
        meeting = _schedule(db, setup)
        r = client.put(
            f"/clubs/{setup['club'].id}/meetings/{meeting.id}/rsvp",
            json={"status": "NOT_RESPONDED"},
            headers=auth(setup["members"][0]),
        )
        assert r.status_code == 422

    def test_completed_rating_required(self, client, auth, db, club_setup, new_book):
        setup = club_setup()
        book = new_book()
        _reading(db, setup, book)
        meeting = _schedule(db, setup, book_id=book.id)
        r = client.post(
            f"/clubs/{setup['club'].id}/meetings/{meeting.id}/complete",
            json={
                "meeting_notes": "notes",
                "book_outcome": {"status": "COMPLETED", "notes": "no rating"},
            },
            headers=auth(setup["admin"]),
        )
        assert r.status_code == 422
