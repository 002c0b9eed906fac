"""
Tests for club membership: join, leave, rejoin and the ACTIVE-only gates.

Covered scenarios:
  A) leave — status LEFT, member_count decremented, role reset, owner refused
  B) a LEFT member is no longer a member for votes, suggestions and RSVPs
  C) rejoin — the LEFT row is re-activated, not duplicated
  D) HTTP — POST /clubs/{id}/leave and the 409 for the owner
"""
from datetime import timedelta

import pytest

from bookclub.core.clock import utcnow
from bookclub.core.errors import NotAMemberError, OwnerCannotLeaveError
from bookclub.models.club import ClubMembership, ClubRole, MembershipStatus
from bookclub.models.meeting import RsvpStatus
from bookclub.services import meetings, membership, voting
from bookclub.services.meetings import MeetingDraft


def _rows(db, club_id, user_id):
    return (
        db.query(ClubMembership)
        .filter(ClubMembership.club_id == club_id, ClubMembership.user_id == user_id)
        .all()
    )


class TestLeave:
    def test_member_leaves(self, db, club_setup):
        setup = club_setup()
        club, leaver = setup["club"], setup["members"][0]
        before = club.member_count

        left = membership.leave_club(db, club.id, leaver)
        assert left.status == MembershipStatus.LEFT
        db.refresh(club)
        assert club.member_count == before - 1
        assert leaver not in membership.active_member_ids(db, club.id)

    def test_admin_loses_role_on_leaving(self, db, club_setup):
        setup = club_setup()
        left = membership.leave_club(db, setup["club"].id, setup["admin"])
        assert left.role == ClubRole.MEMBER

    def test_owner_cannot_leave(self, db, club_setup):
        setup = club_setup()
        with pytest.raises(OwnerCannotLeaveError):
            membership.leave_club(db, setup["club"].id, setup["owner"])

    def test_leaving_twice(self, db, club_setup):
        setup = club_setup()
        membership.leave_club(db, setup["club"].id, setup["members"][0])
        with pytest.raises(NotAMemberError):
            membership.leave_club(db, setup["club"].id, setup["members"][0])


class TestLeftMemberIsGated:
    def test_cannot_vote(self, db, club_setup, new_book):
        setup = club_setup()
        club_id, voter = setup["club"].id, setup["members"][1]
        t0 = utcnow()
        s = voting.create_suggestion(db, club_id, setup["members"][0], new_book().id, now=t0)
        voting.start_voting(db, club_id, setup["admin"], now=t0)
        membership.leave_club(db, club_id, voter)

        with pytest.raises(NotAMemberError):
            voting.cast_vote(db, club_id, s.id, voter, now=t0 + timedelta(days=1))

    def test_cannot_suggest(self, db, club_setup, new_book):
        setup = club_setup()
        membership.leave_club(db, setup["club"].id, setup["members"][0])
        with pytest.raises(NotAMemberError):
            voting.create_suggestion(db, setup["club"].id, setup["members"][0], new_book().id)

    def test_cannot_rsvp(self, db, club_setup):
        setup = club_setup()
        club_id, leaver = setup["club"].id, setup["members"][0]
        meeting = meetings.create_meeting(
            db, club_id, setup["admin"],
            MeetingDraft(title="Book talk", meeting_date=utcnow() + timedelta(days=3)),
        )
        membership.leave_club(db, club_id, leaver)

        with pytest.raises(NotAMemberError):
            meetings.set_rsvp(db, club_id, meeting.id, leaver, RsvpStatus.ATTENDING)


class TestRejoin:
    def test_rejoin_restores_active(self, db, club_setup):
        setup = club_setup()
        club, member = setup["club"], setup["members"][0]
        membership.leave_club(db, club.id, member)
        db.refresh(club)
        count = club.member_count

        back = membership.join_club(db, club.id, member)
        assert back.status == MembershipStatus.ACTIVE
        assert back.role == ClubRole.MEMBER
        assert len(_rows(db, club.id, member)) == 1
        db.refresh(club)
        assert club.member_count == count + 1
        assert membership.require_member(db, club.id, member).id == back.id


class TestLeaveEndpoint:
    def test_leave_and_rejoin(self, client, auth, new_user):
        owner, reader = new_user("owner"), new_user("reader")
        club = client.post("/clubs", json={"name": "Mysteries"}, headers=auth(owner)).json()
        client.post(f"/clubs/{club['id']}/join", headers=auth(reader))

        r = client.post(f"/clubs/{club['id']}/leave", headers=auth(reader))
        assert r.status_code == 200
        assert r.json()["status"] == "LEFT"

        r = client.get(f"/clubs/{club['id']}/suggestions", headers=auth(reader))
        assert r.status_code == 403
        assert r.json()["code"] == "NOT_A_MEMBER"

        r = client.post(f"/clubs/{club['id']}/join", headers=auth(reader))
        assert r.status_code == 201
        assert r.json()["status"] == "ACTIVE"
        assert client.get(f"/clubs/{club['id']}", headers=auth(owner)).json()["member_count"] == 2

    def test_owner_gets_conflict(self, client, auth, new_user):
        owner = new_user("owner")
        club = client.post("/clubs", json={"name": "Solo"}, headers=auth(owner)).json()
        r = client.post(f"/clubs/{club['id']}/leave", headers=auth(owner))
        assert r.status_code == 409
        assert r.json()["code"] == "OWNER_CANNOT_LEAVE"
