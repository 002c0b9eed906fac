"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests. The app
builds its engine at import time from DATABASE_URL, so the variable is set
before anything from `bookclub` is imported.
"""
import json
import os
import uuid

os.environ["DATABASE_URL"] = "sqlite:///./test_bookclub.db"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bookclub.core.auth import encode_access_token
from bookclub.db.base import Base, get_db
from bookclub.main import app
from bookclub.models.achievement import Achievement
from bookclub.models.book import Book
from bookclub.models.club import ClubRole
from bookclub.services import membership

SQLITE_URL = "sqlite:///./test_bookclub.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# (name, points, criteria): the catalogue seeded by the initial migration,
# plus one rule kind the engine does not implement.
_ACHIEVEMENTS = [
    ("First Steps",           10,   {"type": "books_read", "threshold": 1, "timeframe": "all_time"}),
    ("Book Lover",            50,   {"type": "books_read", "threshold": 10, "timeframe": "all_time"}),
    ("Bookworm",              200,  {"type": "books_read", "threshold": 50, "timeframe": "all_time"}),
    ("Literary Master",       500,  {"type": "books_read", "threshold": 100, "timeframe": "all_time"}),
    ("Reading Legend",        2000, {"type": "books_read", "threshold": 500, "timeframe": "all_time"}),
    ("Sharing is Caring",     15,   {"type": "recommendations_sent", "threshold": 1, "timeframe": "all_time"}),
    ("Book Recommender",      30,   {"type": "recommendations_sent", "threshold": 5, "timeframe": "all_time"}),
    ("Recommendation Expert", 100,  {"type": "recommendations_sent", "threshold": 25, "timeframe": "all_time"}),
    ("Genre Explorer",        40,   {"type": "genre_diversity", "threshold": 5}),
]


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    # Seed the achievement catalogue (normally done by the Alembic migration)
    db = TestingSessionLocal()
    try:
        for name, points, criteria in _ACHIEVEMENTS:
            db.add(Achievement(
                name=name,
                points=points,
                criteria=json.dumps(criteria),
                is_active=True,
            ))
        db.commit()
    finally:
        db.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Data factories. Every test gets fresh user ids, so suites never collide.
# ---------------------------------------------------------------------------

@pytest.fixture()
def new_user():
    def _make(prefix: str = "user") -> str:
        return f"{prefix}-{uuid.uuid4().hex[:12]}"
    return _make


@pytest.fixture()
def auth():
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {encode_access_token(user_id)}"}
    return _headers


@pytest.fixture()
def new_book(db):
    def _make(title: str = "Test Book") -> Book:
        book = Book(title=f"{title} {uuid.uuid4().hex[:6]}", author="A. Author")
        db.add(book)
        db.commit()
        db.refresh(book)
        return book
    return _make


@pytest.fixture()
def club_setup(db, new_user):
    """
    Build a club with an owner, one admin and `members` plain members.
    Returns a dict: club, owner, admin, members.
    """
    def _make(members: int = 2) -> dict:
        owner = new_user("owner")
        club = membership.create_club(db, owner, f"Club {uuid.uuid4().hex[:6]}")
        admin = new_user("admin")
        membership.join_club(db, club.id, admin)
        membership.set_member_role(db, club.id, owner, admin, ClubRole.ADMIN)
        plain = []
        for _ in range(members):
            uid = new_user("member")
            membership.join_club(db, club.id, uid)
            plain.append(uid)
        db.refresh(club)
        return {"club": club, "owner": owner, "admin": admin, "members": plain}
    return _make
