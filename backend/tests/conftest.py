import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Keep the app module from creating a database file on import
os.environ.setdefault("DATABASE_PATH", ":memory:")

from main import app  # noqa: E402
from database import Base, get_db
from models import User, GroupMember
from auth import get_password_hash, create_access_token

# Setup in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_user(db, email: str, name: str, payment_handle: str = None) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash("password123"),
        full_name=name,
        payment_handle=payment_handle,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_auth_headers(user: User):
    access_token = create_access_token(data={"sub": user.email})
    return {"Authorization": f"Bearer {access_token}"}


def add_member(db, group_id: int, user: User, role: str = "member") -> GroupMember:
    member = GroupMember(group_id=group_id, user_id=user.id, role=role)
    db.add(member)
    db.commit()
    return member


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a FastAPI TestClient with overridden database dependency."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def test_user(db_session):
    """Create a test user and return the user object."""
    return create_user(db_session, "test@example.com", "Test User")


@pytest.fixture
def auth_headers(test_user):
    """Return authorization headers for the test user."""
    return create_auth_headers(test_user)


@pytest.fixture
def trip(client, auth_headers, db_session, test_user):
    """
    A group of three: the test user (admin, "A") plus "B" and "C".

    Returns a dict with the group id and the three users in membership order.
    """
    resp = client.post("/groups", headers=auth_headers, json={
        "name": "Goa Trip",
        "default_currency": "INR",
        "budget_max": 100000
    })
    assert resp.status_code == 200
    group_id = resp.json()["id"]

    b = create_user(db_session, "b@example.com", "B", payment_handle="b@upi")
    c = create_user(db_session, "c@example.com", "C")
    add_member(db_session, group_id, b)
    add_member(db_session, group_id, c)

    return {"group_id": group_id, "a": test_user, "b": b, "c": c}
