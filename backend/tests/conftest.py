from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from portal.database import get_session
from portal.main import app

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables are dropped and recreated for every test
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a freshly created schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from portal.models.match import Match  # noqa: F401
    from portal.models.standing import Standing  # noqa: F401
    from portal.models.team import Team, TeamMember  # noqa: F401
    from portal.models.tournament import Tournament  # noqa: F401
    from portal.models.user import User  # noqa: F401

    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place
    for the entire duration. This ensures the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Shared API helpers
# ============================================================================


def auth(user_id: int) -> dict:
    return {"X-User-Id": str(user_id)}


def create_user(client: TestClient, username: str, role: str = "user") -> dict:
    response = client.post(
        "/api/users",
        json={
            "username": username,
            "email": f"{username}@students.example.edu",
            "full_name": username.title(),
            "role": role,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def tournament_payload(**overrides) -> dict:
    now = datetime.utcnow()
    payload = {
        "name": "Inter-Faculty Football Cup",
        "description": "Annual five-a-side cup",
        "sport_type": "Football",
        "start_date": (now + timedelta(days=10)).isoformat(),
        "end_date": (now + timedelta(days=12)).isoformat(),
        "registration_deadline": (now + timedelta(days=5)).isoformat(),
        "format": "knockout",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def admin(client: TestClient) -> dict:
    return create_user(client, "organizer", role="admin")


@pytest.fixture
def tournament_factory(client: TestClient, admin: dict):
    def _create(**overrides) -> dict:
        response = client.post("/api/tournaments", json=tournament_payload(**overrides), headers=auth(admin["id"]))
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def register_teams(client: TestClient):
    """Register n teams (one fresh captain each); returns team dicts in registration order."""

    def _register(tournament_id: int, n: int, prefix: str = "Team") -> list:
        teams = []
        for i in range(1, n + 1):
            captain = create_user(client, f"{prefix.lower()}captain{tournament_id}x{i}")
            response = client.post(
                f"/api/tournaments/{tournament_id}/teams",
                json={"name": f"{prefix} {i}"},
                headers=auth(captain["id"]),
            )
            assert response.status_code == 201, response.text
            teams.append(response.json())
        return teams

    return _register
