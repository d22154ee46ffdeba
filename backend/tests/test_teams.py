"""Team registration rules and roster permissions."""
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session

from tests.conftest import auth, create_user


def _register(client: TestClient, tournament_id: int, captain: dict, name: str):
    return client.post(
        f"/api/tournaments/{tournament_id}/teams", json={"name": name}, headers=auth(captain["id"])
    )


def test_register_team_adds_captain_as_member(client: TestClient, tournament_factory):
    tournament = tournament_factory()
    captain = create_user(client, "captain")

    response = _register(client, tournament["id"], captain, "Physics FC")
    assert response.status_code == 201
    team = response.json()
    assert team["captain_id"] == captain["id"]

    members = client.get(f"/api/teams/{team['id']}/members").json()
    assert len(members) == 1
    assert members[0]["user_id"] == captain["id"]
    assert members[0]["is_captain"] is True
    assert members[0]["username"] == "captain"


def test_register_requires_identity(client: TestClient, tournament_factory):
    tournament = tournament_factory()
    response = client.post(f"/api/tournaments/{tournament['id']}/teams", json={"name": "Nobody FC"})
    assert response.status_code == 401


def test_register_after_deadline_rejected(client: TestClient, tournament_factory):
    past = (datetime.utcnow() - timedelta(hours=1)).isoformat()
    tournament = tournament_factory(registration_deadline=past)
    captain = create_user(client, "latecomer")

    response = _register(client, tournament["id"], captain, "Late FC")
    assert response.status_code == 400
    assert "deadline" in response.json()["detail"]


def test_register_beyond_max_teams_rejected(client: TestClient, tournament_factory, register_teams):
    tournament = tournament_factory(max_teams=2)
    register_teams(tournament["id"], 2)
    captain = create_user(client, "thirdcaptain")

    response = _register(client, tournament["id"], captain, "Third FC")
    assert response.status_code == 400
    assert "capacity" in response.json()["detail"]


def test_captain_cannot_register_two_teams(client: TestClient, tournament_factory):
    tournament = tournament_factory()
    captain = create_user(client, "greedy")
    assert _register(client, tournament["id"], captain, "First FC").status_code == 201

    response = _register(client, tournament["id"], captain, "Second FC")
    assert response.status_code == 400


def test_duplicate_team_name_conflicts(client: TestClient, tournament_factory):
    tournament = tournament_factory()
    first = create_user(client, "first")
    second = create_user(client, "second")
    assert _register(client, tournament["id"], first, "Chemistry FC").status_code == 201

    response = _register(client, tournament["id"], second, "Chemistry FC")
    assert response.status_code == 409


def test_list_teams_in_registration_order(client: TestClient, tournament_factory, register_teams):
    tournament = tournament_factory()
    register_teams(tournament["id"], 3)

    teams = client.get(f"/api/tournaments/{tournament['id']}/teams").json()
    assert [t["name"] for t in teams] == ["Team 1", "Team 2", "Team 3"]


def test_update_team_only_captain_or_admin(client: TestClient, admin: dict, tournament_factory, register_teams):
    tournament = tournament_factory()
    (team,) = register_teams(tournament["id"], 1)
    outsider = create_user(client, "outsider")

    forbidden = client.put(f"/api/teams/{team['id']}", json={"name": "Hijacked"}, headers=auth(outsider["id"]))
    assert forbidden.status_code == 403

    renamed = client.put(f"/api/teams/{team['id']}", json={"name": "Renamed"}, headers=auth(admin["id"]))
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Renamed"


def test_delete_team(client: TestClient, tournament_factory, register_teams):
    tournament = tournament_factory()
    (team,) = register_teams(tournament["id"], 1)

    response = client.delete(f"/api/teams/{team['id']}", headers=auth(team["captain_id"]))
    assert response.status_code == 204
    assert client.get(f"/api/tournaments/{tournament['id']}/teams").json() == []


def test_member_management(client: TestClient, tournament_factory, register_teams):
    tournament = tournament_factory()
    (team,) = register_teams(tournament["id"], 1)
    captain_id = team["captain_id"]
    player = create_user(client, "player")
    stranger = create_user(client, "stranger")

    # only the captain (or an admin) adds members
    denied = client.post(
        f"/api/teams/{team['id']}/members", json={"user_id": player["id"]}, headers=auth(stranger["id"])
    )
    assert denied.status_code == 403

    added = client.post(f"/api/teams/{team['id']}/members", json={"user_id": player["id"]}, headers=auth(captain_id))
    assert added.status_code == 201
    member = added.json()
    assert member["is_captain"] is False

    duplicate = client.post(
        f"/api/teams/{team['id']}/members", json={"user_id": player["id"]}, headers=auth(captain_id)
    )
    assert duplicate.status_code == 400

    # a stranger cannot remove someone else
    assert client.delete(f"/api/team-members/{member['id']}", headers=auth(stranger["id"])).status_code == 403
    # the member can leave on their own
    assert client.delete(f"/api/team-members/{member['id']}", headers=auth(player["id"])).status_code == 204

    members = client.get(f"/api/teams/{team['id']}/members").json()
    assert [m["user_id"] for m in members] == [captain_id]


def test_captain_cannot_be_removed_by_admin(client: TestClient, admin: dict, tournament_factory, register_teams):
    tournament = tournament_factory()
    (team,) = register_teams(tournament["id"], 1)
    members = client.get(f"/api/teams/{team['id']}/members").json()

    response = client.delete(f"/api/team-members/{members[0]['id']}", headers=auth(admin["id"]))
    assert response.status_code == 400


def _create_match(client: TestClient, admin_id: int, tournament_id: int, team1_id: int, team2_id: int) -> dict:
    response = client.post(
        f"/api/tournaments/{tournament_id}/matches",
        json={"round_number": 1, "match_number": 1, "team1_id": team1_id, "team2_id": team2_id},
        headers=auth(admin_id),
    )
    assert response.status_code == 201, response.text
    return response.json()[0]


def test_delete_team_placed_in_match_conflicts(client: TestClient, admin: dict, tournament_factory, register_teams):
    tournament = tournament_factory()
    teams = register_teams(tournament["id"], 2)
    client.post(f"/api/tournaments/{tournament['id']}/matches", params={"shuffle": "false"}, headers=auth(admin["id"]))

    response = client.delete(f"/api/teams/{teams[0]['id']}", headers=auth(admin["id"]))
    assert response.status_code == 409
    assert len(client.get(f"/api/tournaments/{tournament['id']}/teams").json()) == 2


def test_delete_team_with_foreign_keys_enforced(
    client: TestClient, session: Session, admin: dict, tournament_factory, register_teams
):
    session.connection().exec_driver_sql("PRAGMA foreign_keys=ON")
    session.commit()
    try:
        tournament = tournament_factory()
        teams = register_teams(tournament["id"], 3)
        _create_match(client, admin["id"], tournament["id"], teams[0]["id"], teams[1]["id"])

        blocked = client.delete(f"/api/teams/{teams[0]['id']}", headers=auth(admin["id"]))
        assert blocked.status_code == 409

        removed = client.delete(f"/api/teams/{teams[2]['id']}", headers=auth(admin["id"]))
        assert removed.status_code == 204
        remaining = client.get(f"/api/tournaments/{tournament['id']}/teams").json()
        assert [t["id"] for t in remaining] == [teams[0]["id"], teams[1]["id"]]
    finally:
        session.connection().exec_driver_sql("PRAGMA foreign_keys=OFF")
        session.commit()
