"""Standings endpoints: on-the-fly table, stored table after results, admin recompute."""
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from portal.models.standing import Standing
from tests.conftest import auth, create_user


def _setup_round_robin(client: TestClient, admin: dict, tournament_factory, register_teams, n: int = 3):
    tournament = tournament_factory(format="round-robin")
    teams = register_teams(tournament["id"], n)
    response = client.post(
        f"/api/tournaments/{tournament['id']}/matches", params={"shuffle": "false"}, headers=auth(admin["id"])
    )
    assert response.status_code == 201
    return tournament, teams, response.json()


def _complete(client: TestClient, match_id: int, admin_id: int, score1: int, score2: int):
    response = client.put(
        f"/api/matches/{match_id}",
        json={"status": "completed", "team1_score": score1, "team2_score": score2},
        headers=auth(admin_id),
    )
    assert response.status_code == 200, response.text


def test_standings_before_any_result(client: TestClient, tournament_factory, register_teams):
    tournament = tournament_factory()
    teams = register_teams(tournament["id"], 3)

    rows = client.get(f"/api/tournaments/{tournament['id']}/standings").json()

    assert [row["team_id"] for row in rows] == [t["id"] for t in teams]
    assert [row["rank"] for row in rows] == [1, 2, 3]
    assert all(row["points"] == 0 for row in rows)
    assert rows[0]["team_name"] == "Team 1"


def test_round_robin_table(client: TestClient, admin: dict, tournament_factory, register_teams):
    tournament, teams, matches = _setup_round_robin(client, admin, tournament_factory, register_teams)
    # pairings: (1,2), (1,3), (2,3)
    _complete(client, matches[0]["id"], admin["id"], 2, 1)
    _complete(client, matches[1]["id"], admin["id"], 0, 0)
    _complete(client, matches[2]["id"], admin["id"], 3, 0)

    rows = client.get(f"/api/tournaments/{tournament['id']}/standings").json()
    by_team = {row["team_id"]: row for row in rows}
    t1, t2, t3 = (t["id"] for t in teams)

    assert by_team[t1]["points"] == 4
    assert (by_team[t1]["wins"], by_team[t1]["draws"], by_team[t1]["losses"]) == (1, 1, 0)
    assert by_team[t2]["points"] == 3
    assert by_team[t2]["goals_for"] == 4
    assert by_team[t2]["goals_against"] == 2
    assert by_team[t3]["points"] == 1
    assert by_team[t3]["goal_difference"] == -3
    assert [row["team_id"] for row in rows] == [t1, t2, t3]
    assert [row["rank"] for row in rows] == [1, 2, 3]


def test_recompute_requires_admin(client: TestClient, tournament_factory):
    tournament = tournament_factory()
    user = create_user(client, "curious")
    response = client.post(f"/api/tournaments/{tournament['id']}/standings/recompute", headers=auth(user["id"]))
    assert response.status_code == 403


def test_recompute_is_repeatable(client: TestClient, session: Session, admin: dict, tournament_factory, register_teams):
    tournament, teams, matches = _setup_round_robin(client, admin, tournament_factory, register_teams)
    _complete(client, matches[0]["id"], admin["id"], 1, 0)

    first = client.post(f"/api/tournaments/{tournament['id']}/standings/recompute", headers=auth(admin["id"])).json()
    second = client.post(f"/api/tournaments/{tournament['id']}/standings/recompute", headers=auth(admin["id"])).json()

    assert first == second
    stored = session.exec(select(Standing).where(Standing.tournament_id == tournament["id"])).all()
    assert len(stored) == len(teams)



def _single_match(client: TestClient, admin_id: int, tournament_id: int, team1_id: int, team2_id: int) -> dict:
    response = client.post(
        f"/api/tournaments/{tournament_id}/matches",
        json={"round_number": 1, "match_number": 1, "team1_id": team1_id, "team2_id": team2_id},
        headers=auth(admin_id),
    )
    assert response.status_code == 201, response.text
    return response.json()[0]


def test_late_registration_joins_stored_table(client: TestClient, admin: dict, tournament_factory, register_teams):
    tournament = tournament_factory(format="round-robin")
    teams = register_teams(tournament["id"], 2)
    match = _single_match(client, admin["id"], tournament["id"], teams[0]["id"], teams[1]["id"])
    _complete(client, match["id"], admin["id"], 2, 0)

    late = create_user(client, "latecaptain")
    response = client.post(
        f"/api/tournaments/{tournament['id']}/teams", json={"name": "Late FC"}, headers=auth(late["id"])
    )
    assert response.status_code == 201

    rows = client.get(f"/api/tournaments/{tournament['id']}/standings").json()
    assert [row["team_name"] for row in rows] == ["Team 1", "Late FC", "Team 2"]
    assert [row["rank"] for row in rows] == [1, 2, 3]


def test_deleting_team_closes_rank_gap(
    client: TestClient, session: Session, admin: dict, tournament_factory, register_teams
):
    tournament = tournament_factory(format="round-robin")
    teams = register_teams(tournament["id"], 3)
    # Team 1 never plays; Team 2 beats Team 3
    match = _single_match(client, admin["id"], tournament["id"], teams[1]["id"], teams[2]["id"])
    _complete(client, match["id"], admin["id"], 1, 0)

    before = client.get(f"/api/tournaments/{tournament['id']}/standings").json()
    assert [(row["team_id"], row["rank"]) for row in before] == [
        (teams[1]["id"], 1),
        (teams[0]["id"], 2),
        (teams[2]["id"], 3),
    ]

    assert client.delete(f"/api/teams/{teams[0]['id']}", headers=auth(admin["id"])).status_code == 204

    rows = client.get(f"/api/tournaments/{tournament['id']}/standings").json()
    assert [(row["team_id"], row["rank"]) for row in rows] == [(teams[1]["id"], 1), (teams[2]["id"], 2)]
    stored = session.exec(select(Standing).where(Standing.tournament_id == tournament["id"])).all()
    assert sorted(s.team_id for s in stored) == sorted([teams[1]["id"], teams[2]["id"]])
