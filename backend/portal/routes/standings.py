import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from portal.database import get_session
from portal.dependencies import require_admin
from portal.models.match import Match
from portal.models.standing import Standing
from portal.models.team import Team
from portal.models.user import User
from portal.routes.tournaments import get_tournament_or_404
from portal.services.bracket_engine import compute_standings, resolve_team_name
from portal.services.standings_service import recompute_standings

logger = logging.getLogger(__name__)

router = APIRouter()


class StandingRowResponse(BaseModel):
    team_id: int
    team_name: str
    wins: int
    losses: int
    draws: int
    points: int
    goals_for: int
    goals_against: int
    goal_difference: int
    rank: int


def _rows(standings, teams: List[Team]) -> List[StandingRowResponse]:
    return [
        StandingRowResponse(
            team_id=s.team_id,
            team_name=resolve_team_name(s.team_id, teams),
            wins=s.wins,
            losses=s.losses,
            draws=s.draws,
            points=s.points,
            goals_for=s.goals_for or 0,
            goals_against=s.goals_against or 0,
            goal_difference=(s.goals_for or 0) - (s.goals_against or 0),
            rank=s.rank or 0,
        )
        for s in sorted(standings, key=lambda s: (s.rank is None, s.rank or 0, s.team_id))
    ]


@router.get("/tournaments/{tournament_id}/standings", response_model=List[StandingRowResponse])
def get_standings(tournament_id: int, session: Session = Depends(get_session)):
    """
    Stored standings ordered by rank. Before any result has been stored the
    table is computed on the fly (all zeros for registered teams).
    """
    get_tournament_or_404(session, tournament_id)
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()
    stored = session.exec(select(Standing).where(Standing.tournament_id == tournament_id)).all()
    if stored:
        return _rows(stored, teams)

    matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    return _rows(compute_standings(matches, teams), teams)


@router.post("/tournaments/{tournament_id}/standings/recompute", response_model=List[StandingRowResponse])
def recompute(
    tournament_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    get_tournament_or_404(session, tournament_id)
    standings = recompute_standings(session, tournament_id)
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()
    logger.info("Standings recomputed for tournament %s by user %s", tournament_id, admin.id)
    return _rows(standings, teams)
