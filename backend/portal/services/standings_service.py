"""
Standings persistence: recompute a tournament's table from its current matches.

The table is always rebuilt from the full completed-match snapshot (never
incremented in place), so recomputing twice gives the same rows.
"""
import logging
from typing import List, Optional

from sqlmodel import Session, select

from portal.models.match import Match
from portal.models.standing import Standing
from portal.models.team import Team
from portal.services.bracket_engine import compute_standings

logger = logging.getLogger(__name__)


def recompute_standings(session: Session, tournament_id: int) -> List[Standing]:
    """Replace the tournament's Standing rows with a fresh computation. Returns rows ordered by rank."""
    matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()
    rows = compute_standings(matches, teams)

    existing = {
        standing.team_id: standing
        for standing in session.exec(select(Standing).where(Standing.tournament_id == tournament_id)).all()
    }

    result: List[Standing] = []
    for row in rows:
        standing = existing.pop(row.team_id, None) or Standing(tournament_id=tournament_id, team_id=row.team_id)
        standing.wins = row.wins
        standing.losses = row.losses
        standing.draws = row.draws
        standing.points = row.points
        standing.goals_for = row.goals_for
        standing.goals_against = row.goals_against
        standing.rank = row.rank
        session.add(standing)
        result.append(standing)

    # Rows for teams that no longer exist
    for stale in existing.values():
        session.delete(stale)

    session.commit()
    for standing in result:
        session.refresh(standing)

    logger.info("Recomputed standings for tournament %s (%d teams)", tournament_id, len(result))
    return result


def refresh_stored_standings(session: Session, tournament_id: int) -> Optional[List[Standing]]:
    """Rebuild the table after a roster change, but only once one has been stored."""
    stored = session.exec(select(Standing.id).where(Standing.tournament_id == tournament_id)).first()
    if stored is None:
        return None
    return recompute_standings(session, tournament_id)
