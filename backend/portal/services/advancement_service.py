"""
Advancement: when a match is completed, place its winner in the next round.

Knockout tournaments advance from every round; group tournaments only from
the knockout stage (round 2 onward); round-robin never advances.
Only team slots on downstream matches are touched, and only when empty or
already holding the same team, so re-running is safe.
"""
import logging
from typing import Dict, Optional

from sqlmodel import Session, func, select

from portal.models.match import Match, MatchStatus
from portal.models.tournament import Tournament, TournamentFormat
from portal.services.bracket_engine import feeder_count, next_slot

logger = logging.getLogger(__name__)


def feeds_next_round(tournament_format: Optional[str], round_number: int) -> bool:
    if tournament_format == TournamentFormat.round_robin:
        return False
    if tournament_format == TournamentFormat.group:
        return round_number >= 2
    return True


def _round_size(session: Session, tournament_id: int, round_number: int) -> int:
    count = session.exec(
        select(func.count(Match.id)).where(
            Match.tournament_id == tournament_id,
            Match.round_number == round_number,
        )
    ).one()
    return int(count)


def awaits_second_feeder(session: Session, match: Match) -> bool:
    """True when a previous-round match can still fill this match's open slot."""
    if match.round_number <= 1:
        return False
    feeder_round_size = _round_size(session, match.tournament_id, match.round_number - 1)
    return feeder_count(match.match_number, feeder_round_size) == 2


def apply_advancement_for_completed_match(session: Session, match_id: int) -> int:
    """
    Given a completed match, put its winner into the downstream slot.

    If the downstream match has no second feeder it is completed as a bye and
    advancement continues from it. Returns the number of slots updated.
    Idempotent: calling twice produces the same DB state.
    """
    updated_count = 0
    current: Optional[Match] = session.get(Match, match_id)

    while current is not None:
        if current.winner_id is None or (current.status or "") != MatchStatus.completed:
            break

        tournament = session.get(Tournament, current.tournament_id)
        if tournament is None or not feeds_next_round(tournament.format, current.round_number):
            break

        target = next_slot(current.round_number, current.match_number)
        down = session.exec(
            select(Match).where(
                Match.tournament_id == current.tournament_id,
                Match.round_number == target.round_number,
                Match.match_number == target.match_number,
            )
        ).first()
        if down is None:
            break

        slot_attr = f"{target.side}_id"
        existing = getattr(down, slot_attr)
        if existing is not None and existing != current.winner_id:
            logger.warning(
                "Match %s slot %s already holds team %s; not overwriting with %s",
                down.id,
                target.side,
                existing,
                current.winner_id,
            )
            break
        if existing is None and down.status == MatchStatus.completed:
            logger.warning(
                "Match %s is already completed; not placing team %s in slot %s",
                down.id,
                current.winner_id,
                target.side,
            )
            break
        if existing is None:
            setattr(down, slot_attr, current.winner_id)
            updated_count += 1

        feeders = feeder_count(down.match_number, _round_size(session, current.tournament_id, current.round_number))
        if feeders == 1 and down.status != MatchStatus.completed:
            down.winner_id = current.winner_id
            down.status = MatchStatus.completed
            logger.info("Match %s completed as a bye for team %s", down.id, current.winner_id)
        session.add(down)
        session.commit()

        current = down if feeders == 1 else None

    if updated_count:
        logger.info("Advanced winner of match %s into %d slot(s)", match_id, updated_count)
    return updated_count


def resolve_all_dependencies(session: Session, tournament_id: int) -> Dict[str, int]:
    """
    Re-run advancement for every completed match of a tournament, round by round.

    Returns:
        Dict with matches_processed, teams_advanced, unknown_before, unknown_after
        (unknown = matches with at least one empty slot).
    """
    def _unknown() -> int:
        matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
        return sum(1 for m in matches if m.team1_id is None or m.team2_id is None)

    unknown_before = _unknown()

    completed = session.exec(
        select(Match)
        .where(
            Match.tournament_id == tournament_id,
            Match.status == MatchStatus.completed.value,
            Match.winner_id.is_not(None),
        )
        .order_by(Match.round_number, Match.match_number, Match.id)
    ).all()

    teams_advanced = 0
    for match in completed:
        teams_advanced += apply_advancement_for_completed_match(session, match.id)

    session.expire_all()
    return {
        "matches_processed": len(completed),
        "teams_advanced": teams_advanced,
        "unknown_before": unknown_before,
        "unknown_after": _unknown(),
    }
