"""
Match API Routes: bracket generation, single-match creation, result entry.

A result update that completes a match:
  - derives the winner from the scores (a bye's only team wins)
  - recomputes the tournament standings
  - advances the winner into the next round's slot where the format advances
"""
import logging
import random
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from portal.database import get_session
from portal.dependencies import require_admin
from portal.models.match import Match, MatchStatus
from portal.models.standing import Standing
from portal.models.team import Team
from portal.models.user import User
from portal.routes.tournaments import get_tournament_or_404
from portal.services.advancement_service import (
    apply_advancement_for_completed_match,
    awaits_second_feeder,
    feeds_next_round,
)
from portal.services.bracket_engine import decide_winner, validate_match
from portal.services.bracket_generation import BracketGenerationError, generate_matches
from portal.services.standings_service import recompute_standings

logger = logging.getLogger(__name__)

router = APIRouter()


class MatchCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    round_number: int
    match_number: int
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    start_time: Optional[datetime] = None
    location: Optional[str] = None
    status: MatchStatus = MatchStatus.scheduled


class MatchUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: Optional[MatchStatus] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    start_time: Optional[datetime] = None
    location: Optional[str] = None


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    round_number: int
    match_number: int
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    winner_id: Optional[int] = None
    start_time: Optional[datetime] = None
    location: Optional[str] = None
    status: MatchStatus


class MatchUpdateResponse(BaseModel):
    match: MatchResponse
    advanced_count: int = 0


def _validate_status_transition(current: str, new: str) -> None:
    if current == MatchStatus.completed and new != MatchStatus.completed:
        raise HTTPException(status_code=422, detail="completed is terminal; cannot revert")
    if new == MatchStatus.scheduled and current != MatchStatus.scheduled:
        raise HTTPException(status_code=422, detail="Cannot revert to scheduled")


def _check_team_in_tournament(session: Session, team_id: Optional[int], tournament_id: int) -> None:
    if team_id is None:
        return
    team = session.get(Team, team_id)
    if not team or team.tournament_id != tournament_id:
        raise HTTPException(status_code=422, detail=f"Team {team_id} is not registered in this tournament")


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(tournament_id: int, session: Session = Depends(get_session)):
    """Matches in stable order: round_number, match_number."""
    get_tournament_or_404(session, tournament_id)
    return session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id)
        .order_by(Match.round_number, Match.match_number, Match.id)
    ).all()


@router.post("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse], status_code=201)
def create_matches(
    tournament_id: int,
    payload: Optional[MatchCreate] = None,
    shuffle: bool = True,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """
    With a body: create that single match.
    Without a body: generate the whole bracket from the registered teams
    (refused while the tournament already has matches).
    """
    tournament = get_tournament_or_404(session, tournament_id)

    if payload is not None:
        _check_team_in_tournament(session, payload.team1_id, tournament_id)
        _check_team_in_tournament(session, payload.team2_id, tournament_id)
        match = Match(tournament_id=tournament_id, **payload.model_dump())
        problems = validate_match(match)
        if problems:
            raise HTTPException(status_code=422, detail="; ".join(problems))
        try:
            session.add(match)
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(
                status_code=409,
                detail=f"Match {payload.match_number} of round {payload.round_number} already exists",
            )
        session.refresh(match)
        return [match]

    existing = session.exec(select(Match).where(Match.tournament_id == tournament_id)).first()
    if existing:
        raise HTTPException(status_code=409, detail="Matches already exist for this tournament")

    teams = session.exec(
        select(Team).where(Team.tournament_id == tournament_id).order_by(Team.created_at, Team.id)
    ).all()
    try:
        matches = generate_matches(tournament, teams, rng=random.Random() if shuffle else None)
    except BracketGenerationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    for match in matches:
        session.add(match)
    session.commit()
    for match in matches:
        session.refresh(match)

    logger.info("Bracket generated for tournament %s by user %s", tournament_id, admin.id)
    return sorted(matches, key=lambda m: (m.round_number, m.match_number))


@router.put("/matches/{match_id}", response_model=MatchUpdateResponse)
def update_match(
    match_id: int,
    payload: MatchUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> MatchUpdateResponse:
    """Update slots, schedule, scores or status. Completing a match fixes the winner,
    refreshes standings and advances the winner."""
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    tournament = get_tournament_or_404(session, match.tournament_id)

    current = match.status or MatchStatus.scheduled
    update_data = payload.model_dump(exclude_unset=True)

    if current == MatchStatus.completed:
        locked = {"team1_id", "team2_id", "team1_score", "team2_score"} & update_data.keys()
        if locked:
            raise HTTPException(status_code=422, detail="Completed match result is final")
    if "status" in update_data and update_data["status"] is not None:
        _validate_status_transition(current, update_data["status"])

    for side in ("team1_id", "team2_id"):
        if side in update_data:
            _check_team_in_tournament(session, update_data[side], match.tournament_id)

    for field, value in update_data.items():
        if field == "status" and value is None:
            continue
        setattr(match, field, value)

    completing = match.status == MatchStatus.completed and current != MatchStatus.completed
    if completing:
        if match.team1_id is None and match.team2_id is None:
            raise HTTPException(status_code=422, detail="Cannot complete a match without teams")
        if match.team1_id is not None and match.team2_id is not None:
            if match.team1_score is None or match.team2_score is None:
                raise HTTPException(status_code=422, detail="Both scores are required to complete a match")
        elif awaits_second_feeder(session, match):
            raise HTTPException(status_code=422, detail="Match is still waiting for its second team")
        winner_id = decide_winner(match)
        if winner_id is None and feeds_next_round(tournament.format, match.round_number):
            raise HTTPException(status_code=422, detail="Knockout matches cannot end in a draw")
        match.winner_id = winner_id

    problems = validate_match(match)
    if problems:
        raise HTTPException(status_code=422, detail="; ".join(problems))

    session.add(match)
    session.commit()
    session.refresh(match)

    advanced_count = 0
    if completing:
        recompute_standings(session, match.tournament_id)
        if match.winner_id is not None:
            advanced_count = apply_advancement_for_completed_match(session, match.id)
        session.refresh(match)
        logger.info("Match %s completed (winner %s)", match.id, match.winner_id)

    return MatchUpdateResponse(match=MatchResponse.model_validate(match), advanced_count=advanced_count)


@router.post("/matches/{match_id}/advance", response_model=MatchUpdateResponse)
def advance_match(
    match_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> MatchUpdateResponse:
    """Re-run advancement for a completed match (repair after manual slot edits)."""
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    if (match.status or "") != MatchStatus.completed or match.winner_id is None:
        raise HTTPException(status_code=422, detail="Match must be completed with a winner to run advancement")

    advanced_count = apply_advancement_for_completed_match(session, match_id)
    session.refresh(match)
    return MatchUpdateResponse(match=MatchResponse.model_validate(match), advanced_count=advanced_count)


@router.delete("/tournaments/{tournament_id}/matches", status_code=204)
def wipe_matches(
    tournament_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Remove every match and standing row of a tournament so the bracket can be regenerated."""
    get_tournament_or_404(session, tournament_id)
    for standing in session.exec(select(Standing).where(Standing.tournament_id == tournament_id)).all():
        session.delete(standing)
    for match in session.exec(select(Match).where(Match.tournament_id == tournament_id)).all():
        session.delete(match)
    session.commit()
    logger.info("Matches wiped for tournament %s by user %s", tournament_id, admin.id)
    return Response(status_code=204)
