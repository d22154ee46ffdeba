"""
Bracket view: everything the frontend needs to draw a tournament's matches.

The layout (knockout columns vs. a flat list) comes from the match data
itself, not from the tournament's stored format.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from portal.database import get_session
from portal.models.match import Match
from portal.models.team import Team
from portal.routes.tournaments import get_tournament_or_404
from portal.services.bracket_engine import (
    BracketLayout,
    ConnectorSide,
    classify_format,
    compute_slot_geometry,
    derive_round_count,
    group_by_round,
    resolve_slot,
    round_label,
)

router = APIRouter()


class SlotView(BaseModel):
    team_id: Optional[int] = None
    name: str
    score: Optional[int] = None
    is_winner: bool = False


class GeometryView(BaseModel):
    offset_top: float
    spacing: float
    pitch: float
    card_height: int
    connector: ConnectorSide
    connector_class: str
    connector_height: float


class MatchCard(BaseModel):
    id: int
    round_number: int
    match_number: int
    status: str
    team1: SlotView
    team2: SlotView
    winner_id: Optional[int] = None
    is_bye: bool = False
    start_time: Optional[datetime] = None
    location: Optional[str] = None
    geometry: Optional[GeometryView] = None


class RoundView(BaseModel):
    round_number: int
    label: str
    matches: List[MatchCard]


class BracketView(BaseModel):
    tournament_id: int
    format: str
    layout: BracketLayout
    total_rounds: int
    rounds: List[RoundView]


def _slot_view(team_id: Optional[int], score: Optional[int], winner_id: Optional[int], teams: List[Team]) -> SlotView:
    slot = resolve_slot(team_id, teams)
    return SlotView(
        team_id=slot.team_id,
        name=slot.name,
        score=score,
        is_winner=winner_id is not None and slot.team_id == winner_id,
    )


def _match_card(
    match: Match, teams: List[Team], total_rounds: int, layout: BracketLayout, round_size: int
) -> MatchCard:
    geometry = None
    if layout == BracketLayout.KNOCKOUT:
        g = compute_slot_geometry(match.round_number, match.match_number, total_rounds, round_size=round_size)
        geometry = GeometryView(
            offset_top=g.offset_top,
            spacing=g.spacing,
            pitch=g.pitch,
            card_height=g.card_height,
            connector=g.connector,
            connector_class=g.connector_class,
            connector_height=g.connector_height,
        )
    return MatchCard(
        id=match.id,
        round_number=match.round_number,
        match_number=match.match_number,
        status=match.status,
        team1=_slot_view(match.team1_id, match.team1_score, match.winner_id, teams),
        team2=_slot_view(match.team2_id, match.team2_score, match.winner_id, teams),
        winner_id=match.winner_id,
        is_bye=match.is_bye,
        start_time=match.start_time,
        location=match.location,
        geometry=geometry,
    )


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketView)
def get_bracket(tournament_id: int, session: Session = Depends(get_session)) -> BracketView:
    """Rounds with labelled, name-resolved match cards. No matches yet -> zero rounds."""
    tournament = get_tournament_or_404(session, tournament_id)
    matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()

    total_rounds = derive_round_count(matches)
    layout = classify_format(matches)
    grouped = group_by_round(matches, total_rounds)

    rounds = [
        RoundView(
            round_number=index + 1,
            label=round_label(index + 1, total_rounds),
            matches=[_match_card(m, teams, total_rounds, layout, len(group)) for m in group],
        )
        for index, group in enumerate(grouped)
    ]

    return BracketView(
        tournament_id=tournament.id,
        format=tournament.format,
        layout=layout,
        total_rounds=total_rounds,
        rounds=rounds,
    )
