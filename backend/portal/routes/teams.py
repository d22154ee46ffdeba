"""
Team Registration API Routes
Team sign-up for a tournament, roster changes, and captain/admin permissions.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from portal.database import get_session
from portal.dependencies import get_current_user
from portal.models.match import Match
from portal.models.standing import Standing
from portal.models.team import Team, TeamMember
from portal.models.user import User
from portal.routes.tournaments import get_tournament_or_404
from portal.services.standings_service import refresh_stored_standings
from portal.services.tournament_status import registration_open

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TeamCreateRequest(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TeamUpdateRequest(BaseModel):
    name: Optional[str] = None


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    tournament_id: int
    captain_id: int
    created_at: datetime


class TeamMemberCreateRequest(BaseModel):
    user_id: int


class TeamMemberResponse(BaseModel):
    id: int
    team_id: int
    user_id: int
    joined_at: datetime
    username: Optional[str] = None
    full_name: Optional[str] = None
    is_captain: bool = False


# ============================================================================
# Helpers
# ============================================================================


def _get_team_or_404(session: Session, team_id: int) -> Team:
    team = session.get(Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


def _require_captain_or_admin(team: Team, user: User, action: str) -> None:
    if team.captain_id != user.id and not user.is_admin:
        raise HTTPException(status_code=403, detail=f"Only team captain or admin can {action}")


def _member_response(member: TeamMember, team: Team, user: Optional[User]) -> TeamMemberResponse:
    return TeamMemberResponse(
        id=member.id,
        team_id=member.team_id,
        user_id=member.user_id,
        joined_at=member.joined_at,
        username=user.username if user else None,
        full_name=user.full_name if user else None,
        is_captain=member.user_id == team.captain_id,
    )


# ============================================================================
# Team Endpoints
# ============================================================================


@router.get("/tournaments/{tournament_id}/teams", response_model=List[TeamResponse])
def get_teams(tournament_id: int, session: Session = Depends(get_session)):
    """Teams of a tournament in registration order."""
    get_tournament_or_404(session, tournament_id)
    return session.exec(
        select(Team).where(Team.tournament_id == tournament_id).order_by(Team.created_at, Team.id)
    ).all()


@router.post("/tournaments/{tournament_id}/teams", response_model=TeamResponse, status_code=201)
def register_team(
    tournament_id: int,
    request: TeamCreateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    """
    Register a team with the caller as captain.

    Rejected when:
    - the registration deadline has passed
    - the tournament already has max_teams teams
    - the caller already captains a team in this tournament
    The captain is added as the first team member.
    """
    tournament = get_tournament_or_404(session, tournament_id)

    if not registration_open(tournament):
        raise HTTPException(status_code=400, detail="Registration deadline has passed")

    existing_teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()
    if tournament.max_teams and len(existing_teams) >= tournament.max_teams:
        raise HTTPException(status_code=400, detail="Tournament has reached maximum team capacity")
    if any(team.captain_id == user.id for team in existing_teams):
        raise HTTPException(status_code=400, detail="You are already a captain of a team in this tournament")

    team = Team(name=request.name, tournament_id=tournament_id, captain_id=user.id)
    try:
        session.add(team)
        session.flush()
        session.add(TeamMember(team_id=team.id, user_id=user.id))
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=409, detail=f"Team with name '{request.name}' already exists for this tournament"
        )
    session.refresh(team)
    refresh_stored_standings(session, tournament_id)
    logger.info("Team %s registered for tournament %s by user %s", team.id, tournament_id, user.id)
    return team


@router.put("/teams/{team_id}", response_model=TeamResponse)
def update_team(
    team_id: int,
    request: TeamUpdateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    team = _get_team_or_404(session, team_id)
    _require_captain_or_admin(team, user, "update team")

    if request.name is not None:
        if not request.name.strip():
            raise HTTPException(status_code=422, detail="name must not be blank")
        team.name = request.name.strip()

    try:
        session.add(team)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=409, detail=f"Team with name '{request.name}' already exists for this tournament"
        )
    session.refresh(team)
    return team


@router.delete("/teams/{team_id}", status_code=204)
def delete_team(
    team_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    """
    Delete a team with its roster and standing row.
    Teams already placed in a match cannot be deleted; wipe the matches first.
    """
    team = _get_team_or_404(session, team_id)
    _require_captain_or_admin(team, user, "delete team")

    in_match = session.exec(
        select(Match.id).where(
            or_(Match.team1_id == team_id, Match.team2_id == team_id, Match.winner_id == team_id)
        )
    ).first()
    if in_match is not None:
        raise HTTPException(status_code=409, detail="Team is already placed in a match and cannot be deleted")

    tournament_id = team.tournament_id

    for member in session.exec(select(TeamMember).where(TeamMember.team_id == team_id)).all():
        session.delete(member)
    for standing in session.exec(select(Standing).where(Standing.team_id == team_id)).all():
        session.delete(standing)
    session.delete(team)
    session.commit()
    refresh_stored_standings(session, tournament_id)
    logger.info("Team %s deleted from tournament %s by user %s", team_id, tournament_id, user.id)
    return Response(status_code=204)


# ============================================================================
# Team Member Endpoints
# ============================================================================


@router.get("/teams/{team_id}/members", response_model=List[TeamMemberResponse])
def get_team_members(team_id: int, session: Session = Depends(get_session)):
    team = _get_team_or_404(session, team_id)
    members = session.exec(
        select(TeamMember).where(TeamMember.team_id == team_id).order_by(TeamMember.joined_at, TeamMember.id)
    ).all()
    return [_member_response(m, team, session.get(User, m.user_id)) for m in members]


@router.post("/teams/{team_id}/members", response_model=TeamMemberResponse, status_code=201)
def add_team_member(
    team_id: int,
    request: TeamMemberCreateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    team = _get_team_or_404(session, team_id)
    _require_captain_or_admin(team, user, "add members")

    user_to_add = session.get(User, request.user_id)
    if not user_to_add:
        raise HTTPException(status_code=404, detail="User not found")

    already = session.exec(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == request.user_id)
    ).first()
    if already:
        raise HTTPException(status_code=400, detail="User is already a team member")

    member = TeamMember(team_id=team_id, user_id=request.user_id)
    session.add(member)
    session.commit()
    session.refresh(member)
    return _member_response(member, team, user_to_add)


@router.delete("/team-members/{member_id}", status_code=204)
def remove_team_member(
    member_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    """Captain, admin, or the member themself may remove a member; others cannot remove the captain."""
    member = session.get(TeamMember, member_id)
    if not member:
        raise HTTPException(status_code=404, detail="Team member not found")
    team = _get_team_or_404(session, member.team_id)

    is_self_removal = member.user_id == user.id
    if team.captain_id != user.id and not is_self_removal and not user.is_admin:
        raise HTTPException(status_code=403, detail="You don't have permission to remove this team member")
    if member.user_id == team.captain_id and not is_self_removal:
        raise HTTPException(status_code=400, detail="Cannot remove team captain")

    session.delete(member)
    session.commit()
    return Response(status_code=204)
