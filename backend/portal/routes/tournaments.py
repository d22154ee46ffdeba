import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlmodel import Session, func, select, text

from portal.database import get_session
from portal.dependencies import require_admin
from portal.models.tournament import Tournament, TournamentFormat, TournamentStatus
from portal.models.user import User
from portal.services.tournament_status import derive_status

logger = logging.getLogger(__name__)

router = APIRouter()


class TournamentCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str
    description: str = ""
    sport_type: str
    start_date: datetime
    end_date: datetime
    registration_deadline: datetime
    format: TournamentFormat
    status: TournamentStatus = TournamentStatus.upcoming
    max_teams: Optional[int] = None
    form_id: Optional[int] = None
    is_published: bool = True

    @field_validator("name", "sport_type")
    @classmethod
    def validate_required_text(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("max_teams")
    @classmethod
    def validate_max_teams(cls, v):
        if v is not None and v < 2:
            raise ValueError("max_teams must be at least 2")
        return v

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class TournamentUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: Optional[str] = None
    description: Optional[str] = None
    sport_type: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    registration_deadline: Optional[datetime] = None
    format: Optional[TournamentFormat] = None
    status: Optional[TournamentStatus] = None
    max_teams: Optional[int] = None
    form_id: Optional[int] = None
    is_published: Optional[bool] = None

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    sport_type: str
    start_date: datetime
    end_date: datetime
    registration_deadline: datetime
    format: TournamentFormat
    status: TournamentStatus
    computed_status: TournamentStatus
    max_teams: Optional[int] = None
    form_id: Optional[int] = None
    is_published: bool
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime


def _to_response(tournament: Tournament) -> TournamentResponse:
    return TournamentResponse(
        id=tournament.id,
        name=tournament.name,
        description=tournament.description,
        sport_type=tournament.sport_type,
        start_date=tournament.start_date,
        end_date=tournament.end_date,
        registration_deadline=tournament.registration_deadline,
        format=tournament.format,
        status=tournament.status,
        computed_status=derive_status(tournament.start_date, tournament.end_date),
        max_teams=tournament.max_teams,
        form_id=tournament.form_id,
        is_published=tournament.is_published,
        created_by=tournament.created_by,
        created_at=tournament.created_at,
        updated_at=tournament.updated_at,
    )


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(
    limit: Optional[int] = None,
    status: Optional[TournamentStatus] = None,
    session: Session = Depends(get_session),
):
    """List tournaments, newest start date first. `status` filters on the date-derived status."""
    tournaments = session.exec(select(Tournament).order_by(Tournament.start_date.desc(), Tournament.id)).all()
    responses = [_to_response(t) for t in tournaments]
    if status is not None:
        responses = [r for r in responses if r.computed_status == status]
    if limit is not None:
        responses = responses[:limit]
    return responses


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(
    tournament_data: TournamentCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    tournament = Tournament(**tournament_data.model_dump(), created_by=admin.id)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    logger.info("Tournament %s created by user %s", tournament.id, admin.id)
    return _to_response(tournament)


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return _to_response(get_tournament_or_404(session, tournament_id))


@router.put("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(
    tournament_id: int,
    tournament_data: TournamentUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    tournament = get_tournament_or_404(session, tournament_id)

    update_data = tournament_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(tournament, field, value)

    if tournament.end_date < tournament.start_date:
        raise HTTPException(status_code=422, detail="end_date must be >= start_date")

    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return _to_response(tournament)


@router.delete("/tournaments/{tournament_id}", status_code=204)
def delete_tournament(
    tournament_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Delete a tournament and everything hanging off it (teams, members, matches, standings)."""
    try:
        tournament_exists = session.exec(select(func.count(Tournament.id)).where(Tournament.id == tournament_id)).one()
        if tournament_exists == 0:
            raise HTTPException(status_code=404, detail="Tournament not found")

        # Children before parents
        params = {"tournament_id": tournament_id}
        session.execute(text("DELETE FROM standing WHERE tournament_id = :tournament_id"), params)
        session.execute(text('DELETE FROM "match" WHERE tournament_id = :tournament_id'), params)
        session.execute(
            text("DELETE FROM teammember WHERE team_id IN (SELECT id FROM team WHERE tournament_id = :tournament_id)"),
            params,
        )
        session.execute(text("DELETE FROM team WHERE tournament_id = :tournament_id"), params)
        session.execute(text("DELETE FROM tournament WHERE id = :tournament_id"), params)
        session.commit()

        logger.info("Tournament %s deleted by user %s", tournament_id, admin.id)
        return Response(status_code=204)
    except HTTPException:
        raise
    except Exception as e:
        session.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to delete tournament: {str(e)}")
