from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from portal.models.match import Match
    from portal.models.standing import Standing
    from portal.models.team import Team


class TournamentFormat(str, Enum):
    knockout = "knockout"
    round_robin = "round-robin"
    group = "group"


class TournamentStatus(str, Enum):
    upcoming = "upcoming"
    ongoing = "ongoing"
    completed = "completed"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: str = ""
    sport_type: str
    start_date: datetime
    end_date: datetime
    registration_deadline: datetime
    format: TournamentFormat = Field(sa_column=Column(String, nullable=False))
    # Stored status; may drift from the date-derived value (see services.tournament_status)
    status: TournamentStatus = Field(
        default=TournamentStatus.upcoming, sa_column=Column(String, nullable=False, default="upcoming")
    )
    max_teams: Optional[int] = Field(default=None)
    form_id: Optional[int] = Field(default=None)  # custom registration form, managed elsewhere
    is_published: bool = Field(default=True)
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    teams: List["Team"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
    standings: List["Standing"] = Relationship(back_populates="tournament")
