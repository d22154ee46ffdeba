from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from portal.models.tournament import Tournament


class Standing(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "team_id", name="uq_tournament_standing"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="team.id")
    wins: int = Field(default=0)
    losses: int = Field(default=0)
    draws: int = Field(default=0)
    points: int = Field(default=0)
    goals_for: int = Field(default=0)
    goals_against: int = Field(default=0)
    rank: Optional[int] = Field(default=None)

    tournament: "Tournament" = Relationship(back_populates="standings")
