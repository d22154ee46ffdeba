from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from portal.models.tournament import Tournament


class MatchStatus(str, Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "round_number", "match_number", name="uq_tournament_round_match"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_number: int  # 1-based
    match_number: int  # 1-based within the round; parity decides the next-round slot

    # Slots (null until a prior round's winner is known)
    team1_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team1_score: Optional[int] = Field(default=None)
    team2_score: Optional[int] = Field(default=None)
    winner_id: Optional[int] = Field(default=None, foreign_key="team.id")

    start_time: Optional[datetime] = Field(default=None)
    location: Optional[str] = Field(default=None)
    status: MatchStatus = Field(
        default=MatchStatus.scheduled, sa_column=Column(String, nullable=False, default="scheduled")
    )

    tournament: "Tournament" = Relationship(back_populates="matches")

    @property
    def is_bye(self) -> bool:
        """Exactly one slot filled and already decided."""
        return (
            self.status == MatchStatus.completed
            and (self.team1_id is None) != (self.team2_id is None)
            and self.winner_id is not None
        )
