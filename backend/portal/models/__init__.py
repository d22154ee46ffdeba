from portal.models.match import Match, MatchStatus
from portal.models.standing import Standing
from portal.models.team import Team, TeamMember
from portal.models.tournament import Tournament, TournamentFormat, TournamentStatus
from portal.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "Tournament",
    "TournamentFormat",
    "TournamentStatus",
    "Team",
    "TeamMember",
    "Match",
    "MatchStatus",
    "Standing",
]
