# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from portal.models.match import Match  # noqa: F401
from portal.models.standing import Standing  # noqa: F401
from portal.models.team import Team, TeamMember  # noqa: F401
from portal.models.tournament import Tournament  # noqa: F401
from portal.models.user import User  # noqa: F401
