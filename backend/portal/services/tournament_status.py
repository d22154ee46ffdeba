"""
Date-derived tournament status.

The stored Tournament.status is set by organizers and can drift from what the
dates say; API responses carry both so the difference is visible.
"""
from datetime import datetime
from typing import Optional

from portal.models.tournament import Tournament, TournamentStatus


def derive_status(start: datetime, end: datetime, now: Optional[datetime] = None) -> TournamentStatus:
    now = now or datetime.utcnow()
    if now < start:
        return TournamentStatus.upcoming
    if now > end:
        return TournamentStatus.completed
    return TournamentStatus.ongoing


def registration_open(tournament: Tournament, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return tournament.registration_deadline is None or now <= tournament.registration_deadline


def status_drifted(tournament: Tournament, now: Optional[datetime] = None) -> bool:
    return derive_status(tournament.start_date, tournament.end_date, now) != tournament.status
