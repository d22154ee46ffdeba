"""
Bracket generation: registered teams -> initial match list.

Dispatches on the tournament's stored format:
  - knockout:    round 1 pairs teams in order; an odd team out gets a bye.
                 Later rounds are empty placeholders, ceil(n/2) per round.
  - round-robin: every pair once, all in round 1.
  - group:       groups of (up to) four play round-robin in round 1, followed
                 by knockout placeholders for the top two of each group.

Returns unsaved Match models; the caller persists them.
"""
from __future__ import annotations

import logging
import math
import random
from datetime import timedelta
from typing import List, Optional, Sequence

from portal.models.match import Match, MatchStatus
from portal.models.team import Team
from portal.models.tournament import Tournament, TournamentFormat
from portal.services.bracket_engine import feeder_count, next_slot

logger = logging.getLogger(__name__)

GROUP_SIZE = 4
ADVANCING_PER_GROUP = 2


class BracketGenerationError(Exception):
    """Raised when a bracket cannot be built from the registered teams"""

    pass


def knockout_round_sizes(team_count: int) -> List[int]:
    """
    Matches per round for a knockout of team_count entries.

    Round r holds ceil(teams_in_round / 2) matches and its winners are the
    next round's entries, so 5 teams -> [3, 2, 1].
    """
    sizes: List[int] = []
    entrants = team_count
    while entrants > 1:
        matches = math.ceil(entrants / 2)
        sizes.append(matches)
        entrants = matches
    return sizes


def match_duration_hours(sport_type: Optional[str]) -> float:
    sport = (sport_type or "").lower()
    if "football" in sport or "soccer" in sport:
        return 2
    if "basketball" in sport:
        return 2
    if "volleyball" in sport:
        return 1.5
    if "table tennis" in sport or "ping pong" in sport:
        return 1
    return 2


def _ordered_teams(teams: Sequence[Team], rng: Optional[random.Random]) -> List[Team]:
    ordered = list(teams)
    if rng is not None:
        rng.shuffle(ordered)
    return ordered


def _propagate_byes(rounds: List[List[Match]]) -> None:
    """Push decided round-r winners forward; a match left with a single feeder becomes a bye."""
    for r_index in range(len(rounds) - 1):
        current = rounds[r_index]
        following = rounds[r_index + 1]
        for match in current:
            if match.winner_id is None:
                continue
            target = next_slot(match.round_number, match.match_number)
            down = following[target.match_number - 1]
            setattr(down, f"{target.side}_id", match.winner_id)

        for down in following:
            if feeder_count(down.match_number, len(current)) == 1 and down.team1_id is not None:
                down.winner_id = down.team1_id
                down.status = MatchStatus.completed


def generate_knockout_matches(
    tournament: Tournament, teams: Sequence[Team], rng: Optional[random.Random] = None
) -> List[Match]:
    ordered = _ordered_teams(teams, rng)
    sizes = knockout_round_sizes(len(ordered))
    location = f"{tournament.sport_type} Arena"

    rounds: List[List[Match]] = []
    for r_index, size in enumerate(sizes):
        round_matches: List[Match] = []
        for m_index in range(size):
            match = Match(
                tournament_id=tournament.id,
                round_number=r_index + 1,
                match_number=m_index + 1,
                location=location,
                status=MatchStatus.scheduled,
            )
            if r_index == 0:
                first = ordered[m_index * 2]
                second = ordered[m_index * 2 + 1] if m_index * 2 + 1 < len(ordered) else None
                match.team1_id = first.id
                match.team2_id = second.id if second is not None else None
                if second is None:
                    match.winner_id = first.id
                    match.status = MatchStatus.completed
            round_matches.append(match)
        rounds.append(round_matches)

    _propagate_byes(rounds)
    return [match for round_matches in rounds for match in round_matches]


def generate_round_robin_matches(
    tournament: Tournament, teams: Sequence[Team], rng: Optional[random.Random] = None
) -> List[Match]:
    ordered = _ordered_teams(teams, rng)
    step = timedelta(hours=match_duration_hours(tournament.sport_type))

    matches: List[Match] = []
    match_number = 1
    for i in range(len(ordered)):
        for j in range(i + 1, len(ordered)):
            matches.append(
                Match(
                    tournament_id=tournament.id,
                    round_number=1,
                    match_number=match_number,
                    team1_id=ordered[i].id,
                    team2_id=ordered[j].id,
                    start_time=tournament.start_date + step * (match_number - 1),
                    status=MatchStatus.scheduled,
                )
            )
            match_number += 1
    return matches


def knockout_stage_label(round_number: int, last_round: int) -> str:
    if round_number == last_round:
        return "Final"
    if round_number == last_round - 1:
        return "Semi-Final"
    if round_number == last_round - 2:
        return "Quarter-Final"
    return "Knockout Stage"


def generate_group_matches(
    tournament: Tournament, teams: Sequence[Team], rng: Optional[random.Random] = None
) -> List[Match]:
    ordered = _ordered_teams(teams, rng)
    group_count = math.ceil(len(ordered) / GROUP_SIZE)

    groups: List[List[Team]] = [[] for _ in range(group_count)]
    for index, team in enumerate(ordered):
        groups[index % group_count].append(team)

    matches: List[Match] = []
    match_number = 1
    for group_index, group_teams in enumerate(groups):
        group_name = chr(ord("A") + group_index)
        for i in range(len(group_teams)):
            for j in range(i + 1, len(group_teams)):
                matches.append(
                    Match(
                        tournament_id=tournament.id,
                        round_number=1,
                        match_number=match_number,
                        team1_id=group_teams[i].id,
                        team2_id=group_teams[j].id,
                        start_time=tournament.start_date + timedelta(hours=match_number - 1),
                        location=f"Group {group_name}",
                        status=MatchStatus.scheduled,
                    )
                )
                match_number += 1

    # Knockout placeholders for the group qualifiers; slots are filled once groups finish.
    knockout_rounds = math.ceil(math.log2(group_count * ADVANCING_PER_GROUP))
    last_round = knockout_rounds + 1
    for round_number in range(2, last_round + 1):
        for m_index in range(2 ** (last_round - round_number)):
            matches.append(
                Match(
                    tournament_id=tournament.id,
                    round_number=round_number,
                    match_number=m_index + 1,
                    location=knockout_stage_label(round_number, last_round),
                    status=MatchStatus.scheduled,
                )
            )
    return matches


def generate_matches(
    tournament: Tournament, teams: Sequence[Team], rng: Optional[random.Random] = None
) -> List[Match]:
    """Build the full initial match list for a tournament. Unknown formats fall back to knockout."""
    if len(teams) < 2:
        raise BracketGenerationError("Not enough teams to generate matches")

    if tournament.format == TournamentFormat.round_robin:
        matches = generate_round_robin_matches(tournament, teams, rng)
    elif tournament.format == TournamentFormat.group:
        matches = generate_group_matches(tournament, teams, rng)
    else:
        matches = generate_knockout_matches(tournament, teams, rng)

    logger.info(
        "Generated %d matches for tournament %s (%s, %d teams)",
        len(matches),
        tournament.id,
        tournament.format,
        len(teams),
    )
    return matches
