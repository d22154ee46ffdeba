"""
Bracket engine: pure derivations over an already-fetched match/team snapshot.

Every function here works on in-memory records (Match/Team models or anything
with the same attributes) and never raises on partial data:
  - empty match lists give 0 rounds / empty groups
  - unresolved or unknown team references give "TBD"
  - malformed completed matches are left out of standings

The stored tournament format is not consulted for layout;
classify_format() looks only at how many rounds actually hold matches.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

TBD = "TBD"

POINTS_WIN = 3
POINTS_DRAW = 1
POINTS_LOSS = 0

DEFAULT_CARD_HEIGHT = 120

STATUS_COMPLETED = "completed"


class BracketLayout(str, Enum):
    KNOCKOUT = "knockout"
    FLAT = "flat"


class ConnectorSide(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    NONE = "none"


_CONNECTOR_CLASSES = {
    ConnectorSide.TOP: "border-r border-t",
    ConnectorSide.BOTTOM: "border-r border-b",
    ConnectorSide.NONE: "",
}


# ============================================================================
# Slots
# ============================================================================


@dataclass(frozen=True)
class TeamSlot:
    """A match side that holds a known team."""
    team_id: int
    name: str


@dataclass(frozen=True)
class OpenSlot:
    """A match side still waiting on a prior result (or pointing nowhere)."""
    team_id: None = None
    name: str = TBD


Slot = Union[TeamSlot, OpenSlot]


def _roster_by_id(teams: Optional[Iterable[Any]]) -> Dict[int, Any]:
    roster: Dict[int, Any] = {}
    for team in teams or ():
        team_id = getattr(team, "id", None)
        if team_id is not None:
            roster[team_id] = team
    return roster


def resolve_slot(team_id: Optional[int], teams: Optional[Iterable[Any]]) -> Slot:
    if team_id is None:
        return OpenSlot()
    team = _roster_by_id(teams).get(team_id)
    if team is None:
        return OpenSlot()
    return TeamSlot(team_id=team_id, name=getattr(team, "name", None) or TBD)


def resolve_team_name(team_id: Optional[int], teams: Optional[Iterable[Any]]) -> str:
    """Team name for display, or "TBD" for an empty slot or unknown id."""
    return resolve_slot(team_id, teams).name


# ============================================================================
# Rounds
# ============================================================================


def derive_round_count(matches: Optional[Iterable[Any]]) -> int:
    """Highest round number present; 0 means no bracket yet."""
    rounds = [
        m.round_number
        for m in matches or ()
        if getattr(m, "round_number", None) is not None
    ]
    return max(rounds) if rounds else 0


def group_by_round(
    matches: Optional[Iterable[Any]], total_rounds: Optional[int] = None
) -> List[List[Any]]:
    """
    Matches grouped per round, round 1 first.

    Each group is sorted by match_number (id as a tie-break). Rounds with no
    matches yield an empty group so indices stay aligned with round numbers.
    """
    matches = list(matches or ())
    if total_rounds is None:
        total_rounds = derive_round_count(matches)
    if total_rounds <= 0:
        return []

    grouped: List[List[Any]] = [[] for _ in range(total_rounds)]
    for match in matches:
        round_number = getattr(match, "round_number", None)
        if round_number is None or not 1 <= round_number <= total_rounds:
            continue
        grouped[round_number - 1].append(match)

    for group in grouped:
        group.sort(key=lambda m: (getattr(m, "match_number", None) or 0, getattr(m, "id", None) or 0))
    return grouped


def classify_format(matches: Optional[Iterable[Any]]) -> BracketLayout:
    """KNOCKOUT when more than one round holds matches, otherwise FLAT."""
    populated = [group for group in group_by_round(matches) if group]
    return BracketLayout.KNOCKOUT if len(populated) > 1 else BracketLayout.FLAT


def round_label(round_number: int, total_rounds: int) -> str:
    if round_number == 1:
        return "Round 1"
    if round_number == total_rounds:
        return "Final"
    if round_number == total_rounds - 1:
        return "Semi-final"
    if round_number == total_rounds - 2:
        return "Quarter-final"
    return f"Round {round_number}"


@dataclass(frozen=True)
class NextSlot:
    round_number: int
    match_number: int
    side: str  # "team1" | "team2"


def next_slot(round_number: int, match_number: int) -> NextSlot:
    """Where the winner of (round, match) plays next: odd feeds team1, even feeds team2."""
    return NextSlot(
        round_number=round_number + 1,
        match_number=(match_number + 1) // 2,
        side="team1" if match_number % 2 == 1 else "team2",
    )


def feeder_count(match_number: int, feeder_round_size: int) -> int:
    """How many matches of the previous round (of the given size) feed this match: 0, 1 or 2."""
    return max(0, min(2, feeder_round_size - 2 * (match_number - 1)))


# ============================================================================
# Geometry
# ============================================================================


@dataclass(frozen=True)
class SlotGeometry:
    round_number: int
    match_number: int
    total_rounds: int
    matches_in_round: int
    card_height: int
    spacing_factor: int  # 2^(round-1)
    pitch: float  # distance between the tops of consecutive cards
    offset_top: float
    spacing: float  # gap between consecutive cards
    connector: ConnectorSide
    connector_class: str
    connector_height: float  # card centre to next-round card centre


def compute_slot_geometry(
    round_number: int,
    match_number: int,
    total_rounds: int,
    card_height: int = DEFAULT_CARD_HEIGHT,
    round_size: Optional[int] = None,
) -> SlotGeometry:
    """
    Vertical placement of a match card in a full 2^(R-r) bracket.

    Cards in round r sit on a pitch of 2^(r-1) card heights, shifted down by
    half the extra space so each card is centred between its two feeders.
    Out-of-range arguments are clamped rather than rejected.

    round_size is the number of matches actually stored for the round; an odd
    last card has no sibling to pair with and gets no connector.
    """
    total = max(total_rounds or 0, 1)
    r = min(max(round_number or 0, 1), total)
    m = max(match_number or 0, 1)
    h = card_height if card_height and card_height > 0 else DEFAULT_CARD_HEIGHT

    factor = 2 ** (r - 1)
    pitch = float(factor * h)
    offset_top = (factor - 1) * h / 2 + (m - 1) * pitch

    if r >= total:
        connector = ConnectorSide.NONE
    elif round_size is not None and m % 2 == 1 and m >= round_size:
        connector = ConnectorSide.NONE
    elif m % 2 == 1:
        connector = ConnectorSide.TOP
    else:
        connector = ConnectorSide.BOTTOM

    return SlotGeometry(
        round_number=r,
        match_number=m,
        total_rounds=total,
        matches_in_round=2 ** (total - r),
        card_height=h,
        spacing_factor=factor,
        pitch=pitch,
        offset_top=offset_top,
        spacing=pitch - h,
        connector=connector,
        connector_class=_CONNECTOR_CLASSES[connector],
        connector_height=0.0 if connector == ConnectorSide.NONE else pitch / 2,
    )


# ============================================================================
# Match checks
# ============================================================================


def _is_completed(match: Any) -> bool:
    return (getattr(match, "status", None) or "") == STATUS_COMPLETED


def decide_winner(match: Any) -> Optional[int]:
    """
    Winner implied by the match data: the only team of a bye, or the higher
    score. None on a draw or when scores/teams are missing.
    """
    team1_id = getattr(match, "team1_id", None)
    team2_id = getattr(match, "team2_id", None)
    if team1_id is not None and team2_id is None:
        return team1_id
    if team2_id is not None and team1_id is None:
        return team2_id
    if team1_id is None:
        return None

    score1 = getattr(match, "team1_score", None)
    score2 = getattr(match, "team2_score", None)
    if score1 is None or score2 is None or score1 == score2:
        return None
    return team1_id if score1 > score2 else team2_id


def validate_match(match: Any) -> List[str]:
    """Invariant violations for one match; empty list when it is consistent."""
    problems: List[str] = []
    team1_id = getattr(match, "team1_id", None)
    team2_id = getattr(match, "team2_id", None)
    winner_id = getattr(match, "winner_id", None)

    if (getattr(match, "round_number", None) or 0) < 1:
        problems.append("round_number must be >= 1")
    if (getattr(match, "match_number", None) or 0) < 1:
        problems.append("match_number must be >= 1")
    if team1_id is not None and team1_id == team2_id:
        problems.append("a team cannot play itself")
    if winner_id is not None and winner_id not in (team1_id, team2_id):
        problems.append("winner must be one of the match teams")

    if _is_completed(match):
        both_sides = team1_id is not None and team2_id is not None
        if both_sides and (
            getattr(match, "team1_score", None) is None or getattr(match, "team2_score", None) is None
        ):
            problems.append("completed match needs both scores")
    elif winner_id is not None:
        problems.append("only a completed match can report a winner")

    return problems


# ============================================================================
# Standings
# ============================================================================


@dataclass
class StandingRow:
    team_id: int
    wins: int = 0
    losses: int = 0
    draws: int = 0
    points: int = 0
    goals_for: int = 0
    goals_against: int = 0
    rank: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against


def _countable(match: Any, roster: Dict[int, Any]) -> bool:
    if not _is_completed(match):
        return False
    team1_id = getattr(match, "team1_id", None)
    team2_id = getattr(match, "team2_id", None)
    if team1_id is None or team2_id is None or team1_id == team2_id:
        return False
    if team1_id not in roster or team2_id not in roster:
        return False
    return getattr(match, "team1_score", None) is not None and getattr(match, "team2_score", None) is not None


def compute_standings(matches: Optional[Iterable[Any]], teams: Optional[Sequence[Any]]) -> List[StandingRow]:
    """
    Standings table from completed matches: win 3, draw 1, loss 0.

    Every roster team gets a row. Ordered by points, goal difference,
    goals for (all descending), then team id; rank is the 1-based position.
    Matches that are not completed or lack a team/score are skipped.
    """
    roster = _roster_by_id(teams)
    rows: Dict[int, StandingRow] = {team_id: StandingRow(team_id=team_id) for team_id in roster}

    for match in matches or ():
        if not _countable(match, roster):
            if _is_completed(match):
                logger.debug("Skipping malformed completed match %s in standings", getattr(match, "id", None))
            continue

        row1 = rows[match.team1_id]
        row2 = rows[match.team2_id]
        score1 = match.team1_score
        score2 = match.team2_score

        row1.goals_for += score1
        row1.goals_against += score2
        row2.goals_for += score2
        row2.goals_against += score1

        if score1 > score2:
            row1.wins += 1
            row1.points += POINTS_WIN
            row2.losses += 1
            row2.points += POINTS_LOSS
        elif score2 > score1:
            row2.wins += 1
            row2.points += POINTS_WIN
            row1.losses += 1
            row1.points += POINTS_LOSS
        else:
            row1.draws += 1
            row2.draws += 1
            row1.points += POINTS_DRAW
            row2.points += POINTS_DRAW

    ordered = sorted(
        rows.values(),
        key=lambda row: (-row.points, -row.goal_difference, -row.goals_for, row.team_id),
    )
    for position, row in enumerate(ordered, start=1):
        row.rank = position
    return ordered
