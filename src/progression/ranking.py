"""
Group table ordering.

Ranking: points -> goal difference -> goals for -> head-to-head (optional).
"""
from itertools import groupby
from typing import Dict, Iterable, List, Optional, Tuple

from progression.models import GroupRow, Match


def ranking_key(row: GroupRow) -> Tuple[int, int, int]:
    """Sort key for a row; smaller sorts first."""
    return (-row.points, -row.goal_difference, -row.goals_for)


def compare_rows(a: GroupRow, b: GroupRow) -> int:
    """Negative when a ranks above b, positive when below, 0 when level."""
    key_a = ranking_key(a)
    key_b = ranking_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def sort_rows(rows: Iterable[GroupRow]) -> List[GroupRow]:
    """Stable sort: rows level on every key keep their input order."""
    return sorted(rows, key=ranking_key)


def _head_to_head_key(team_ids: List, matches: List[Match]):
    stats = {team_id: [0, 0] for team_id in team_ids}  # [points, goal difference]
    for match in matches:
        if not match.is_finished:
            continue
        if match.home_team_id not in stats or match.away_team_id not in stats:
            continue
        home, away = match.home_team_id, match.away_team_id
        diff = match.home_goals - match.away_goals
        stats[home][1] += diff
        stats[away][1] -= diff
        if diff > 0:
            stats[home][0] += 3
        elif diff < 0:
            stats[away][0] += 3
        else:
            stats[home][0] += 1
            stats[away][0] += 1
    return lambda row: (-stats[row.tournament_team_id][0], -stats[row.tournament_team_id][1])


def rank_group(rows: Iterable[GroupRow], matches: Optional[List[Match]] = None) -> List[GroupRow]:
    """
    Rank a group's rows.

    When the group's matches are given, blocks of rows level on points,
    goal difference and goals for are separated by head-to-head points and
    then head-to-head goal difference between the level teams only. Rows
    still level keep their input order.
    """
    ranked = sort_rows(rows)
    if not matches:
        return ranked

    result = []
    for _, block in groupby(ranked, key=ranking_key):
        block = list(block)
        if len(block) > 1:
            tied_ids = [row.tournament_team_id for row in block]
            block.sort(key=_head_to_head_key(tied_ids, matches))
        result.extend(block)
    return result


def rank_positions(rows: Iterable[GroupRow], matches: Optional[List[Match]] = None) -> Dict:
    """Map team id -> 1-based finishing position."""
    return {row.tournament_team_id: i + 1 for i, row in enumerate(rank_group(rows, matches))}

