"""
Group tables built from finished group-stage matches.
"""
from typing import Dict, Iterable, List

from progression.errors import StateError, ValidationError
from progression.models import GROUP_STAGE, GroupRow, Match
from progression.ranking import rank_group

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1


def new_group_row(tournament_team_id, group_id) -> GroupRow:
    """Zeroed row for a team just drawn into a group."""
    return GroupRow(tournament_team_id=tournament_team_id, group_id=group_id)


def _check_countable(match: Match) -> None:
    if match.stage_context != GROUP_STAGE:
        raise ValidationError(f"Match {match.id} is not a group stage match")
    if not match.is_finished:
        raise StateError(f"Match {match.id} is {match.status}; only finished matches count")
    if match.home_goals is None or match.away_goals is None:
        raise ValidationError(f"Match {match.id} is finished without a score")


def apply_match_result(row: GroupRow, match: Match) -> GroupRow:
    """
    Return row updated with one finished group-stage match.

    The row is not modified; the copy has every counter and the goal
    difference updated together. Applying the same match twice is the
    caller's mistake to avoid.
    """
    _check_countable(match)
    team_id = row.tournament_team_id
    if team_id not in match.teams:
        raise ValidationError(f"Team {team_id} did not play match {match.id}")
    if match.group_id is not None and row.group_id != match.group_id:
        raise ValidationError(f"Match {match.id} belongs to group {match.group_id}, not {row.group_id}")

    scored = match.goals_for(team_id)
    conceded = match.goals_against(team_id)

    updated = row.copy()
    updated.matches_played += 1
    updated.goals_for += scored
    updated.goals_against += conceded
    if scored > conceded:
        updated.wins += 1
        updated.points += POINTS_FOR_WIN
    elif scored == conceded:
        updated.draws += 1
        updated.points += POINTS_FOR_DRAW
    else:
        updated.losses += 1
    updated.goal_difference = updated.goals_for - updated.goals_against
    return updated


def apply_group_match(rows: Dict[str, GroupRow], match: Match) -> Dict[str, GroupRow]:
    """
    Update both sides of a match in a {team_id: row} mapping.

    Returns a new mapping; both rows are computed before anything is
    replaced, so a rejected match changes nothing.
    """
    missing = [team_id for team_id in match.teams if team_id not in rows]
    if missing:
        raise ValidationError(f"No group row for team(s): {', '.join(map(str, missing))}")

    home_row = apply_match_result(rows[match.home_team_id], match)
    away_row = apply_match_result(rows[match.away_team_id], match)

    updated = dict(rows)
    updated[match.home_team_id] = home_row
    updated[match.away_team_id] = away_row
    return updated


def calculate_group_standings(team_ids: Iterable, group_id, matches: Iterable[Match]) -> List[GroupRow]:
    """
    Rebuild a group's table from scratch and return it ranked.

    Only finished matches between two of the group's teams count; pending
    and cancelled ones are skipped.
    """
    rows = {team_id: new_group_row(team_id, group_id) for team_id in team_ids}
    counted = []

    for match in matches:
        if match.stage_context != GROUP_STAGE or not match.is_finished:
            continue
        if match.group_id is not None and match.group_id != group_id:
            continue
        if match.home_team_id not in rows or match.away_team_id not in rows:
            continue
        rows = apply_group_match(rows, match)
        counted.append(match)

    return rank_group(rows.values(), counted)
