"""
Qualifying and knockout tie progression.

A tie moves through:

    awaiting-first-leg -> awaiting-second-leg -> aggregate-decided | penalties-required -> completed

Single-match ties (finals) skip the second leg: the one match is the
deciding leg. Goals are always credited through the tie's fixed first/second
team identity, never through the home/away order of the match.

Home/away reversal of the second leg is checked when that match is created
(see validation.validate_second_leg_venues), not here.
"""
import copy
from typing import Iterable, Optional, Tuple

from progression.errors import StateError, ValidationError
from progression.models import FIRST_LEG, SECOND_LEG, SINGLE_MATCH, Match, Team, Tie
from progression.validation import validate_teams_in_tie, validate_tie_creation


class TieState:
    AWAITING_FIRST_LEG = 'awaiting-first-leg'
    AWAITING_SECOND_LEG = 'awaiting-second-leg'
    AGGREGATE_DECIDED = 'aggregate-decided'
    PENALTIES_REQUIRED = 'penalties-required'
    COMPLETED = 'completed'


def create_tie(tie_id, tournament_id, stage_context: str, stage, first_team: Team, second_team: Team,
               existing_ties: Iterable[Tie] = (), is_single_match: Optional[bool] = None) -> Tie:
    """Validate and build a new tie; first/second identity is fixed here for good."""
    validate_tie_creation(tournament_id, stage_context, stage, first_team, second_team, existing_ties)
    return Tie(
        id=tie_id,
        tournament_id=tournament_id,
        stage_context=stage_context,
        stage=stage,
        first_team_id=first_team.id,
        second_team_id=second_team.id,
        is_single_match=is_single_match,
    )


def _deciding_leg_played(tie: Tie) -> bool:
    # A single-match tie records its one match as the first leg
    return tie.first_leg_played if tie.is_single_match else tie.second_leg_played


def tie_state(tie: Tie) -> str:
    if tie.is_completed:
        return TieState.COMPLETED
    if not tie.first_leg_played:
        return TieState.AWAITING_FIRST_LEG
    if not _deciding_leg_played(tie):
        return TieState.AWAITING_SECOND_LEG
    if tie.first_team_aggregate_goals != tie.second_team_aggregate_goals:
        return TieState.AGGREGATE_DECIDED
    return TieState.PENALTIES_REQUIRED


def _expected_leg(tie: Tie, match: Match) -> str:
    if tie.is_single_match:
        if match.match_type != SINGLE_MATCH:
            raise ValidationError(f"Tie {tie.id} is decided by a single match, got {match.match_type}")
        if tie.first_leg_played:
            raise StateError(f"The match of tie {tie.id} has already been recorded")
        return SINGLE_MATCH

    if match.match_type == FIRST_LEG:
        if tie.first_leg_played:
            raise StateError(f"First leg of tie {tie.id} has already been recorded")
        return FIRST_LEG
    if match.match_type == SECOND_LEG:
        if not tie.first_leg_played:
            raise StateError(f"First leg of tie {tie.id} must be recorded before the second leg")
        if tie.second_leg_played:
            raise StateError(f"Second leg of tie {tie.id} has already been recorded")
        return SECOND_LEG
    raise ValidationError(f"Tie {tie.id} is played over two legs, got {match.match_type}")


def _validate_penalty_goals(first_goals, second_goals) -> None:
    for goals in (first_goals, second_goals):
        if not isinstance(goals, int) or isinstance(goals, bool) or goals < 0:
            raise ValidationError('Penalty goals must be non-negative integers')
    if first_goals == second_goals:
        raise StateError('A penalty shootout cannot end level; provide valid, non-tied penalty scores')


def _unpack_penalty_goals(penalty_goals) -> Tuple[int, int]:
    if not isinstance(penalty_goals, (tuple, list)) or len(penalty_goals) != 2:
        raise ValidationError('Penalty goals must be a (first team, second team) pair')
    _validate_penalty_goals(*penalty_goals)
    return penalty_goals[0], penalty_goals[1]


def _complete(tie: Tie, winner_team_id) -> None:
    tie.winner_team_id = winner_team_id
    tie.is_completed = True


def _apply_shootout(tie: Tie, first_goals: int, second_goals: int) -> None:
    _validate_penalty_goals(first_goals, second_goals)
    tie.penalties_played = True
    tie.first_team_penalty_goals = first_goals
    tie.second_team_penalty_goals = second_goals
    _complete(tie, tie.first_team_id if first_goals > second_goals else tie.second_team_id)


def record_leg_result(tie: Tie, match: Match, penalty_goals: Optional[Tuple[int, int]] = None) -> Tie:
    """
    Record one finished leg and return the updated tie.

    Args:
        tie: the tie the match belongs to; never modified
        match: a finished firstLeg, secondLeg or singleMatch match of the tie
        penalty_goals: (first team, second team) shootout goals, only used
            when the deciding leg leaves the aggregate level;
            given with a decided aggregate they raise StateError

    Returns:
        Updated copy. Completed ties carry winner_team_id and loser_team_id;
        a level aggregate without penalty_goals leaves the tie in
        penalties-required until record_penalty_shootout is called.
    """
    if tie.is_completed:
        raise StateError(f"Tie {tie.id} is already completed")
    if not match.is_finished:
        raise StateError(f"Match {match.id} is {match.status}; only finished matches can be recorded")
    if match.tie_id is not None and match.tie_id != tie.id:
        raise ValidationError(f"Match {match.id} belongs to tie {match.tie_id}, not {tie.id}")
    if match.home_goals is None or match.away_goals is None:
        raise ValidationError(f"Match {match.id} is finished without a score")
    validate_teams_in_tie(match.home_team_id, match.away_team_id, tie)

    leg = _expected_leg(tie, match)
    deciding = leg != FIRST_LEG or tie.is_single_match
    if penalty_goals is not None and not deciding:
        raise StateError('Penalties can only follow the deciding leg')
    if penalty_goals is not None:
        penalty_goals = _unpack_penalty_goals(penalty_goals)

    updated = tie.copy()
    updated.first_team_aggregate_goals += match.goals_for(tie.first_team_id)
    updated.second_team_aggregate_goals += match.goals_for(tie.second_team_id)

    if leg in (FIRST_LEG, SINGLE_MATCH):
        updated.first_leg_played = True
        updated.first_leg_home_team_id = match.home_team_id
    else:
        updated.second_leg_played = True

    if not deciding:
        return updated

    if penalty_goals is not None and updated.first_team_aggregate_goals != updated.second_team_aggregate_goals:
        raise StateError(f"Tie {tie.id} is decided on aggregate; penalties are only taken when it is level")

    if updated.first_team_aggregate_goals > updated.second_team_aggregate_goals:
        _complete(updated, updated.first_team_id)
    elif updated.second_team_aggregate_goals > updated.first_team_aggregate_goals:
        _complete(updated, updated.second_team_id)
    elif penalty_goals is not None:
        _apply_shootout(updated, *penalty_goals)

    return updated


def record_penalty_shootout(tie: Tie, first_team_goals: int, second_team_goals: int) -> Tie:
    """Settle a tie level on aggregate after its deciding leg."""
    state = tie_state(tie)
    if state != TieState.PENALTIES_REQUIRED:
        raise StateError(f"Tie {tie.id} is {state}; penalties are not required")
    updated = tie.copy()
    _apply_shootout(updated, first_team_goals, second_team_goals)
    return updated


def soft_eliminate(team: Team) -> Team:
    """Copy of team marked as no longer participating. Teams are never deleted."""
    eliminated = copy.copy(team)
    eliminated.is_participating = False
    return eliminated
