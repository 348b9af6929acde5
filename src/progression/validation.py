"""
Stateless consistency checks run before any state is mutated.

Every check raises ValidationError (StateError for a tie that is already
decided) and returns None when the input is acceptable.
"""
from typing import Dict, Iterable, List, Optional

from progression.errors import StateError, ValidationError
from progression.models import (
    CANCELLED,
    FIRST_LEG,
    GROUP_STAGE,
    KNOCKOUT_STAGE,
    KNOCKOUT_STAGES,
    MATCH_DAYS,
    MATCH_TYPES,
    PENDING,
    QUALIFYING_ENTRY_STAGES,
    QUALIFYING_STAGE,
    SECOND_LEG,
    SINGLE_MATCH,
    STAGE_CONTEXTS,
    TIE_STAGE_CONTEXTS,
    Match,
    Team,
    Tie,
)


def validate_team_in_tournament(team_id, tournament_team_ids: Iterable) -> None:
    if team_id not in set(tournament_team_ids):
        raise ValidationError(f"Team {team_id} is not part of the specified tournament")


def validate_distinct_teams(first_team_id, second_team_id) -> None:
    if first_team_id == second_team_id:
        raise ValidationError('A team cannot play itself')


def validate_stage_label(stage_context: str, stage) -> None:
    if stage_context == QUALIFYING_STAGE and stage not in QUALIFYING_ENTRY_STAGES:
        raise ValidationError(f"Qualifying stage must be one of {list(QUALIFYING_ENTRY_STAGES)}, got {stage!r}")
    if stage_context == KNOCKOUT_STAGE and stage not in KNOCKOUT_STAGES:
        raise ValidationError(f"Knockout stage must be one of {list(KNOCKOUT_STAGES)}, got {stage!r}")


def _same_stage(ties: Iterable[Tie], stage_context: str, stage) -> List[Tie]:
    return [t for t in ties if t.stage_context == stage_context and t.stage == stage]


def validate_no_duplicate_matchup(first_team_id, second_team_id, stage_context: str, stage,
                                  existing_ties: Iterable[Tie]) -> None:
    """A vs B and B vs A are the same matchup within a stage."""
    pair = {first_team_id, second_team_id}
    for tie in _same_stage(existing_ties, stage_context, stage):
        if set(tie.teams) == pair:
            raise ValidationError(
                f"A matchup already exists between these teams in {stage} of this tournament "
                f"(regardless of team order)"
            )


def validate_team_not_committed(first_team_id, second_team_id, stage_context: str, stage,
                                existing_ties: Iterable[Tie]) -> None:
    """No team may appear in two ties of the same stage."""
    committed = []
    for tie in _same_stage(existing_ties, stage_context, stage):
        for team_id in (first_team_id, second_team_id):
            if tie.involves(team_id) and team_id not in committed:
                committed.append(team_id)
    if committed:
        raise ValidationError(
            f"The following team(s) are already participating in another {stage} matchup "
            f"in this tournament: {', '.join(map(str, committed))}"
        )


def validate_qualifying_entrants(first_team: Team, second_team: Team) -> None:
    if not (first_team.is_from_qualifying_stage and second_team.is_from_qualifying_stage):
        raise ValidationError('Both teams must be from qualifiers to participate in qualifying stages')


def validate_teams_in_group(home_team_id, away_team_id, group_team_ids: Iterable) -> None:
    members = set(group_team_ids)
    if home_team_id not in members or away_team_id not in members:
        raise ValidationError('One or both teams are not in the specified group')


def validate_teams_in_tie(home_team_id, away_team_id, tie: Tie) -> None:
    if {home_team_id, away_team_id} != set(tie.teams):
        raise ValidationError(f"Match teams must be the two teams of tie {tie.id}")


def validate_stage_fields(match: Match) -> None:
    """Field combinations each stage requires or forbids."""
    if match.stage_context not in STAGE_CONTEXTS:
        raise ValidationError(f"stage_context must be one of {list(STAGE_CONTEXTS)}, got {match.stage_context!r}")

    if match.stage_context == GROUP_STAGE:
        if match.match_day is None:
            raise ValidationError('Match day is required for group stage matches (1-6)')
        if match.match_day not in MATCH_DAYS:
            raise ValidationError(f"matchDay must be a valid matchday (1-6), got {match.match_day!r}")
        if match.group_id is None:
            raise ValidationError('Group stage matches must reference a group')
        if match.match_type is not None or match.tie_id is not None:
            raise ValidationError('Group stage matches cannot carry a match type or tie reference')
        return

    if match.match_day is not None:
        raise ValidationError('Match day is only allowed for group stage matches')
    if match.group_id is not None:
        raise ValidationError('Only group stage matches can reference a group')
    if match.tie_id is None:
        raise ValidationError(f"{match.stage_context} matches must reference their tie")
    if match.match_type is None:
        raise ValidationError(f"{match.stage_context} matches require a match type")
    if match.match_type not in MATCH_TYPES:
        raise ValidationError(f"matchType must be one of {list(MATCH_TYPES)}, got {match.match_type!r}")
    validate_stage_label(match.stage_context, match.stage)


def validate_second_leg_venues(first_leg: Match, second_leg: Match) -> None:
    """The second leg is played at the other team's ground."""
    if (second_leg.home_team_id, second_leg.away_team_id) != (first_leg.away_team_id, first_leg.home_team_id):
        raise ValidationError('Second leg must reverse the home and away teams of the first leg')


def validate_second_leg_home(tie: Tie, second_leg: Match) -> None:
    """Same rule as validate_second_leg_venues, read from the tie's recorded first leg."""
    if second_leg.home_team_id == tie.first_leg_home_team_id:
        raise ValidationError('Second leg must reverse the home and away teams of the first leg')


def validate_tie_creation(tournament_id, stage_context: str, stage, first_team: Team, second_team: Team,
                          existing_ties: Iterable[Tie]) -> None:
    """All checks for a new qualifying or knockout tie."""
    if stage_context not in TIE_STAGE_CONTEXTS:
        raise ValidationError(f"Ties exist only in {list(TIE_STAGE_CONTEXTS)}, got {stage_context!r}")
    validate_stage_label(stage_context, stage)

    for team in (first_team, second_team):
        if team.tournament_id != tournament_id:
            raise ValidationError('Both teams must belong to the specified tournament')
    validate_distinct_teams(first_team.id, second_team.id)
    if stage_context == QUALIFYING_STAGE:
        validate_qualifying_entrants(first_team, second_team)

    existing_ties = [t for t in existing_ties if t.tournament_id == tournament_id]
    validate_no_duplicate_matchup(first_team.id, second_team.id, stage_context, stage, existing_ties)
    validate_team_not_committed(first_team.id, second_team.id, stage_context, stage, existing_ties)


def _validate_tie_match(match: Match, context: Dict) -> None:
    tie = context.get('tie')
    if tie is None:
        raise ValidationError(f"Tie {match.tie_id} not found")
    if tie.id != match.tie_id:
        raise ValidationError(f"Match references tie {match.tie_id}, not {tie.id}")
    if tie.tournament_id != match.tournament_id:
        raise ValidationError('Match and tie belong to different tournaments')
    if tie.stage_context != match.stage_context or tie.stage != match.stage:
        raise ValidationError(f"Match stage does not match tie {tie.id}")
    if tie.is_completed:
        raise StateError(f"Tie {tie.id} is already completed")
    validate_teams_in_tie(match.home_team_id, match.away_team_id, tie)

    if tie.is_single_match and match.match_type != SINGLE_MATCH:
        raise ValidationError(f"Tie {tie.id} is decided by a single match")
    if not tie.is_single_match and match.match_type == SINGLE_MATCH:
        raise ValidationError(f"Tie {tie.id} is played over two legs")

    for other in context.get('tie_matches', []):
        if other.match_type == match.match_type and other.status != CANCELLED:
            raise ValidationError(f"Tie {tie.id} already has a {match.match_type} match")

    if match.match_type == SECOND_LEG:
        first_leg: Optional[Match] = context.get('first_leg')
        if first_leg is not None and first_leg.match_type == FIRST_LEG:
            validate_second_leg_venues(first_leg, match)
        elif tie.first_leg_home_team_id is not None:
            validate_second_leg_home(tie, match)
        else:
            raise ValidationError('The first leg must exist before the second leg is created')


def validate_match_creation(match: Match, context: Dict) -> None:
    """
    Validate a new match against the records around it.

    context keys:
        tournament_team_ids: ids of the teams registered in match.tournament_id
        group_team_ids: group stage only, ids of the teams in match.group_id
        tie: qualifying/knockout only, the Tie the match belongs to
        tie_matches: optional, matches already created for that tie
        first_leg: second legs only, the tie's first leg match
    """
    if match.status != PENDING:
        raise ValidationError('New matches must start as pending')
    validate_stage_fields(match)
    validate_distinct_teams(match.home_team_id, match.away_team_id)

    tournament_team_ids = context.get('tournament_team_ids', ())
    validate_team_in_tournament(match.home_team_id, tournament_team_ids)
    validate_team_in_tournament(match.away_team_id, tournament_team_ids)

    if match.stage_context == GROUP_STAGE:
        validate_teams_in_group(match.home_team_id, match.away_team_id, context.get('group_team_ids', ()))
    else:
        _validate_tie_match(match, context)
