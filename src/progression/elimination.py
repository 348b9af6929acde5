"""
Knockout bracket generation: group qualifiers to round of 16, then the
shape of every later round down to the final.
"""
import random
from typing import Dict, List, Optional, Sequence, Union

from progression.errors import ValidationError
from progression.models import FINAL, QUARTER_FINAL, ROUND_OF_16, SEMI_FINAL
from progression.ranking import rank_group

MIN_TEAMS_FOR_KNOCKOUT = 2
FIRST_PLACE = 1
SECOND_PLACE = 2

# Tie stage label for each matchup id prefix
STAGE_BY_PREFIX = {
    'R16': ROUND_OF_16,
    'QF': QUARTER_FINAL,
    'SF': SEMI_FINAL,
    'F': FINAL,
}


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinals"
    elif teams_in_round == 8:
        return "Quarterfinals"
    else:
        return f"Round of {teams_in_round}"


def get_matchup_prefix(teams_in_round: int) -> str:
    """Matchup id prefix for a round: R16, QF, SF or F."""
    if teams_in_round == 2:
        return "F"
    elif teams_in_round == 4:
        return "SF"
    elif teams_in_round == 8:
        return "QF"
    else:
        return f"R{teams_in_round}"


def _matchup_id(prefix: str, number: int) -> str:
    return prefix if prefix == "F" else f"{prefix}_{number}"


def stage_for_matchup(matchup_id: str) -> Optional[str]:
    """Knockout tie stage for a matchup id ('QF_2' -> 'quarterFinal')."""
    return STAGE_BY_PREFIX.get(matchup_id.split('_')[0])


def extract_qualified_teams(groups: List[Dict]) -> Dict[str, List[Dict]]:
    """
    Pick group winners and runners-up.

    Each group is {'group': name, 'rows': [GroupRow, ...]} with an optional
    'matches' list used for the head-to-head tie-break.

    Returns {'first_place': [...], 'second_place': [...]}, each entry a dict
    with team_id, group and position.
    """
    first_place = []
    second_place = []

    for group in groups:
        ranked = rank_group(group['rows'], group.get('matches'))
        if len(ranked) >= 1:
            first_place.append({
                'team_id': ranked[0].tournament_team_id,
                'group': group['group'],
                'position': FIRST_PLACE,
            })
        if len(ranked) >= 2:
            second_place.append({
                'team_id': ranked[1].tournament_team_id,
                'group': group['group'],
                'position': SECOND_PLACE,
            })

    return {'first_place': first_place, 'second_place': second_place}


def validate_groups_for_knockout(groups: List[Dict]) -> None:
    """Every group must hold at least two teams to send two through."""
    short_groups = [g['group'] for g in groups if len(g['rows']) < MIN_TEAMS_FOR_KNOCKOUT]
    if short_groups:
        raise ValidationError(
            f"Some groups don't have enough teams for knockout phase: {', '.join(short_groups)}"
        )


def validate_team_balance(first_place: List, second_place: List) -> None:
    if len(first_place) != len(second_place):
        raise ValidationError('Uneven number of first and second place teams for knockout draw')


def create_knockout_matchups(first_place: List[Dict], second_place: List[Dict],
                             rng: Optional[random.Random] = None) -> List[Dict]:
    """
    Randomly pair group winners with runners-up.

    The group winner is always first_team of its matchup.
    """
    validate_team_balance(first_place, second_place)
    rng = rng or random.Random()

    shuffled_first = list(first_place)
    shuffled_second = list(second_place)
    rng.shuffle(shuffled_first)
    rng.shuffle(shuffled_second)

    prefix = get_matchup_prefix(len(shuffled_first) * 2)
    return [
        {
            'matchup_id': _matchup_id(prefix, i + 1),
            'first_team': first,
            'second_team': second,
        }
        for i, (first, second) in enumerate(zip(shuffled_first, shuffled_second))
    ]


def draw_knockout_stage(groups: List[Dict], rng: Optional[random.Random] = None) -> Dict:
    """Qualify, pair and shape the whole knockout stage from final group tables."""
    validate_groups_for_knockout(groups)
    qualified = extract_qualified_teams(groups)
    matchups = create_knockout_matchups(qualified['first_place'], qualified['second_place'], rng)
    return {'qualified': qualified, 'rounds': build_bracket_shape(matchups)}


def _normalize_first_round(matchups: Sequence[Union[Dict, Sequence]]) -> List[Dict]:
    prefix = get_matchup_prefix(len(matchups) * 2)
    normalized = []
    for i, matchup in enumerate(matchups):
        if isinstance(matchup, dict):
            if 'first_team' not in matchup or 'second_team' not in matchup:
                raise ValidationError('Each matchup needs first_team and second_team')
            entry = dict(matchup)
        else:
            if len(matchup) != 2:
                raise ValidationError('Each matchup must be a pair of teams')
            entry = {'first_team': matchup[0], 'second_team': matchup[1]}
        entry.setdefault('matchup_id', _matchup_id(prefix, i + 1))
        normalized.append(entry)
    return normalized


def build_bracket_shape(matchups: Sequence[Union[Dict, Sequence]]) -> List[Dict]:
    """
    Build every round of a single elimination bracket from its first round.

    Each later matchup references the two earlier matchups feeding it,
    paired consecutively: QF_1 <- [R16_1, R16_2], ..., F <- [SF_1, SF_2].
    Only the shape is produced; winners are resolved separately.

    Returns:
        [{'round': 'Round of 16', 'matchups': [...]},
         {'round': 'Quarterfinals', 'matchups': [{'matchup_id': 'QF_1', 'from': [...]}, ...]},
         ...]
    """
    count = len(matchups)
    if count < 1 or count & (count - 1):
        raise ValidationError(f"A bracket needs a power-of-two number of matchups, got {count}")

    first_round = _normalize_first_round(matchups)
    rounds = [{'round': get_round_name(count * 2), 'matchups': first_round}]

    previous = first_round
    teams_in_round = count
    while len(previous) > 1:
        prefix = get_matchup_prefix(teams_in_round)
        current = []
        for i in range(0, len(previous), 2):
            current.append({
                'matchup_id': _matchup_id(prefix, i // 2 + 1),
                'from': [previous[i]['matchup_id'], previous[i + 1]['matchup_id']],
            })
        rounds.append({'round': get_round_name(teams_in_round), 'matchups': current})
        previous = current
        teams_in_round //= 2

    return rounds


def _team_id(team):
    return team['team_id'] if isinstance(team, dict) else team


def resolve_bracket(rounds: List[Dict], winners: Optional[Dict[str, str]] = None) -> Dict:
    """
    Apply known winners to a bracket shape, advancing them to later rounds.

    Args:
        rounds: output of build_bracket_shape
        winners: matchup id -> winning team id

    Returns:
        {'rounds': [...], 'champion': team id or None}; every matchup carries
        teams, winner, is_placeholder and is_playable
    """
    if winners is None:
        winners = {}

    match_winners = {}
    resolved_rounds = []

    for round_idx, round_data in enumerate(rounds):
        resolved = []
        for matchup in round_data['matchups']:
            matchup_id = matchup['matchup_id']
            if round_idx == 0:
                team1 = _team_id(matchup['first_team'])
                team2 = _team_id(matchup['second_team'])
                is_placeholder = False
            else:
                source1, source2 = matchup['from']
                team1 = match_winners.get(source1)
                team2 = match_winners.get(source2)
                is_placeholder = not (team1 and team2)
                team1 = team1 or f'Winner {source1}'
                team2 = team2 or f'Winner {source2}'

            winner = winners.get(matchup_id)
            if winner is not None:
                if is_placeholder:
                    raise ValidationError(f"{matchup_id} cannot have a winner before both teams are known")
                if winner not in (team1, team2):
                    raise ValidationError(f"Winner of {matchup_id} must be {team1} or {team2}")
                match_winners[matchup_id] = winner

            entry = dict(matchup)
            entry.update({
                'round': round_data['round'],
                'teams': (team1, team2),
                'winner': winner,
                'is_placeholder': is_placeholder,
                'is_playable': not is_placeholder and winner is None,
            })
            resolved.append(entry)

        resolved_rounds.append({'round': round_data['round'], 'matchups': resolved})

    champion = None
    if resolved_rounds and resolved_rounds[-1]['matchups']:
        champion = resolved_rounds[-1]['matchups'][0]['winner']

    return {'rounds': resolved_rounds, 'champion': champion}
