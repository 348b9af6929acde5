"""
Seeded three-phase draw for the qualifying stage.

Phase 1: 6 entrants, best 3 vs worst 3 by ranking.
Phase 2: 13 direct entrants plus the 3 phase 1 winners; best 8 vs the rest.
Phase 3: the 8 phase 2 winners paired at random; the 4 winners reach the groups.

Later phases reference winners that do not exist yet, so they carry
placeholders ("Winner of X vs Y") instead of teams.
"""
import random
from typing import Dict, List, Optional, Union

from progression.errors import CountValidationError
from progression.models import Team, Tie

PHASE1_TEAMS = 6
PHASE2_DIRECT_TEAMS = 13
PHASE2_POT1_SIZE = 8
PHASE3_TEAMS = 8
QUALIFIED_TO_GROUP_STAGE = 4

Slot = Union[Team, str]


def sort_by_ranking(teams: List[Team]) -> List[Team]:
    """Best ranking (lowest number) first; unranked teams after, in input order."""
    ranked = sorted((t for t in teams if t.ranking is not None), key=lambda t: t.ranking)
    unranked = [t for t in teams if t.ranking is None]
    return ranked + unranked


def _title_case(name: str) -> str:
    return ' '.join(word[:1].upper() + word[1:].lower() for word in name.split())


def _display_name(slot: Slot) -> str:
    return slot if isinstance(slot, str) else _title_case(slot.name)


def winner_placeholder(first: Slot, second: Slot) -> str:
    return f"Winner of {_display_name(first)} vs {_display_name(second)}"


def _make_match(phase: int, number: int, first: Slot, second: Slot, placeholder: str) -> Dict:
    return {
        'id': f'phase{phase}-match-{number}',
        'match_number': number,
        'first_team': first,
        'second_team': second,
        'winner_placeholder': placeholder,
        'stage': phase,
    }


def _shuffled(items: List, rng: random.Random) -> List:
    shuffled = list(items)
    rng.shuffle(shuffled)
    return shuffled


def validate_team_counts(phase1_teams: List[Team], phase2_direct_teams: List[Team]) -> None:
    if len(phase1_teams) != PHASE1_TEAMS:
        raise CountValidationError(
            f"Phase 1 requires exactly {PHASE1_TEAMS} teams, but found {len(phase1_teams)}",
            expected=PHASE1_TEAMS,
            found=len(phase1_teams),
        )
    if len(phase2_direct_teams) != PHASE2_DIRECT_TEAMS:
        raise CountValidationError(
            f"Phase 2 requires exactly {PHASE2_DIRECT_TEAMS} direct teams, but found {len(phase2_direct_teams)}",
            expected=PHASE2_DIRECT_TEAMS,
            found=len(phase2_direct_teams),
        )


def draw_phase1(phase1_teams: List[Team], rng: random.Random) -> List[Dict]:
    ordered = sort_by_ranking(phase1_teams)
    half = PHASE1_TEAMS // 2
    pot_a = _shuffled(ordered[:half], rng)
    pot_b = _shuffled(ordered[half:], rng)

    return [
        _make_match(1, i + 1, first, second, winner_placeholder(first, second))
        for i, (first, second) in enumerate(zip(pot_a, pot_b))
    ]


def draw_phase2(phase2_direct_teams: List[Team], phase1_matches: List[Dict],
                rng: random.Random) -> List[Dict]:
    ordered = sort_by_ranking(phase2_direct_teams)
    pot1 = _shuffled(ordered[:PHASE2_POT1_SIZE], rng)
    pot2 = ordered[PHASE2_POT1_SIZE:] + [m['winner_placeholder'] for m in phase1_matches]
    pot2 = _shuffled(pot2, rng)

    return [
        _make_match(2, i + 1, first, second, winner_placeholder(first, second))
        for i, (first, second) in enumerate(zip(pot1, pot2))
    ]


def draw_phase3(phase2_matches: List[Dict], rng: random.Random) -> List[Dict]:
    slots = _shuffled([m['winner_placeholder'] for m in phase2_matches], rng)

    matches = []
    for i in range(0, len(slots), 2):
        first, second = slots[i], slots[i + 1]
        placeholder = f"Qualified to Groups: {winner_placeholder(first, second)}"
        matches.append(_make_match(3, i // 2 + 1, first, second, placeholder))
    return matches


def compute_qualifying_draw(teams: List[Team], rng: Optional[random.Random] = None) -> Dict:
    """
    Generate the complete qualifying draw.

    Only teams flagged is_from_qualifying_stage take part; they are split by
    qualifying_entry_stage. Stage-3 entrants are not drawn here.

    Raises:
        CountValidationError: not exactly 6 stage-1 or 13 stage-2 entrants
    """
    rng = rng or random.Random()
    qualifying_teams = [team for team in teams if team.is_from_qualifying_stage]
    phase1_teams = [team for team in qualifying_teams if team.qualifying_entry_stage == 1]
    phase2_direct_teams = [team for team in qualifying_teams if team.qualifying_entry_stage == 2]

    validate_team_counts(phase1_teams, phase2_direct_teams)

    phase1 = draw_phase1(phase1_teams, rng)
    phase2 = draw_phase2(phase2_direct_teams, phase1, rng)
    phase3 = draw_phase3(phase2, rng)

    return {
        'phase1': phase1,
        'phase2': phase2,
        'phase3': phase3,
        'summary': {
            'total_teams': len(qualifying_teams),
            'phase1_teams': len(phase1_teams),
            'phase2_teams': len(phase2_direct_teams) + len(phase1),
            'phase3_teams': PHASE3_TEAMS,
            'qualified_to_group_stage': QUALIFIED_TO_GROUP_STAGE,
            'phase1_matches': len(phase1),
            'phase2_matches': len(phase2),
            'phase3_matches': len(phase3),
        },
    }


def _find_tie(ties: List[Tie], stage: int, first: Slot, second: Slot) -> Optional[Tie]:
    if isinstance(first, str) or isinstance(second, str):
        return None
    pair = {first.id, second.id}
    for tie in ties:
        if tie.stage == stage and set(tie.teams) == pair:
            return tie
    return None


def qualifying_draw_format(draw: Dict, ties: List[Tie]) -> Dict:
    """
    Overlay recorded tie progress onto a qualifying draw.

    Matches whose two teams are real are matched to ties by stage and
    unordered team pair. Matches still waiting on a placeholder stay pending.
    """
    result = {}
    completed = 0
    total = 0

    for phase_key in ('phase1', 'phase2', 'phase3'):
        formatted = []
        for match in draw[phase_key]:
            entry = dict(match)
            tie = _find_tie(ties, match['stage'], match['first_team'], match['second_team'])
            if tie is not None:
                entry.update({
                    'tie_id': tie.id,
                    'first_team_aggregate_goals': tie.first_team_aggregate_goals,
                    'second_team_aggregate_goals': tie.second_team_aggregate_goals,
                    'first_leg_played': tie.first_leg_played,
                    'second_leg_played': tie.second_leg_played,
                    'penalties_played': tie.penalties_played,
                    'first_team_penalty_goals': tie.first_team_penalty_goals,
                    'second_team_penalty_goals': tie.second_team_penalty_goals,
                    'winner_team': tie.winner_team_id,
                })
                if tie.is_completed:
                    completed += 1
            formatted.append(entry)
            total += 1
        result[phase_key] = formatted

    result['summary'] = {
        'total_matches': total,
        'phase1_matches': len(result['phase1']),
        'phase2_matches': len(result['phase2']),
        'phase3_matches': len(result['phase3']),
        'completed_matches': completed,
        'pending_matches': total - completed,
    }
    return result
