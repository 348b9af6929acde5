"""
Group stage draw under bombo and country constraints.

Each group takes at most one team per bombo, and two teams from the same
country never share a group unless one of them entered through the
qualifying stage. The current champion always opens group A.
"""
import logging
import random
from collections import Counter
from typing import Dict, List, Optional, Set

from progression.errors import CountValidationError, ExhaustionError, ValidationError
from progression.models import GROUP_LABELS, Team

logger = logging.getLogger(__name__)

NUMBER_OF_GROUPS = 8
TEAMS_PER_GROUP = 4
MAX_DRAW_ATTEMPTS = 100
MAX_ASSIGNMENT_ATTEMPTS = 1000
LOG_INTERVAL = 10


def is_valid_placement(group: List[Team], team: Team, used_bombos: Set[int]) -> bool:
    """Check whether team may join group without breaking a constraint."""
    if team.bombo in used_bombos:
        return False

    for existing in group:
        if existing.country != team.country:
            continue
        # Qualifying-stage entrants are exempt from the country rule
        if existing.is_from_qualifying_stage or team.is_from_qualifying_stage:
            continue
        return False

    return True


def sort_teams_by_constraints(teams: List[Team]) -> List[Team]:
    """
    Order teams hardest-to-place first.

    Champion first, then teams whose country has the most non-qualifier
    representatives, then higher bombo number first.
    """
    country_count = Counter(team.country for team in teams if not team.is_from_qualifying_stage)

    def restrictiveness(team: Team):
        count = 0 if team.is_from_qualifying_stage else country_count[team.country]
        return (not team.is_current_champion, -count, -team.bombo)

    return sorted(teams, key=restrictiveness)


def _find_valid_groups(team: Team, groups: List[List[Team]], bombos_per_group: List[Set[int]],
                       teams_per_group: int) -> List[int]:
    return [
        i for i, group in enumerate(groups)
        if len(group) < teams_per_group and is_valid_placement(group, team, bombos_per_group[i])
    ]


def _assign_teams_to_groups(teams: List[Team], number_of_groups: int, teams_per_group: int,
                            max_assignment_attempts: int, rng: random.Random) -> Optional[List[List[Team]]]:
    """One constructive attempt. Returns None as soon as a team cannot be placed."""
    ordered = sort_teams_by_constraints(teams)

    groups = [[] for _ in range(number_of_groups)]
    bombos_per_group = [set() for _ in range(number_of_groups)]

    champion = next((team for team in ordered if team.is_current_champion), None)
    if champion is not None:
        ordered.remove(champion)
        groups[0].append(champion)
        bombos_per_group[0].add(champion.bombo)

    rng.shuffle(ordered)

    unassigned = list(ordered)
    attempts = 0
    while unassigned and attempts < max_assignment_attempts:
        attempts += 1
        team = unassigned[0]
        valid_groups = _find_valid_groups(team, groups, bombos_per_group, teams_per_group)
        if not valid_groups:
            return None

        index = rng.choice(valid_groups)
        groups[index].append(team)
        bombos_per_group[index].add(team.bombo)
        unassigned.pop(0)

    if unassigned or any(len(group) != teams_per_group for group in groups):
        return None
    return groups


def compute_group_draw(teams: List[Team], number_of_groups: int = NUMBER_OF_GROUPS,
                       teams_per_group: int = TEAMS_PER_GROUP,
                       max_draw_attempts: int = MAX_DRAW_ATTEMPTS,
                       max_assignment_attempts: int = MAX_ASSIGNMENT_ATTEMPTS,
                       rng: Optional[random.Random] = None) -> List[Dict]:
    """
    Draw teams into balanced groups.

    Args:
        teams: exactly number_of_groups * teams_per_group teams
        rng: random source, module-level random when omitted

    Returns:
        [{'group': 'A', 'teams': [Team, ...]}, ...] with each group's teams
        ordered by bombo (bombo 1 first)

    Raises:
        CountValidationError: wrong number of teams
        ExhaustionError: no valid distribution found within the attempt budget
    """
    if number_of_groups > len(GROUP_LABELS):
        raise ValidationError(f"At most {len(GROUP_LABELS)} groups are supported")

    expected = number_of_groups * teams_per_group
    if len(teams) != expected:
        raise CountValidationError(
            f"Tournament must have exactly {expected} teams for the group stage draw, but found {len(teams)}",
            expected=expected,
            found=len(teams),
        )

    seen_ids = set()
    for team in teams:
        if team.id in seen_ids:
            raise ValidationError(f"Team {team.id} is listed more than once")
        seen_ids.add(team.id)

    champions = [team for team in teams if team.is_current_champion]
    if len(champions) > 1:
        raise ValidationError('Only one team can be the current champion')

    rng = rng or random.Random()

    for attempt in range(max_draw_attempts):
        groups = _assign_teams_to_groups(teams, number_of_groups, teams_per_group,
                                         max_assignment_attempts, rng)
        if groups is not None:
            logger.info('Group draw found a valid distribution after %d attempt(s)', attempt + 1)
            return [
                {'group': GROUP_LABELS[i], 'teams': sorted(group, key=lambda t: t.bombo)}
                for i, group in enumerate(groups)
            ]

        if attempt % LOG_INTERVAL == 0:
            logger.debug('Attempt %d: searching for valid distribution...', attempt + 1)

    logger.warning('Group draw exhausted %d attempts without a valid distribution', max_draw_attempts)
    raise ExhaustionError(
        f"No valid distribution found after {max_draw_attempts} attempts",
        attempts=max_draw_attempts,
    )


def validate_group_draw(groups: List[Dict], teams_per_group: int = TEAMS_PER_GROUP) -> None:
    """Re-check a finished draw; raises ValidationError on the first violation."""
    seen = set()
    for entry in groups:
        label = entry['group']
        members = entry['teams']
        if len(members) != teams_per_group:
            raise ValidationError(f"Group {label} has {len(members)} teams, expected {teams_per_group}")

        used_bombos = set()
        placed = []
        for team in members:
            if team.id in seen:
                raise ValidationError(f"Team {team.name} appears in more than one group")
            seen.add(team.id)
            if not is_valid_placement(placed, team, used_bombos):
                raise ValidationError(f"Group {label} breaks the bombo or country rule at {team.name}")
            placed.append(team)
            used_bombos.add(team.bombo)
