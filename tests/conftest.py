"""
Shared pytest fixtures for tournament progression tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - skip the repeated-draw property checks
"""
import pytest
import sys
import os
import random

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.models import (
    COUNTRIES,
    FINISHED,
    GROUP_STAGE,
    GroupRow,
    Match,
    Team,
)


def make_row(team_id, points=0, goal_difference=0, goals_for=0, group_id='A', **kwargs):
    """Build a GroupRow from the three ranking keys."""
    return GroupRow(
        tournament_team_id=team_id,
        group_id=group_id,
        points=points,
        goals_for=goals_for,
        goals_against=goals_for - goal_difference,
        **kwargs,
    )


def make_group_match(match_id, home, away, home_goals=None, away_goals=None, group_id='A',
                     match_day=1, tournament_id='t1'):
    """Group stage match; finished when both scores are given."""
    finished = home_goals is not None and away_goals is not None
    return Match(
        id=match_id,
        tournament_id=tournament_id,
        stage_context=GROUP_STAGE,
        home_team_id=home,
        away_team_id=away,
        home_goals=home_goals,
        away_goals=away_goals,
        status=FINISHED if finished else 'pending',
        match_day=match_day,
        group_id=group_id,
    )


@pytest.fixture
def rng():
    """Seeded random source so draws are repeatable inside a test."""
    return random.Random(20240601)


@pytest.fixture
def draw_teams():
    """
    32 teams, 8 per bombo, countries spread so a valid draw exists.

    Club 1 is the current champion; the last two bombo-4 clubs entered
    through the qualifying stage.
    """
    teams = []
    for i in range(32):
        bombo = i // 8 + 1
        teams.append(Team(
            name=f"Club {i + 1}",
            country=COUNTRIES[i % len(COUNTRIES)],
            bombo=bombo,
            ranking=i + 1,
            is_current_champion=(i == 0),
            is_from_qualifying_stage=(i >= 30),
            qualifying_entry_stage=3 if i >= 30 else None,
            tournament_id='t1',
        ))
    return teams


@pytest.fixture
def impossible_draw_teams():
    """32 teams where nine non-qualifier clubs share a country: eight groups cannot hold them."""
    teams = []
    for i in range(32):
        country = 'argentina' if i % 4 == 0 or i == 1 else COUNTRIES[1 + i % 9]
        teams.append(Team(
            name=f"Club {i + 1}",
            country=country,
            bombo=i // 8 + 1,
            tournament_id='t1',
        ))
    return teams


@pytest.fixture
def qualifying_teams():
    """6 stage-1 and 13 stage-2 entrants, plus teams the qualifying draw must ignore."""
    teams = []
    for i in range(6):
        teams.append(Team(
            name=f"first round {i + 1}",
            country=COUNTRIES[i % len(COUNTRIES)],
            bombo=4,
            ranking=i + 1,
            is_from_qualifying_stage=True,
            qualifying_entry_stage=1,
            tournament_id='t1',
        ))
    for i in range(13):
        teams.append(Team(
            name=f"second round {i + 1}",
            country=COUNTRIES[i % len(COUNTRIES)],
            bombo=4,
            ranking=i + 1,
            is_from_qualifying_stage=True,
            qualifying_entry_stage=2,
            tournament_id='t1',
        ))
    teams.append(Team(
        name="late entrant",
        country='chile',
        bombo=4,
        is_from_qualifying_stage=True,
        qualifying_entry_stage=3,
        tournament_id='t1',
    ))
    teams.append(Team(name="group side", country='uruguay', bombo=1, tournament_id='t1'))
    return teams


@pytest.fixture
def tie_teams():
    """Two qualifying entrants and two group-stage clubs of tournament t1."""
    return {
        'qa': Team(name="qa", country='bolivia', bombo=4, is_from_qualifying_stage=True,
                   qualifying_entry_stage=1, tournament_id='t1'),
        'qb': Team(name="qb", country='ecuador', bombo=4, is_from_qualifying_stage=True,
                   qualifying_entry_stage=1, tournament_id='t1'),
        'ka': Team(name="ka", country='argentina', bombo=1, tournament_id='t1'),
        'kb': Team(name="kb", country='brasil', bombo=1, tournament_id='t1'),
    }


@pytest.fixture
def final_group_tables():
    """Eight finished groups; in each, <label>1 wins and <label>2 is runner-up."""
    groups = []
    for label in 'ABCDEFGH':
        groups.append({
            'group': label,
            'rows': [
                make_row(f"{label}3", points=4, goal_difference=-1, goals_for=3, group_id=label),
                make_row(f"{label}1", points=9, goal_difference=5, goals_for=7, group_id=label),
                make_row(f"{label}4", points=1, goal_difference=-6, goals_for=1, group_id=label),
                make_row(f"{label}2", points=6, goal_difference=2, goals_for=5, group_id=label),
            ],
        })
    return groups
