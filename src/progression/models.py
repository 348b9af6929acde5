"""
Plain data records consumed and produced by the progression engine.
"""
import copy
import unicodedata
from typing import Dict, Optional, Tuple

from progression.errors import StateError, ValidationError


GROUP_LABELS = ('A', 'B', 'C', 'D', 'E', 'F', 'G', 'H')
BOMBOS = (1, 2, 3, 4)
QUALIFYING_ENTRY_STAGES = (1, 2, 3)
MATCH_DAYS = (1, 2, 3, 4, 5, 6)

GROUP_STAGE = 'groupStage'
QUALIFYING_STAGE = 'qualifyingStage'
KNOCKOUT_STAGE = 'knockoutStage'
STAGE_CONTEXTS = (GROUP_STAGE, QUALIFYING_STAGE, KNOCKOUT_STAGE)
TIE_STAGE_CONTEXTS = (QUALIFYING_STAGE, KNOCKOUT_STAGE)

ROUND_OF_16 = 'roundOf16'
QUARTER_FINAL = 'quarterFinal'
SEMI_FINAL = 'semiFinal'
FINAL = 'final'
KNOCKOUT_STAGES = (ROUND_OF_16, QUARTER_FINAL, SEMI_FINAL, FINAL)

FIRST_LEG = 'firstLeg'
SECOND_LEG = 'secondLeg'
SINGLE_MATCH = 'singleMatch'
MATCH_TYPES = (FIRST_LEG, SECOND_LEG, SINGLE_MATCH)

PENDING = 'pending'
FINISHED = 'finished'
CANCELLED = 'cancelled'
MATCH_STATUSES = (PENDING, FINISHED, CANCELLED)

COUNTRIES = (
    'argentina',
    'bolivia',
    'brasil',
    'chile',
    'colombia',
    'ecuador',
    'paraguay',
    'perú',
    'uruguay',
    'venezuela',
)

_COUNTRY_ALIASES = {
    'brazil': 'brasil',
    'peru': 'perú',
}


def _fold(text: str) -> str:
    """Lower-case and strip accents so 'Perú' and 'peru' compare equal."""
    decomposed = unicodedata.normalize('NFKD', text.strip().lower())
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


_FOLDED_COUNTRIES = {_fold(country): country for country in COUNTRIES}
_FOLDED_COUNTRIES.update({_fold(alias): country for alias, country in _COUNTRY_ALIASES.items()})


def normalize_country(raw: str) -> str:
    """
    Map a raw country string onto the canonical country list.

    Handles case, accents, English aliases and UTF-8 text that was decoded
    as Latin-1 somewhere upstream ('perÃº').
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValidationError('Country is required')

    text = raw.strip()
    try:
        text = text.encode('latin-1').decode('utf-8')
    except (UnicodeEncodeError, UnicodeDecodeError):
        pass

    country = _FOLDED_COUNTRIES.get(_fold(text))
    if country is None:
        raise ValidationError(f"Unknown country '{raw}'. Expected one of: {', '.join(COUNTRIES)}")
    return country


class Team:
    def __init__(self, name, country, bombo, id=None, ranking=None, points=0,
                 is_participating=True, is_current_champion=False,
                 is_from_qualifying_stage=False, qualifying_entry_stage=None,
                 tournament_id=None, logo=None):
        if not name:
            raise ValidationError('Team name is required')
        if bombo not in BOMBOS:
            raise ValidationError(f"bombo must be one of {list(BOMBOS)}, got {bombo!r}")
        if qualifying_entry_stage is not None and qualifying_entry_stage not in QUALIFYING_ENTRY_STAGES:
            raise ValidationError(
                f"qualifying_entry_stage must be one of {list(QUALIFYING_ENTRY_STAGES)}, got {qualifying_entry_stage!r}"
            )
        self.name = name
        self.country = normalize_country(country)
        self.bombo = bombo
        self.id = id if id is not None else name
        self.ranking = ranking
        self.points = points
        self.is_participating = is_participating
        self.is_current_champion = is_current_champion
        self.is_from_qualifying_stage = is_from_qualifying_stage
        self.qualifying_entry_stage = qualifying_entry_stage
        self.tournament_id = tournament_id
        self.logo = logo

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'country': self.country,
            'bombo': self.bombo,
            'ranking': self.ranking,
            'points': self.points,
            'is_participating': self.is_participating,
            'is_current_champion': self.is_current_champion,
            'is_from_qualifying_stage': self.is_from_qualifying_stage,
            'qualifying_entry_stage': self.qualifying_entry_stage,
            'tournament_id': self.tournament_id,
            'logo': self.logo,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Team':
        return cls(**data)

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, country={self.country}, bombo={self.bombo})"


class GroupRow:
    """One team's line in a group table."""

    def __init__(self, tournament_team_id, group_id, matches_played=0, wins=0,
                 draws=0, losses=0, goals_for=0, goals_against=0, points=0,
                 goal_difference=None):
        self.tournament_team_id = tournament_team_id
        self.group_id = group_id
        self.matches_played = matches_played
        self.wins = wins
        self.draws = draws
        self.losses = losses
        self.goals_for = goals_for
        self.goals_against = goals_against
        self.points = points
        # Always derived; a stored value is ignored.
        self.goal_difference = goals_for - goals_against

    @property
    def key(self) -> Tuple:
        return (self.tournament_team_id, self.group_id)

    def copy(self) -> 'GroupRow':
        return copy.copy(self)

    def to_dict(self) -> Dict:
        return {
            'tournament_team_id': self.tournament_team_id,
            'group_id': self.group_id,
            'matches_played': self.matches_played,
            'wins': self.wins,
            'draws': self.draws,
            'losses': self.losses,
            'goals_for': self.goals_for,
            'goals_against': self.goals_against,
            'goal_difference': self.goal_difference,
            'points': self.points,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'GroupRow':
        return cls(**data)

    def __eq__(self, other):
        if not isinstance(other, GroupRow):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"GroupRow(team={self.tournament_team_id}, group={self.group_id}, "
                f"pts={self.points}, gd={self.goal_difference}, gf={self.goals_for})")


class Tie:
    """
    A qualifying or knockout matchup, played over two legs or a single match.

    first_team_id / second_team_id are fixed when the tie is created and
    every goal is attributed through them, whatever the venue.
    """

    def __init__(self, id, tournament_id, stage_context, stage, first_team_id,
                 second_team_id, is_single_match=None,
                 first_team_aggregate_goals=0, second_team_aggregate_goals=0,
                 first_leg_played=False, second_leg_played=False,
                 penalties_played=False, first_team_penalty_goals=None,
                 second_team_penalty_goals=None, winner_team_id=None,
                 is_completed=False, first_leg_home_team_id=None):
        self.id = id
        self.tournament_id = tournament_id
        self.stage_context = stage_context
        self.stage = stage
        self.first_team_id = first_team_id
        self.second_team_id = second_team_id
        if is_single_match is None:
            is_single_match = stage_context == KNOCKOUT_STAGE and stage == FINAL
        self.is_single_match = is_single_match
        self.first_team_aggregate_goals = first_team_aggregate_goals
        self.second_team_aggregate_goals = second_team_aggregate_goals
        self.first_leg_played = first_leg_played
        self.second_leg_played = second_leg_played
        self.penalties_played = penalties_played
        self.first_team_penalty_goals = first_team_penalty_goals
        self.second_team_penalty_goals = second_team_penalty_goals
        self.winner_team_id = winner_team_id
        self.is_completed = is_completed
        self.first_leg_home_team_id = first_leg_home_team_id

    @property
    def teams(self) -> Tuple:
        return (self.first_team_id, self.second_team_id)

    @property
    def loser_team_id(self) -> Optional[str]:
        """The team to soft-eliminate once the tie is completed."""
        if not self.is_completed or self.winner_team_id is None:
            return None
        if self.winner_team_id == self.first_team_id:
            return self.second_team_id
        return self.first_team_id

    def involves(self, team_id) -> bool:
        return team_id in self.teams

    def copy(self) -> 'Tie':
        return copy.copy(self)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'stage_context': self.stage_context,
            'stage': self.stage,
            'first_team_id': self.first_team_id,
            'second_team_id': self.second_team_id,
            'is_single_match': self.is_single_match,
            'first_team_aggregate_goals': self.first_team_aggregate_goals,
            'second_team_aggregate_goals': self.second_team_aggregate_goals,
            'first_leg_played': self.first_leg_played,
            'second_leg_played': self.second_leg_played,
            'penalties_played': self.penalties_played,
            'first_team_penalty_goals': self.first_team_penalty_goals,
            'second_team_penalty_goals': self.second_team_penalty_goals,
            'winner_team_id': self.winner_team_id,
            'is_completed': self.is_completed,
            'first_leg_home_team_id': self.first_leg_home_team_id,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Tie':
        return cls(**data)

    def __repr__(self):
        return (f"Tie(id={self.id}, stage={self.stage}, {self.first_team_id} vs {self.second_team_id}, "
                f"aggregate={self.first_team_aggregate_goals}-{self.second_team_aggregate_goals}, "
                f"winner={self.winner_team_id})")


class Match:
    def __init__(self, id, tournament_id, stage_context, home_team_id, away_team_id,
                 stage=None, home_goals=None, away_goals=None, status=PENDING,
                 match_day=None, group_id=None, match_type=None, tie_id=None,
                 match_date=None, stadium=None):
        self.id = id
        self.tournament_id = tournament_id
        self.stage_context = stage_context
        self.stage = stage
        self.home_team_id = home_team_id
        self.away_team_id = away_team_id
        self.home_goals = home_goals
        self.away_goals = away_goals
        self.status = status
        self.match_day = match_day
        self.group_id = group_id
        self.match_type = match_type
        self.tie_id = tie_id
        self.match_date = match_date
        self.stadium = stadium

    @property
    def is_finished(self) -> bool:
        return self.status == FINISHED

    @property
    def teams(self) -> Tuple:
        return (self.home_team_id, self.away_team_id)

    def goals_for(self, team_id) -> int:
        """Goals scored by team_id in this match."""
        if team_id == self.home_team_id:
            return self.home_goals
        if team_id == self.away_team_id:
            return self.away_goals
        raise ValidationError(f"Team {team_id} did not play match {self.id}")

    def goals_against(self, team_id) -> int:
        if team_id == self.home_team_id:
            return self.away_goals
        if team_id == self.away_team_id:
            return self.home_goals
        raise ValidationError(f"Team {team_id} did not play match {self.id}")

    def copy(self) -> 'Match':
        return copy.copy(self)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'stage_context': self.stage_context,
            'stage': self.stage,
            'home_team_id': self.home_team_id,
            'away_team_id': self.away_team_id,
            'home_goals': self.home_goals,
            'away_goals': self.away_goals,
            'status': self.status,
            'match_day': self.match_day,
            'group_id': self.group_id,
            'match_type': self.match_type,
            'tie_id': self.tie_id,
            'match_date': self.match_date,
            'stadium': self.stadium,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        return cls(**data)

    def __repr__(self):
        score = f"{self.home_goals}-{self.away_goals}" if self.is_finished else self.status
        return f"Match(id={self.id}, {self.home_team_id} vs {self.away_team_id}, {score})"


def finish_match(match: Match, home_goals: int, away_goals: int) -> Match:
    """Return a finished copy of a pending match. Finished matches never change again."""
    if match.status != PENDING:
        raise StateError(f"Match {match.id} is already {match.status}")
    for goals in (home_goals, away_goals):
        if not isinstance(goals, int) or isinstance(goals, bool) or goals < 0:
            raise ValidationError('Goals must be non-negative integers')
    finished = match.copy()
    finished.home_goals = home_goals
    finished.away_goals = away_goals
    finished.status = FINISHED
    return finished


def cancel_match(match: Match) -> Match:
    if match.status != PENDING:
        raise StateError(f"Match {match.id} is already {match.status}")
    cancelled = match.copy()
    cancelled.status = CANCELLED
    return cancelled
