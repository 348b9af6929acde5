"""
YAML-backed tournament store.

Owns persistence and transaction boundaries around the progression engine:
every write runs under a file lock, loads the whole tournament, applies
the engine's result and saves once. An error anywhere in between leaves
the file untouched.
"""
import os
import logging
from contextlib import contextmanager
from typing import Dict, Generator, List, Optional

import yaml
from filelock import FileLock

from progression.advancement import create_tie, record_leg_result, record_penalty_shootout, soft_eliminate
from progression.elimination import build_bracket_shape, resolve_bracket, stage_for_matchup
from progression.errors import ConflictError, ValidationError
from progression.group_draw import TEAMS_PER_GROUP, validate_group_draw
from progression.models import (
    CANCELLED,
    FIRST_LEG,
    GROUP_STAGE,
    KNOCKOUT_STAGE,
    GroupRow,
    Match,
    Team,
    Tie,
    cancel_match,
    finish_match,
)
from progression.ranking import rank_group
from progression.standings import apply_group_match, new_group_row
from progression.validation import validate_match_creation
from settings import get_data_dir

logger = logging.getLogger(__name__)

STORE_FILENAME = 'tournament.yaml'


def _empty_state() -> dict:
    return {
        'teams': [],
        'groups': [],
        'group_rows': [],
        'ties': [],
        'matches': [],
        'bracket': [],
    }


class TournamentStore:
    """One tournament persisted as a single YAML file."""

    def __init__(self, tournament_id: str = 'default', data_dir: Optional[str] = None,
                 lock_timeout: float = 10, teams_per_group: int = TEAMS_PER_GROUP):
        self.tournament_id = tournament_id
        self.data_dir = data_dir or get_data_dir()
        self.tournament_dir = os.path.join(self.data_dir, 'tournaments', tournament_id)
        self.path = os.path.join(self.tournament_dir, STORE_FILENAME)
        self.teams_per_group = teams_per_group
        os.makedirs(self.tournament_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(self.tournament_dir, '.lock'), timeout=lock_timeout)

    def __repr__(self):
        return f"TournamentStore(tournament_id={self.tournament_id}, path={self.path})"

    # -- raw file access -------------------------------------------------

    def _load(self) -> dict:
        state = _empty_state()
        if not os.path.exists(self.path):
            return state
        with open(self.path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if data:
            state.update(data)
        return state

    def _save(self, state: dict):
        tmp_path = self.path + '.tmp'
        with open(tmp_path, 'w', encoding='utf-8') as f:
            yaml.dump(state, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        os.replace(tmp_path, self.path)

    @contextmanager
    def transaction(self) -> Generator[dict, None, None]:
        """Lock, load, yield the state for changes, then save once."""
        with self._lock:
            state = self._load()
            yield state
            self._save(state)

    def snapshot(self) -> dict:
        with self._lock:
            return self._load()

    # -- lookups ---------------------------------------------------------

    @staticmethod
    def _teams(state: dict) -> List[Team]:
        return [Team.from_dict(data) for data in state['teams']]

    @staticmethod
    def _ties(state: dict) -> List[Tie]:
        return [Tie.from_dict(data) for data in state['ties']]

    @staticmethod
    def _matches(state: dict) -> List[Match]:
        return [Match.from_dict(data) for data in state['matches']]

    @staticmethod
    def _index_of(records: List[dict], record_id, kind: str) -> int:
        for i, record in enumerate(records):
            if record['id'] == record_id:
                return i
        raise ValidationError(f"{kind} {record_id} not found")

    def _team(self, state: dict, team_id) -> Team:
        return Team.from_dict(state['teams'][self._index_of(state['teams'], team_id, 'Team')])

    def _group_team_ids(self, state: dict, group_id) -> List:
        for group in state['groups']:
            if group['group'] == group_id:
                return list(group['team_ids'])
        raise ValidationError(f"Group {group_id} not found")

    def teams(self) -> List[Team]:
        return self._teams(self.snapshot())

    def ties(self) -> List[Tie]:
        return self._ties(self.snapshot())

    def matches(self) -> List[Match]:
        return self._matches(self.snapshot())

    def get_team(self, team_id) -> Team:
        return self._team(self.snapshot(), team_id)

    def get_tie(self, tie_id) -> Tie:
        state = self.snapshot()
        return Tie.from_dict(state['ties'][self._index_of(state['ties'], tie_id, 'Tie')])

    def get_match(self, match_id) -> Match:
        state = self.snapshot()
        return Match.from_dict(state['matches'][self._index_of(state['matches'], match_id, 'Match')])

    # -- teams and groups ------------------------------------------------

    def _bind_team(self, team: Team) -> Team:
        if team.tournament_id is None:
            team.tournament_id = self.tournament_id
        elif team.tournament_id != self.tournament_id:
            raise ValidationError(f"Team {team.id} belongs to tournament {team.tournament_id}")
        return team

    def _add_team(self, state: dict, team: Team):
        if any(existing['id'] == team.id for existing in state['teams']):
            raise ConflictError(f"Team {team.id} is already registered in tournament {self.tournament_id}")
        state['teams'].append(team.to_dict())

    def register_team(self, team: Team) -> Team:
        """Add a team to this tournament. Team ids are unique per tournament."""
        self._bind_team(team)
        with self.transaction() as state:
            self._add_team(state, team)
        logger.info(f'Registered team {team.id} in {self.tournament_id}')
        return team

    def save_group_draw(self, groups: List[Dict]):
        """
        Persist a group draw and give every drawn team a zeroed table row.

        Args:
            groups: output of compute_group_draw
        """
        validate_group_draw(groups, self.teams_per_group)

        with self.transaction() as state:
            self._add_group_draw(state, groups)
        logger.info(f'Saved group draw for {self.tournament_id}: {len(groups)} groups')

    def register_teams_and_draw(self, teams: List[Team], groups: List[Dict]):
        """
        Register teams and save their group draw in one transaction.

        Either every team is registered and the draw saved, or the file is
        left as it was.
        """
        validate_group_draw(groups, self.teams_per_group)
        for team in teams:
            self._bind_team(team)

        with self.transaction() as state:
            for team in teams:
                self._add_team(state, team)
            self._add_group_draw(state, groups)
        logger.info(f'Registered {len(teams)} teams and saved group draw for {self.tournament_id}')

    def _add_group_draw(self, state: dict, groups: List[Dict]):
        if state['groups']:
            raise ConflictError(f"Tournament {self.tournament_id} already has a group draw")
        registered = {team['id'] for team in state['teams']}
        seen_rows = set()
        for entry in groups:
            team_ids = [team.id for team in entry['teams']]
            for team_id in team_ids:
                if team_id not in registered:
                    raise ValidationError(f"Team {team_id} is not part of the specified tournament")
                row = new_group_row(team_id, entry['group'])
                if row.key in seen_rows:
                    raise ConflictError(f"Team {team_id} already has a row in group {entry['group']}")
                seen_rows.add(row.key)
                state['group_rows'].append(row.to_dict())
            state['groups'].append({'group': entry['group'], 'team_ids': team_ids})

    # -- ties and matches ------------------------------------------------

    def create_tie(self, tie_id, stage_context: str, stage, first_team_id, second_team_id,
                   is_single_match: Optional[bool] = None) -> Tie:
        with self.transaction() as state:
            if any(existing['id'] == tie_id for existing in state['ties']):
                raise ConflictError(f"Tie {tie_id} already exists")
            if stage_context == KNOCKOUT_STAGE:
                self._check_bracket_slot(state, tie_id, stage, first_team_id, second_team_id)
            tie = create_tie(
                tie_id,
                self.tournament_id,
                stage_context,
                stage,
                self._team(state, first_team_id),
                self._team(state, second_team_id),
                self._ties(state),
                is_single_match=is_single_match,
            )
            state['ties'].append(tie.to_dict())
        logger.info(f'Created tie {tie!r}')
        return tie

    def _check_bracket_slot(self, state: dict, tie_id, stage, first_team_id, second_team_id):
        """A knockout tie named after a saved bracket matchup must be that matchup."""
        if not state['bracket']:
            return
        resolved = resolve_bracket(build_bracket_shape(state['bracket']), self._winners(state))
        slots = {m['matchup_id']: m for round_data in resolved['rounds'] for m in round_data['matchups']}
        slot = slots.get(tie_id)
        if slot is None:
            return
        if stage != stage_for_matchup(tie_id):
            raise ValidationError(f"Tie {tie_id} belongs to {stage_for_matchup(tie_id)}, got {stage}")
        if slot['is_placeholder']:
            raise ValidationError(f"Teams for {tie_id} are not known yet: {slot['teams'][0]} vs {slot['teams'][1]}")
        if {first_team_id, second_team_id} != set(slot['teams']):
            raise ValidationError(f"Tie {tie_id} must be played by {slot['teams'][0]} and {slot['teams'][1]}")

    def create_match(self, match: Match) -> Match:
        """Validate a new match against the stored tournament and persist it."""
        if match.tournament_id != self.tournament_id:
            raise ValidationError(f"Match {match.id} belongs to tournament {match.tournament_id}")

        with self.transaction() as state:
            if any(existing['id'] == match.id for existing in state['matches']):
                raise ConflictError(f"Match {match.id} already exists")

            context = {'tournament_team_ids': [team['id'] for team in state['teams']]}
            if match.stage_context == GROUP_STAGE:
                if match.group_id is not None:
                    context['group_team_ids'] = self._group_team_ids(state, match.group_id)
            elif match.tie_id is not None:
                ties = {tie.id: tie for tie in self._ties(state)}
                tie_matches = [m for m in self._matches(state) if m.tie_id == match.tie_id]
                context['tie'] = ties.get(match.tie_id)
                context['tie_matches'] = tie_matches
                context['first_leg'] = next(
                    (m for m in tie_matches if m.match_type == FIRST_LEG and m.status != CANCELLED), None
                )

            validate_match_creation(match, context)
            state['matches'].append(match.to_dict())
        logger.info(f'Created match {match!r}')
        return match

    def finish_match(self, match_id, home_goals: int, away_goals: int, penalty_goals=None) -> Match:
        """
        Record a final score and everything that follows from it.

        Group matches update both table rows. Tie matches update the tie and,
        when it completes, soft-eliminate the loser. All of it is saved
        together.
        """
        with self.transaction() as state:
            index = self._index_of(state['matches'], match_id, 'Match')
            finished = finish_match(Match.from_dict(state['matches'][index]), home_goals, away_goals)

            if finished.stage_context == GROUP_STAGE:
                self._apply_group_result(state, finished)
            else:
                self._apply_tie_result(state, finished, penalty_goals)

            state['matches'][index] = finished.to_dict()
        logger.info(f'Finished match {finished!r}')
        return finished

    def cancel_match(self, match_id) -> Match:
        with self.transaction() as state:
            index = self._index_of(state['matches'], match_id, 'Match')
            cancelled = cancel_match(Match.from_dict(state['matches'][index]))
            state['matches'][index] = cancelled.to_dict()
        logger.info(f'Cancelled match {match_id}')
        return cancelled

    def _apply_group_result(self, state: dict, match: Match):
        group_rows = [GroupRow.from_dict(data) for data in state['group_rows']]
        rows = {row.tournament_team_id: row for row in group_rows if row.group_id == match.group_id}
        updated = apply_group_match(rows, match)
        state['group_rows'] = [
            updated[row.tournament_team_id].to_dict() if row.group_id == match.group_id else row.to_dict()
            for row in group_rows
        ]

    def _apply_tie_result(self, state: dict, match: Match, penalty_goals):
        index = self._index_of(state['ties'], match.tie_id, 'Tie')
        tie = record_leg_result(Tie.from_dict(state['ties'][index]), match, penalty_goals)
        state['ties'][index] = tie.to_dict()
        if tie.is_completed:
            self._eliminate(state, tie)

    def _eliminate(self, state: dict, tie: Tie):
        index = self._index_of(state['teams'], tie.loser_team_id, 'Team')
        loser = soft_eliminate(Team.from_dict(state['teams'][index]))
        state['teams'][index] = loser.to_dict()
        logger.info(f'Tie {tie.id} won by {tie.winner_team_id}; {loser.id} eliminated')

    def record_penalties(self, tie_id, first_team_goals: int, second_team_goals: int) -> Tie:
        with self.transaction() as state:
            index = self._index_of(state['ties'], tie_id, 'Tie')
            tie = record_penalty_shootout(Tie.from_dict(state['ties'][index]), first_team_goals, second_team_goals)
            state['ties'][index] = tie.to_dict()
            self._eliminate(state, tie)
        return tie

    # -- read models -----------------------------------------------------

    def group_standings(self) -> Dict[str, List[GroupRow]]:
        """Ranked table per group, head-to-head applied between level teams."""
        state = self.snapshot()
        finished = [m for m in self._matches(state) if m.stage_context == GROUP_STAGE and m.is_finished]
        rows = [GroupRow.from_dict(data) for data in state['group_rows']]

        standings = {}
        for group in state['groups']:
            label = group['group']
            group_rows = [row for row in rows if row.group_id == label]
            group_matches = [m for m in finished if m.group_id == label]
            standings[label] = rank_group(group_rows, group_matches)
        return standings

    def knockout_groups(self) -> List[Dict]:
        """Group tables in the shape draw_knockout_stage expects."""
        state = self.snapshot()
        finished = [m for m in self._matches(state) if m.stage_context == GROUP_STAGE and m.is_finished]
        rows = [GroupRow.from_dict(data) for data in state['group_rows']]
        return [
            {
                'group': group['group'],
                'rows': [row for row in rows if row.group_id == group['group']],
                'matches': [m for m in finished if m.group_id == group['group']],
            }
            for group in state['groups']
        ]

    def knockout_winners(self) -> Dict[str, str]:
        """matchup id -> winner for every completed knockout tie."""
        return self._winners(self.snapshot())

    def _winners(self, state: dict) -> Dict[str, str]:
        return {
            tie.id: tie.winner_team_id
            for tie in self._ties(state)
            if tie.stage_context == KNOCKOUT_STAGE and tie.is_completed
        }

    def save_bracket(self, matchups: List[Dict]):
        """Persist the first knockout round; later rounds are derived from it."""
        with self.transaction() as state:
            if state['bracket']:
                raise ConflictError(f"Tournament {self.tournament_id} already has a knockout draw")
            state['bracket'] = [
                {
                    'matchup_id': m['matchup_id'],
                    'first_team': m['first_team']['team_id'] if isinstance(m['first_team'], dict) else m['first_team'],
                    'second_team': m['second_team']['team_id'] if isinstance(m['second_team'], dict) else m['second_team'],
                }
                for m in matchups
            ]
        logger.info(f'Saved knockout draw for {self.tournament_id}: {len(matchups)} matchups')

    def bracket(self) -> Optional[Dict]:
        """Stored knockout bracket with recorded winners advanced, or None before the draw."""
        state = self.snapshot()
        if not state['bracket']:
            return None
        return resolve_bracket(build_bracket_shape(state['bracket']), self._winners(state))
