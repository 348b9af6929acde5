"""
Unit tests for the data models (Team, GroupRow, Tie, Match).
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.errors import StateError, ValidationError
from progression.models import (
    CANCELLED,
    FINAL,
    FINISHED,
    KNOCKOUT_STAGE,
    PENDING,
    QUALIFYING_STAGE,
    ROUND_OF_16,
    GroupRow,
    Match,
    Team,
    Tie,
    cancel_match,
    finish_match,
    normalize_country,
)


class TestCountryNormalization:
    """Tests for mapping raw country strings onto the canonical list."""

    def test_canonical_value_unchanged(self):
        """Test a canonical value passes through."""
        assert normalize_country('argentina') == 'argentina'

    def test_case_and_whitespace(self):
        """Test case and surrounding whitespace are ignored."""
        assert normalize_country('  Chile ') == 'chile'

    def test_accent_folding(self):
        """Test 'peru' and 'Perú' both map to the accented canonical form."""
        assert normalize_country('peru') == 'perú'
        assert normalize_country('Perú') == 'perú'

    def test_english_alias(self):
        """Test the English spelling of Brasil is accepted."""
        assert normalize_country('Brazil') == 'brasil'

    def test_mojibake_repaired(self):
        """Test UTF-8 text mis-decoded as Latin-1 is repaired."""
        assert normalize_country('perÃº') == 'perú'

    def test_unknown_country_rejected(self):
        """Test a country outside the list raises ValidationError."""
        with pytest.raises(ValidationError):
            normalize_country('spain')

    def test_empty_country_rejected(self):
        """Test an empty country raises ValidationError."""
        with pytest.raises(ValidationError):
            normalize_country('  ')


class TestTeam:
    """Tests for the Team model."""

    def test_team_creation(self):
        """Test creating a team with the required fields."""
        team = Team(name="River", country='Argentina', bombo=1)
        assert team.id == "River"
        assert team.country == 'argentina'
        assert team.is_participating is True
        assert team.is_from_qualifying_stage is False

    def test_invalid_bombo(self):
        """Test bombo outside 1-4 is rejected."""
        with pytest.raises(ValidationError):
            Team(name="River", country='argentina', bombo=5)

    def test_invalid_entry_stage(self):
        """Test qualifying entry stage outside 1-3 is rejected."""
        with pytest.raises(ValidationError):
            Team(name="River", country='argentina', bombo=4, qualifying_entry_stage=4)

    def test_dict_round_trip_keeps_flags(self):
        """Test to_dict/from_dict keep every flag."""
        team = Team(name="Nacional", country='uruguay', bombo=2, id='nac', ranking=7,
                    is_current_champion=True, tournament_id='t1')
        restored = Team.from_dict(team.to_dict())
        assert restored.to_dict() == team.to_dict()

    def test_team_repr(self):
        """Test team string representation."""
        repr_str = repr(Team(name="Olimpia", country='paraguay', bombo=3))
        assert "Olimpia" in repr_str
        assert "paraguay" in repr_str


class TestGroupRow:
    """Tests for the GroupRow model."""

    def test_goal_difference_derived(self):
        """Test goal difference always equals goals for minus goals against."""
        row = GroupRow('a', 'A', goals_for=5, goals_against=2, goal_difference=99)
        assert row.goal_difference == 3

    def test_copy_is_independent(self):
        """Test modifying a copy leaves the original alone."""
        row = GroupRow('a', 'A', points=3)
        clone = row.copy()
        clone.points = 6
        assert row.points == 3

    def test_equality_by_value(self):
        """Test rows with the same values compare equal."""
        assert GroupRow('a', 'A', wins=1, points=3) == GroupRow('a', 'A', wins=1, points=3)
        assert GroupRow('a', 'A') != GroupRow('b', 'A')


class TestTie:
    """Tests for the Tie model."""

    def test_knockout_final_defaults_to_single_match(self):
        """Test a knockout final is a single match unless told otherwise."""
        tie = Tie('F', 't1', KNOCKOUT_STAGE, FINAL, 'a', 'b')
        assert tie.is_single_match is True

    def test_other_ties_are_two_legged(self):
        """Test non-final ties default to two legs."""
        assert Tie('R16_1', 't1', KNOCKOUT_STAGE, ROUND_OF_16, 'a', 'b').is_single_match is False
        assert Tie('q1', 't1', QUALIFYING_STAGE, 1, 'a', 'b').is_single_match is False

    def test_explicit_single_match_respected(self):
        """Test an explicit flag overrides the default."""
        tie = Tie('F', 't1', KNOCKOUT_STAGE, FINAL, 'a', 'b', is_single_match=False)
        assert tie.is_single_match is False

    def test_loser_only_when_completed(self):
        """Test loser_team_id is None until the tie is completed."""
        tie = Tie('q1', 't1', QUALIFYING_STAGE, 1, 'a', 'b', winner_team_id='b')
        assert tie.loser_team_id is None
        tie.is_completed = True
        assert tie.loser_team_id == 'a'


class TestMatch:
    """Tests for the Match model and its status transitions."""

    def _match(self):
        return Match('m1', 't1', QUALIFYING_STAGE, 'a', 'b', stage=1, match_type='firstLeg', tie_id='q1')

    def test_goals_by_team(self):
        """Test goals are read by team identity."""
        match = finish_match(self._match(), 2, 1)
        assert match.goals_for('a') == 2
        assert match.goals_for('b') == 1
        assert match.goals_against('b') == 2

    def test_goals_for_unknown_team(self):
        """Test asking about a team that did not play raises."""
        with pytest.raises(ValidationError):
            self._match().goals_for('c')

    def test_finish_returns_copy(self):
        """Test finishing leaves the pending match untouched."""
        match = self._match()
        finished = finish_match(match, 0, 0)
        assert finished.status == FINISHED
        assert match.status == PENDING
        assert match.home_goals is None

    def test_finished_match_cannot_change(self):
        """Test a finished match cannot be finished again."""
        finished = finish_match(self._match(), 1, 0)
        with pytest.raises(StateError):
            finish_match(finished, 2, 0)

    def test_negative_goals_rejected(self):
        """Test negative scores are rejected."""
        with pytest.raises(ValidationError):
            finish_match(self._match(), -1, 0)

    def test_cancel(self):
        """Test cancelling a pending match, and not a cancelled one."""
        cancelled = cancel_match(self._match())
        assert cancelled.status == CANCELLED
        with pytest.raises(StateError):
            cancel_match(cancelled)
