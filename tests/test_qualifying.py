"""
Tests for the three-phase qualifying draw.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from progression.errors import CountValidationError
from progression.models import QUALIFYING_STAGE, Team, Tie
from progression.qualifying import (
    compute_qualifying_draw,
    qualifying_draw_format,
    sort_by_ranking,
    winner_placeholder,
)


def _names(slots):
    return [slot if isinstance(slot, str) else slot.name for slot in slots]


class TestHelpers:
    """Tests for ranking order and placeholder text."""

    def test_sort_by_ranking_unranked_last(self):
        """Test ranked teams come first by ranking, unranked keep input order."""
        teams = [
            Team(name="c", country='chile', bombo=4),
            Team(name="b", country='chile', bombo=4, ranking=2),
            Team(name="d", country='chile', bombo=4),
            Team(name="a", country='chile', bombo=4, ranking=1),
        ]
        assert [t.name for t in sort_by_ranking(teams)] == ["a", "b", "c", "d"]

    def test_winner_placeholder_title_case(self):
        """Test placeholders title-case real team names."""
        first = Team(name="deportivo CALI", country='colombia', bombo=4)
        second = Team(name="the strongest", country='bolivia', bombo=4)
        assert winner_placeholder(first, second) == "Winner of Deportivo Cali vs The Strongest"

    def test_nested_placeholder(self):
        """Test a placeholder slot is embedded verbatim."""
        team = Team(name="aucas", country='ecuador', bombo=4)
        assert winner_placeholder(team, "Winner of A vs B") == "Winner of Aucas vs Winner of A vs B"


class TestQualifyingDraw:
    """Tests for compute_qualifying_draw."""

    def test_match_counts(self, qualifying_teams, rng):
        """Test 3, 8 and 4 matches in the three phases."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        assert len(draw['phase1']) == 3
        assert len(draw['phase2']) == 8
        assert len(draw['phase3']) == 4

    def test_phase1_best_three_against_worst_three(self, qualifying_teams, rng):
        """Test each phase 1 match pairs a top-3 with a bottom-3 ranked team."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        for match in draw['phase1']:
            assert match['first_team'].ranking <= 3
            assert match['second_team'].ranking >= 4

    def test_phase2_pots(self, qualifying_teams, rng):
        """Test the 8 best direct entrants face the other 5 plus the 3 phase 1 winners."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        phase1_placeholders = {m['winner_placeholder'] for m in draw['phase1']}
        second_slots = []
        for match in draw['phase2']:
            assert isinstance(match['first_team'], Team)
            assert match['first_team'].ranking <= 8
            second_slots.append(match['second_team'])

        placeholders = [s for s in second_slots if isinstance(s, str)]
        assert set(placeholders) == phase1_placeholders
        assert sorted(s.ranking for s in second_slots if not isinstance(s, str)) == [9, 10, 11, 12, 13]

    def test_phase3_uses_phase2_winners(self, qualifying_teams, rng):
        """Test phase 3 pairs every phase 2 winner placeholder exactly once."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        slots = [m['first_team'] for m in draw['phase3']] + [m['second_team'] for m in draw['phase3']]
        assert sorted(slots) == sorted(m['winner_placeholder'] for m in draw['phase2'])
        for match in draw['phase3']:
            assert match['winner_placeholder'].startswith("Qualified to Groups: Winner of ")

    def test_match_ids_and_stages(self, qualifying_teams, rng):
        """Test ids follow phase<n>-match-<i> and carry their phase as stage."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        assert [m['id'] for m in draw['phase1']] == ['phase1-match-1', 'phase1-match-2', 'phase1-match-3']
        assert {m['stage'] for m in draw['phase2']} == {2}

    def test_summary(self, qualifying_teams, rng):
        """Test the summary counts only qualifying-stage teams."""
        summary = compute_qualifying_draw(qualifying_teams, rng)['summary']
        assert summary['total_teams'] == 20
        assert summary['phase1_teams'] == 6
        assert summary['phase2_teams'] == 16
        assert summary['phase3_teams'] == 8
        assert summary['qualified_to_group_stage'] == 4

    def test_every_entrant_drawn_once(self, qualifying_teams, rng):
        """Test each stage 1 and stage 2 entrant appears in exactly one match."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        drawn = []
        for match in draw['phase1'] + draw['phase2']:
            drawn.extend(_names([match['first_team'], match['second_team']]))
        real = [name for name in drawn if not name.startswith("Winner of")]
        assert sorted(real) == sorted(
            t.name for t in qualifying_teams if t.qualifying_entry_stage in (1, 2)
        )

    def test_five_phase1_teams_rejected(self, qualifying_teams):
        """Test 5 stage 1 entrants raise a count error naming 6."""
        teams = [t for t in qualifying_teams if t.name != "first round 6"]
        with pytest.raises(CountValidationError) as exc_info:
            compute_qualifying_draw(teams)
        assert exc_info.value.expected == 6
        assert exc_info.value.found == 5
        assert "Phase 1 requires exactly 6 teams" in str(exc_info.value)

    def test_wrong_phase2_count_rejected(self, qualifying_teams):
        """Test anything but 13 direct stage 2 entrants is rejected."""
        teams = [t for t in qualifying_teams if t.name != "second round 13"]
        with pytest.raises(CountValidationError) as exc_info:
            compute_qualifying_draw(teams)
        assert exc_info.value.expected == 13


class TestQualifyingDrawFormat:
    """Tests for overlaying tie progress onto the draw."""

    def test_completed_tie_overlaid(self, qualifying_teams, rng):
        """Test a completed phase 1 tie shows its aggregate and winner."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        match = draw['phase1'][0]
        tie = Tie('q1', 't1', QUALIFYING_STAGE, 1, match['second_team'].id, match['first_team'].id,
                  first_team_aggregate_goals=3, second_team_aggregate_goals=1,
                  first_leg_played=True, second_leg_played=True,
                  winner_team_id=match['second_team'].id, is_completed=True)

        formatted = qualifying_draw_format(draw, [tie])
        entry = formatted['phase1'][0]
        assert entry['tie_id'] == 'q1'
        assert entry['winner_team'] == match['second_team'].id
        assert formatted['summary']['completed_matches'] == 1
        assert formatted['summary']['pending_matches'] == 14
        assert formatted['summary']['total_matches'] == 15

    def test_placeholder_matches_stay_pending(self, qualifying_teams, rng):
        """Test phase 3 matches are never matched to a tie while they hold placeholders."""
        draw = compute_qualifying_draw(qualifying_teams, rng)
        formatted = qualifying_draw_format(draw, [])
        assert all('tie_id' not in m for m in formatted['phase3'])
        assert formatted['summary']['completed_matches'] == 0
