"""
Unit tests for Swiss configuration and pairing.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from ttengine.errors import InvalidEntryCount, InvalidRoundConfig, NoPairingAvailable
from ttengine.models import Match
from ttengine.swiss import (
    default_rounds,
    expected_matches,
    is_round_complete,
    pair_round,
    played_pairs,
    round_bounds,
    scores,
    validate_config,
)


def play_round(pairs, matches, round_num):
    """First player of each pair wins 3:1."""
    for a, b in pairs:
        matches.append(Match(f"M{len(matches) + 1}", a, b, 3, 1, round=round_num))


class TestConfig:
    """Tests for round bounds and validation."""

    def test_round_bounds(self):
        """Test bounds are ceil(log2 n) + 1 to n / 2."""
        assert round_bounds(8) == (4, 4)
        assert round_bounds(12) == (5, 6)
        assert round_bounds(16) == (5, 8)
        assert round_bounds(32) == (6, 16)

    def test_default_rounds(self):
        """Test the default is the minimum round count."""
        assert default_rounds(16) == 5

    def test_odd_count_rejected(self):
        """Test Swiss needs an even field."""
        with pytest.raises(InvalidEntryCount):
            validate_config(9, 4)

    def test_too_few_rejected(self):
        """Test Swiss needs at least 2 players."""
        with pytest.raises(InvalidEntryCount):
            validate_config(0, 1)

    def test_rounds_outside_bounds(self):
        """Test round counts outside the bounds are rejected with the bounds in context."""
        with pytest.raises(InvalidRoundConfig) as exc_info:
            validate_config(16, 9)
        assert exc_info.value.context['min_rounds'] == 5
        assert exc_info.value.context['max_rounds'] == 8
        with pytest.raises(InvalidRoundConfig):
            validate_config(16, 4)

    def test_empty_bounds_rejected(self):
        """Test small fields where no round count fits are rejected."""
        with pytest.raises(InvalidRoundConfig):
            validate_config(4, 2)

    def test_valid_config(self):
        """Test a round count inside the bounds passes."""
        validate_config(16, 6)

    def test_expected_matches(self):
        """Test rounds times half the field."""
        assert expected_matches(8, 4) == 16


class TestPairing:
    """Tests for pair_round()."""

    def test_first_round_top_half_vs_bottom_half(self, eight_players):
        """Test round 1 pairs 1 v 5, 2 v 6, 3 v 7, 4 v 8 by rating."""
        assert pair_round(eight_players, [], 1) == [(1, 5), (2, 6), (3, 7), (4, 8)]

    def test_second_round_within_score_groups(self, eight_players):
        """Test winners meet winners in round 2."""
        matches = []
        play_round(pair_round(eight_players, matches, 1), matches, 1)
        assert pair_round(eight_players, matches, 2) == [(1, 2), (3, 4), (5, 6), (7, 8)]

    def test_no_rematches_over_full_event(self, eight_players):
        """Test four rounds of eight players never repeat a pairing."""
        matches = []
        for round_num in range(1, 5):
            pairs = pair_round(eight_players, matches, round_num)
            assert len(pairs) == 4
            for pair in pairs:
                assert frozenset(pair) not in played_pairs(matches)
            play_round(pairs, matches, round_num)
            assert is_round_complete(pairs, matches, round_num)
        assert len(played_pairs(matches)) == 16

    def test_scores(self, players):
        """Test scores count wins."""
        entrants = players(4)
        totals = scores(entrants, [Match('M1', 1, 2, 3, 0), Match('M2', 3, 4, 0, 3)])
        assert totals == {1: 1, 2: 0, 3: 0, 4: 1}

    def test_no_pairing_available(self, players):
        """Test a field with no rematch-free pairing raises."""
        entrants = players(4)
        matches = [Match('M1', 1, 2, 3, 0, round=1), Match('M2', 1, 3, 3, 0, round=2),
                   Match('M3', 1, 4, 3, 0, round=3)]
        with pytest.raises(NoPairingAvailable) as exc_info:
            pair_round(entrants, matches, 4)
        assert exc_info.value.context['round'] == 4

    def test_round_incomplete(self, eight_players):
        """Test a round with a missing result is not complete."""
        pairs = pair_round(eight_players, [], 1)
        matches = []
        play_round(pairs[:3], matches, 1)
        assert not is_round_complete(pairs, matches, 1)
