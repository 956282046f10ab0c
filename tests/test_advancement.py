"""
Tests for elimination result recording, editing and cascading invalidation.

Draw used throughout (5 players, member id == seed):
    R1: 1 v BYE, 4 v 5, 2 v BYE, 3 v BYE
    R2: 1 v (4/5), 2 v 3
    R3: final
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from ttengine import advancement
from ttengine.advancement import STATE_BYE, STATE_DECIDED, STATE_PENDING, STATE_READY, node_state
from ttengine.bracket import build_bracket
from ttengine.errors import InvalidResult, InvalidState, NotFound


@pytest.fixture
def bracket(five_players):
    return build_bracket(five_players)


def play_out(bracket):
    """Higher seed wins every match."""
    advancement.record_result(bracket, 1, 1, 3, 1)   # 4 beats 5
    advancement.record_result(bracket, 2, 0, 3, 0)   # 1 beats 4
    advancement.record_result(bracket, 2, 1, 3, 2)   # 2 beats 3
    advancement.record_result(bracket, 3, 0, 3, 1)   # 1 beats 2


class TestNodeStates:
    """Tests for derived node states."""

    def test_initial_states(self, bracket):
        """Test states right after the draw is built."""
        assert node_state(bracket, 1, 0) == STATE_BYE
        assert node_state(bracket, 1, 1) == STATE_READY
        assert node_state(bracket, 2, 0) == STATE_PENDING
        assert node_state(bracket, 2, 1) == STATE_READY
        assert node_state(bracket, 3, 0) == STATE_PENDING

    def test_bye_winners_advance(self, bracket):
        """Test bye winners already occupy round 2."""
        assert advancement.occupants(bracket, 2, 0) == (1, None)
        assert advancement.occupants(bracket, 2, 1) == (2, 3)

    def test_state_after_result(self, bracket):
        """Test recording makes the node DECIDED and fills the next slot."""
        advancement.record_result(bracket, 1, 1, 3, 1)
        assert node_state(bracket, 1, 1) == STATE_DECIDED
        assert node_state(bracket, 2, 0) == STATE_READY
        assert advancement.occupants(bracket, 2, 0) == (1, 4)


class TestRecordResult:
    """Tests for record_result()."""

    def test_record_returns_rated_match(self, bracket):
        """Test the returned match carries ratings before and after."""
        match = advancement.record_result(bracket, 1, 1, 3, 1)
        assert match.participant_a == 4
        assert match.participant_b == 5
        assert match.rating_before_a == 1700
        assert match.rating_before_b == 1600
        # 100 points apart, expected result
        assert match.rating_change_a == 4
        assert match.rating_change_b == -4
        assert match.node == (1, 1)

    def test_rating_before_follows_earlier_rounds(self, bracket):
        """Test a player's rating before round 2 includes their round 1 exchange."""
        advancement.record_result(bracket, 1, 1, 3, 1)
        match = advancement.record_result(bracket, 2, 0, 3, 0)
        assert match.rating_before_a == 2000  # bye, no exchange
        assert match.rating_before_b == 1704

    def test_bye_node_rejected(self, bracket):
        """Test results cannot be recorded on a bye."""
        with pytest.raises(InvalidState) as exc_info:
            advancement.record_result(bracket, 1, 0, 3, 0)
        assert exc_info.value.context['state'] == STATE_BYE

    def test_pending_node_rejected(self, bracket):
        """Test results cannot be recorded before both occupants are known."""
        with pytest.raises(InvalidState) as exc_info:
            advancement.record_result(bracket, 2, 0, 3, 0)
        assert exc_info.value.context == {'round': 2, 'position': 0, 'state': STATE_PENDING}

    def test_decided_node_rejected(self, bracket):
        """Test recording twice needs an explicit edit."""
        advancement.record_result(bracket, 1, 1, 3, 1)
        with pytest.raises(InvalidState):
            advancement.record_result(bracket, 1, 1, 3, 0)

    def test_equal_score_rejected_node_stays_ready(self, bracket):
        """Test 3:3 is rejected and leaves the node READY."""
        with pytest.raises(InvalidResult):
            advancement.record_result(bracket, 1, 1, 3, 3)
        assert node_state(bracket, 1, 1) == STATE_READY
        assert bracket.node(1, 1).match is None

    def test_zero_zero_rejected(self, bracket):
        """Test 0:0 without a forfeit is not a result."""
        with pytest.raises(InvalidResult):
            advancement.record_result(bracket, 1, 1, 0, 0)
        assert node_state(bracket, 1, 1) == STATE_READY

    def test_double_forfeit_rejected(self, bracket):
        """Test both sides forfeiting is rejected."""
        with pytest.raises(InvalidResult):
            advancement.record_result(bracket, 1, 1, 0, 0, forfeit_a=True, forfeit_b=True)

    def test_forfeit_is_rated(self, bracket):
        """Test a forfeit advances the opponent and still exchanges points."""
        match = advancement.record_result(bracket, 1, 1, 0, 0, forfeit_a=True)
        assert bracket.node(1, 1).winner_id == 5
        assert match.rating_change_b == 20  # upset band 88-112
        assert match.rating_change_a == -20

    def test_champion(self, bracket):
        """Test the bracket completes when the final is decided."""
        assert not advancement.is_complete(bracket)
        play_out(bracket)
        assert advancement.is_complete(bracket)
        assert advancement.champion(bracket) == 1
        assert advancement.matches_remaining(bracket) == 0


class TestEditResult:
    """Tests for edit_result() and cascading invalidation."""

    def test_edit_same_winner_keeps_downstream(self, bracket):
        """Test a score correction that keeps the winner changes nothing downstream."""
        play_out(bracket)
        match, removed = advancement.edit_result(bracket, 1, 1, 3, 0)
        assert removed == []
        assert match.sets_b == 0
        assert node_state(bracket, 3, 0) == STATE_DECIDED

    def test_edit_keeps_rating_snapshot(self, bracket):
        """Test the stored rating-before values are reused on edit."""
        advancement.record_result(bracket, 1, 1, 3, 1)
        advancement.record_result(bracket, 2, 0, 3, 0)
        match, _ = advancement.edit_result(bracket, 2, 0, 3, 2)
        assert match.rating_before_b == 1704

    def test_winner_change_cascades(self, bracket):
        """Test flipping a round 1 winner resets every result built on it."""
        play_out(bracket)
        match, removed = advancement.edit_result(bracket, 1, 1, 1, 3)
        assert match.winner_id == 5
        assert [m.node for m in removed] == [(2, 0), (3, 0)]
        assert node_state(bracket, 2, 0) == STATE_READY
        assert advancement.occupants(bracket, 2, 0) == (1, 5)
        assert node_state(bracket, 3, 0) == STATE_PENDING
        assert advancement.occupants(bracket, 3, 0) == (None, 2)
        assert not advancement.is_complete(bracket)

    def test_cascade_spares_other_half(self, bracket):
        """Test results in the other half of the draw are untouched."""
        play_out(bracket)
        advancement.edit_result(bracket, 1, 1, 1, 3)
        assert node_state(bracket, 2, 1) == STATE_DECIDED
        assert bracket.node(2, 1).winner_id == 2

    def test_edit_undecided_rejected(self, bracket):
        """Test only decided nodes can be edited."""
        with pytest.raises(InvalidState):
            advancement.edit_result(bracket, 1, 1, 3, 0)

    def test_invalid_edit_leaves_state(self, bracket):
        """Test a rejected edit changes nothing."""
        play_out(bracket)
        with pytest.raises(InvalidResult):
            advancement.edit_result(bracket, 1, 1, 2, 2)
        assert advancement.champion(bracket) == 1
        assert bracket.node(1, 1).match.sets_a == 3


class TestDeleteResult:
    """Tests for delete_result()."""

    def test_delete_cascades(self, bracket):
        """Test deleting a result removes it and everything downstream."""
        play_out(bracket)
        removed = advancement.delete_result(bracket, 2, 0)
        assert [m.node for m in removed] == [(2, 0), (3, 0)]
        assert node_state(bracket, 2, 0) == STATE_READY
        assert node_state(bracket, 3, 0) == STATE_PENDING

    def test_delete_first_round(self, bracket):
        """Test deleting round 1 returns the next node to PENDING."""
        advancement.record_result(bracket, 1, 1, 3, 1)
        advancement.delete_result(bracket, 1, 1)
        assert node_state(bracket, 1, 1) == STATE_READY
        assert node_state(bracket, 2, 0) == STATE_PENDING

    def test_delete_undecided_rejected(self, bracket):
        """Test deleting a node without a result is rejected."""
        with pytest.raises(InvalidState):
            advancement.delete_result(bracket, 1, 0)


class TestRatingLedger:
    """Tests for rating replay and chains."""

    def test_replay_ratings(self, bracket):
        """Test ratings after a full run equal entry plus all changes."""
        play_out(bracket)
        ratings = advancement.replay_ratings(bracket)
        changes = {mid: 0 for mid in bracket.participants}
        for match in advancement.recorded_matches(bracket):
            changes[match.participant_a] += match.rating_change_a
            changes[match.participant_b] += match.rating_change_b
        for mid, participant in bracket.participants.items():
            assert ratings[mid] == participant.rating + changes[mid]

    def test_rating_chain_links(self, bracket):
        """Test each step's rating-before is the previous step's rating-after."""
        play_out(bracket)
        chain = advancement.rating_chain(bracket)
        for steps in chain.values():
            for earlier, later in zip(steps, steps[1:]):
                assert later['rating_before'] == earlier['rating_after']
        assert len(chain[1]) == 2  # semifinal and final, round 1 was a bye

    def test_current_rating(self, bracket):
        """Test current rating is the entry rating until a match is played."""
        assert advancement.current_rating(bracket, 1) == 2000
        advancement.record_result(bracket, 1, 1, 3, 1)
        assert advancement.current_rating(bracket, 4) == 1704
        with pytest.raises(NotFound):
            advancement.current_rating(bracket, 42)

    def test_replay_results(self, five_players):
        """Test rebuilding from stored results in any order gives the same draw."""
        source = build_bracket(five_players)
        play_out(source)
        stored = [{'round': m.node[0], 'position': m.node[1], 'sets_a': m.sets_a, 'sets_b': m.sets_b}
                  for m in reversed(advancement.recorded_matches(source))]
        rebuilt = build_bracket(five_players)
        advancement.replay_results(rebuilt, stored)
        assert advancement.snapshot(rebuilt) == advancement.snapshot(source)


class TestSnapshot:
    """Tests for the plain-data bracket view."""

    def test_snapshot_shape(self, bracket):
        """Test the snapshot lists every round with node states."""
        snapshot = advancement.snapshot(bracket)
        assert snapshot['bracket_size'] == 8
        assert snapshot['byes'] == 3
        assert [r['name'] for r in snapshot['rounds']] == ["Quarterfinal", "Semifinal", "Final"]
        first = snapshot['rounds'][0]['matches'][0]
        assert first['slot_b'] == 'BYE'
        assert first['state'] == STATE_BYE
        assert snapshot['matches_remaining'] == 4

    def test_snapshot_is_detached(self, bracket):
        """Test later results do not change an earlier snapshot."""
        snapshot = advancement.snapshot(bracket)
        advancement.record_result(bracket, 1, 1, 3, 1)
        assert snapshot['rounds'][0]['matches'][1]['state'] == STATE_READY
