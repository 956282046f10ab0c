"""
Result handling for elimination brackets.

Node states:
    BYE      - round 1 node with a single entrant, won without a match
    PENDING  - at least one occupant still depends on an undecided match
    READY    - both occupants known, no result yet
    DECIDED  - result recorded, winner set

Every mutation below is applied all-or-nothing: the node arena is copied
before the change and restored if anything raises.
"""
import copy
import logging
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

from ttengine.errors import InvalidState, NotFound
from ttengine.models import BYE, Match, decide_winner, validate_result
from ttengine.rating import point_exchange

logger = logging.getLogger(__name__)

STATE_BYE = 'BYE'
STATE_PENDING = 'PENDING'
STATE_READY = 'READY'
STATE_DECIDED = 'DECIDED'


@contextmanager
def _transaction(bracket):
    saved = copy.deepcopy(bracket.nodes)
    try:
        yield
    except Exception:
        bracket.nodes = saved
        raise


def occupants(bracket, round_num: int, position: int) -> Tuple[Optional[int], Optional[int]]:
    """Return the two occupants of a node, deriving later rounds from upstream winners."""
    node = bracket.node(round_num, position)
    if round_num == 1:
        return node.slot_a, node.slot_b
    upper, lower = bracket.feeder_coordinates(round_num, position)
    return bracket.nodes[upper].winner_id, bracket.nodes[lower].winner_id


def _derive_slots(bracket):
    for round_num in range(2, bracket.total_rounds + 1):
        for node in bracket.round_nodes(round_num):
            node.slot_a, node.slot_b = occupants(bracket, round_num, node.position)
            node.seed_a = bracket.seeds.get(node.slot_a)
            node.seed_b = bracket.seeds.get(node.slot_b)


def node_state(bracket, round_num: int, position: int) -> str:
    node = bracket.node(round_num, position)
    if round_num == 1 and node.is_bye:
        return STATE_BYE
    if node.match is not None:
        return STATE_DECIDED
    slot_a, slot_b = occupants(bracket, round_num, position)
    if slot_a is None or slot_b is None:
        return STATE_PENDING
    return STATE_READY


def replay_ratings(bracket, before_round: Optional[int] = None) -> Dict[int, int]:
    """
    Replay the rating ledger in (round, position) order.

    Returns each participant's rating after their latest decided match that
    is in a round earlier than before_round (all rounds when None), or their
    entry rating when they have not played yet.
    """
    ratings = {mid: p.effective_rating for mid, p in bracket.participants.items()}
    for node in bracket.ordered_nodes():
        if before_round is not None and node.round >= before_round:
            break
        match = node.match
        if match is None:
            continue
        ratings[match.participant_a] = match.rating_after_a
        ratings[match.participant_b] = match.rating_after_b
    return ratings


def rating_chain(bracket) -> Dict[int, List[Dict]]:
    """Per-member list of rating steps, one per decided match, in round order."""
    chain = {mid: [] for mid in bracket.participants}
    for node in bracket.ordered_nodes():
        match = node.match
        if match is None:
            continue
        for member, before, change, after in (
            (match.participant_a, match.rating_before_a, match.rating_change_a, match.rating_after_a),
            (match.participant_b, match.rating_before_b, match.rating_change_b, match.rating_after_b),
        ):
            chain[member].append({
                'round': node.round,
                'position': node.position,
                'rating_before': before,
                'rating_change': change,
                'rating_after': after,
            })
    return chain


def current_rating(bracket, member_id) -> int:
    """Rating after the member's latest decided match, or their entry rating."""
    if member_id not in bracket.participants:
        raise NotFound(f"Participant {member_id} is not in this bracket", member_id=member_id)
    return replay_ratings(bracket)[member_id]


def _require_state(bracket, round_num, position, expected, action):
    state = node_state(bracket, round_num, position)
    if state != expected:
        raise InvalidState(
            f"Cannot {action} round {round_num}, position {position}: match is {state}",
            round=round_num, position=position, state=state,
        )


def _invalidate_downstream(bracket, round_num: int, position: int) -> List[Match]:
    """
    Reset every downstream node whose occupant came from (round_num, position).
    Returns the match records removed from the ledger.
    """
    removed = []
    coordinate = bracket.next_coordinate(round_num, position)
    while coordinate is not None:
        node = bracket.nodes[coordinate]
        if node.match is None:
            break
        removed.append(node.match)
        logger.debug(f'Invalidated result at round {node.round}, position {node.position}')
        node.match = None
        node.winner_id = None
        coordinate = bracket.next_coordinate(*coordinate)
    return removed


def record_result(bracket, round_num: int, position: int, sets_a: int, sets_b: int,
                  forfeit_a: bool = False, forfeit_b: bool = False,
                  match_id=None, table=None) -> Match:
    """
    Record the result of a READY node.

    The rating-before snapshot for each player is their rating after their
    previous match in this bracket. Forfeits with a winner are rated like any
    other decided match.
    """
    with _transaction(bracket):
        _require_state(bracket, round_num, position, STATE_READY, 'record a result for')
        validate_result(sets_a, sets_b, forfeit_a, forfeit_b, round=round_num, position=position)

        member_a, member_b = occupants(bracket, round_num, position)
        ratings = replay_ratings(bracket, before_round=round_num)
        rating_a, rating_b = ratings[member_a], ratings[member_b]
        a_won = decide_winner(sets_a, sets_b, forfeit_a, forfeit_b) == 'a'
        change_a, change_b = point_exchange(rating_a, rating_b, a_won, table)

        node = bracket.node(round_num, position)
        node.match = Match(
            match_id if match_id is not None else f"R{round_num}P{position}",
            member_a, member_b, sets_a, sets_b, forfeit_a, forfeit_b,
            rating_before_a=rating_a, rating_before_b=rating_b,
            rating_change_a=change_a, rating_change_b=change_b,
            round=round_num, node=(round_num, position),
        )
        node.winner_id = member_a if a_won else member_b
        _derive_slots(bracket)

    logger.debug(f'Recorded round {round_num}, position {position}: {sets_a}:{sets_b}, winner {node.winner_id}')
    return node.match


def edit_result(bracket, round_num: int, position: int, sets_a: int, sets_b: int,
                forfeit_a: bool = False, forfeit_b: bool = False,
                table=None) -> Tuple[Match, List[Match]]:
    """
    Correct the result of a DECIDED node.

    The stored rating-before snapshot is reused. When the winner changes,
    downstream results built on the old winner are removed.

    Returns:
        (corrected match, list of downstream matches that were removed)
    """
    with _transaction(bracket):
        _require_state(bracket, round_num, position, STATE_DECIDED, 'edit the result of')
        validate_result(sets_a, sets_b, forfeit_a, forfeit_b, round=round_num, position=position)

        node = bracket.node(round_num, position)
        old = node.match
        a_won = decide_winner(sets_a, sets_b, forfeit_a, forfeit_b) == 'a'
        change_a, change_b = point_exchange(old.rating_before_a, old.rating_before_b, a_won, table)
        new_winner = old.participant_a if a_won else old.participant_b

        removed = []
        if new_winner != node.winner_id:
            removed = _invalidate_downstream(bracket, round_num, position)

        node.match = Match(
            old.match_id, old.participant_a, old.participant_b, sets_a, sets_b, forfeit_a, forfeit_b,
            rating_before_a=old.rating_before_a, rating_before_b=old.rating_before_b,
            rating_change_a=change_a, rating_change_b=change_b,
            round=round_num, node=(round_num, position),
        )
        node.winner_id = new_winner
        _derive_slots(bracket)

    if removed:
        logger.info(f'Edit at round {round_num}, position {position} changed the winner; '
                    f'reset {len(removed)} downstream result(s)')
    return node.match, removed


def delete_result(bracket, round_num: int, position: int) -> List[Match]:
    """
    Remove the result of a DECIDED node and every downstream result built on it.

    Returns:
        The removed matches, the deleted node's own match first
    """
    with _transaction(bracket):
        _require_state(bracket, round_num, position, STATE_DECIDED, 'delete the result of')
        node = bracket.node(round_num, position)
        removed = [node.match]
        removed.extend(_invalidate_downstream(bracket, round_num, position))
        node.match = None
        node.winner_id = None
        _derive_slots(bracket)

    logger.debug(f'Deleted result at round {round_num}, position {position}')
    return removed


def replay_results(bracket, results, table=None) -> List[Match]:
    """
    Rebuild bracket state from a flat list of result dicts.

    Results are applied in (round, position) order so each rating-before
    snapshot sees every earlier round.
    """
    recorded = []
    for result in sorted(results, key=lambda r: (r['round'], r['position'])):
        recorded.append(record_result(
            bracket, result['round'], result['position'],
            result.get('sets_a', 0), result.get('sets_b', 0),
            result.get('forfeit_a', False), result.get('forfeit_b', False),
            match_id=result.get('match_id'), table=table,
        ))
    return recorded


def is_complete(bracket) -> bool:
    return bracket.final.winner_id is not None


def champion(bracket) -> Optional[int]:
    return bracket.final.winner_id


def recorded_matches(bracket) -> List[Match]:
    return [node.match for node in bracket.ordered_nodes() if node.match is not None]


def playable_match_count(bracket) -> int:
    """Number of real (non-bye) matches the draw will contain."""
    return len(bracket.participants) - 1


def matches_remaining(bracket) -> int:
    return playable_match_count(bracket) - len(recorded_matches(bracket))


def snapshot(bracket) -> Dict:
    """Deterministic plain-data view of the bracket for display and the API."""
    rounds = []
    for round_num in range(1, bracket.total_rounds + 1):
        matches = []
        for node in bracket.round_nodes(round_num):
            slot_a, slot_b = occupants(bracket, round_num, node.position)
            matches.append({
                'round': round_num,
                'position': node.position,
                'slot_a': slot_a,
                'slot_b': slot_b,
                'seed_a': bracket.seeds.get(slot_a) if slot_a != BYE else None,
                'seed_b': bracket.seeds.get(slot_b) if slot_b != BYE else None,
                'state': node_state(bracket, round_num, node.position),
                'winner_id': node.winner_id,
                'match': node.match.to_dict() if node.match else None,
            })
        rounds.append({
            'round': round_num,
            'name': bracket.round_name(round_num),
            'matches': matches,
        })
    return {
        'bracket_size': bracket.bracket_size,
        'total_rounds': bracket.total_rounds,
        'byes': bracket.byes,
        'seeds': {str(mid): seed for mid, seed in bracket.seeds.items()},
        'positions': list(bracket.positions),
        'rounds': rounds,
        'champion': champion(bracket),
        'complete': is_complete(bracket),
        'matches_remaining': matches_remaining(bracket),
    }
