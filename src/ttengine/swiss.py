"""
Swiss system configuration and pairing.

Round count bounds follow the club rules: at least ceil(log2(n)) + 1 rounds
so a single winner can emerge, at most n / 2 rounds. Swiss events need an
even entry count since there are no byes.

Pairing:
    Round 1   - players ranked by rating, top half plays bottom half
                (1 v n/2+1, 2 v n/2+2, ...).
    Round 2+  - players ordered by score (wins), then rating, then member
                id, and paired down the list. A depth-first search swaps
                opponents when the natural pairing would be a rematch, so
                players float to the nearest score group with a fresh
                opponent. No pairing ever repeats.
"""
import logging
import math
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from ttengine.bracket import generate_seeding
from ttengine.errors import InvalidEntryCount, InvalidRoundConfig, NoPairingAvailable

logger = logging.getLogger(__name__)


def round_bounds(num_players: int) -> Tuple[int, int]:
    """Return (min_rounds, max_rounds) for the entry count."""
    if num_players < 2:
        return (0, 0)
    return (math.ceil(math.log2(num_players)) + 1, num_players // 2)


def default_rounds(num_players: int) -> int:
    min_rounds, max_rounds = round_bounds(num_players)
    return min(min_rounds, max_rounds)


def validate_config(num_players: int, num_rounds: int):
    if num_players < 2:
        raise InvalidEntryCount(f"Swiss needs at least 2 players, got {num_players}",
                                participants=num_players)
    if num_players % 2 != 0:
        raise InvalidEntryCount(f"Swiss needs an even number of players, got {num_players}",
                                participants=num_players)
    min_rounds, max_rounds = round_bounds(num_players)
    if num_rounds is None or num_rounds < min_rounds or num_rounds > max_rounds:
        raise InvalidRoundConfig(
            f"Swiss with {num_players} players needs between {min_rounds} and {max_rounds} rounds, "
            f"got {num_rounds}",
            participants=num_players, rounds=num_rounds,
            min_rounds=min_rounds, max_rounds=max_rounds,
        )


def expected_matches(num_players: int, num_rounds: int) -> int:
    return num_rounds * (num_players // 2)


def scores(participants, matches) -> Dict[int, int]:
    totals = {p.member_id: 0 for p in participants}
    for match in matches:
        if match.winner_id in totals:
            totals[match.winner_id] += 1
    return totals


def played_pairs(matches) -> Set[FrozenSet[int]]:
    return {frozenset((m.participant_a, m.participant_b)) for m in matches}


def _pair_down(players: List[int], played: Set[FrozenSet[int]]) -> Optional[List[Tuple[int, int]]]:
    if not players:
        return []
    first = players[0]
    for index in range(1, len(players)):
        opponent = players[index]
        if frozenset((first, opponent)) in played:
            continue
        rest = players[1:index] + players[index + 1:]
        paired = _pair_down(rest, played)
        if paired is not None:
            return [(first, opponent)] + paired
    return None


def pair_round(participants, matches, round_num: int) -> List[Tuple[int, int]]:
    """
    Pair the given round.

    Args:
        participants: Participant objects (even count)
        matches: all matches recorded so far
        round_num: 1-based round to pair

    Returns:
        List of (member_a, member_b) with the higher ranked player first
    """
    participants = list(participants)
    if round_num == 1:
        ranked = generate_seeding(participants)
        half = len(ranked) // 2
        return list(zip(ranked[:half], ranked[half:]))

    totals = scores(participants, matches)
    ratings = {p.member_id: (p.rating if p.rating is not None else 0) for p in participants}
    ordered = sorted(totals, key=lambda mid: (-totals[mid], -ratings[mid], mid))
    pairs = _pair_down(ordered, played_pairs(matches))
    if pairs is None:
        raise NoPairingAvailable(f"No pairing without rematches exists for round {round_num}",
                                 round=round_num)
    logger.debug(f'Paired Swiss round {round_num}: {pairs}')
    return pairs


def is_round_complete(pairings: List[Tuple[int, int]], matches, round_num: int) -> bool:
    recorded = {frozenset((m.participant_a, m.participant_b)) for m in matches if m.round == round_num}
    return all(frozenset(pair) in recorded for pair in pairings)
