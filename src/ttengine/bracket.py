"""
Single elimination bracket construction.

The draw is a flat arena of BracketMatch nodes keyed by (round, position).
Round 1 holds bracket_size / 2 nodes and every later round half as many; the
node fed by (r, p) is (r + 1, p // 2). Nothing else links nodes together.
"""
import logging
import math
from typing import Dict, List, Optional, Tuple

from ttengine.errors import InvalidEntryCount, NotFound
from ttengine.models import BYE, BracketMatch

logger = logging.getLogger(__name__)

MIN_SEEDED = 2
MAX_SEEDED = 32


def get_round_name(players_in_round: int) -> str:
    """Get the name of a round based on number of players in it."""
    if players_in_round == 2:
        return "Final"
    elif players_in_round == 4:
        return "Semifinal"
    elif players_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {players_in_round}"


def round_up_power_of_two(value: int) -> int:
    if value <= 1:
        return 1
    return 2 ** math.ceil(math.log2(value))


def calculate_bracket_size(num_players: int) -> int:
    """Calculate the bracket size (next power of 2, at least 2)."""
    return max(2, round_up_power_of_two(num_players))


def calculate_total_rounds(num_players: int) -> int:
    return int(math.log2(calculate_bracket_size(num_players)))


def calculate_byes(num_players: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_players) - num_players


def calculate_num_seeded(bracket_size: int) -> int:
    """Number of displayed seeds for a bracket of the given size."""
    quarter = math.ceil(bracket_size / 4)
    return min(MAX_SEEDED, max(MIN_SEEDED, round_up_power_of_two(quarter)))


def generate_seeding(participants) -> List[int]:
    """
    Order participants by seed: rating descending, then lower member id.
    Unrated participants sort as rating 0.
    """
    ranked = sorted(
        participants,
        key=lambda p: (-(p.rating if p.rating is not None else 0), p.member_id)
    )
    return [p.member_id for p in ranked]


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 players: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)

    # Pair each upper seed with its complement
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])

    return result


def generate_bracket_positions(seeding: List[int], bracket_size: int) -> List[Optional[int]]:
    """
    Place ranked members on the bracket lines by the fixed seed template.
    Lines whose seed number exceeds the entry count are byes (None); with the
    standard template they always face the top ranked entrants.
    """
    order = _generate_bracket_order(bracket_size)
    return [seeding[seed - 1] if seed <= len(seeding) else None for seed in order]


class Bracket:
    """Coordinate-addressed arena of elimination nodes."""

    def __init__(self, participants, positions: List[Optional[int]], seeds: Dict[int, int]):
        self.participants = {p.member_id: p for p in participants}
        self.positions = list(positions)
        self.seeds = dict(seeds)
        self.bracket_size = len(positions)
        self.total_rounds = int(math.log2(self.bracket_size))
        self.nodes: Dict[Tuple[int, int], BracketMatch] = {}

        for round_num in range(1, self.total_rounds + 1):
            for position in range(self.matches_in_round(round_num)):
                self.nodes[(round_num, position)] = BracketMatch(round_num, position)

        for position in range(self.matches_in_round(1)):
            member_a = self.positions[2 * position]
            member_b = self.positions[2 * position + 1]
            # Byes always sit in slot b
            if member_a is None:
                member_a, member_b = member_b, member_a
            node = self.nodes[(1, position)]
            node.slot_a = member_a
            node.slot_b = member_b if member_b is not None else BYE
            node.seed_a = self.seeds.get(member_a)
            node.seed_b = self.seeds.get(member_b) if member_b is not None else None
            if node.slot_b == BYE:
                node.winner_id = member_a

    def matches_in_round(self, round_num: int) -> int:
        return self.bracket_size // (2 ** round_num)

    def node(self, round_num: int, position: int) -> BracketMatch:
        node = self.nodes.get((round_num, position))
        if node is None:
            raise NotFound(f"No bracket match at round {round_num}, position {position}",
                           round=round_num, position=position)
        return node

    def round_nodes(self, round_num: int) -> List[BracketMatch]:
        return [self.nodes[(round_num, p)] for p in range(self.matches_in_round(round_num))]

    def ordered_nodes(self) -> List[BracketMatch]:
        return [self.nodes[key] for key in sorted(self.nodes)]

    @property
    def final(self) -> BracketMatch:
        return self.nodes[(self.total_rounds, 0)]

    def next_coordinate(self, round_num: int, position: int) -> Optional[Tuple[int, int]]:
        if round_num >= self.total_rounds:
            return None
        return (round_num + 1, position // 2)

    def feeder_coordinates(self, round_num: int, position: int) -> List[Tuple[int, int]]:
        if round_num <= 1:
            return []
        return [(round_num - 1, 2 * position), (round_num - 1, 2 * position + 1)]

    def round_name(self, round_num: int) -> str:
        return get_round_name(self.matches_in_round(round_num) * 2)

    @property
    def byes(self) -> int:
        return sum(1 for node in self.round_nodes(1) if node.is_bye)

    def __repr__(self):
        return f"Bracket(size={self.bracket_size}, rounds={self.total_rounds}, byes={self.byes})"


def _validate_positions(positions, member_ids, bracket_size):
    if len(positions) != bracket_size:
        raise InvalidEntryCount(f"Expected {bracket_size} bracket positions, got {len(positions)}",
                                expected=bracket_size, actual=len(positions))
    placed = [m for m in positions if m is not None]
    if sorted(placed) != sorted(member_ids):
        raise InvalidEntryCount("Bracket positions must place every participant exactly once",
                                placed=placed, participants=sorted(member_ids))
    for index in range(0, bracket_size, 2):
        if positions[index] is None and positions[index + 1] is None:
            raise InvalidEntryCount(f"Bracket match {index // 2} holds two byes", position=index // 2)


def build_bracket(participants, positions: Optional[List[Optional[int]]] = None,
                  seeding: Optional[List[int]] = None) -> Bracket:
    """
    Build the full elimination skeleton for the given participants.

    Args:
        participants: Participant objects entered in the draw
        positions: Optional explicit bracket lines (member id or None for a bye)
        seeding: Optional ranked member ids; defaults to rating order

    Returns:
        Bracket with round 1 filled in, bye nodes already won and later
        rounds undetermined
    """
    participants = list(participants)
    num_players = len(participants)
    if num_players < 2:
        raise InvalidEntryCount(f"An elimination bracket needs at least 2 participants, got {num_players}",
                                participants=num_players)

    member_ids = [p.member_id for p in participants]
    bracket_size = calculate_bracket_size(num_players)
    if seeding is None:
        seeding = generate_seeding(participants)
    elif sorted(seeding) != sorted(member_ids):
        raise InvalidEntryCount("Seeding must rank every participant exactly once",
                                seeding=list(seeding), participants=sorted(member_ids))

    if positions is None:
        positions = generate_bracket_positions(seeding, bracket_size)
    else:
        _validate_positions(positions, member_ids, bracket_size)

    num_seeded = min(calculate_num_seeded(bracket_size), num_players)
    seeds = {member_id: rank + 1 for rank, member_id in enumerate(seeding[:num_seeded])}

    bracket = Bracket(participants, positions, seeds)
    logger.info(f'Built bracket: {num_players} players, size {bracket_size}, '
                f'{bracket.total_rounds} rounds, {bracket.byes} byes, {num_seeded} seeded')
    return bracket
