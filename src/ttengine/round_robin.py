"""
Round robin fixtures and standings.
"""
from itertools import combinations
from typing import Dict, List, Tuple


def expected_matches(num_players: int) -> int:
    """Every unordered pair plays once."""
    if num_players < 2:
        return 0
    return num_players * (num_players - 1) // 2


def generate_fixtures(participants) -> List[Tuple[int, int]]:
    """All unique pairs of member ids, in entry order."""
    member_ids = [p.member_id for p in participants]
    return list(combinations(member_ids, 2))


def schedule_rounds(participants) -> List[List[Tuple[int, int]]]:
    """
    Split the fixtures into rounds with the circle method.

    With an odd entry count one player sits out each round, so there are n
    rounds instead of n - 1. Every pair appears exactly once overall.
    """
    member_ids = [p.member_id for p in participants]
    if len(member_ids) < 2:
        return []
    rotation = list(member_ids)
    if len(rotation) % 2 == 1:
        rotation.append(None)
    num_rounds = len(rotation) - 1
    half = len(rotation) // 2

    rounds = []
    for _ in range(num_rounds):
        pairs = []
        for i in range(half):
            first, second = rotation[i], rotation[-1 - i]
            if first is None or second is None:
                continue
            pairs.append((first, second))
        rounds.append(pairs)
        # Keep the first entry fixed, rotate the rest
        rotation = [rotation[0]] + [rotation[-1]] + rotation[1:-1]
    return rounds


def fixture_key(member_a, member_b) -> Tuple[int, int]:
    return (member_a, member_b) if member_a <= member_b else (member_b, member_a)


def calculate_standings(participants, matches) -> List[Dict]:
    """
    Calculate standings from recorded matches.

    Returns: [{'member_id': id, 'wins': n, 'losses': n, 'sets_won': n,
               'sets_lost': n, 'set_diff': n, 'matches_played': n,
               'rating': r, 'place': n}, ...]

    Ranking: wins -> set differential -> entry order.
    A forfeit counts as a 1-0 decision for wins and sets.
    """
    player_stats = {}
    entry_order = {}
    for index, participant in enumerate(participants):
        entry_order[participant.member_id] = index
        player_stats[participant.member_id] = {
            'member_id': participant.member_id,
            'name': participant.name,
            'rating': participant.rating,
            'wins': 0,
            'losses': 0,
            'sets_won': 0,
            'sets_lost': 0,
            'matches_played': 0,
        }

    for match in matches:
        if match.participant_b is None:
            continue
        if match.participant_a not in player_stats or match.participant_b not in player_stats:
            continue
        winner = player_stats[match.winner_id]
        loser = player_stats[match.loser_id]

        if match.is_forfeit:
            winner_sets, loser_sets = 1, 0
        elif match.winner_id == match.participant_a:
            winner_sets, loser_sets = match.sets_a, match.sets_b
        else:
            winner_sets, loser_sets = match.sets_b, match.sets_a

        winner['wins'] += 1
        loser['losses'] += 1
        winner['sets_won'] += winner_sets
        winner['sets_lost'] += loser_sets
        loser['sets_won'] += loser_sets
        loser['sets_lost'] += winner_sets
        winner['matches_played'] += 1
        loser['matches_played'] += 1

    for stats in player_stats.values():
        stats['set_diff'] = stats['sets_won'] - stats['sets_lost']

    sorted_players = sorted(
        player_stats.values(),
        key=lambda x: (-x['wins'], -x['set_diff'], entry_order[x['member_id']])
    )
    for place, stats in enumerate(sorted_players, start=1):
        stats['place'] = place
    return sorted_players


def head_to_head(matches) -> Dict[Tuple[int, int], Dict]:
    """Result lookup keyed by the ordered pair of member ids."""
    table = {}
    for match in matches:
        if match.participant_b is None:
            continue
        table[fixture_key(match.participant_a, match.participant_b)] = {
            'winner_id': match.winner_id,
            'score': f"{match.sets_a}:{match.sets_b}",
            'forfeit': match.is_forfeit,
        }
    return table
