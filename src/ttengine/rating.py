"""
Rating adjustment using a point exchange table.

The table is keyed by the absolute rating difference between the two players.
Each band gives the points exchanged when the higher rated player wins
(expected result) and when the lower rated player wins (upset).
"""
import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple

from ttengine.errors import ConfigError
from ttengine.models import DEFAULT_RATING

logger = logging.getLogger(__name__)

# (min_diff, max_diff, expected_points, upset_points); max_diff None is open-ended
DEFAULT_POINT_EXCHANGE_TABLE = [
    (0, 12, 8, 8),
    (13, 37, 7, 10),
    (38, 62, 6, 13),
    (63, 87, 5, 16),
    (88, 112, 4, 20),
    (113, 137, 3, 25),
    (138, 162, 2, 30),
    (163, 187, 2, 35),
    (188, 212, 1, 40),
    (213, 237, 1, 45),
    (238, 262, 0, 50),
    (263, 287, 0, 55),
    (288, 312, 0, 60),
    (313, 337, 0, 65),
    (338, 362, 0, 70),
    (363, 387, 0, 75),
    (388, 412, 0, 80),
    (413, 437, 0, 85),
    (438, 462, 0, 90),
    (463, 487, 0, 95),
    (488, None, 0, 100),
]


def build_point_table(rows) -> List[Tuple[int, Optional[int], int, int]]:
    """
    Build a point exchange table from config rows.

    Rows are dicts with min_diff, max_diff, expected_points and upset_points.
    Bands must start at 0, be contiguous, and only the last band may leave
    max_diff open.
    """
    if not rows:
        raise ConfigError("Point exchange table is empty")
    table = []
    expected_min = 0
    for index, row in enumerate(rows):
        try:
            min_diff = int(row['min_diff'])
            max_diff = row.get('max_diff')
            max_diff = int(max_diff) if max_diff is not None else None
            expected_points = int(row['expected_points'])
            upset_points = int(row['upset_points'])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid point exchange row {index}: {e}", row=index)
        if min_diff != expected_min:
            raise ConfigError(f"Point exchange band {index} starts at {min_diff}, expected {expected_min}",
                              row=index, min_diff=min_diff)
        if expected_points < 0 or upset_points < 0:
            raise ConfigError(f"Point exchange band {index} has negative points", row=index)
        if max_diff is None:
            if index != len(rows) - 1:
                raise ConfigError(f"Only the last band may be open-ended (band {index})", row=index)
        elif max_diff < min_diff:
            raise ConfigError(f"Point exchange band {index} ends before it starts", row=index)
        else:
            expected_min = max_diff + 1
        table.append((min_diff, max_diff, expected_points, upset_points))
    return table


def table_from_settings(settings) -> List[Tuple[int, Optional[int], int, int]]:
    rows = (settings or {}).get('point_exchange_table')
    if rows is None:
        return DEFAULT_POINT_EXCHANGE_TABLE
    return build_point_table(rows)


def round_rating(value) -> int:
    """Round half up to the nearest integer."""
    return int(math.floor(value + 0.5))


def is_upset(rating_a, rating_b, a_won: bool) -> bool:
    """True when the lower rated side won."""
    diff = rating_b - rating_a
    return (a_won and diff > 0) or (not a_won and diff < 0)


def lookup_points(abs_diff: int, upset: bool, table=None) -> int:
    table = table or DEFAULT_POINT_EXCHANGE_TABLE
    for min_diff, max_diff, expected_points, upset_points in table:
        if abs_diff >= min_diff and (max_diff is None or abs_diff <= max_diff):
            return upset_points if upset else expected_points
    # Difference beyond a closed last band
    _, _, expected_points, upset_points = table[-1]
    return upset_points if upset else expected_points


def point_exchange(rating_a, rating_b, a_won: bool, table=None) -> Tuple[int, int]:
    """
    Return (delta_a, delta_b) for a single decided match.

    The exchange is zero-sum. Points taken from the loser are capped at the
    loser's pre-match rating so neither rating can drop below 0.
    """
    rating_a = round_rating(rating_a)
    rating_b = round_rating(rating_b)
    points = lookup_points(abs(rating_b - rating_a), is_upset(rating_a, rating_b, a_won), table)
    loser_rating = rating_b if a_won else rating_a
    points = min(points, max(loser_rating, 0))
    if a_won:
        return points, -points
    return -points, points


def apply_exchange(rating_a, rating_b, a_won: bool, table=None) -> Tuple[int, int]:
    """Return the post-match ratings (new_a, new_b)."""
    delta_a, delta_b = point_exchange(rating_a, rating_b, a_won, table)
    return max(0, round_rating(rating_a) + delta_a), max(0, round_rating(rating_b) + delta_b)


# Multi-pass rating for a completed round robin

class _PlayerRecord:
    def __init__(self, member_id, initial_rating):
        self.member_id = member_id
        self.initial_rating = initial_rating
        self.results = []  # (opponent_id, opponent_rating, won)

    @property
    def wins(self):
        return sum(1 for _, _, won in self.results if won)

    @property
    def losses(self):
        return sum(1 for _, _, won in self.results if not won)


def _collect_records(participants, matches) -> Dict[int, _PlayerRecord]:
    ratings = {p.member_id: p.rating for p in participants}
    records = {p.member_id: _PlayerRecord(p.member_id, p.rating) for p in participants}
    for match in matches:
        if match.participant_b is None or match.is_forfeit:
            continue
        a, b = match.participant_a, match.participant_b
        if a not in records or b not in records:
            continue
        a_won = match.winner_id == a
        records[a].results.append((b, ratings[b], a_won))
        records[b].results.append((a, ratings[a], not a_won))
    return records


def _pass1(record, table) -> Optional[int]:
    if record.initial_rating is None:
        return None
    rating = record.initial_rating
    for _, opponent_rating, won in record.results:
        if opponent_rating is None:
            continue
        upset = is_upset(rating, opponent_rating, won)
        points = lookup_points(abs(opponent_rating - rating), upset, table)
        rating = rating + points if won else rating - points
    return rating


def _pass2_adjustment(record, pass1_rating) -> Optional[int]:
    if record.initial_rating is None or pass1_rating is None:
        return None
    gained = pass1_rating - record.initial_rating
    if gained < 50:
        return record.initial_rating
    if gained <= 74:
        return pass1_rating

    rated = [(rating, won) for _, rating, won in record.results if rating is not None]
    if not rated:
        return pass1_rating
    win_ratings = [rating for rating, won in rated if won]
    loss_ratings = [rating for rating, won in rated if not won]
    if win_ratings and loss_ratings:
        average = (max(win_ratings) + min(loss_ratings)) / 2
        return round_rating((pass1_rating + average) / 2)
    if len(rated) == 1:
        if loss_ratings:
            return min(pass1_rating, record.initial_rating)
        return max(record.initial_rating - 100, min(record.initial_rating + 100, pass1_rating))
    opponents = sorted(rating for rating, _ in rated)
    return opponents[len(opponents) // 2]


def _intermediate_bonus(spread) -> int:
    if 1 <= spread <= 50:
        return 10
    if 51 <= spread <= 100:
        return 5
    if 101 <= spread <= 150:
        return 1
    return 0


def _pass2_unrated(record, records, adjustments, default_rating) -> int:
    def opponent_rating(opponent_id, rating):
        return adjustments.get(opponent_id, rating)

    rated = [(opp, rating, won) for opp, rating, won in record.results
             if records[opp].initial_rating is not None]
    if not rated:
        return default_rating
    win_ratings = [opponent_rating(opp, rating) for opp, rating, won in rated if won]
    loss_ratings = [opponent_rating(opp, rating) for opp, rating, won in rated if not won]
    win_ratings = [r for r in win_ratings if r is not None]
    loss_ratings = [r for r in loss_ratings if r is not None]
    if win_ratings and loss_ratings:
        return round_rating((max(win_ratings) + min(loss_ratings)) / 2)
    if win_ratings:
        best = max(win_ratings)
        return best + _intermediate_bonus(best - min(win_ratings))
    if loss_ratings:
        worst = min(loss_ratings)
        return worst - _intermediate_bonus(max(loss_ratings) - worst)
    return default_rating


def tournament_ratings(participants, matches: Iterable, table=None,
                       default_rating=DEFAULT_RATING) -> Dict[int, int]:
    """
    Compute post-tournament ratings for a completed round robin.

    Pass 1 exchanges points against entry ratings. Pass 2 adjusts rated
    players with large gains and estimates unrated players from their
    results. Pass 3 floors rated players at their entry rating. Pass 4
    replays the point exchanges against the pass 3 opponent ratings.
    Forfeits and byes are ignored.
    """
    table = table or DEFAULT_POINT_EXCHANGE_TABLE
    records = _collect_records(participants, list(matches))

    pass1 = {mid: _pass1(rec, table) for mid, rec in records.items()}

    adjustments = {}
    for mid, rec in records.items():
        if rec.initial_rating is not None:
            adjustments[mid] = _pass2_adjustment(rec, pass1[mid])
    for mid, rec in records.items():
        if rec.initial_rating is None:
            adjustments[mid] = _pass2_unrated(rec, records, adjustments, default_rating)

    pass3 = {}
    for mid, rec in records.items():
        rating = adjustments[mid]
        pass3[mid] = max(rating, rec.initial_rating) if rec.initial_rating is not None else rating

    final = {}
    for mid, rec in records.items():
        rating = pass3[mid]
        for opponent_id, _, won in rec.results:
            opponent = pass3[opponent_id]
            points = lookup_points(abs(round_rating(opponent - rating)),
                                   is_upset(rating, opponent, won), table)
            rating = rating + points if won else rating - points
        final[mid] = max(0, round_rating(rating))
    logger.debug(f'Computed tournament ratings for {len(final)} players')
    return final
