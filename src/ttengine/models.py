from typing import Optional, Tuple

from ttengine.errors import InvalidResult

BYE = 'BYE'
DEFAULT_RATING = 1200


class Participant:
    def __init__(self, member_id, rating=None, name=None):
        self.member_id = member_id
        self.rating = rating  # Frozen at entry time; None means unrated
        self.name = name if name else f"Player {member_id}"

    @property
    def effective_rating(self) -> int:
        return self.rating if self.rating is not None else DEFAULT_RATING

    def to_dict(self):
        return {'member_id': self.member_id, 'rating': self.rating, 'name': self.name}

    @classmethod
    def from_dict(cls, data):
        return cls(data['member_id'], data.get('rating'), data.get('name'))

    def __repr__(self):
        return f"Participant(member_id={self.member_id}, rating={self.rating}, name={self.name})"


def validate_result(sets_a, sets_b, forfeit_a=False, forfeit_b=False, **context):
    """
    Check a submitted score line.

    Raises InvalidResult for a double forfeit, negative set counts, or equal
    scores that are not resolved by a forfeit (0-0 included).
    """
    if forfeit_a and forfeit_b:
        raise InvalidResult("Both players cannot forfeit the same match",
                            forfeit_a=forfeit_a, forfeit_b=forfeit_b, **context)
    if sets_a is None or sets_b is None or sets_a < 0 or sets_b < 0:
        raise InvalidResult(f"Invalid set counts {sets_a}:{sets_b}",
                            sets_a=sets_a, sets_b=sets_b, **context)
    if not forfeit_a and not forfeit_b and sets_a == sets_b:
        raise InvalidResult(f"Equal score {sets_a}:{sets_b} is not a valid result",
                            sets_a=sets_a, sets_b=sets_b, **context)


def decide_winner(sets_a, sets_b, forfeit_a=False, forfeit_b=False) -> str:
    """Return 'a' or 'b' for an already validated score line."""
    if forfeit_a:
        return 'b'
    if forfeit_b:
        return 'a'
    return 'a' if sets_a > sets_b else 'b'


class Match:
    """
    A recorded result. The rating fields are written once when the result is
    recorded and are the ledger entry for this match.
    """

    def __init__(self, match_id, participant_a, participant_b, sets_a=0, sets_b=0,
                 forfeit_a=False, forfeit_b=False, rating_before_a=None, rating_before_b=None,
                 rating_change_a=None, rating_change_b=None, round=None,
                 node: Optional[Tuple[int, int]] = None):
        self.match_id = match_id
        self.participant_a = participant_a
        self.participant_b = participant_b
        self.sets_a = sets_a
        self.sets_b = sets_b
        self.forfeit_a = forfeit_a
        self.forfeit_b = forfeit_b
        self.rating_before_a = rating_before_a
        self.rating_before_b = rating_before_b
        self.rating_change_a = rating_change_a
        self.rating_change_b = rating_change_b
        self.round = round
        self.node = node

    @property
    def is_forfeit(self) -> bool:
        return self.forfeit_a or self.forfeit_b

    @property
    def winner_id(self):
        side = decide_winner(self.sets_a, self.sets_b, self.forfeit_a, self.forfeit_b)
        return self.participant_a if side == 'a' else self.participant_b

    @property
    def loser_id(self):
        return self.participant_b if self.winner_id == self.participant_a else self.participant_a

    @property
    def rating_after_a(self):
        if self.rating_before_a is None or self.rating_change_a is None:
            return None
        return self.rating_before_a + self.rating_change_a

    @property
    def rating_after_b(self):
        if self.rating_before_b is None or self.rating_change_b is None:
            return None
        return self.rating_before_b + self.rating_change_b

    def involves(self, member_id) -> bool:
        return member_id in (self.participant_a, self.participant_b)

    def to_dict(self):
        return {
            'match_id': self.match_id,
            'participant_a': self.participant_a,
            'participant_b': self.participant_b,
            'sets_a': self.sets_a,
            'sets_b': self.sets_b,
            'forfeit_a': self.forfeit_a,
            'forfeit_b': self.forfeit_b,
            'winner_id': self.winner_id,
            'rating_before_a': self.rating_before_a,
            'rating_before_b': self.rating_before_b,
            'rating_change_a': self.rating_change_a,
            'rating_change_b': self.rating_change_b,
            'rating_after_a': self.rating_after_a,
            'rating_after_b': self.rating_after_b,
            'round': self.round,
            'node': list(self.node) if self.node else None,
        }

    def __repr__(self):
        return (f"Match(match_id={self.match_id}, {self.participant_a} vs {self.participant_b}, "
                f"sets={self.sets_a}:{self.sets_b}, forfeit={self.forfeit_a}/{self.forfeit_b})")


class BracketMatch:
    """
    One node of an elimination draw, addressed by (round, position).

    A slot holds a member id, BYE, or None while the feeding match is
    undecided. Round 1 slots are fixed at build time; later slots are derived
    from the upstream winners.
    """

    def __init__(self, round, position, slot_a=None, slot_b=None, seed_a=None, seed_b=None):
        self.round = round
        self.position = position
        self.slot_a = slot_a
        self.slot_b = slot_b
        self.seed_a = seed_a
        self.seed_b = seed_b
        self.match = None
        self.winner_id = None

    @property
    def coordinate(self) -> Tuple[int, int]:
        return (self.round, self.position)

    @property
    def is_bye(self) -> bool:
        return self.slot_a == BYE or self.slot_b == BYE

    def __repr__(self):
        return (f"BracketMatch(round={self.round}, position={self.position}, "
                f"slots=({self.slot_a}, {self.slot_b}), winner={self.winner_id})")
