"""
Tournament aggregate and registry.

A Tournament owns its participants, its results and any child tournaments
(compound formats). All mutations go through the format looked up from the
tournament's tag and run under the tournament's lock; children share the
lock of their root so a result in a group and the parent's completion check
never interleave.
"""
import copy
import logging
import threading
from typing import Dict, List, Optional

from ttengine.config import get_default_settings
from ttengine.errors import InvalidEntryCount, InvalidState, NotFound
from ttengine.formats import PLAYOFF, get_format
from ttengine.models import Participant
from ttengine.rating import table_from_settings

logger = logging.getLogger(__name__)

STATUS_ACTIVE = 'ACTIVE'
STATUS_COMPLETED = 'COMPLETED'


def _coerce_participant(entry) -> Participant:
    if isinstance(entry, Participant):
        return Participant(entry.member_id, entry.rating, entry.name)
    if isinstance(entry, dict):
        return Participant.from_dict(entry)
    return Participant(entry)


class Tournament:
    """A single event: basic format, compound parent, or a compound's child."""

    def __init__(self, tournament_id, name, format_tag, participants, config=None,
                 settings=None, parent=None, lock=None):
        self.tournament_id = tournament_id
        self.name = name or tournament_id
        self.format_tag = format_tag
        self.format = get_format(format_tag)
        self.participants: List[Participant] = [_coerce_participant(p) for p in participants]
        self.config = copy.deepcopy(config) if config else {}
        self.settings = settings or get_default_settings()
        self.point_table = table_from_settings(self.settings)
        self.default_rating = self.settings.get('default_rating', 1200)
        self.parent = parent
        self.children: List['Tournament'] = []
        self.status = STATUS_ACTIVE
        self.cancelled = False
        self.matches = []
        self.bracket = None
        self.pairings = {}
        self.final_standings = None
        self.final_ratings = None
        self._next_match_number = 1
        self._lock = lock or threading.RLock()

    @classmethod
    def create(cls, tournament_id, name, format_tag, participants, config=None, settings=None,
               parent=None, lock=None) -> 'Tournament':
        """
        Validate the entry list and build the tournament structure.

        Raises:
            UnsupportedFormat: unknown format tag
            InvalidEntryCount: fewer than 2 participants or duplicate member ids
        """
        tournament = cls(tournament_id, name, format_tag, participants, config, settings, parent, lock)
        member_ids = [p.member_id for p in tournament.participants]
        if len(member_ids) < 2:
            raise InvalidEntryCount(f"A tournament needs at least 2 participants, got {len(member_ids)}",
                                    participants=len(member_ids))
        duplicates = sorted({mid for mid in member_ids if member_ids.count(mid) > 1})
        if duplicates:
            raise InvalidEntryCount(f"Duplicate participants: {duplicates}", duplicates=duplicates)
        tournament.format.setup(tournament)
        logger.info(f'Created {format_tag} tournament {tournament_id} with {len(member_ids)} participants')
        return tournament

    # -- lookups ---------------------------------------------------------

    @property
    def root(self) -> 'Tournament':
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    def participant(self, member_id) -> Optional[Participant]:
        for participant in self.participants:
            if participant.member_id == member_id:
                return participant
        return None

    def find(self, tournament_id) -> 'Tournament':
        """Find this tournament or one of its descendants by id."""
        if self.tournament_id == tournament_id:
            return self
        for child in self.children:
            try:
                return child.find(tournament_id)
            except NotFound:
                continue
        raise NotFound(f"Tournament {tournament_id} not found", tournament=tournament_id)

    def next_match_id(self) -> str:
        match_id = f"M{self._next_match_number}"
        self._next_match_number += 1
        return match_id

    def _reserve_match_id(self, match_id):
        if isinstance(match_id, str) and match_id.startswith('M') and match_id[1:].isdigit():
            self._next_match_number = max(self._next_match_number, int(match_id[1:]) + 1)

    def add_child(self, tournament_id, name, format_tag, participants, config=None) -> 'Tournament':
        child = Tournament.create(tournament_id, name, format_tag, participants, config,
                                  self.settings, parent=self, lock=self._lock)
        self.children.append(child)
        return child

    # -- counts ----------------------------------------------------------

    def expected_match_count(self) -> int:
        with self._lock:
            return self.format.expected_match_count(self)

    def matches_remaining(self) -> int:
        with self._lock:
            if self.cancelled:
                return 0
            return self.format.matches_remaining(self)

    def can_delete(self) -> bool:
        with self._lock:
            return self.format.can_delete(self)

    def can_cancel(self) -> bool:
        with self._lock:
            return not self.is_completed and self.format.can_cancel(self)

    def standings(self) -> List[Dict]:
        with self._lock:
            if self.final_standings is not None:
                return copy.deepcopy(self.final_standings)
            return self.format.standings(self)

    # -- mutations -------------------------------------------------------

    def _require_active(self, action):
        if self.is_completed:
            raise InvalidState(f"Cannot {action}: tournament {self.tournament_id} is "
                               f"{'cancelled' if self.cancelled else 'completed'}",
                               tournament=self.tournament_id, status=self.status)

    def record_result(self, ref=None, participant_a=None, participant_b=None, sets_a=0, sets_b=0,
                      forfeit_a=False, forfeit_b=False, match_id=None):
        """
        Record a result.

        Args:
            ref: bracket node (round, position) for playoffs; unused otherwise
            participant_a / participant_b: member ids of the two players
            sets_a / sets_b: sets won by each side
            forfeit_a / forfeit_b: side that forfeited (at most one)
            match_id: keep an existing id when rebuilding from storage

        Returns:
            The recorded Match
        """
        with self._lock:
            self._require_active('record a result')
            match = self.format.record_result(self, ref, participant_a, participant_b, sets_a, sets_b,
                                              forfeit_a, forfeit_b, match_id=match_id)
            self._reserve_match_id(match.match_id)
            logger.info(f'Tournament {self.tournament_id}: recorded {match.match_id} '
                        f'{match.participant_a} vs {match.participant_b} {match.sets_a}:{match.sets_b}')
            self._refresh_status()
            return match

    def edit_result(self, ref, sets_a, sets_b, forfeit_a=False, forfeit_b=False):
        """Correct a recorded result. Returns (match, removed downstream matches)."""
        with self._lock:
            self._require_active('edit a result')
            match, removed = self.format.edit_result(self, ref, sets_a, sets_b, forfeit_a, forfeit_b)
            logger.info(f'Tournament {self.tournament_id}: edited {match.match_id} to {sets_a}:{sets_b}')
            self._refresh_status()
            return match, removed

    def delete_result(self, ref):
        """Delete a recorded result. Returns every removed match."""
        with self._lock:
            self._require_active('delete a result')
            removed = self.format.delete_result(self, ref)
            logger.info(f'Tournament {self.tournament_id}: deleted {len(removed)} result(s)')
            return removed

    def pair_next_round(self):
        with self._lock:
            self._require_active('pair the next round')
            if not hasattr(self.format, 'pair_next_round'):
                raise InvalidState(f"{self.format_tag} tournaments have no rounds to pair",
                                   tournament=self.tournament_id, format=self.format_tag)
            return self.format.pair_next_round(self)

    def create_final_stage(self) -> 'Tournament':
        with self._lock:
            self._require_active('create the final stage')
            if not hasattr(self.format, 'create_final_stage'):
                raise InvalidState(f"{self.format_tag} tournaments have no final stage",
                                   tournament=self.tournament_id, format=self.format_tag)
            child = self.format.create_final_stage(self)
            self._refresh_status()
            return child

    def _refresh_status(self):
        if not self.is_completed and self.format.is_complete(self):
            self.complete()
        if self.parent is not None:
            self.parent._refresh_status()

    def complete(self):
        """Freeze standings and ratings and mark the tournament completed."""
        with self._lock:
            if self.is_completed:
                return
            self.format.on_complete(self)
            self.status = STATUS_COMPLETED
            logger.info(f'Tournament {self.tournament_id} completed')

    def cancel(self):
        """Stop accepting results. Cancelled tournaments count as completed."""
        with self._lock:
            self._cancel()
            # A cancelled final stage can be the last child a compound waits on
            if self.parent is not None:
                self.parent._refresh_status()

    def _cancel(self):
        if not self.can_cancel():
            raise InvalidState(f"Tournament {self.tournament_id} cannot be cancelled",
                               tournament=self.tournament_id, status=self.status)
        self.cancelled = True
        self.status = STATUS_COMPLETED
        for child in self.children:
            if not child.is_completed:
                child._cancel()
        logger.info(f'Tournament {self.tournament_id} cancelled')

    # -- views -----------------------------------------------------------

    def snapshot(self) -> Dict:
        """Plain-data copy of the tournament; later mutations do not show through."""
        with self._lock:
            data = {
                'id': self.tournament_id,
                'name': self.name,
                'format': self.format_tag,
                'status': self.status,
                'cancelled': self.cancelled,
                'participants': [p.to_dict() for p in self.participants],
                'config': copy.deepcopy(self.config),
                'parent': self.parent.tournament_id if self.parent else None,
                'children': [child.snapshot() for child in self.children],
                'matches': [m.to_dict() for m in self.format.matches(self)],
                'expected_matches': self.format.expected_match_count(self),
                'matches_remaining': self.matches_remaining(),
                'can_delete': self.format.can_delete(self),
                'standings': self.standings(),
                'final_ratings': ({str(k): v for k, v in self.final_ratings.items()}
                                  if self.final_ratings is not None else None),
            }
            data.update(self.format.describe(self))
            return data

    def to_record(self) -> Dict:
        """Persistable form: inputs and results only, rebuilt with Tournament.replay()."""
        with self._lock:
            return {
                'id': self.tournament_id,
                'name': self.name,
                'format': self.format_tag,
                'participants': [p.to_dict() for p in self.participants],
                'config': copy.deepcopy(self.config),
                'cancelled': self.cancelled,
                'results': self.format.record_results(self) if self.format.is_basic else [],
                'children': [child.to_record() for child in self.children],
            }

    @classmethod
    def replay(cls, record: Dict, settings=None) -> 'Tournament':
        """
        Rebuild a tournament by re-recording its results.

        Ratings, standings and status are derived again, so the result is the
        same as the tournament that produced the record.
        """
        tournament = cls.create(record['id'], record.get('name'), record['format'],
                                record['participants'], record.get('config'), settings)
        tournament._replay_into(record)
        return tournament

    def _replay_into(self, record):
        for result in _ordered_results(self.format_tag, record.get('results', [])):
            node = result.get('node')
            self.record_result(
                ref=tuple(node) if node else None,
                participant_a=result.get('participant_a'),
                participant_b=result.get('participant_b'),
                sets_a=result.get('sets_a', 0),
                sets_b=result.get('sets_b', 0),
                forfeit_a=result.get('forfeit_a', False),
                forfeit_b=result.get('forfeit_b', False),
                match_id=result.get('match_id'),
            )
        children = {child['id']: child for child in record.get('children', [])}
        for child in list(self.children):
            if child.tournament_id in children:
                child._replay_into(children.pop(child.tournament_id))
        for child_record in children.values():
            if child_record.get('config', {}).get('final_stage'):
                final = self.create_final_stage()
                final._replay_into(child_record)
        if record.get('cancelled'):
            if not self.is_completed:
                self._cancel()
        else:
            self._refresh_status()

    def __repr__(self):
        return (f"Tournament(id={self.tournament_id}, format={self.format_tag}, "
                f"participants={len(self.participants)}, status={self.status})")


def _ordered_results(format_tag, results):
    if format_tag == PLAYOFF:
        return sorted(results, key=lambda r: tuple(r['node']))
    return sorted(results, key=lambda r: (r.get('round') or 0, _match_number(r.get('match_id'))))


def _match_number(match_id):
    if isinstance(match_id, str) and match_id[1:].isdigit():
        return int(match_id[1:])
    return 0


class TournamentRegistry:
    """In-memory set of top-level tournaments, addressable by id (children included)."""

    def __init__(self, settings=None):
        self.settings = settings or get_default_settings()
        self._tournaments: Dict[str, Tournament] = {}
        self._lock = threading.RLock()

    def create(self, tournament_id, name, format_tag, participants, config=None) -> Tournament:
        with self._lock:
            if tournament_id in self._tournaments:
                raise InvalidState(f"Tournament {tournament_id} already exists", tournament=tournament_id)
            tournament = Tournament.create(tournament_id, name, format_tag, participants, config,
                                           self.settings)
            self._tournaments[tournament_id] = tournament
            return tournament

    def add(self, tournament: Tournament):
        with self._lock:
            self._tournaments[tournament.tournament_id] = tournament

    def get(self, tournament_id) -> Tournament:
        with self._lock:
            if tournament_id in self._tournaments:
                return self._tournaments[tournament_id]
            for tournament in self._tournaments.values():
                try:
                    return tournament.find(tournament_id)
                except NotFound:
                    continue
        raise NotFound(f"Tournament {tournament_id} not found", tournament=tournament_id)

    def delete(self, tournament_id):
        """Remove a top-level tournament that has no recorded results."""
        with self._lock:
            tournament = self._tournaments.get(tournament_id)
            if tournament is None:
                raise NotFound(f"Tournament {tournament_id} not found", tournament=tournament_id)
            if not tournament.can_delete():
                raise InvalidState(f"Tournament {tournament_id} has recorded results and cannot be deleted",
                                   tournament=tournament_id)
            del self._tournaments[tournament_id]
            logger.info(f'Deleted tournament {tournament_id}')

    def all(self) -> List[Tournament]:
        with self._lock:
            return list(self._tournaments.values())
