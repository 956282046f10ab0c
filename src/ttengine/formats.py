"""
Tournament format dispatch.

Each format tag maps to one TournamentFormat subclass. Callers look the
format up by tag and call through the uniform interface instead of
branching on the tag themselves.
"""
import logging
import math
from typing import Dict, List, Optional, Tuple

from ttengine import advancement, round_robin, swiss
from ttengine.bracket import build_bracket
from ttengine.config import get_default_settings
from ttengine.errors import (InvalidEntryCount, InvalidResult, InvalidState, NoPairingAvailable, NotFound,
                             UnsupportedFormat)
from ttengine.models import Match, decide_winner, validate_result
from ttengine.rating import point_exchange, tournament_ratings

logger = logging.getLogger(__name__)

ROUND_ROBIN = 'ROUND_ROBIN'
PLAYOFF = 'PLAYOFF'
SWISS = 'SWISS'
PRELIMINARY_WITH_FINAL_ROUND_ROBIN = 'PRELIMINARY_WITH_FINAL_ROUND_ROBIN'
PRELIMINARY_WITH_FINAL_PLAYOFF = 'PRELIMINARY_WITH_FINAL_PLAYOFF'


def pair_count_fallback(num_players: int) -> int:
    """Generic pair-count formula for formats without their own count."""
    return round_robin.expected_matches(num_players)


def parse_node_ref(ref) -> Tuple[int, int]:
    """Accept (round, position), [round, position] or 'round-position'."""
    if isinstance(ref, (tuple, list)) and len(ref) == 2:
        return int(ref[0]), int(ref[1])
    if isinstance(ref, str) and '-' in ref:
        round_part, position_part = ref.split('-', 1)
        try:
            return int(round_part), int(position_part)
        except ValueError:
            pass
    raise NotFound(f"Invalid bracket match reference {ref!r}", ref=ref)


def _check_entry_count(num_players: int):
    if num_players < 2:
        raise InvalidEntryCount(f"A tournament needs at least 2 participants, got {num_players}",
                                participants=num_players)


class TournamentFormat:
    """Default behaviour shared by all formats."""

    tag = None
    is_basic = True

    def setup(self, tournament):
        """Build the competition structure for a new tournament."""

    def expected_match_count(self, tournament) -> int:
        return pair_count_fallback(len(tournament.participants))

    def preview_match_count(self, num_players: int, config=None, settings=None) -> int:
        """Expected match count for an entry count, before a tournament exists."""
        _check_entry_count(num_players)
        return pair_count_fallback(num_players)

    def recorded_match_count(self, tournament) -> int:
        return len(self.matches(tournament))

    def matches(self, tournament) -> List[Match]:
        return list(tournament.matches)

    def is_complete(self, tournament) -> bool:
        expected = self.expected_match_count(tournament)
        return expected > 0 and self.recorded_match_count(tournament) >= expected

    def matches_remaining(self, tournament) -> int:
        return max(0, self.expected_match_count(tournament) - self.recorded_match_count(tournament))

    def can_delete(self, tournament) -> bool:
        return self.recorded_match_count(tournament) == 0

    def can_cancel(self, tournament) -> bool:
        return True

    def standings(self, tournament) -> List[Dict]:
        return round_robin.calculate_standings(tournament.participants, self.matches(tournament))

    def final_ratings(self, tournament) -> Dict[int, int]:
        """Entry rating plus every recorded change, per participant."""
        ratings = {p.member_id: p.effective_rating for p in tournament.participants}
        for match in self.matches(tournament):
            ratings[match.participant_a] += match.rating_change_a or 0
            if match.participant_b is not None:
                ratings[match.participant_b] += match.rating_change_b or 0
        return ratings

    def on_complete(self, tournament):
        tournament.final_standings = self.standings(tournament)
        tournament.final_ratings = self.final_ratings(tournament)

    def record_result(self, tournament, ref, participant_a, participant_b, sets_a, sets_b,
                      forfeit_a, forfeit_b, match_id=None) -> Match:
        raise InvalidState(f"{self.tag} tournaments do not accept results directly",
                           tournament=tournament.tournament_id)

    def edit_result(self, tournament, ref, sets_a, sets_b, forfeit_a, forfeit_b) -> Tuple[Match, List[Match]]:
        raise InvalidState(f"{self.tag} tournaments do not accept results directly",
                           tournament=tournament.tournament_id)

    def delete_result(self, tournament, ref) -> List[Match]:
        raise InvalidState(f"{self.tag} tournaments do not accept results directly",
                           tournament=tournament.tournament_id)

    def describe(self, tournament) -> Dict:
        return {}

    def record_results(self, tournament) -> List[Dict]:
        return [m.to_dict() for m in self.matches(tournament)]


class _MatchListFormat(TournamentFormat):
    """Formats whose results are a flat list of matches rated against entry ratings."""

    def _check_pair(self, tournament, participant_a, participant_b):
        for member_id in (participant_a, participant_b):
            if member_id is None or tournament.participant(member_id) is None:
                raise NotFound(f"Participant {member_id} is not entered in this tournament",
                               member_id=member_id)
        if participant_a == participant_b:
            raise InvalidResult("A player cannot play against themselves", member_id=participant_a)

    def _rated_match(self, tournament, match_id, participant_a, participant_b, sets_a, sets_b,
                     forfeit_a, forfeit_b, round_num=None, rating_a=None, rating_b=None) -> Match:
        if rating_a is None:
            rating_a = tournament.participant(participant_a).effective_rating
        if rating_b is None:
            rating_b = tournament.participant(participant_b).effective_rating
        a_won = decide_winner(sets_a, sets_b, forfeit_a, forfeit_b) == 'a'
        change_a, change_b = point_exchange(rating_a, rating_b, a_won, tournament.point_table)
        return Match(match_id, participant_a, participant_b, sets_a, sets_b, forfeit_a, forfeit_b,
                     rating_before_a=rating_a, rating_before_b=rating_b,
                     rating_change_a=change_a, rating_change_b=change_b, round=round_num)

    def _find(self, tournament, ref) -> Match:
        for match in tournament.matches:
            if match.match_id == ref:
                return match
        raise NotFound(f"Match {ref} not found", match_id=ref)

    def _check_recorded_pair(self, tournament, participant_a, participant_b, round_num=None):
        key = frozenset((participant_a, participant_b))
        for match in tournament.matches:
            if frozenset((match.participant_a, match.participant_b)) == key and \
                    (round_num is None or match.round == round_num):
                raise InvalidState(
                    f"Result for {participant_a} vs {participant_b} already recorded as {match.match_id}",
                    match_id=match.match_id, participant_a=participant_a, participant_b=participant_b,
                )

    def edit_result(self, tournament, ref, sets_a, sets_b, forfeit_a, forfeit_b):
        old = self._find(tournament, ref)
        validate_result(sets_a, sets_b, forfeit_a, forfeit_b, match_id=ref)
        self._check_edit_allowed(tournament, old, sets_a, sets_b, forfeit_a, forfeit_b)
        new = self._rated_match(tournament, old.match_id, old.participant_a, old.participant_b,
                                sets_a, sets_b, forfeit_a, forfeit_b, round_num=old.round,
                                rating_a=old.rating_before_a, rating_b=old.rating_before_b)
        tournament.matches[tournament.matches.index(old)] = new
        return new, []

    def delete_result(self, tournament, ref):
        old = self._find(tournament, ref)
        self._check_delete_allowed(tournament, old)
        tournament.matches.remove(old)
        return [old]

    def _check_edit_allowed(self, tournament, old, sets_a, sets_b, forfeit_a, forfeit_b):
        pass

    def _check_delete_allowed(self, tournament, old):
        pass


class RoundRobinFormat(_MatchListFormat):
    tag = ROUND_ROBIN

    def setup(self, tournament):
        if len(tournament.participants) < 2:
            raise InvalidEntryCount(f"Round robin needs at least 2 participants, got {len(tournament.participants)}",
                                    participants=len(tournament.participants))

    def expected_match_count(self, tournament):
        return round_robin.expected_matches(len(tournament.participants))

    def preview_match_count(self, num_players, config=None, settings=None):
        _check_entry_count(num_players)
        return round_robin.expected_matches(num_players)

    def record_result(self, tournament, ref, participant_a, participant_b, sets_a, sets_b,
                      forfeit_a, forfeit_b, match_id=None):
        self._check_pair(tournament, participant_a, participant_b)
        validate_result(sets_a, sets_b, forfeit_a, forfeit_b,
                        participant_a=participant_a, participant_b=participant_b)
        self._check_recorded_pair(tournament, participant_a, participant_b)
        match = self._rated_match(tournament, match_id or tournament.next_match_id(),
                                  participant_a, participant_b, sets_a, sets_b, forfeit_a, forfeit_b)
        tournament.matches.append(match)
        return match

    def final_ratings(self, tournament):
        return tournament_ratings(tournament.participants, tournament.matches,
                                  tournament.point_table, tournament.default_rating)

    def describe(self, tournament):
        recorded = round_robin.head_to_head(tournament.matches)
        fixtures = []
        for round_num, pairs in enumerate(round_robin.schedule_rounds(tournament.participants), start=1):
            for member_a, member_b in pairs:
                result = recorded.get(round_robin.fixture_key(member_a, member_b))
                fixtures.append({
                    'round': round_num,
                    'participant_a': member_a,
                    'participant_b': member_b,
                    'result': result,
                })
        return {'fixtures': fixtures}


class SwissFormat(_MatchListFormat):
    tag = SWISS

    def rounds(self, tournament) -> int:
        return tournament.config['rounds']

    def setup(self, tournament):
        num_players = len(tournament.participants)
        if tournament.config.get('rounds') is None:
            tournament.config['rounds'] = swiss.default_rounds(num_players)
        swiss.validate_config(num_players, tournament.config['rounds'])
        tournament.pairings = {}
        self.pair_next_round(tournament)

    def expected_match_count(self, tournament):
        return swiss.expected_matches(len(tournament.participants), self.rounds(tournament))

    def preview_match_count(self, num_players, config=None, settings=None):
        rounds = (config or {}).get('rounds')
        if rounds is None:
            rounds = swiss.default_rounds(num_players)
        swiss.validate_config(num_players, rounds)
        return swiss.expected_matches(num_players, rounds)

    def current_round(self, tournament) -> int:
        return max(tournament.pairings) if tournament.pairings else 0

    def pair_next_round(self, tournament) -> List[Tuple[int, int]]:
        current = self.current_round(tournament)
        if current and not swiss.is_round_complete(tournament.pairings[current], tournament.matches, current):
            raise InvalidState(f"Round {current} is not finished", round=current)
        if current >= self.rounds(tournament):
            raise InvalidState(f"All {current} rounds have been paired", round=current)
        next_round = current + 1
        tournament.pairings[next_round] = swiss.pair_round(tournament.participants, tournament.matches, next_round)
        logger.info(f'Tournament {tournament.tournament_id}: paired Swiss round {next_round}')
        return tournament.pairings[next_round]

    def record_result(self, tournament, ref, participant_a, participant_b, sets_a, sets_b,
                      forfeit_a, forfeit_b, match_id=None):
        self._check_pair(tournament, participant_a, participant_b)
        validate_result(sets_a, sets_b, forfeit_a, forfeit_b,
                        participant_a=participant_a, participant_b=participant_b)
        current = self.current_round(tournament)
        pairs = {frozenset(pair) for pair in tournament.pairings.get(current, [])}
        if frozenset((participant_a, participant_b)) not in pairs:
            raise InvalidState(f"{participant_a} vs {participant_b} is not paired in round {current}",
                               round=current, participant_a=participant_a, participant_b=participant_b)
        self._check_recorded_pair(tournament, participant_a, participant_b, round_num=current)
        match = self._rated_match(tournament, match_id or tournament.next_match_id(),
                                  participant_a, participant_b, sets_a, sets_b, forfeit_a, forfeit_b,
                                  round_num=current)
        tournament.matches.append(match)
        if swiss.is_round_complete(tournament.pairings[current], tournament.matches, current) \
                and current < self.rounds(tournament):
            try:
                self.pair_next_round(tournament)
            except NoPairingAvailable as e:
                # The result stands; the round can be paired again or the event cancelled
                logger.warning(f'Tournament {tournament.tournament_id}: {e.message}')
        return match

    def _check_edit_allowed(self, tournament, old, sets_a, sets_b, forfeit_a, forfeit_b):
        # Later rounds were paired on the old winner
        new_winner = old.participant_a if decide_winner(sets_a, sets_b, forfeit_a, forfeit_b) == 'a' \
            else old.participant_b
        if old.round < self.current_round(tournament) and new_winner != old.winner_id:
            raise InvalidState(f"Cannot change the winner of {old.match_id}: round {old.round} is closed",
                               match_id=old.match_id, round=old.round)

    def _check_delete_allowed(self, tournament, old):
        if old.round < self.current_round(tournament):
            raise InvalidState(f"Cannot delete {old.match_id}: round {old.round} is closed",
                               match_id=old.match_id, round=old.round)

    def standings(self, tournament):
        rows = round_robin.calculate_standings(tournament.participants, tournament.matches)
        ratings = {p.member_id: (p.rating if p.rating is not None else 0) for p in tournament.participants}
        rows.sort(key=lambda row: (-row['wins'], -row['set_diff'], -ratings[row['member_id']], row['member_id']))
        for place, row in enumerate(rows, start=1):
            row['place'] = place
        return rows

    def describe(self, tournament):
        return {
            'rounds': self.rounds(tournament),
            'current_round': self.current_round(tournament),
            'round_bounds': list(swiss.round_bounds(len(tournament.participants))),
            'pairings': {str(r): [list(pair) for pair in pairs] for r, pairs in tournament.pairings.items()},
        }


class PlayoffFormat(TournamentFormat):
    tag = PLAYOFF

    def setup(self, tournament):
        tournament.bracket = build_bracket(
            tournament.participants,
            positions=tournament.config.get('positions'),
            seeding=tournament.config.get('seeding'),
        )
        tournament.config['positions'] = list(tournament.bracket.positions)

    def matches(self, tournament):
        return advancement.recorded_matches(tournament.bracket)

    def expected_match_count(self, tournament):
        return advancement.playable_match_count(tournament.bracket)

    def preview_match_count(self, num_players, config=None, settings=None):
        _check_entry_count(num_players)
        return num_players - 1

    def is_complete(self, tournament):
        return advancement.is_complete(tournament.bracket)

    def _node_for(self, tournament, ref):
        round_num, position = parse_node_ref(ref)
        tournament.bracket.node(round_num, position)
        return round_num, position

    def record_result(self, tournament, ref, participant_a, participant_b, sets_a, sets_b,
                      forfeit_a, forfeit_b, match_id=None):
        round_num, position = self._node_for(tournament, ref)
        slot_a, slot_b = advancement.occupants(tournament.bracket, round_num, position)
        ready = advancement.node_state(tournament.bracket, round_num, position) == advancement.STATE_READY
        if ready and (participant_a is not None or participant_b is not None):
            for member_id in (participant_a, participant_b):
                if member_id is not None and tournament.participant(member_id) is None:
                    raise NotFound(f"Participant {member_id} is not entered in this tournament",
                                   member_id=member_id)
            if (participant_a, participant_b) == (slot_b, slot_a):
                sets_a, sets_b = sets_b, sets_a
                forfeit_a, forfeit_b = forfeit_b, forfeit_a
            elif (participant_a, participant_b) != (slot_a, slot_b):
                raise InvalidResult(
                    f"Round {round_num}, position {position} is {slot_a} vs {slot_b}, "
                    f"not {participant_a} vs {participant_b}",
                    round=round_num, position=position, slot_a=slot_a, slot_b=slot_b,
                )
        return advancement.record_result(tournament.bracket, round_num, position, sets_a, sets_b,
                                         forfeit_a, forfeit_b, match_id=match_id,
                                         table=tournament.point_table)

    def edit_result(self, tournament, ref, sets_a, sets_b, forfeit_a, forfeit_b):
        round_num, position = self._node_for(tournament, ref)
        return advancement.edit_result(tournament.bracket, round_num, position, sets_a, sets_b,
                                       forfeit_a, forfeit_b, table=tournament.point_table)

    def delete_result(self, tournament, ref):
        round_num, position = self._node_for(tournament, ref)
        return advancement.delete_result(tournament.bracket, round_num, position)

    def final_ratings(self, tournament):
        return advancement.replay_ratings(tournament.bracket)

    def standings(self, tournament):
        """Place players by the round they went out in; the champion is first."""
        bracket = tournament.bracket
        exit_round = {mid: None for mid in bracket.participants}
        for node in bracket.ordered_nodes():
            if node.match is not None:
                exit_round[node.match.loser_id] = node.round
        champion = advancement.champion(bracket)
        rows = []
        for mid, participant in bracket.participants.items():
            if mid == champion:
                reached = bracket.total_rounds + 2
            elif exit_round[mid] is not None:
                reached = exit_round[mid]
            else:
                reached = bracket.total_rounds + 1  # Still in
            rows.append({'member_id': mid, 'name': participant.name, 'rating': participant.rating,
                         'seed': bracket.seeds.get(mid), 'eliminated_in_round': exit_round[mid],
                         'reached': reached})
        rows.sort(key=lambda r: (-r['reached'], r['seed'] if r['seed'] is not None else math.inf,
                                 r['member_id']))
        for place, row in enumerate(rows, start=1):
            row['place'] = place
            del row['reached']
        return rows

    def describe(self, tournament):
        return {'bracket': advancement.snapshot(tournament.bracket)}

    def record_results(self, tournament):
        return [m.to_dict() for m in self.matches(tournament)]


class CompoundFormat(TournamentFormat):
    """
    Preliminary round robin groups followed by a final stage.

    The parent holds no matches of its own; results go to the child
    tournaments. The final stage is created explicitly once every group is
    complete.
    """

    is_basic = False
    final_format = None
    final_size_setting = None

    def _final_size(self, tournament) -> int:
        return self._configured_final_size(tournament.config, tournament.settings)

    def _configured_final_size(self, config, settings) -> int:
        return int(config.get('final_size') or settings['compound'][self.final_size_setting])

    def setup(self, tournament):
        config = tournament.config
        groups = config.get('groups')
        auto_qualified = list(config.get('auto_qualified', []))
        member_ids = [p.member_id for p in tournament.participants]
        for member_id in auto_qualified:
            if member_id not in member_ids:
                raise NotFound(f"Auto-qualified participant {member_id} is not entered", member_id=member_id)
        grouped_ids = [mid for mid in member_ids if mid not in auto_qualified]
        if not groups:
            groups = make_groups([tournament.participant(mid) for mid in grouped_ids],
                                 config.get('group_count') or max(1, len(grouped_ids) // 4))
        flat = [mid for group in groups for mid in group]
        if sorted(flat) != sorted(grouped_ids):
            raise InvalidEntryCount("Every participant that is not auto-qualified must be in exactly one group",
                                    grouped=sorted(flat), expected=sorted(grouped_ids))
        for index, group in enumerate(groups, start=1):
            if len(group) < 2:
                raise InvalidEntryCount(f"Group {index} needs at least 2 players, got {len(group)}",
                                        group=index, participants=len(group))
        final_size = self._final_size(tournament)
        if final_size < 2 or final_size > len(member_ids):
            raise InvalidEntryCount(f"Final stage size {final_size} must be between 2 and {len(member_ids)}",
                                    final_size=final_size, participants=len(member_ids))
        if len(auto_qualified) > final_size:
            raise InvalidEntryCount(f"{len(auto_qualified)} auto-qualified players exceed final size {final_size}",
                                    auto_qualified=len(auto_qualified), final_size=final_size)
        config['groups'] = [list(group) for group in groups]
        config['auto_qualified'] = auto_qualified
        config['final_size'] = final_size
        for index, group in enumerate(config['groups'], start=1):
            tournament.add_child(f"{tournament.tournament_id}-G{index}", f"{tournament.name} - Group {index}",
                                 ROUND_ROBIN, [tournament.participant(mid) for mid in group],
                                 {'group_number': index})

    def groups(self, tournament):
        return [c for c in tournament.children if c.config.get('group_number') is not None]

    def final_stage(self, tournament):
        for child in tournament.children:
            if child.config.get('final_stage'):
                return child
        return None

    def _final_match_count(self, size: int) -> int:
        return FORMATS[self.final_format].preview_match_count(size)

    def _projected_final_count(self, tournament) -> int:
        return self._final_match_count(tournament.config['final_size'])

    def expected_match_count(self, tournament):
        total = sum(c.format.expected_match_count(c) for c in self.groups(tournament))
        final = self.final_stage(tournament)
        if final is not None:
            return total + final.format.expected_match_count(final)
        return total + self._projected_final_count(tournament)

    def preview_match_count(self, num_players, config=None, settings=None):
        """Group fixtures plus the final stage, projected the way setup() would build them."""
        _check_entry_count(num_players)
        config = config or {}
        settings = settings or get_default_settings()
        if config.get('groups'):
            sizes = [len(group) for group in config['groups']]
        else:
            grouped = num_players - len(config.get('auto_qualified', []))
            sizes = group_sizes(grouped, config.get('group_count') or max(1, grouped // 4))
        final_size = self._configured_final_size(config, settings)
        if final_size < 2 or final_size > num_players:
            raise InvalidEntryCount(f"Final stage size {final_size} must be between 2 and {num_players}",
                                    final_size=final_size, participants=num_players)
        return sum(round_robin.expected_matches(size) for size in sizes) + self._final_match_count(final_size)

    def recorded_match_count(self, tournament):
        return sum(c.format.recorded_match_count(c) for c in tournament.children)

    def matches(self, tournament):
        return [m for c in tournament.children for m in c.format.matches(c)]

    def matches_remaining(self, tournament):
        remaining = sum(c.format.matches_remaining(c) for c in tournament.children if not c.is_completed)
        if self.final_stage(tournament) is None:
            remaining += self._projected_final_count(tournament)
        return remaining

    def is_complete(self, tournament):
        final = self.final_stage(tournament)
        if final is None:
            return False
        return all(c.is_completed for c in tournament.children)

    def can_delete(self, tournament):
        return self.recorded_match_count(tournament) == 0

    def qualify(self, tournament) -> List[int]:
        """
        Pick the final stage entrants from the group standings.

        Order: auto-qualified players, every group winner, then the remaining
        slots by group place (2nd, 3rd, ...), higher entry rating first within
        a place. The returned list is the final's seeding.
        """
        config = tournament.config
        final_size = config['final_size']
        group_tables = [c.format.standings(c) for c in self.groups(tournament)]

        def rating_of(member_id):
            rating = tournament.participant(member_id).rating
            return rating if rating is not None else 0

        auto = sorted(config['auto_qualified'], key=lambda mid: (-rating_of(mid), mid))
        winners = sorted((table[0]['member_id'] for table in group_tables if table),
                         key=lambda mid: (-rating_of(mid), mid))
        qualified = list(auto)
        for member_id in winners:
            if len(qualified) < final_size and member_id not in qualified:
                qualified.append(member_id)

        deepest = max((len(table) for table in group_tables), default=0)
        for place_index in range(1, deepest):
            if len(qualified) >= final_size:
                break
            candidates = [table[place_index]['member_id'] for table in group_tables
                          if place_index < len(table) and table[place_index]['member_id'] not in qualified]
            candidates.sort(key=lambda mid: (-rating_of(mid), mid))
            qualified.extend(candidates[:final_size - len(qualified)])
        return qualified

    def create_final_stage(self, tournament):
        if self.final_stage(tournament) is not None:
            raise InvalidState("Final stage already exists", tournament=tournament.tournament_id)
        pending = [c.tournament_id for c in self.groups(tournament) if not c.is_completed]
        if pending:
            raise InvalidState("All preliminary groups must be complete before the final stage",
                               pending_groups=pending)
        qualified = self.qualify(tournament)
        config = {'final_stage': True}
        if self.final_format == PLAYOFF:
            config['seeding'] = list(qualified)
        child = tournament.add_child(f"{tournament.tournament_id}-F", f"{tournament.name} - Final",
                                     self.final_format, [tournament.participant(mid) for mid in qualified],
                                     config)
        logger.info(f'Tournament {tournament.tournament_id}: final stage created with {len(qualified)} players')
        return child

    def standings(self, tournament):
        final = self.final_stage(tournament)
        if final is not None:
            return final.format.standings(final)
        return []

    def final_ratings(self, tournament):
        ratings = {p.member_id: p.effective_rating for p in tournament.participants}
        for child in tournament.children:
            if child.final_ratings:
                for member_id, rating in child.final_ratings.items():
                    ratings[member_id] += rating - child.participant(member_id).effective_rating
        return ratings

    def describe(self, tournament):
        final = self.final_stage(tournament)
        return {
            'final_size': tournament.config['final_size'],
            'auto_qualified': tournament.config['auto_qualified'],
            'groups': [c.tournament_id for c in self.groups(tournament)],
            'final_stage': final.tournament_id if final else None,
        }


class PreliminaryWithFinalRoundRobinFormat(CompoundFormat):
    tag = PRELIMINARY_WITH_FINAL_ROUND_ROBIN
    final_format = ROUND_ROBIN
    final_size_setting = 'final_round_robin_size'


class PreliminaryWithFinalPlayoffFormat(CompoundFormat):
    tag = PRELIMINARY_WITH_FINAL_PLAYOFF
    final_format = PLAYOFF
    final_size_setting = 'final_playoff_size'


def _limit_group_count(num_players: int, group_count: int) -> int:
    return max(1, min(group_count, num_players // 2 or 1))


def group_sizes(num_players: int, group_count: int) -> List[int]:
    """Sizes of the groups make_groups() would build, largest first."""
    group_count = _limit_group_count(num_players, group_count)
    base, extra = divmod(num_players, group_count)
    return [base + 1 if index < extra else base for index in range(group_count)]


def make_groups(participants, group_count: int) -> List[List[int]]:
    """
    Split participants into groups by snake seeding on rating, so every
    group gets a similar spread of strength.
    """
    ranked = sorted(participants, key=lambda p: (-(p.rating if p.rating is not None else 0), p.member_id))
    group_count = _limit_group_count(len(ranked), group_count)
    groups = [[] for _ in range(group_count)]
    for index, participant in enumerate(ranked):
        lap, offset = divmod(index, group_count)
        target = offset if lap % 2 == 0 else group_count - 1 - offset
        groups[target].append(participant.member_id)
    return groups


FORMATS: Dict[str, TournamentFormat] = {}


def register(fmt: TournamentFormat):
    FORMATS[fmt.tag] = fmt
    return fmt


def get_format(tag: str) -> TournamentFormat:
    fmt = FORMATS.get(tag)
    if fmt is None:
        raise UnsupportedFormat(f"Unsupported tournament format: {tag}", format=tag,
                                supported=sorted(FORMATS))
    return fmt


def expected_match_count_for(tag: Optional[str], num_players: int, config=None, settings=None) -> int:
    """Expected match count for a tag before a tournament exists."""
    return get_format(tag).preview_match_count(num_players, config, settings)


for _fmt in (RoundRobinFormat(), PlayoffFormat(), SwissFormat(),
             PreliminaryWithFinalRoundRobinFormat(), PreliminaryWithFinalPlayoffFormat()):
    register(_fmt)
