"""
YAML persistence for tournaments.

Each top-level tournament is one file under <data_dir>/tournaments/. Only the
inputs and the recorded results are written; loading replays the results, so
ratings and standings are always recomputed rather than trusted from disk.
"""
import logging
import os
import re

import yaml
from filelock import FileLock

from ttengine.errors import NotFound, TournamentError
from ttengine.tournament import Tournament

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')


class TournamentStore:
    """Reads and writes tournament records under a data directory."""

    def __init__(self, data_dir, settings=None, lock_timeout=10):
        self.data_dir = data_dir
        self.tournaments_dir = os.path.join(data_dir, 'tournaments')
        self.settings = settings
        os.makedirs(self.tournaments_dir, exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def _path(self, tournament_id) -> str:
        if not _ID_PATTERN.match(str(tournament_id)):
            raise NotFound(f"Invalid tournament id {tournament_id!r}", tournament=tournament_id)
        return os.path.join(self.tournaments_dir, f'{tournament_id}.yaml')

    def save(self, tournament: Tournament):
        """Write the tournament's record, replacing any previous file."""
        record = tournament.to_record()
        path = self._path(tournament.tournament_id)
        with self._lock:
            tmp_path = path + '.tmp'
            with open(tmp_path, 'w', encoding='utf-8') as f:
                yaml.dump(record, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        logger.debug(f'Saved tournament {tournament.tournament_id} to {path}')

    def load_record(self, tournament_id) -> dict:
        path = self._path(tournament_id)
        if not os.path.exists(path):
            raise NotFound(f"Tournament {tournament_id} not found", tournament=tournament_id)
        with self._lock:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}

    def load(self, tournament_id) -> Tournament:
        return Tournament.replay(self.load_record(tournament_id), self.settings)

    def delete(self, tournament_id):
        path = self._path(tournament_id)
        with self._lock:
            if os.path.exists(path):
                os.remove(path)
        logger.debug(f'Removed {path}')

    def list_ids(self):
        names = sorted(os.listdir(self.tournaments_dir))
        return [name[:-len('.yaml')] for name in names if name.endswith('.yaml')]

    def load_all(self):
        """Load every stored tournament; unreadable files are logged and skipped."""
        tournaments = []
        for tournament_id in self.list_ids():
            try:
                tournaments.append(self.load(tournament_id))
            except (yaml.YAMLError, KeyError, TournamentError) as e:
                logger.warning(f'Failed to load tournament {tournament_id}: {e}')
        return tournaments
