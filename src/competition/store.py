"""
YAML-backed persistence for matches, standings, tournaments and teams.

Every operation that changes state runs inside ``Store.transaction()``:
the data-directory lock is held while a consistent snapshot is loaded and
mutated, and the collections are written back only if the block finishes
without raising. All collections are staged to temp files before any of
them replaces its data file.
"""
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Dict, List, Optional

import yaml
from filelock import FileLock

from .errors import NotFound
from .models import Match, Standing, Team, Tournament

logger = logging.getLogger(__name__)

_Loader = getattr(yaml, 'CSafeLoader', yaml.SafeLoader)
_Dumper = getattr(yaml, 'CSafeDumper', yaml.SafeDumper)

COLLECTION_FILES = {
    'teams': 'teams.yaml',
    'matches': 'matches.yaml',
    'standings': 'standings.yaml',
    'tournaments': 'tournaments.yaml',
}


class Data:
    """In-memory view of all collections for one transaction."""

    def __init__(self, teams=None, matches=None, standings=None, tournaments=None):
        self.teams: Dict[int, Team] = teams if teams else {}
        self.matches: Dict[int, Match] = matches if matches else {}
        self.standings: Dict[tuple, Standing] = standings if standings else {}
        self.tournaments: Dict[int, Tournament] = tournaments if tournaments else {}

    def next_id(self, collection: str) -> int:
        records = getattr(self, collection)
        return max(records.keys(), default=0) + 1

    def get_team(self, team_id) -> Team:
        team = self.teams.get(team_id)
        if team is None:
            raise NotFound('Team not found.', team_id=team_id)
        return team

    def get_match(self, match_id) -> Match:
        match = self.matches.get(match_id)
        if match is None:
            raise NotFound('Match not found.', match_id=match_id)
        return match

    def get_tournament(self, tournament_id) -> Tournament:
        tournament = self.tournaments.get(tournament_id)
        if tournament is None:
            raise NotFound('Tournament not found.', tournament_id=tournament_id)
        return tournament

    def team_name(self, team_id) -> Optional[str]:
        team = self.teams.get(team_id)
        return team.name if team else None

    def add_match(self, match: Match) -> Match:
        if match.id is None:
            match.id = self.next_id('matches')
        self.matches[match.id] = match
        return match

    def tournament_matches(self, tournament_id) -> List[Match]:
        return [m for m in self.matches.values() if m.tournament_id == tournament_id]

    def season_standings(self, season_id) -> List[Standing]:
        return [s for s in self.standings.values() if s.season_id == season_id]


class Store:
    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        self.lock_timeout = lock_timeout
        os.makedirs(os.path.join(data_dir, 'locks'), exist_ok=True)
        self._lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)
        self._match_locks: Dict[int, FileLock] = {}

    def _path(self, collection: str) -> str:
        return os.path.join(self.data_dir, COLLECTION_FILES[collection])

    def _load_collection(self, collection: str) -> list:
        path = self._path(collection)
        if not os.path.exists(path):
            return []
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.load(f, Loader=_Loader)
        if not data:
            return []
        return data.get(collection, [])

    def _dump_collection(self, collection: str, records: list) -> str:
        """Write records to a temp file beside the target and return its path."""
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f'.{collection}-', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.dump({collection: records}, f, Dumper=_Dumper, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError):
            os.remove(tmp_path)
            raise
        return tmp_path

    def _load(self) -> Data:
        teams = {t['id']: Team.from_dict(t) for t in self._load_collection('teams')}
        matches = {m['id']: Match.from_dict(m) for m in self._load_collection('matches')}
        standings = {}
        for row in self._load_collection('standings'):
            standing = Standing.from_dict(row)
            standings[standing.key] = standing
        tournaments = {t['id']: Tournament.from_dict(t) for t in self._load_collection('tournaments')}
        return Data(teams, matches, standings, tournaments)

    def _save(self, data: Data):
        """Stage every collection, then swap the files in only once all dumps succeeded."""
        collections = {
            'teams': [t.to_dict() for t in sorted(data.teams.values(), key=lambda t: t.id)],
            'matches': [m.to_dict() for m in sorted(data.matches.values(), key=lambda m: m.id)],
            'standings': [s.to_dict() for _, s in sorted(data.standings.items(), key=lambda kv: kv[0])],
            'tournaments': [t.to_dict() for t in sorted(data.tournaments.values(), key=lambda t: t.id)],
        }
        staged = {}
        try:
            for collection, records in collections.items():
                staged[collection] = self._dump_collection(collection, records)
        except (OSError, yaml.YAMLError):
            for tmp_path in staged.values():
                os.remove(tmp_path)
            raise
        for collection, tmp_path in staged.items():
            os.replace(tmp_path, self._path(collection))

    @contextmanager
    def transaction(self):
        """Load, yield for mutation, and persist only if no exception escaped."""
        with self._lock:
            data = self._load()
            yield data
            self._save(data)

    def read(self) -> Data:
        """Consistent read-only snapshot."""
        with self._lock:
            return self._load()

    def match_lock(self, match_id) -> FileLock:
        """Lock serializing every mutation of one match.

        Raises NotFound for an unknown match, so no lock file is left behind
        for ids that never existed. Matches are never deleted, so a cached
        lock stays valid.
        """
        lock = self._match_locks.get(match_id)
        if lock is None:
            self.read().get_match(match_id)
            lock = FileLock(os.path.join(self.data_dir, 'locks', f'match-{match_id}.lock'),
                            timeout=self.lock_timeout)
            self._match_locks[match_id] = lock
        return lock

    def add_team(self, name: str, club: str = None, age_group: str = None) -> Team:
        """Register external team data so the engine can look it up."""
        with self.transaction() as data:
            team = Team(data.next_id('teams'), name, club, age_group)
            data.teams[team.id] = team
        logger.info(f'Added team {team.id} ({name})')
        return team
