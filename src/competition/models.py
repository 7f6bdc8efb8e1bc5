"""
Records the engine reads and writes.

Match owns its sets and a set owns its points, so the whole hierarchy is
serialized as one nested record. Teams are owned elsewhere; the engine only
looks up their name, club and age group.
"""
from datetime import date, datetime
from typing import List, Optional

from . import rules


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    return datetime.fromisoformat(str(value))


def _parse_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Team:
    def __init__(self, id, name, club=None, age_group=None):
        self.id = id
        self.name = name
        self.club = club
        self.age_group = age_group

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'club': self.club, 'age_group': self.age_group}

    @classmethod
    def from_dict(cls, data: dict) -> 'Team':
        return cls(data['id'], data['name'], data.get('club'), data.get('age_group'))

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, age_group={self.age_group})"


class Point:
    """A single rally won. Points are append-only."""

    def __init__(self, scoring_team_id, home_score_after, away_score_after,
                 player_id=None, point_type=rules.DEFAULT_POINT_TYPE, timestamp=None):
        self.scoring_team_id = scoring_team_id
        self.player_id = player_id
        self.point_type = point_type
        self.home_score_after = home_score_after
        self.away_score_after = away_score_after
        self.timestamp = timestamp or datetime.now()

    def to_dict(self) -> dict:
        return {
            'scoring_team_id': self.scoring_team_id,
            'player_id': self.player_id,
            'point_type': self.point_type,
            'home_score_after': self.home_score_after,
            'away_score_after': self.away_score_after,
            'timestamp': _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Point':
        return cls(
            data['scoring_team_id'],
            data['home_score_after'],
            data['away_score_after'],
            player_id=data.get('player_id'),
            point_type=data.get('point_type', rules.DEFAULT_POINT_TYPE),
            timestamp=_parse_datetime(data.get('timestamp')),
        )

    def __repr__(self):
        return f"Point(team={self.scoring_team_id}, score={self.home_score_after}-{self.away_score_after})"


class GameSet:
    def __init__(self, set_number, home_points=0, away_points=0, status='in_progress',
                 winner_team_id=None, started_at=None, ended_at=None, points=None):
        self.set_number = set_number
        self.home_points = home_points
        self.away_points = away_points
        self.status = status
        self.winner_team_id = winner_team_id
        self.started_at = started_at
        self.ended_at = ended_at
        self.points: List[Point] = points if points else []

    @property
    def is_completed(self) -> bool:
        return self.status == 'completed'

    def to_dict(self) -> dict:
        return {
            'set_number': self.set_number,
            'home_points': self.home_points,
            'away_points': self.away_points,
            'status': self.status,
            'winner_team_id': self.winner_team_id,
            'started_at': _iso(self.started_at),
            'ended_at': _iso(self.ended_at),
            'points': [p.to_dict() for p in self.points],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'GameSet':
        return cls(
            data['set_number'],
            home_points=data.get('home_points', 0),
            away_points=data.get('away_points', 0),
            status=data.get('status', 'in_progress'),
            winner_team_id=data.get('winner_team_id'),
            started_at=_parse_datetime(data.get('started_at')),
            ended_at=_parse_datetime(data.get('ended_at')),
            points=[Point.from_dict(p) for p in data.get('points') or []],
        )

    def __repr__(self):
        return f"GameSet(number={self.set_number}, score={self.home_points}-{self.away_points}, status={self.status})"


class Match:
    """One best-of-five contest between two teams.

    Later bracket rounds are created before their teams are known; their
    team slots hold None until the feeder match finishes.
    """

    def __init__(self, id, home_team_id, away_team_id, scheduled_at, status='scheduled',
                 season_id=None, tournament_id=None, is_playoff=False, venue=None, notes=None,
                 home_sets_won=0, away_sets_won=0, winner_team_id=None,
                 started_at=None, ended_at=None, current_set_number=None,
                 round_number=None, bracket_position=None, next_match_id=None, next_slot=None,
                 sets=None):
        self.id = id
        self.home_team_id = home_team_id
        self.away_team_id = away_team_id
        self.scheduled_at = scheduled_at
        self.status = status
        self.season_id = season_id
        self.tournament_id = tournament_id
        self.is_playoff = is_playoff
        self.venue = venue
        self.notes = notes
        self.home_sets_won = home_sets_won
        self.away_sets_won = away_sets_won
        self.winner_team_id = winner_team_id
        self.started_at = started_at
        self.ended_at = ended_at
        self.current_set_number = current_set_number
        self.round_number = round_number
        self.bracket_position = bracket_position
        self.next_match_id = next_match_id
        self.next_slot = next_slot
        self.sets: List[GameSet] = sets if sets else []

    @property
    def current_set(self) -> Optional[GameSet]:
        if self.current_set_number is None:
            return None
        for game_set in self.sets:
            if game_set.set_number == self.current_set_number:
                return game_set
        return None

    @property
    def teams_known(self) -> bool:
        return self.home_team_id is not None and self.away_team_id is not None

    def side_of(self, team_id) -> Optional[str]:
        if team_id is None:
            return None
        if team_id == self.home_team_id:
            return 'home'
        if team_id == self.away_team_id:
            return 'away'
        return None

    def completed_sets(self) -> List[GameSet]:
        return [s for s in self.sets if s.is_completed]

    def point_totals(self):
        """Return (home_points, away_points) summed over every set played."""
        home = sum(s.home_points for s in self.sets)
        away = sum(s.away_points for s in self.sets)
        return home, away

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'home_team_id': self.home_team_id,
            'away_team_id': self.away_team_id,
            'scheduled_at': _iso(self.scheduled_at),
            'status': self.status,
            'season_id': self.season_id,
            'tournament_id': self.tournament_id,
            'is_playoff': self.is_playoff,
            'venue': self.venue,
            'notes': self.notes,
            'home_sets_won': self.home_sets_won,
            'away_sets_won': self.away_sets_won,
            'winner_team_id': self.winner_team_id,
            'started_at': _iso(self.started_at),
            'ended_at': _iso(self.ended_at),
            'current_set_number': self.current_set_number,
            'round_number': self.round_number,
            'bracket_position': self.bracket_position,
            'next_match_id': self.next_match_id,
            'next_slot': self.next_slot,
            'sets': [s.to_dict() for s in self.sets],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Match':
        return cls(
            data['id'],
            data.get('home_team_id'),
            data.get('away_team_id'),
            _parse_datetime(data.get('scheduled_at')),
            status=data.get('status', 'scheduled'),
            season_id=data.get('season_id'),
            tournament_id=data.get('tournament_id'),
            is_playoff=data.get('is_playoff', False),
            venue=data.get('venue'),
            notes=data.get('notes'),
            home_sets_won=data.get('home_sets_won', 0),
            away_sets_won=data.get('away_sets_won', 0),
            winner_team_id=data.get('winner_team_id'),
            started_at=_parse_datetime(data.get('started_at')),
            ended_at=_parse_datetime(data.get('ended_at')),
            current_set_number=data.get('current_set_number'),
            round_number=data.get('round_number'),
            bracket_position=data.get('bracket_position'),
            next_match_id=data.get('next_match_id'),
            next_slot=data.get('next_slot'),
            sets=[GameSet.from_dict(s) for s in data.get('sets') or []],
        )

    def __repr__(self):
        return (f"Match(id={self.id}, home={self.home_team_id}, away={self.away_team_id}, "
                f"status={self.status}, sets={self.home_sets_won}-{self.away_sets_won})")


class Standing:
    """A team's accumulated record for one season."""

    def __init__(self, team_id, season_id, wins=0, losses=0, sets_won=0, sets_lost=0,
                 points_scored=0, points_allowed=0, win_percentage=0.0,
                 rank_in_age_group=None, rank_in_division=None, last_updated=None):
        self.team_id = team_id
        self.season_id = season_id
        self.wins = wins
        self.losses = losses
        self.sets_won = sets_won
        self.sets_lost = sets_lost
        self.points_scored = points_scored
        self.points_allowed = points_allowed
        self.win_percentage = win_percentage
        self.rank_in_age_group = rank_in_age_group
        self.rank_in_division = rank_in_division
        self.last_updated = last_updated

    @property
    def key(self):
        return (self.team_id, self.season_id)

    def to_dict(self) -> dict:
        return {
            'team_id': self.team_id,
            'season_id': self.season_id,
            'wins': self.wins,
            'losses': self.losses,
            'sets_won': self.sets_won,
            'sets_lost': self.sets_lost,
            'points_scored': self.points_scored,
            'points_allowed': self.points_allowed,
            'win_percentage': self.win_percentage,
            'rank_in_age_group': self.rank_in_age_group,
            'rank_in_division': self.rank_in_division,
            'last_updated': _iso(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Standing':
        return cls(
            data['team_id'],
            data['season_id'],
            wins=data.get('wins', 0),
            losses=data.get('losses', 0),
            sets_won=data.get('sets_won', 0),
            sets_lost=data.get('sets_lost', 0),
            points_scored=data.get('points_scored', 0),
            points_allowed=data.get('points_allowed', 0),
            win_percentage=float(data.get('win_percentage') or 0.0),
            rank_in_age_group=data.get('rank_in_age_group'),
            rank_in_division=data.get('rank_in_division'),
            last_updated=_parse_datetime(data.get('last_updated')),
        )

    def __repr__(self):
        return f"Standing(team={self.team_id}, season={self.season_id}, record={self.wins}-{self.losses})"


class TournamentTeam:
    def __init__(self, team_id, pool_name=None, seed=None):
        self.team_id = team_id
        self.pool_name = pool_name
        self.seed = seed

    @property
    def pool(self) -> str:
        return self.pool_name or rules.DEFAULT_POOL

    def to_dict(self) -> dict:
        return {'team_id': self.team_id, 'pool_name': self.pool_name, 'seed': self.seed}

    @classmethod
    def from_dict(cls, data: dict) -> 'TournamentTeam':
        return cls(data['team_id'], data.get('pool_name'), data.get('seed'))

    def __repr__(self):
        return f"TournamentTeam(team={self.team_id}, pool={self.pool_name}, seed={self.seed})"


class Tournament:
    def __init__(self, id, name, start_date, end_date, format='pool_play', status='registration',
                 max_teams=None, location=None, teams=None):
        self.id = id
        self.name = name
        self.start_date = start_date
        self.end_date = end_date
        self.format = format
        self.status = status
        self.max_teams = max_teams
        self.location = location
        self.teams: List[TournamentTeam] = teams if teams else []

    def membership(self, team_id) -> Optional[TournamentTeam]:
        for entry in self.teams:
            if entry.team_id == team_id:
                return entry
        return None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'format': self.format,
            'status': self.status,
            'max_teams': self.max_teams,
            'location': self.location,
            'teams': [t.to_dict() for t in self.teams],
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Tournament':
        return cls(
            data['id'],
            data['name'],
            _parse_date(data.get('start_date')),
            _parse_date(data.get('end_date')),
            format=data.get('format', 'pool_play'),
            status=data.get('status', 'registration'),
            max_teams=data.get('max_teams'),
            location=data.get('location'),
            teams=[TournamentTeam.from_dict(t) for t in data.get('teams') or []],
        )

    def __repr__(self):
        return f"Tournament(id={self.id}, name={self.name}, status={self.status}, teams={len(self.teams)})"
