"""
Tournament setup and round-robin pool play scheduling.
"""
import logging
from datetime import date, datetime, time, timedelta
from itertools import combinations
from typing import Dict, List

from . import rules
from .config import get_default_settings
from .errors import AlreadyRegistered, InsufficientTeams, InvalidState, TournamentFull, ValidationError
from .models import Match, Tournament, TournamentTeam
from .store import Store

logger = logging.getLogger(__name__)


def create_tournament(store: Store, name: str, start_date: date, end_date: date = None,
                      format: str = 'pool_play', max_teams: int = None, location: str = None) -> Tournament:
    if format not in rules.TOURNAMENT_FORMATS:
        raise ValidationError(f'Unknown tournament format "{format}".', format=format)
    end_date = end_date or start_date
    if end_date < start_date:
        raise ValidationError('Tournament cannot end before it starts.')
    if max_teams is not None and max_teams < 2:
        raise ValidationError('A tournament needs room for at least 2 teams.', max_teams=max_teams)
    with store.transaction() as data:
        tournament = Tournament(data.next_id('tournaments'), name, start_date, end_date,
                                format=format, max_teams=max_teams, location=location)
        data.tournaments[tournament.id] = tournament
    logger.info(f'Created tournament {tournament.id} ({name})')
    return tournament


def register_team(store: Store, tournament_id, team_id, pool_name: str = None, seed: int = None) -> TournamentTeam:
    with store.transaction() as data:
        tournament = data.get_tournament(tournament_id)
        if tournament.status != 'registration':
            raise InvalidState('Teams can only be added when tournament is in registration.',
                               tournament_id=tournament_id, status=tournament.status)
        data.get_team(team_id)
        if tournament.membership(team_id) is not None:
            raise AlreadyRegistered('Team is already registered for this tournament.',
                                    tournament_id=tournament_id, team_id=team_id)
        if tournament.max_teams and len(tournament.teams) >= tournament.max_teams:
            raise TournamentFull(f'Tournament has reached its maximum of {tournament.max_teams} teams.',
                                 tournament_id=tournament_id)
        entry = TournamentTeam(team_id, pool_name, seed)
        tournament.teams.append(entry)
    logger.info(f'Team {team_id} registered for tournament {tournament_id} (pool {entry.pool})')
    return entry


def group_teams_by_pool(entries: List[TournamentTeam]) -> Dict[str, List[int]]:
    """Group team ids by pool label, unlabeled teams going to pool A."""
    pools = {}
    for entry in entries:
        pools.setdefault(entry.pool, []).append(entry.team_id)
    return pools


def generate_round_robin_pairs(team_ids: List[int]) -> List[tuple]:
    """Every unordered pair exactly once, in registration order."""
    return list(combinations(team_ids, 2))


def generate_pool_play_schedule(store: Store, tournament_id, settings: dict = None) -> List[Match]:
    """
    Create a round-robin of matches inside every pool.

    Matches are spaced on one timeline shared by all pools, starting on the
    tournament's first day. The tournament then moves to in_progress.
    """
    settings = settings or get_default_settings()
    with store.transaction() as data:
        tournament = data.get_tournament(tournament_id)
        if tournament.status != 'registration':
            raise InvalidState(
                'Pool play schedule can only be generated when tournament is in registration status.',
                tournament_id=tournament_id, status=tournament.status)
        if len(tournament.teams) < 2:
            raise InsufficientTeams('At least 2 teams are required to generate a pool play schedule.',
                                    tournament_id=tournament_id, teams=len(tournament.teams))

        start = datetime.combine(tournament.start_date, time.fromisoformat(settings['first_match_time']))
        interval = timedelta(minutes=settings['match_interval_minutes'])
        created = []
        for pool_name, team_ids in group_teams_by_pool(tournament.teams).items():
            if len(team_ids) < 2:
                logger.warning(f'Pool {pool_name} of tournament {tournament_id} has fewer than 2 teams, '
                               f'no matches generated for it')
                continue
            for home_team_id, away_team_id in generate_round_robin_pairs(team_ids):
                match = Match(
                    None, home_team_id, away_team_id, start + interval * len(created),
                    tournament_id=tournament_id, venue=tournament.location, is_playoff=False,
                    notes=f'Pool {pool_name}',
                )
                created.append(data.add_match(match))

        tournament.status = 'in_progress'

    logger.info(f'Generated {len(created)} pool play matches for tournament {tournament_id}')
    return created
