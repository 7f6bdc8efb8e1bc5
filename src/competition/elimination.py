"""
Single elimination bracket generation from pool play results.
"""
import logging
import math
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional

from . import events
from .config import get_default_settings
from .errors import InsufficientTeams, InvalidState, NoCompletedGames
from .events import EventHub, publish_all
from .models import Match, Tournament
from .store import Data, Store

logger = logging.getLogger(__name__)


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n, never below 2."""
    if n <= 1:
        return 2
    return 2 ** math.ceil(math.log2(n))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    return next_power_of_two(num_teams) - num_teams


def get_round_name(round_number: int, total_rounds: int) -> str:
    """Get the name of a round from its distance to the final."""
    if round_number == total_rounds:
        return "Championship"
    elif round_number == total_rounds - 1:
        return "Semifinal"
    else:
        return f"Elimination Round {round_number}"


def generate_seed_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order as 0-based seed indexes.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [0, 7, 3, 4, 1, 6, 2, 5]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size < 2 or bracket_size & (bracket_size - 1):
        raise ValueError(f"Bracket size must be a power of two >= 2, got {bracket_size}")
    if bracket_size == 2:
        return [0, 1]

    result = []
    for seed_index in generate_seed_order(bracket_size // 2):
        result.extend([seed_index, bracket_size - 1 - seed_index])
    return result


def seed_bracket(advancing_teams: List[Dict], bracket_size: int) -> List[Optional[Dict]]:
    """
    Place seeded teams into bracket slots, padding with byes (None).
    Adjacent slots (0-1, 2-3, ...) are the first round pairings.
    """
    filled = sorted(advancing_teams, key=lambda t: t['seed'])
    filled += [None] * (bracket_size - len(filled))

    slots: List[Optional[Dict]] = [None] * bracket_size
    for index, seed_index in enumerate(generate_seed_order(bracket_size)):
        slots[index] = filled[seed_index]
    return slots


def pool_ranking_key(row: Dict):
    return (-row['wins'], -row['set_diff'], -row['point_diff'], row['team_id'])


def calculate_pool_standings(data: Data, tournament: Tournament) -> Dict[str, List[Dict]]:
    """
    Calculate standings for each pool based on completed pool matches.

    Returns: {pool_name: [{'team_id': id, 'team_name': name, 'wins': n, 'losses': n,
                           'sets_won': n, 'sets_lost': n, 'set_diff': n, 'points_scored': n,
                           'points_allowed': n, 'point_diff': n, 'matches_played': n}, ...]}

    Ranking: wins -> set differential -> point differential. These tallies
    only cover this tournament and are never written to season standings.
    """
    team_stats = {}
    for entry in tournament.teams:
        team = data.teams.get(entry.team_id)
        team_stats[entry.team_id] = {
            'team_id': entry.team_id,
            'team_name': team.name if team else None,
            'club_name': team.club if team else None,
            'pool_name': entry.pool,
            'wins': 0,
            'losses': 0,
            'sets_won': 0,
            'sets_lost': 0,
            'points_scored': 0,
            'points_allowed': 0,
            'matches_played': 0,
        }

    for match in data.tournament_matches(tournament.id):
        if match.is_playoff or match.status != 'completed':
            continue
        home = team_stats.get(match.home_team_id)
        away = team_stats.get(match.away_team_id)
        if home is None or away is None:
            continue

        home_points, away_points = match.point_totals()
        home['sets_won'] += match.home_sets_won
        home['sets_lost'] += match.away_sets_won
        home['points_scored'] += home_points
        home['points_allowed'] += away_points
        away['sets_won'] += match.away_sets_won
        away['sets_lost'] += match.home_sets_won
        away['points_scored'] += away_points
        away['points_allowed'] += home_points
        home['matches_played'] += 1
        away['matches_played'] += 1

        if match.winner_team_id == match.home_team_id:
            home['wins'] += 1
            away['losses'] += 1
        elif match.winner_team_id == match.away_team_id:
            away['wins'] += 1
            home['losses'] += 1

    standings: Dict[str, List[Dict]] = {}
    for stats in team_stats.values():
        stats['set_diff'] = stats['sets_won'] - stats['sets_lost']
        stats['point_diff'] = stats['points_scored'] - stats['points_allowed']
        standings.setdefault(stats['pool_name'], []).append(stats)

    for pool_name in standings:
        standings[pool_name].sort(key=pool_ranking_key)
    return dict(sorted(standings.items()))


def select_advancing_teams(pool_standings: Dict[str, List[Dict]], max_bracket_teams: int = 8) -> List[Dict]:
    """
    Pick the teams that enter the bracket and give them seeds.

    Two pools cross over: A1, B1, A2, B2 become seeds 1-4 so that teams from
    the same pool cannot meet in the first round. Any other pool count ranks
    every team together and keeps as many as fit the bracket.
    Returns list of {'team_id', 'seed', 'pool_name'} dicts.
    """
    pool_names = sorted(pool_standings.keys())
    advancing = []

    if len(pool_names) == 2:
        pool_a = pool_standings[pool_names[0]]
        pool_b = pool_standings[pool_names[1]]
        if len(pool_a) >= 2 and len(pool_b) >= 2:
            for seed, row in enumerate([pool_a[0], pool_b[0], pool_a[1], pool_b[1]], start=1):
                advancing.append({'team_id': row['team_id'], 'seed': seed, 'pool_name': row['pool_name']})
        return advancing

    all_teams = sorted((row for rows in pool_standings.values() for row in rows), key=pool_ranking_key)
    count = min(next_power_of_two(min(len(all_teams), max_bracket_teams)), len(all_teams))
    for seed, row in enumerate(all_teams[:count], start=1):
        advancing.append({'team_id': row['team_id'], 'seed': seed, 'pool_name': row['pool_name']})
    return advancing


def _bracket_start(tournament: Tournament, first_match_time: str) -> datetime:
    day = tournament.end_date or tournament.start_date
    return datetime.combine(day, time.fromisoformat(first_match_time))


def build_bracket_matches(tournament: Tournament, slots: List[Optional[Dict]], start: datetime,
                          interval_minutes: int) -> List[Match]:
    """
    Create every playoff match of the bracket with explicit round numbers.

    First round matches exist only for slot pairs holding two teams; a team
    with a bye is written straight into the second round slot it feeds.
    Later round slots stay None until a feeder match is decided.
    """
    bracket_size = len(slots)
    total_rounds = int(math.log2(bracket_size))
    rounds: Dict[int, Dict[int, Match]] = {}
    scheduled = 0

    def _slot_time():
        return start + timedelta(minutes=interval_minutes * scheduled)

    first_round = {}
    for position in range(1, bracket_size // 2 + 1):
        home = slots[2 * position - 2]
        away = slots[2 * position - 1]
        if home is None or away is None:
            continue
        first_round[position] = Match(
            None, home['team_id'], away['team_id'], _slot_time(),
            tournament_id=tournament.id, venue=tournament.location, is_playoff=True,
            round_number=1, bracket_position=position,
            notes=f"{get_round_name(1, total_rounds)} - Match {position}",
        )
        scheduled += 1
    rounds[1] = first_round

    for round_number in range(2, total_rounds + 1):
        round_matches = {}
        for position in range(1, bracket_size // (2 ** round_number) + 1):
            round_matches[position] = Match(
                None, None, None, _slot_time(),
                tournament_id=tournament.id, venue=tournament.location, is_playoff=True,
                round_number=round_number, bracket_position=position,
                notes=f"{get_round_name(round_number, total_rounds)} - Match {position} (TBD)",
            )
            scheduled += 1
        rounds[round_number] = round_matches

    if total_rounds >= 2:
        for position in range(1, bracket_size // 2 + 1):
            home = slots[2 * position - 2]
            away = slots[2 * position - 1]
            if (home is None) == (away is None):
                continue
            bye_team = home or away
            target = rounds[2][(position + 1) // 2]
            if position % 2:
                target.home_team_id = bye_team['team_id']
            else:
                target.away_team_id = bye_team['team_id']
            if target.teams_known and target.notes.endswith(' (TBD)'):
                target.notes = target.notes[:-len(' (TBD)')]

    return [m for round_number in sorted(rounds) for _, m in sorted(rounds[round_number].items())]


def _link_rounds(matches: List[Match]):
    """Point every match at the next-round match its winner moves into."""
    by_position = {(m.round_number, m.bracket_position): m for m in matches}
    for match in matches:
        target = by_position.get((match.round_number + 1, (match.bracket_position + 1) // 2))
        if target is not None:
            match.next_match_id = target.id
            match.next_slot = 'home' if match.bracket_position % 2 else 'away'


def generate_bracket_from_pools(store: Store, tournament_id, settings: dict = None,
                                hub: Optional[EventHub] = None) -> Dict:
    """
    Build the playoff bracket for a tournament whose pool play has results.

    Returns dict with:
    - 'bracket_games': number of matches created
    - 'seeded_teams': list of {'team_id', 'seed', 'pool_name'}
    - 'bracket_size': slots in the first round
    - 'matches': the created Match records
    """
    settings = settings or get_default_settings()
    with store.transaction() as data:
        tournament = data.get_tournament(tournament_id)
        if tournament.status != 'in_progress':
            raise InvalidState('Bracket can only be generated when tournament is in progress.',
                               tournament_id=tournament_id, status=tournament.status)

        tournament_matches = data.tournament_matches(tournament_id)
        if any(m.is_playoff for m in tournament_matches):
            raise InvalidState('Bracket has already been generated.', tournament_id=tournament_id)
        if not any(m.status == 'completed' and not m.is_playoff for m in tournament_matches):
            raise NoCompletedGames(
                'No completed pool play games found. Complete pool play before generating bracket.',
                tournament_id=tournament_id)

        pool_standings = calculate_pool_standings(data, tournament)
        advancing = select_advancing_teams(pool_standings, settings['max_bracket_teams'])
        if len(advancing) < 2:
            raise InsufficientTeams('Not enough teams with completed pool play to generate a bracket.',
                                    tournament_id=tournament_id, advancing=len(advancing))

        bracket_size = next_power_of_two(len(advancing))
        slots = seed_bracket(advancing, bracket_size)
        matches = build_bracket_matches(
            tournament, slots,
            _bracket_start(tournament, settings['first_match_time']),
            settings['match_interval_minutes'],
        )
        for match in matches:
            data.add_match(match)
        _link_rounds(matches)

        for entry in advancing:
            membership = tournament.membership(entry['team_id'])
            if membership is not None:
                membership.seed = entry['seed']

    logger.info(f'Generated bracket for tournament {tournament_id}: {len(advancing)} teams, '
                f'bracket size {bracket_size}, {len(matches)} matches')
    publish_all(hub, [(events.BRACKET_UPDATED, {'tournament_id': tournament_id, 'bracket_games': len(matches)},
                       None, tournament_id)])
    return {
        'bracket_games': len(matches),
        'seeded_teams': advancing,
        'bracket_size': bracket_size,
        'matches': matches,
    }


def apply_bracket_advance(data: Data, match: Match) -> list:
    """Move a decided playoff match's winner into its next-round slot.

    Winning the last round completes the tournament. Returns pending events.
    """
    if match.round_number is None or match.winner_team_id is None:
        return []

    if match.next_match_id is not None:
        target = data.matches.get(match.next_match_id)
        if target is None:
            logger.warning(f'Match {match.id} points at missing next match {match.next_match_id}')
            return []
        if match.next_slot == 'home':
            target.home_team_id = match.winner_team_id
        else:
            target.away_team_id = match.winner_team_id
        if target.teams_known and target.notes and target.notes.endswith(' (TBD)'):
            target.notes = target.notes[:-len(' (TBD)')]
        logger.info(f'Team {match.winner_team_id} advances to match {target.id}')
        return [(events.BRACKET_UPDATED, {
            'tournament_id': match.tournament_id,
            'match_id': target.id,
            'home_team_id': target.home_team_id,
            'away_team_id': target.away_team_id,
        }, target.id, match.tournament_id)]

    tournament = data.tournaments.get(match.tournament_id)
    if tournament is not None and tournament.status == 'in_progress':
        tournament.status = 'completed'
        logger.info(f'Tournament {tournament.id} completed, champion team {match.winner_team_id}')
        return [(events.BRACKET_UPDATED, {
            'tournament_id': tournament.id,
            'champion_team_id': match.winner_team_id,
            'status': 'completed',
        }, None, tournament.id)]
    return []
