"""
Read-only bracket and pool standings view of a tournament.
"""
from datetime import timedelta
from typing import Dict, List, Tuple

from .config import get_default_settings
from .elimination import calculate_pool_standings, get_round_name
from .models import Match
from .store import Store


def assign_rounds_by_time_gap(matches: List[Match], gap_minutes: int = 120) -> List[Tuple[int, int]]:
    """
    Guess (round, match number) for playoff matches that carry no round.

    Matches are walked in scheduled order and a new round starts whenever
    two consecutive matches are more than ``gap_minutes`` apart. This is a
    reconstruction: matches scheduled back to back all land in round 1.
    """
    gap = timedelta(minutes=gap_minutes)
    assigned = []
    round_number = 1
    match_in_round = 1
    previous = None
    for match in matches:
        if previous is not None and match.scheduled_at - previous > gap:
            round_number += 1
            match_in_round = 1
        assigned.append((round_number, match_in_round))
        match_in_round += 1
        previous = match.scheduled_at
    return assigned


def get_tournament_bracket(store: Store, tournament_id, settings: dict = None) -> Dict:
    """
    Return the complete bracket structure for a tournament.

    Returns dict with:
    - 'pools': pool standings keyed by pool name (differential tie-breaks)
    - 'bracket': playoff matches with round and match number, in schedule order
    - 'rounds': {round_number: {'name': ..., 'matches': [...]}}
    - 'champion_team_id': winner of the last round, if decided
    """
    settings = settings or get_default_settings()
    data = store.read()
    tournament = data.get_tournament(tournament_id)
    pools = calculate_pool_standings(data, tournament)

    playoff = sorted((m for m in data.tournament_matches(tournament_id) if m.is_playoff),
                     key=lambda m: (m.scheduled_at, m.id))
    legacy = [m for m in playoff if m.round_number is None]
    guessed = dict(zip((m.id for m in legacy), assign_rounds_by_time_gap(legacy, settings['round_gap_minutes'])))

    bracket = []
    for match in playoff:
        if match.round_number is not None:
            round_number, match_number = match.round_number, match.bracket_position
        else:
            round_number, match_number = guessed[match.id]
        bracket.append({
            'match_id': match.id,
            'round': round_number,
            'match_number': match_number,
            'home_team_id': match.home_team_id,
            'home_team_name': data.team_name(match.home_team_id),
            'away_team_id': match.away_team_id,
            'away_team_name': data.team_name(match.away_team_id),
            'winner_team_id': match.winner_team_id,
            'status': match.status,
            'home_score': match.home_sets_won,
            'away_score': match.away_sets_won,
            'scheduled_at': match.scheduled_at.isoformat() if match.scheduled_at else None,
            'is_placeholder': not match.teams_known,
        })

    total_rounds = max((b['round'] for b in bracket), default=0)
    rounds = {}
    for entry in bracket:
        round_data = rounds.setdefault(entry['round'], {
            'name': get_round_name(entry['round'], total_rounds),
            'matches': [],
        })
        round_data['matches'].append(entry)
    for round_data in rounds.values():
        round_data['matches'].sort(key=lambda b: b['match_number'])

    champion = None
    if total_rounds:
        final_round = rounds[total_rounds]['matches']
        if len(final_round) == 1 and final_round[0]['status'] == 'completed':
            champion = final_round[0]['winner_team_id']

    return {
        'tournament_id': tournament.id,
        'name': tournament.name,
        'format': tournament.format,
        'status': tournament.status,
        'pools': pools,
        'bracket': bracket,
        'rounds': dict(sorted(rounds.items())),
        'total_rounds': total_rounds,
        'champion_team_id': champion,
    }
