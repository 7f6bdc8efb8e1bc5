"""
Season standings: per-team tallies and rank computation.

Ranking order (used for both age-group and division ranks):
win percentage -> set ratio -> point ratio, all descending. A ratio with a
zero denominator is the numerator itself, so an unbeaten side still ranks
by how much it won. Team id breaks exact ties so the order is reproducible.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from .models import Match, Standing
from .store import Data, Store

logger = logging.getLogger(__name__)


def _ratio(won: int, lost: int) -> float:
    if lost > 0:
        return won / lost
    return float(won)


def set_ratio(standing: Standing) -> float:
    return _ratio(standing.sets_won, standing.sets_lost)


def point_ratio(standing: Standing) -> float:
    return _ratio(standing.points_scored, standing.points_allowed)


def win_percentage(wins: int, losses: int) -> float:
    played = wins + losses
    return wins / played if played > 0 else 0.0


def ranking_key(standing: Standing):
    return (-standing.win_percentage, -set_ratio(standing), -point_ratio(standing), standing.team_id)


def apply_match_result(data: Data, team_id, season_id, won: bool, sets_won: int, sets_lost: int,
                       points_scored: int, points_allowed: int) -> Standing:
    """Upsert the (team, season) row with one match worth of deltas."""
    key = (team_id, season_id)
    standing = data.standings.get(key)
    now = datetime.now()
    if standing is None:
        standing = Standing(
            team_id, season_id,
            wins=1 if won else 0,
            losses=0 if won else 1,
            sets_won=sets_won,
            sets_lost=sets_lost,
            points_scored=points_scored,
            points_allowed=points_allowed,
            win_percentage=1.0 if won else 0.0,
            last_updated=now,
        )
        data.standings[key] = standing
        return standing

    standing.wins += 1 if won else 0
    standing.losses += 0 if won else 1
    standing.sets_won += sets_won
    standing.sets_lost += sets_lost
    standing.points_scored += points_scored
    standing.points_allowed += points_allowed
    standing.win_percentage = win_percentage(standing.wins, standing.losses)
    standing.last_updated = now
    return standing


def apply_rank_recalculation(data: Data, season_id) -> List[Standing]:
    """Rewrite both rank columns for every standing in the season."""
    season_rows = data.season_standings(season_id)

    by_age_group: Dict[Optional[str], List[Standing]] = {}
    for standing in season_rows:
        team = data.teams.get(standing.team_id)
        age_group = team.age_group if team else None
        by_age_group.setdefault(age_group, []).append(standing)

    for group in by_age_group.values():
        group.sort(key=ranking_key)
        for position, standing in enumerate(group, start=1):
            standing.rank_in_age_group = position

    overall = sorted(season_rows, key=ranking_key)
    for position, standing in enumerate(overall, start=1):
        standing.rank_in_division = position

    return overall


def apply_completed_match(data: Data, match: Match):
    """Credit a finished season match to both teams and refresh ranks."""
    if match.season_id is None:
        return
    home_points, away_points = match.point_totals()
    for team_id in (match.home_team_id, match.away_team_id):
        is_home = team_id == match.home_team_id
        apply_match_result(
            data, team_id, match.season_id,
            won=team_id == match.winner_team_id,
            sets_won=match.home_sets_won if is_home else match.away_sets_won,
            sets_lost=match.away_sets_won if is_home else match.home_sets_won,
            points_scored=home_points if is_home else away_points,
            points_allowed=away_points if is_home else home_points,
        )
    apply_rank_recalculation(data, match.season_id)
    logger.info(f'Standings updated for season {match.season_id} after match {match.id}')


def record_match_result(store: Store, team_id, season_id, won: bool, sets_won: int, sets_lost: int,
                        points_scored: int, points_allowed: int) -> Standing:
    with store.transaction() as data:
        return apply_match_result(data, team_id, season_id, won, sets_won, sets_lost,
                                  points_scored, points_allowed)


def recalculate_ranks(store: Store, season_id) -> List[Standing]:
    with store.transaction() as data:
        return apply_rank_recalculation(data, season_id)


def get_standings(store: Store, season_id, age_group: str = None) -> List[Dict]:
    """Season standings with team details, best win percentage first.

    Ties in this listing are not meaningful; the authoritative order is the
    stored rank written by the rank recalculation.
    """
    data = store.read()
    rows = []
    for standing in data.season_standings(season_id):
        team = data.teams.get(standing.team_id)
        team_age_group = team.age_group if team else None
        if age_group is not None and team_age_group != age_group:
            continue
        rows.append({
            'team_id': standing.team_id,
            'team_name': team.name if team else None,
            'club_name': team.club if team else None,
            'age_group': team_age_group,
            'wins': standing.wins,
            'losses': standing.losses,
            'sets_won': standing.sets_won,
            'sets_lost': standing.sets_lost,
            'points_scored': standing.points_scored,
            'points_allowed': standing.points_allowed,
            'win_percentage': standing.win_percentage,
            'rank_in_age_group': standing.rank_in_age_group,
            'rank_in_division': standing.rank_in_division,
        })
    rows.sort(key=lambda r: -r['win_percentage'])
    for index, row in enumerate(rows, start=1):
        row['rank'] = row['rank_in_age_group'] or index
    return rows
