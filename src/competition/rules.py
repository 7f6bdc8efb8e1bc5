"""
Fixed volleyball competition parameters.
"""

POINTS_TO_WIN_SET = 25
POINTS_TO_WIN_FINAL_SET = 15
MIN_LEAD_TO_WIN = 2
MAX_SETS = 5
SETS_TO_WIN_MATCH = 3

POINT_TYPES = ('kill', 'ace', 'block', 'opponent_error', 'tip', 'other')
DEFAULT_POINT_TYPE = 'other'

MATCH_STATUSES = ('scheduled', 'live', 'completed', 'canceled', 'postponed')
SET_STATUSES = ('in_progress', 'completed')
TOURNAMENT_FORMATS = ('pool_play', 'bracket', 'round_robin', 'swiss')
TOURNAMENT_STATUSES = ('registration', 'in_progress', 'completed')

DEFAULT_POOL = 'A'


def set_target(set_number: int) -> int:
    """Points needed to take a set (the deciding set is shorter)."""
    if set_number >= MAX_SETS:
        return POINTS_TO_WIN_FINAL_SET
    return POINTS_TO_WIN_SET


def is_set_won(set_number: int, home_points: int, away_points: int) -> bool:
    high = max(home_points, away_points)
    low = min(home_points, away_points)
    return high >= set_target(set_number) and high - low >= MIN_LEAD_TO_WIN


def is_match_won(sets_won: int) -> bool:
    return sets_won >= SETS_TO_WIN_MATCH
