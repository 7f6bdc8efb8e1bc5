"""
Live scoring: advances a match point by point, set by set, to completion.

Match lifecycle: scheduled -> live -> completed, with canceled/postponed
reachable only from scheduled. A set row exists only once it has started;
the match records which set is in progress in ``current_set_number``.

Every check runs before anything is mutated, and all changes of a call are
committed together by the store transaction. Events are published after the
commit, in the order point -> set end -> match end.
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from . import events, rules
from .elimination import apply_bracket_advance
from .errors import InvalidState, InvalidTeam, SetLimitExceeded, ValidationError
from .events import EventHub, publish_all
from .models import GameSet, Match, Point
from .standings import apply_completed_match
from .store import Store

logger = logging.getLogger(__name__)


def _open_next_set(match: Match, now: datetime) -> GameSet:
    next_number = len(match.sets) + 1
    if next_number > rules.MAX_SETS:
        raise SetLimitExceeded('Maximum sets reached.', match_id=match.id, set_number=next_number)
    game_set = GameSet(next_number, status='in_progress', started_at=now)
    match.sets.append(game_set)
    match.current_set_number = next_number
    return game_set


def _tally_sets(match: Match):
    """Recompute sets won for both sides from the completed sets."""
    completed = match.completed_sets()
    match.home_sets_won = sum(1 for s in completed if s.winner_team_id == match.home_team_id)
    match.away_sets_won = sum(1 for s in completed if s.winner_team_id == match.away_team_id)


def _finish_match(data, match: Match, winner_team_id, now: datetime) -> list:
    """Mark the match completed and apply its consequences. Returns extra events."""
    match.status = 'completed'
    match.winner_team_id = winner_team_id
    match.ended_at = now
    match.current_set_number = None
    apply_completed_match(data, match)
    pending = [(events.MATCH_ENDED, {
        'match_id': match.id,
        'winner_team_id': winner_team_id,
        'final_score': {'home': match.home_sets_won, 'away': match.away_sets_won},
    }, match.id, match.tournament_id)]
    if match.is_playoff:
        pending.extend(apply_bracket_advance(data, match))
    return pending


def create_match(store: Store, home_team_id, away_team_id, scheduled_at: datetime, season_id=None,
                 tournament_id=None, venue: str = None, is_playoff: bool = False, notes: str = None) -> Match:
    if home_team_id == away_team_id:
        raise ValidationError('Home and away teams must be different.', team_id=home_team_id)
    with store.transaction() as data:
        data.get_team(home_team_id)
        data.get_team(away_team_id)
        if tournament_id is not None:
            data.get_tournament(tournament_id)
        match = data.add_match(Match(
            None, home_team_id, away_team_id, scheduled_at,
            season_id=season_id, tournament_id=tournament_id,
            venue=venue, is_playoff=is_playoff, notes=notes,
        ))
    logger.info(f'Created match {match.id}: {home_team_id} vs {away_team_id}')
    return match


def get_match(store: Store, match_id) -> Dict:
    """Full match detail including sets and team names."""
    data = store.read()
    match = data.get_match(match_id)
    detail = match.to_dict()
    detail['home_team_name'] = data.team_name(match.home_team_id)
    detail['away_team_name'] = data.team_name(match.away_team_id)
    detail['is_live'] = match.status == 'live'
    return detail


def start_match(store: Store, match_id, hub: Optional[EventHub] = None) -> Match:
    with store.match_lock(match_id):
        with store.transaction() as data:
            match = data.get_match(match_id)
            if match.status != 'scheduled':
                raise InvalidState(
                    f'Cannot start a match with status "{match.status}". Only scheduled matches can be started.',
                    match_id=match_id, status=match.status)
            if not match.teams_known:
                raise InvalidState('Cannot start a match whose teams are not determined yet.', match_id=match_id)
            now = datetime.now()
            match.status = 'live'
            match.started_at = now
            _open_next_set(match, now)

    logger.info(f'Match {match_id} is live')
    publish_all(hub, [(events.MATCH_STATUS_CHANGED,
                       {'match_id': match_id, 'status': 'live', 'set_number': 1},
                       match_id, match.tournament_id)])
    return match


def score_point(store: Store, match_id, scoring_team_id, player_id=None, point_type: str = None,
                hub: Optional[EventHub] = None) -> Dict:
    """Record one point for ``scoring_team_id`` and apply set/match rules.

    Returns a dict with the current set score, sets won, and whether the set
    and match ended with this point.
    """
    point_type = point_type or rules.DEFAULT_POINT_TYPE
    if point_type not in rules.POINT_TYPES:
        raise ValidationError(f'Unknown point type "{point_type}".', point_type=point_type)

    pending = []
    with store.match_lock(match_id):
        with store.transaction() as data:
            match = data.get_match(match_id)
            if match.status != 'live':
                raise InvalidState('Match is not live.', match_id=match_id, status=match.status)
            side = match.side_of(scoring_team_id)
            if side is None:
                raise InvalidTeam('Scoring team is not playing in this match.',
                                  match_id=match_id, team_id=scoring_team_id)

            now = datetime.now()
            game_set = match.current_set
            if game_set is None:
                game_set = _open_next_set(match, now)

            if side == 'home':
                game_set.home_points += 1
            else:
                game_set.away_points += 1
            game_set.points.append(Point(
                scoring_team_id, game_set.home_points, game_set.away_points,
                player_id=player_id, point_type=point_type, timestamp=now,
            ))
            pending.append((events.POINT_SCORED, {
                'match_id': match_id,
                'set_number': game_set.set_number,
                'home_points': game_set.home_points,
                'away_points': game_set.away_points,
                'home_sets_won': match.home_sets_won,
                'away_sets_won': match.away_sets_won,
                'scoring_team_id': scoring_team_id,
                'scoring_player_id': player_id,
                'point_type': point_type,
                'timestamp': now.isoformat(),
            }, match_id, match.tournament_id))

            set_over = rules.is_set_won(game_set.set_number, game_set.home_points, game_set.away_points)
            set_winner = None
            match_over = False
            if set_over:
                set_winner = match.home_team_id if game_set.home_points > game_set.away_points else match.away_team_id
                game_set.status = 'completed'
                game_set.winner_team_id = set_winner
                game_set.ended_at = now
                match.current_set_number = None
                _tally_sets(match)
                pending.append((events.SET_ENDED, {
                    'match_id': match_id,
                    'set_number': game_set.set_number,
                    'home_points': game_set.home_points,
                    'away_points': game_set.away_points,
                    'winner_team_id': set_winner,
                    'home_sets_won': match.home_sets_won,
                    'away_sets_won': match.away_sets_won,
                }, match_id, match.tournament_id))

                if rules.is_match_won(match.home_sets_won):
                    match_over = True
                    pending.extend(_finish_match(data, match, match.home_team_id, now))
                elif rules.is_match_won(match.away_sets_won):
                    match_over = True
                    pending.extend(_finish_match(data, match, match.away_team_id, now))
                else:
                    _open_next_set(match, now)

            result = {
                'match_id': match_id,
                'current_set': {
                    'set_number': game_set.set_number,
                    'home_points': game_set.home_points,
                    'away_points': game_set.away_points,
                    'is_set_over': set_over,
                    'winner_team_id': set_winner,
                },
                'match': {
                    'home_sets_won': match.home_sets_won,
                    'away_sets_won': match.away_sets_won,
                    'is_match_over': match_over,
                    'winner_team_id': match.winner_team_id,
                },
            }

    if set_over:
        logger.info(f'Match {match_id}: set {game_set.set_number} won by team {set_winner} '
                    f'({game_set.home_points}-{game_set.away_points})')
    if match_over:
        logger.info(f'Match {match_id} completed, winner team {match.winner_team_id}')
    publish_all(hub, pending)
    return result


def end_match(store: Store, match_id, hub: Optional[EventHub] = None) -> Match:
    """Finish a live match early on the current score.

    An in-progress set goes to the side ahead; a level set with points is
    closed without a winner and an untouched one is discarded. The match goes
    to the side with more sets, home on a tie.
    """
    with store.match_lock(match_id):
        with store.transaction() as data:
            match = data.get_match(match_id)
            if match.status != 'live':
                raise InvalidState('Can only end a live match.', match_id=match_id, status=match.status)
            now = datetime.now()
            game_set = match.current_set
            if game_set is not None:
                if not game_set.points:
                    match.sets.remove(game_set)
                else:
                    game_set.status = 'completed'
                    game_set.ended_at = now
                    if game_set.home_points > game_set.away_points:
                        game_set.winner_team_id = match.home_team_id
                    elif game_set.away_points > game_set.home_points:
                        game_set.winner_team_id = match.away_team_id
                match.current_set_number = None
            _tally_sets(match)
            winner = match.home_team_id if match.home_sets_won >= match.away_sets_won else match.away_team_id
            pending = _finish_match(data, match, winner, now)

    logger.info(f'Match {match_id} ended early, winner team {winner}')
    publish_all(hub, pending)
    return match


def _change_scheduled_status(store: Store, match_id, new_status: str, hub: Optional[EventHub]) -> Match:
    with store.match_lock(match_id):
        with store.transaction() as data:
            match = data.get_match(match_id)
            if match.status != 'scheduled':
                raise InvalidState(f'Only scheduled matches can be {new_status}.',
                                   match_id=match_id, status=match.status)
            match.status = new_status

    logger.info(f'Match {match_id} {new_status}')
    publish_all(hub, [(events.MATCH_STATUS_CHANGED, {'match_id': match_id, 'status': new_status},
                       match_id, match.tournament_id)])
    return match


def cancel_match(store: Store, match_id, hub: Optional[EventHub] = None) -> Match:
    return _change_scheduled_status(store, match_id, 'canceled', hub)


def postpone_match(store: Store, match_id, hub: Optional[EventHub] = None) -> Match:
    return _change_scheduled_status(store, match_id, 'postponed', hub)
