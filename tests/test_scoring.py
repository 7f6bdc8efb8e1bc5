"""
Tests for the live scoring state machine.
"""
import pytest
import sys
import os
import threading
from datetime import datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import play_set
from competition import events
from competition.errors import InvalidState, InvalidTeam, NotFound, SetLimitExceeded, ValidationError
from competition.models import GameSet, Match
from competition.scoring import (
    cancel_match,
    create_match,
    end_match,
    get_match,
    postpone_match,
    score_point,
    start_match,
)
from competition.standings import get_standings


def drain(subscription):
    """Return every queued (event, payload) pair."""
    received = []
    while not subscription.empty():
        received.append(subscription.get_nowait())
    return received


class TestCreateMatch:
    def test_create_match_scheduled(self, store, teams):
        match = create_match(store, teams[0].id, teams[1].id, datetime(2026, 3, 14, 10, 0), season_id=1)
        stored = store.read().get_match(match.id)
        assert stored.status == 'scheduled'
        assert stored.sets == []
        assert stored.current_set_number is None

    def test_same_team_rejected(self, store, teams):
        with pytest.raises(ValidationError):
            create_match(store, teams[0].id, teams[0].id, datetime(2026, 3, 14, 10, 0))

    def test_unknown_team_rejected(self, store, teams):
        with pytest.raises(NotFound):
            create_match(store, teams[0].id, 999, datetime(2026, 3, 14, 10, 0))

    def test_unknown_tournament_rejected(self, store, teams):
        with pytest.raises(NotFound):
            create_match(store, teams[0].id, teams[1].id, datetime(2026, 3, 14, 10, 0), tournament_id=42)


class TestStartMatch:
    def test_start_creates_first_set(self, store, season_match):
        match = start_match(store, season_match.id)
        assert match.status == 'live'
        assert match.current_set_number == 1

        stored = store.read().get_match(season_match.id)
        assert stored.status == 'live'
        assert stored.started_at is not None
        assert len(stored.sets) == 1
        assert stored.sets[0].set_number == 1
        assert (stored.sets[0].home_points, stored.sets[0].away_points) == (0, 0)
        assert stored.sets[0].status == 'in_progress'

    def test_start_twice_rejected(self, store, live_match):
        with pytest.raises(InvalidState):
            start_match(store, live_match.id)

    def test_start_unknown_match(self, store, teams):
        with pytest.raises(NotFound):
            start_match(store, 123)

    def test_start_match_without_teams_rejected(self, store, teams):
        with store.transaction() as data:
            placeholder = data.add_match(Match(None, None, None, datetime(2026, 3, 14, 10, 0), is_playoff=True))
        with pytest.raises(InvalidState):
            start_match(store, placeholder.id)

    def test_start_publishes_status_change(self, store, season_match, hub):
        subscription = hub.subscribe(events.match_room(season_match.id))
        start_match(store, season_match.id, hub=hub)
        assert drain(subscription) == [
            (events.MATCH_STATUS_CHANGED, {'match_id': season_match.id, 'status': 'live', 'set_number': 1})
        ]


class TestScorePoint:
    def test_point_increments_scoring_side(self, store, teams, live_match):
        result = score_point(store, live_match.id, teams[1].id, player_id=7, point_type='ace')
        assert result['current_set'] == {
            'set_number': 1,
            'home_points': 0,
            'away_points': 1,
            'is_set_over': False,
            'winner_team_id': None,
        }
        assert result['match']['is_match_over'] is False

        stored = store.read().get_match(live_match.id)
        point = stored.sets[0].points[0]
        assert point.scoring_team_id == teams[1].id
        assert point.player_id == 7
        assert point.point_type == 'ace'
        assert (point.home_score_after, point.away_score_after) == (0, 1)

    def test_point_type_defaults_to_other(self, store, teams, live_match):
        score_point(store, live_match.id, teams[0].id)
        assert store.read().get_match(live_match.id).sets[0].points[0].point_type == 'other'

    def test_unknown_point_type_rejected(self, store, teams, live_match):
        with pytest.raises(ValidationError):
            score_point(store, live_match.id, teams[0].id, point_type='spike')

    def test_score_on_scheduled_match_rejected(self, store, teams, season_match):
        with pytest.raises(InvalidState):
            score_point(store, season_match.id, teams[0].id)

    def test_team_not_in_match_rejected_without_change(self, store, teams, live_match):
        score_point(store, live_match.id, teams[0].id)
        with pytest.raises(InvalidTeam):
            score_point(store, live_match.id, teams[2].id)

        game_set = store.read().get_match(live_match.id).sets[0]
        assert (game_set.home_points, game_set.away_points) == (1, 0)
        assert len(game_set.points) == 1

    def test_set_won_at_25_opens_next_set(self, store, teams, live_match):
        result = play_set(store, live_match.id, teams[0].id, teams[1].id, 25, 20)
        assert result['current_set']['is_set_over'] is True
        assert result['current_set']['winner_team_id'] == teams[0].id
        assert result['match']['home_sets_won'] == 1

        stored = store.read().get_match(live_match.id)
        assert stored.sets[0].status == 'completed'
        assert stored.sets[0].winner_team_id == teams[0].id
        assert stored.current_set_number == 2
        assert stored.sets[1].status == 'in_progress'
        assert (stored.sets[1].home_points, stored.sets[1].away_points) == (0, 0)

    def test_no_set_end_without_two_point_lead(self, store, teams, live_match):
        play_set(store, live_match.id, teams[0].id, teams[1].id, 24, 24)
        result = score_point(store, live_match.id, teams[0].id)
        assert (result['current_set']['home_points'], result['current_set']['away_points']) == (25, 24)
        assert result['current_set']['is_set_over'] is False

        result = score_point(store, live_match.id, teams[0].id)
        assert result['current_set']['is_set_over'] is True

    def test_point_log_matches_running_score(self, store, teams, live_match):
        for team in (teams[0], teams[0], teams[1], teams[0]):
            score_point(store, live_match.id, team.id)
        points = store.read().get_match(live_match.id).sets[0].points
        assert [(p.home_score_after, p.away_score_after) for p in points] == [(1, 0), (2, 0), (2, 1), (3, 1)]

    def test_set_limit(self, store, teams, live_match):
        with store.transaction() as data:
            match = data.get_match(live_match.id)
            match.sets = [GameSet(n, 25, 20, status='completed', winner_team_id=teams[0].id) for n in range(1, 6)]
            match.current_set_number = None
        with pytest.raises(SetLimitExceeded):
            score_point(store, live_match.id, teams[0].id)

    def test_concurrent_points_serialize(self, store, teams, live_match):
        def score_five():
            for _ in range(5):
                score_point(store, live_match.id, teams[0].id)

        threads = [threading.Thread(target=score_five) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        game_set = store.read().get_match(live_match.id).sets[0]
        assert game_set.home_points == 20
        assert len(game_set.points) == 20
        assert sorted(p.home_score_after for p in game_set.points) == list(range(1, 21))


class TestScoringEvents:
    def test_point_event_payload(self, store, teams, live_match, hub):
        subscription = hub.subscribe(events.match_room(live_match.id))
        score_point(store, live_match.id, teams[0].id, player_id=3, point_type='kill', hub=hub)

        [(event, payload)] = drain(subscription)
        assert event == events.POINT_SCORED
        assert payload['set_number'] == 1
        assert payload['home_points'] == 1
        assert payload['away_points'] == 0
        assert payload['scoring_team_id'] == teams[0].id
        assert payload['scoring_player_id'] == 3
        assert payload['point_type'] == 'kill'
        assert 'timestamp' in payload

    def test_set_end_follows_point(self, store, teams, live_match, hub):
        play_set(store, live_match.id, teams[0].id, teams[1].id, 24, 0)
        subscription = hub.subscribe(events.match_room(live_match.id))
        score_point(store, live_match.id, teams[0].id, hub=hub)

        received = drain(subscription)
        assert [event for event, _ in received] == [events.POINT_SCORED, events.SET_ENDED]
        assert received[1][1]['winner_team_id'] == teams[0].id
        assert received[1][1]['home_sets_won'] == 1

    def test_no_events_for_rejected_point(self, store, teams, live_match, hub):
        subscription = hub.subscribe(events.match_room(live_match.id))
        with pytest.raises(InvalidTeam):
            score_point(store, live_match.id, teams[3].id, hub=hub)
        assert drain(subscription) == []


@pytest.mark.slow
class TestFullMatch:
    def test_home_wins_in_five(self, store, teams, live_match, hub):
        """Home takes sets 1, 3 and 5; both teams' season standings move."""
        home, away = teams[0].id, teams[1].id
        play_set(store, live_match.id, home, away, 25, 20)
        play_set(store, live_match.id, away, home, 25, 22)
        play_set(store, live_match.id, home, away, 25, 23)
        play_set(store, live_match.id, away, home, 25, 18)

        subscription = hub.subscribe(events.match_room(live_match.id))
        result = play_set(store, live_match.id, home, away, 15, 12, hub=hub)

        assert result['match'] == {
            'home_sets_won': 3,
            'away_sets_won': 2,
            'is_match_over': True,
            'winner_team_id': home,
        }
        stored = store.read().get_match(live_match.id)
        assert stored.status == 'completed'
        assert stored.winner_team_id == home
        assert stored.ended_at is not None
        assert stored.current_set_number is None
        assert len(stored.sets) == 5

        last_three = [event for event, _ in drain(subscription)][-3:]
        assert last_three == [events.POINT_SCORED, events.SET_ENDED, events.MATCH_ENDED]

        rows = {row['team_id']: row for row in get_standings(store, 1)}
        assert (rows[home]['wins'], rows[home]['losses']) == (1, 0)
        assert (rows[away]['wins'], rows[away]['losses']) == (0, 1)
        assert (rows[home]['sets_won'], rows[home]['sets_lost']) == (3, 2)
        assert rows[home]['points_scored'] == 25 + 22 + 25 + 18 + 15
        assert rows[home]['points_allowed'] == 20 + 25 + 23 + 25 + 12
        assert rows[home]['rank_in_age_group'] == 1
        assert rows[away]['rank_in_age_group'] == 2

    def test_deciding_set_deuce(self, store, teams, live_match):
        """At 14-14 in the fifth set, 15-14 continues and 16-14 ends the match."""
        home, away = teams[0].id, teams[1].id
        play_set(store, live_match.id, home, away, 25, 10)
        play_set(store, live_match.id, away, home, 25, 10)
        play_set(store, live_match.id, home, away, 25, 10)
        play_set(store, live_match.id, away, home, 25, 10)
        play_set(store, live_match.id, home, away, 14, 14)

        result = score_point(store, live_match.id, home)
        assert (result['current_set']['home_points'], result['current_set']['away_points']) == (15, 14)
        assert result['current_set']['is_set_over'] is False
        assert result['match']['is_match_over'] is False

        result = score_point(store, live_match.id, home)
        assert result['current_set']['is_set_over'] is True
        assert result['match']['is_match_over'] is True
        assert result['match']['winner_team_id'] == home

        with pytest.raises(InvalidState):
            score_point(store, live_match.id, home)

    def test_straight_sets(self, store, teams, live_match):
        home, away = teams[0].id, teams[1].id
        for _ in range(3):
            result = play_set(store, live_match.id, away, home, 25, 15)
        assert result['match']['winner_team_id'] == away
        assert result['match']['away_sets_won'] == 3
        assert len(store.read().get_match(live_match.id).sets) == 3


class TestEndMatch:
    def test_end_awards_in_progress_set_to_leader(self, store, teams, live_match):
        play_set(store, live_match.id, teams[0].id, teams[1].id, 25, 10)
        play_set(store, live_match.id, teams[0].id, teams[1].id, 10, 5)

        match = end_match(store, live_match.id)
        assert match.status == 'completed'
        assert match.winner_team_id == teams[0].id
        assert (match.home_sets_won, match.away_sets_won) == (2, 0)

    def test_end_discards_untouched_set(self, store, teams, live_match):
        play_set(store, live_match.id, teams[1].id, teams[0].id, 25, 10)
        match = end_match(store, live_match.id)
        assert len(match.sets) == 1
        assert match.winner_team_id == teams[1].id

    def test_end_on_level_set_has_no_set_winner(self, store, teams, live_match):
        play_set(store, live_match.id, teams[0].id, teams[1].id, 5, 5)
        match = end_match(store, live_match.id)
        assert match.sets[0].status == 'completed'
        assert match.sets[0].winner_team_id is None
        assert match.winner_team_id == teams[0].id

    def test_end_updates_standings(self, store, teams, live_match):
        play_set(store, live_match.id, teams[1].id, teams[0].id, 3, 1)
        end_match(store, live_match.id)
        rows = {row['team_id']: row for row in get_standings(store, 1)}
        assert rows[teams[1].id]['wins'] == 1
        assert rows[teams[0].id]['losses'] == 1

    def test_end_requires_live_match(self, store, season_match):
        with pytest.raises(InvalidState):
            end_match(store, season_match.id)


class TestScheduledStatusChanges:
    def test_cancel(self, store, season_match, hub):
        subscription = hub.subscribe(events.match_room(season_match.id))
        match = cancel_match(store, season_match.id, hub=hub)
        assert match.status == 'canceled'
        assert store.read().get_match(season_match.id).status == 'canceled'
        assert drain(subscription) == [
            (events.MATCH_STATUS_CHANGED, {'match_id': season_match.id, 'status': 'canceled'})
        ]

    def test_postpone(self, store, season_match):
        assert postpone_match(store, season_match.id).status == 'postponed'

    def test_cannot_cancel_live_match(self, store, live_match):
        with pytest.raises(InvalidState):
            cancel_match(store, live_match.id)

    def test_canceled_match_cannot_start(self, store, season_match):
        cancel_match(store, season_match.id)
        with pytest.raises(InvalidState):
            start_match(store, season_match.id)


class TestGetMatch:
    def test_detail_includes_names(self, store, teams, live_match):
        score_point(store, live_match.id, teams[0].id)
        detail = get_match(store, live_match.id)
        assert detail['home_team_name'] == 'Team A'
        assert detail['away_team_name'] == 'Team B'
        assert detail['is_live'] is True
        assert detail['sets'][0]['home_points'] == 1

    def test_unknown_match(self, store):
        with pytest.raises(NotFound):
            get_match(store, 55)
