"""
Shared pytest fixtures for competition engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset (skips point-by-point full matches)
"""
import pytest
import sys
import os
from datetime import date, datetime

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from competition.events import EventHub
from competition.models import GameSet
from competition.scoring import create_match, score_point, start_match
from competition.store import Store


def play_set(store, match_id, winner_id, loser_id, winner_points, loser_points, hub=None):
    """Score one set to an exact final score and return the last score_point result.

    Points alternate winner/loser so neither side gets a two point lead
    before the loser's total is reached.
    """
    result = None
    for _ in range(loser_points):
        score_point(store, match_id, winner_id, hub=hub)
        result = score_point(store, match_id, loser_id, hub=hub)
    for _ in range(winner_points - loser_points):
        result = score_point(store, match_id, winner_id, hub=hub)
    return result


def record_result(store, match_id, set_scores):
    """Write a completed match straight to the store, bypassing live scoring.

    ``set_scores`` is a list of (home_points, away_points) tuples.
    """
    with store.transaction() as data:
        match = data.get_match(match_id)
        match.sets = []
        for number, (home, away) in enumerate(set_scores, start=1):
            winner = match.home_team_id if home > away else match.away_team_id
            match.sets.append(GameSet(number, home, away, status='completed', winner_team_id=winner))
        match.home_sets_won = sum(1 for h, a in set_scores if h > a)
        match.away_sets_won = sum(1 for h, a in set_scores if a > h)
        match.winner_team_id = match.home_team_id if match.home_sets_won > match.away_sets_won else match.away_team_id
        match.status = 'completed'
        match.current_set_number = None
    return match


@pytest.fixture
def store(tmp_path):
    """Store backed by an empty temporary data directory."""
    return Store(str(tmp_path / "data"), lock_timeout=5)


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def teams(store):
    """Eight registered teams: four 16U (ids 1-4) and four 18U (ids 5-8)."""
    created = []
    for index, letter in enumerate("ABCDEFGH"):
        age_group = "16U" if index < 4 else "18U"
        created.append(store.add_team(f"Team {letter}", club=f"Club {letter}", age_group=age_group))
    return created


@pytest.fixture
def season_match(store, teams):
    """A scheduled season match Team A (home) vs Team B (away)."""
    return create_match(store, teams[0].id, teams[1].id, datetime(2026, 3, 14, 10, 0), season_id=1)


@pytest.fixture
def live_match(store, season_match):
    """The season match, started."""
    return start_match(store, season_match.id)


@pytest.fixture
def tournament_day():
    return date(2026, 5, 2)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Flask test client with DATA_DIR pointed at a temporary directory."""
    import app as app_module

    data_dir = tmp_path / "api-data"
    data_dir.mkdir()
    monkeypatch.setattr(app_module, 'DATA_DIR', str(data_dir))
    monkeypatch.setattr(app_module, '_stores', {})
    monkeypatch.setattr(app_module, 'hub', EventHub())

    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client
