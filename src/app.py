"""
Flask web application exposing the volleyball competition engine.

Callers are expected to be authorized (and tier-checked) before reaching
these endpoints; the engine itself performs no identity checks.
"""
import os
import queue
import logging
from datetime import date, datetime

from flask import Flask, request, jsonify, Response, stream_with_context

from competition import scoring, standings, pools, elimination, bracket_view
from competition.config import load_settings
from competition.errors import CompetitionError, ValidationError
from competition.events import EventHub, format_sse, match_room, tournament_room
from competition.store import Store

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('COMPETITION_DATA_DIR', os.path.join(BASE_DIR, 'data'))
HEARTBEAT_SECONDS = 15

hub = EventHub()
_stores = {}


def get_settings() -> dict:
    return load_settings(DATA_DIR)


def get_store() -> Store:
    """Return the store for the current data directory (one per directory)."""
    store = _stores.get(DATA_DIR)
    if store is None:
        store = Store(DATA_DIR, lock_timeout=get_settings()['lock_timeout_seconds'])
        _stores[DATA_DIR] = store
    return store


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def _require_int(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None:
        raise ValidationError(f'Missing {key}.', field=key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{key} must be an integer.', field=key)
    return value


def _optional_int(data: dict, key: str):
    if data.get(key) is None:
        return None
    return _require_int(data, key)


def _optional_bool(data: dict, key: str, default: bool = False) -> bool:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f'{key} must be true or false.', field=key)
    return value


def _parse_date(data: dict, key: str, required: bool = True):
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f'Missing {key}.', field=key)
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f'{key} must be an ISO date (YYYY-MM-DD).', field=key)


def _parse_datetime(data: dict, key: str) -> datetime:
    value = data.get(key)
    if value is None:
        raise ValidationError(f'Missing {key}.', field=key)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f'{key} must be an ISO datetime.', field=key)


@app.errorhandler(CompetitionError)
def handle_competition_error(error: CompetitionError):
    app.logger.info(f'{request.method} {request.path} rejected: {error.code} {error.message}')
    return jsonify(error.to_dict()), error.status


@app.route('/api/teams', methods=['GET'])
def api_list_teams():
    data = get_store().read()
    return jsonify({'teams': [t.to_dict() for t in sorted(data.teams.values(), key=lambda t: t.id)]})


@app.route('/api/teams', methods=['POST'])
def api_add_team():
    """Register external team data (name, club, age group) for lookups."""
    data = _json_body()
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Missing team name.', field='name')
    team = get_store().add_team(name, data.get('club'), data.get('age_group'))
    return jsonify(team.to_dict()), 201


@app.route('/api/matches', methods=['POST'])
def api_create_match():
    data = _json_body()
    match = scoring.create_match(
        get_store(),
        _require_int(data, 'home_team_id'),
        _require_int(data, 'away_team_id'),
        _parse_datetime(data, 'scheduled_at'),
        season_id=_optional_int(data, 'season_id'),
        tournament_id=_optional_int(data, 'tournament_id'),
        venue=data.get('venue'),
        is_playoff=_optional_bool(data, 'is_playoff'),
        notes=data.get('notes'),
    )
    return jsonify(match.to_dict()), 201


@app.route('/api/matches/<int:match_id>', methods=['GET'])
def api_get_match(match_id):
    return jsonify(scoring.get_match(get_store(), match_id))


@app.route('/api/matches/<int:match_id>/start', methods=['POST'])
def api_start_match(match_id):
    match = scoring.start_match(get_store(), match_id, hub=hub)
    return jsonify({'match_id': match.id, 'status': match.status, 'current_set': match.current_set_number})


@app.route('/api/matches/<int:match_id>/score', methods=['POST'])
def api_score_point(match_id):
    """Score one point. Body: scoring_team_id, optional player_id and point_type."""
    data = _json_body()
    result = scoring.score_point(
        get_store(), match_id,
        _require_int(data, 'scoring_team_id'),
        player_id=_optional_int(data, 'player_id'),
        point_type=data.get('point_type'),
        hub=hub,
    )
    return jsonify(result)


@app.route('/api/matches/<int:match_id>/end', methods=['POST'])
def api_end_match(match_id):
    match = scoring.end_match(get_store(), match_id, hub=hub)
    return jsonify(match.to_dict())


@app.route('/api/matches/<int:match_id>/cancel', methods=['POST'])
def api_cancel_match(match_id):
    match = scoring.cancel_match(get_store(), match_id, hub=hub)
    return jsonify({'match_id': match.id, 'status': match.status})


@app.route('/api/matches/<int:match_id>/postpone', methods=['POST'])
def api_postpone_match(match_id):
    match = scoring.postpone_match(get_store(), match_id, hub=hub)
    return jsonify({'match_id': match.id, 'status': match.status})


def _event_stream(room: str):
    """Server-Sent Events stream of everything published to ``room``."""
    subscription = hub.subscribe(room)

    def generate():
        # Send immediate connected event so clients show "Live" right away
        yield "event: connected\ndata: ok\n\n"
        try:
            while True:
                try:
                    event, payload = subscription.get(timeout=HEARTBEAT_SECONDS)
                except queue.Empty:
                    yield ": heartbeat\n\n"
                    continue
                yield format_sse(event, payload)
        finally:
            hub.unsubscribe(room, subscription)

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
        },
    )


@app.route('/api/matches/<int:match_id>/stream')
def api_match_stream(match_id):
    get_store().read().get_match(match_id)
    return _event_stream(match_room(match_id))


@app.route('/api/standings', methods=['GET'])
def api_get_standings():
    season_id = request.args.get('season_id', type=int)
    if season_id is None:
        raise ValidationError('Missing season_id.', field='season_id')
    rows = standings.get_standings(get_store(), season_id, request.args.get('age_group'))
    return jsonify({'season_id': season_id, 'standings': rows})


@app.route('/api/standings/<int:season_id>/recalculate', methods=['POST'])
def api_recalculate_ranks(season_id):
    ranked = standings.recalculate_ranks(get_store(), season_id)
    return jsonify({'season_id': season_id, 'standings': [s.to_dict() for s in ranked]})


@app.route('/api/tournaments', methods=['POST'])
def api_create_tournament():
    data = _json_body()
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Missing tournament name.', field='name')
    tournament = pools.create_tournament(
        get_store(), name,
        _parse_date(data, 'start_date'),
        _parse_date(data, 'end_date', required=False),
        format=data.get('format', 'pool_play'),
        max_teams=_optional_int(data, 'max_teams'),
        location=data.get('location'),
    )
    return jsonify(tournament.to_dict()), 201


@app.route('/api/tournaments/<int:tournament_id>', methods=['GET'])
def api_get_tournament(tournament_id):
    data = get_store().read()
    tournament = data.get_tournament(tournament_id)
    detail = tournament.to_dict()
    detail['matches'] = [m.to_dict() for m in sorted(data.tournament_matches(tournament_id),
                                                     key=lambda m: (m.scheduled_at, m.id))]
    return jsonify(detail)


@app.route('/api/tournaments/<int:tournament_id>/teams', methods=['POST'])
def api_register_team(tournament_id):
    data = _json_body()
    entry = pools.register_team(
        get_store(), tournament_id,
        _require_int(data, 'team_id'),
        pool_name=data.get('pool_name'),
        seed=_optional_int(data, 'seed'),
    )
    return jsonify(entry.to_dict()), 201


@app.route('/api/tournaments/<int:tournament_id>/generate-schedule', methods=['POST'])
def api_generate_schedule(tournament_id):
    created = pools.generate_pool_play_schedule(get_store(), tournament_id, settings=get_settings())
    return jsonify({
        'tournament_id': tournament_id,
        'games_created': len(created),
        'message': f'Successfully generated {len(created)} pool play games.',
    })


@app.route('/api/tournaments/<int:tournament_id>/generate-bracket', methods=['POST'])
def api_generate_bracket(tournament_id):
    result = elimination.generate_bracket_from_pools(get_store(), tournament_id,
                                                     settings=get_settings(), hub=hub)
    return jsonify({
        'tournament_id': tournament_id,
        'bracket_games': result['bracket_games'],
        'bracket_size': result['bracket_size'],
        'seeded_teams': result['seeded_teams'],
        'message': f"Successfully generated elimination bracket with {result['bracket_games']} games.",
    })


@app.route('/api/tournaments/<int:tournament_id>/bracket', methods=['GET'])
def api_get_bracket(tournament_id):
    return jsonify(bracket_view.get_tournament_bracket(get_store(), tournament_id, settings=get_settings()))


@app.route('/api/tournaments/<int:tournament_id>/stream')
def api_tournament_stream(tournament_id):
    get_store().read().get_tournament(tournament_id)
    return _event_stream(tournament_room(tournament_id))


if __name__ == '__main__':
    logging.basicConfig(level=os.environ.get('COMPETITION_LOG_LEVEL', 'INFO'))
    app.run(debug=True, port=5000, threaded=True)
