"""
Flask JSON API for the table tennis tournament engine.
"""
import logging
import os

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from ttengine.config import configure_logging, load_settings
from ttengine.errors import InvalidRequest, InvalidResult, NotFound, TournamentError
from ttengine.formats import FORMATS, expected_match_count_for
from ttengine.store import TournamentStore
from ttengine.tournament import TournamentRegistry

app = Flask(__name__)

ERROR_STATUS = {
    NotFound: 404,
}

settings = None
store = None
registry = None


def init_app(new_settings=None):
    """(Re)load settings, open the store and load every saved tournament."""
    global settings, store, registry
    settings = new_settings or load_settings()
    configure_logging(settings)
    app.logger.setLevel(getattr(logging, str(settings.get('log_level', 'INFO')).upper(), logging.INFO))
    store = TournamentStore(settings['data_dir'], settings, settings.get('lock_timeout_seconds', 10))
    registry = TournamentRegistry(settings)
    for tournament in store.load_all():
        registry.add(tournament)
    app.logger.info(f'Loaded {len(registry.all())} tournament(s) from {settings["data_dir"]}')


def _save(tournament):
    store.save(tournament.root)


@app.errorhandler(TournamentError)
def handle_tournament_error(error):
    status = ERROR_STATUS.get(type(error), 400)
    app.logger.warning(f'{type(error).__name__}: {error.message}')
    return jsonify({'success': False, **error.to_dict()}), status


@app.errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({'success': False, 'error': error.name, 'message': error.description}), error.code


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest('Request body must be a JSON object')
    return data


def _sets_from(data):
    try:
        return (int(data.get('sets_a', 0)), int(data.get('sets_b', 0)),
                bool(data.get('forfeit_a', False)), bool(data.get('forfeit_b', False)))
    except (TypeError, ValueError):
        raise InvalidResult('sets_a and sets_b must be integers',
                            sets_a=data.get('sets_a'), sets_b=data.get('sets_b'))


def _node_ref(data):
    if data.get('node') is not None:
        return data['node']
    if data.get('round') is not None and data.get('position') is not None:
        return (int(data['round']), int(data['position']))
    return None


@app.route('/api/formats', methods=['GET'])
def api_formats():
    """List the supported format tags."""
    return jsonify({'formats': [
        {'tag': tag, 'basic': fmt.is_basic} for tag, fmt in sorted(FORMATS.items())
    ]})


@app.route('/api/formats/<tag>/expected-matches', methods=['GET'])
def api_expected_matches(tag):
    """Expected match count for an entry count, before any tournament exists."""
    players = request.args.get('players', type=int) or 0
    config = {key: request.args.get(key, type=int) for key in ('rounds', 'final_size', 'group_count')
              if request.args.get(key) is not None}
    return jsonify({'format': tag, 'players': players,
                    'expected_matches': expected_match_count_for(tag, players, config, settings)})


@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    return jsonify({'tournaments': [
        {'id': t.tournament_id, 'name': t.name, 'format': t.format_tag, 'status': t.status}
        for t in registry.all()
    ]})


@app.route('/api/tournaments', methods=['POST'])
def api_create_tournament():
    """
    Create a tournament.

    Body: {"id", "name", "format", "participants": [{"member_id", "rating", "name"}],
           "config": {...}}
    """
    data = _json_body()
    tournament_id = str(data.get('id', '')).strip()
    if not tournament_id:
        raise InvalidRequest('Tournament id is required', field='id')
    tournament = registry.create(tournament_id, data.get('name'), data.get('format'),
                                 data.get('participants', []), data.get('config'))
    _save(tournament)
    app.logger.info(f'Created tournament {tournament_id} ({tournament.format_tag})')
    return jsonify({'success': True, 'tournament': tournament.snapshot()}), 201


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def api_get_tournament(tournament_id):
    return jsonify(registry.get(tournament_id).snapshot())


@app.route('/api/tournaments/<tournament_id>', methods=['DELETE'])
def api_delete_tournament(tournament_id):
    registry.delete(tournament_id)
    store.delete(tournament_id)
    return jsonify({'success': True})


@app.route('/api/tournaments/<tournament_id>/results', methods=['POST'])
def api_record_result(tournament_id):
    """
    Record a result.

    Body: {"participant_a", "participant_b", "sets_a", "sets_b", "forfeit_a", "forfeit_b"}
    plus "round" and "position" (or "node": "round-position") for playoffs.
    """
    tournament = registry.get(tournament_id)
    data = _json_body()
    sets_a, sets_b, forfeit_a, forfeit_b = _sets_from(data)
    match = tournament.record_result(_node_ref(data), data.get('participant_a'), data.get('participant_b'),
                                     sets_a, sets_b, forfeit_a, forfeit_b)
    _save(tournament)
    return jsonify({'success': True, 'match': match.to_dict(), 'status': tournament.status}), 201


@app.route('/api/tournaments/<tournament_id>/results/<ref>', methods=['PATCH'])
def api_edit_result(tournament_id, ref):
    """Correct a result. ref is a match id, or round-position for playoffs."""
    tournament = registry.get(tournament_id)
    sets_a, sets_b, forfeit_a, forfeit_b = _sets_from(_json_body())
    match, removed = tournament.edit_result(ref, sets_a, sets_b, forfeit_a, forfeit_b)
    _save(tournament)
    return jsonify({'success': True, 'match': match.to_dict(),
                    'removed': [m.to_dict() for m in removed]})


@app.route('/api/tournaments/<tournament_id>/results/<ref>', methods=['DELETE'])
def api_delete_result(tournament_id, ref):
    tournament = registry.get(tournament_id)
    removed = tournament.delete_result(ref)
    _save(tournament)
    return jsonify({'success': True, 'removed': [m.to_dict() for m in removed]})


@app.route('/api/tournaments/<tournament_id>/bracket', methods=['GET'])
def api_bracket(tournament_id):
    tournament = registry.get(tournament_id)
    snapshot = tournament.snapshot()
    if 'bracket' not in snapshot:
        return jsonify({'success': False, 'error': f'{tournament.format_tag} tournaments have no bracket'}), 400
    return jsonify(snapshot['bracket'])


@app.route('/api/tournaments/<tournament_id>/standings', methods=['GET'])
def api_standings(tournament_id):
    tournament = registry.get(tournament_id)
    return jsonify({'status': tournament.status, 'standings': tournament.standings()})


@app.route('/api/tournaments/<tournament_id>/counts', methods=['GET'])
def api_counts(tournament_id):
    tournament = registry.get(tournament_id)
    return jsonify({
        'expected_matches': tournament.expected_match_count(),
        'matches_remaining': tournament.matches_remaining(),
        'can_delete': tournament.can_delete(),
        'can_cancel': tournament.can_cancel(),
    })


@app.route('/api/tournaments/<tournament_id>/cancel', methods=['POST'])
def api_cancel(tournament_id):
    tournament = registry.get(tournament_id)
    tournament.cancel()
    _save(tournament)
    return jsonify({'success': True, 'status': tournament.status, 'cancelled': tournament.cancelled})


@app.route('/api/tournaments/<tournament_id>/swiss/next-round', methods=['POST'])
def api_swiss_next_round(tournament_id):
    tournament = registry.get(tournament_id)
    pairs = tournament.pair_next_round()
    _save(tournament)
    return jsonify({'success': True, 'pairings': [list(pair) for pair in pairs]})


@app.route('/api/tournaments/<tournament_id>/final-stage', methods=['POST'])
def api_final_stage(tournament_id):
    tournament = registry.get(tournament_id)
    final = tournament.create_final_stage()
    _save(tournament)
    return jsonify({'success': True, 'final_stage': final.snapshot()}), 201


init_app()


if __name__ == '__main__':
    app.run(debug=os.environ.get('FLASK_DEBUG') == '1', port=5000)
