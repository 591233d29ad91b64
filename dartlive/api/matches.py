from flask import Blueprint, jsonify, request

from dartlive.services import get_services

matches = Blueprint('matches', __name__)


@matches.route('', methods=['GET'])
def list_matches():
    return jsonify(get_services().engine.list_active_states())


@matches.route('', methods=['POST'])
def create_match():
    data = request.get_json(silent=True) or {}
    if not all([data.get('player_a'), data.get('player_b')]):
        return jsonify({'error': 'player_a and player_b are required'}), 400
    state = get_services().engine.create_match(
        data.get('player_a'),
        data.get('player_b'),
        board_id=data.get('board_id'),
        start_score=data.get('start_score'),
        out_mode=data.get('out_mode') or 'DOUBLE',
        legs_mode=data.get('legs_mode') or 'BEST_OF',
        legs_target=data.get('legs_target') or 3,
    )
    return jsonify(state), 201


@matches.route('/<string:match_id>', methods=['GET'])
def get_match(match_id):
    return jsonify(get_services().engine.get_state(match_id))


@matches.route('/<string:match_id>/legs', methods=['POST'])
def start_leg(match_id):
    data = request.get_json(silent=True) or {}
    state = get_services().engine.start_leg(match_id, first_player=data.get('first_player'))
    return jsonify(state), 201


@matches.route('/<string:match_id>/pause', methods=['POST'])
def pause_match(match_id):
    return jsonify(get_services().engine.pause_match(match_id))


@matches.route('/<string:match_id>/resume', methods=['POST'])
def resume_match(match_id):
    return jsonify(get_services().engine.resume_match(match_id))


@matches.route('/<string:match_id>/board', methods=['POST'])
def assign_board(match_id):
    data = request.get_json(silent=True) or {}
    return jsonify(get_services().engine.assign_board(match_id, data.get('board_id')))


@matches.route('/<string:match_id>/visits', methods=['GET'])
def list_visits(match_id):
    try:
        limit = int(request.args.get('limit', 50))
    except ValueError:
        limit = 50
    limit = min(200, max(1, limit))
    return jsonify(get_services().engine.list_visits(match_id, limit=limit))
