from flask import Blueprint, jsonify, request

from dartlive.services import get_services
from dartlive.services.boards import public_board

boards = Blueprint('boards', __name__)


@boards.route('', methods=['GET'])
def list_boards():
    svc = get_services()
    return jsonify([public_board(b) for b in svc.boards.list()])


@boards.route('/register', methods=['POST'])
def register_board():
    data = request.get_json(silent=True) or {}
    board_id = data.get('board_id')
    if not board_id:
        return jsonify({'error': 'board_id is required'}), 400
    board_id = str(board_id)
    svc = get_services()
    svc.boards.upsert(board_id, data.get('name'))
    if data.get('clear_credentials'):
        svc.boards.clear_credentials(board_id)
    elif data.get('serial_number') or data.get('access_token'):
        svc.boards.configure(board_id, data.get('serial_number'), data.get('access_token'))
    return jsonify(public_board(svc.boards.get(board_id))), 201


@boards.route('/<string:board_id>/status', methods=['POST'])
def set_status(board_id):
    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if not status:
        return jsonify({'error': 'status is required'}), 400
    board = get_services().boards.set_status(board_id, status)
    return jsonify(public_board(board))


@boards.route('/<string:board_id>/throw', methods=['POST'])
def throw(board_id):
    payload = request.get_json(silent=True) or {}
    if not payload.get('sector'):
        return jsonify({'error': 'sector is required'}), 400
    board = get_services().boards.apply_throw(board_id, payload)
    return jsonify(public_board(board))


@boards.route('/<string:board_id>/takeout/start', methods=['POST'])
def takeout_start(board_id):
    board = get_services().boards.takeout_start(board_id)
    return jsonify(public_board(board))


@boards.route('/<string:board_id>/takeout/finish', methods=['POST'])
def takeout_finish(board_id):
    data = request.get_json(silent=True) or {}
    board = get_services().boards.takeout_finish(board_id, bool(data.get('falseTakeout', False)))
    return jsonify(public_board(board))
