from flask import current_app, request
from flask_socketio import emit
from dartlive import socketio
from dartlive.services.fanout import Subscriber
from typing import Dict


class SocketSubscriber(Subscriber):
    """Relays hub events to one Socket.IO client on the /ws namespace."""

    def __init__(self, sid: str, namespace: str = '/ws'):
        self.sid = sid
        self.namespace = namespace

    def send(self, event, data):
        socketio.emit(event, data, to=self.sid, namespace=self.namespace)


_sid_to_sub: Dict[str, SocketSubscriber] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect(auth=None):
    board_filter = request.args.get('boardId') or (auth or {}).get('boardId')
    emit('connected', {'message': 'Connected to /ws', 'board_filter': board_filter})
    hub = current_app.extensions['dartlive'].hub
    sub = SocketSubscriber(_get_sid(), namespace=request.namespace)
    _sid_to_sub[sub.sid] = sub
    hub.connect(sub, board_filter=board_filter)


def handle_disconnect(*args):
    sub = _sid_to_sub.pop(_get_sid(), None)
    if sub is None:
        return
    current_app.extensions['dartlive'].hub.disconnect(sub)


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')
