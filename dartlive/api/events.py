from flask import Blueprint, Response, request

from dartlive.services import get_services
from dartlive.services.fanout import QueueSubscriber

events = Blueprint('events', __name__)


@events.route('/events/stream')
def stream():
    """Server-Sent Events feed. Optional ?boardId= limits board updates to one board."""
    hub = get_services().hub
    subscriber = hub.connect(QueueSubscriber(), board_filter=request.args.get('boardId'))

    def generate():
        try:
            yield from subscriber.frames()
        finally:
            hub.disconnect(subscriber)

    headers = {'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
    return Response(generate(), mimetype='text/event-stream', headers=headers)
