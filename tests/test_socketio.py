def event_names(received):
    return [pkt['name'] for pkt in received]


def test_socket_connect_receives_snapshots(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    names = event_names(sio_client.get_received('/ws'))
    assert names[:3] == ['connected', 'boards.snapshot', 'matches.snapshot']


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')  # flush
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'pong' and pkt['args'][0] == {'n': 1} for pkt in received)


def test_match_updates_are_relayed(sio_client, engine, boards):
    sio_client.get_received('/ws')  # flush
    state = engine.create_match('Alice', 'Bob', board_id='board-1')
    boards.apply_throw('board-1', {'sector': 'T20'})
    received = sio_client.get_received('/ws')
    updates = [pkt['args'][0] for pkt in received if pkt['name'] == 'match.update']
    assert updates
    assert updates[-1]['id'] == state['id']
    assert updates[-1]['stats']['players']['A']['remaining'] == 441
    assert 'board.update' in event_names(received)


def test_board_filter_from_query(flask_app):
    from dartlive import socketio as _sio
    boards = flask_app.extensions['dartlive'].boards
    boards.upsert('board-1', 'Stage')
    boards.upsert('board-2', 'Side')
    client = _sio.test_client(flask_app, namespace='/ws', query_string='boardId=board-2')
    received = client.get_received('/ws')
    snapshot = [pkt['args'][0] for pkt in received if pkt['name'] == 'boards.snapshot'][0]
    assert [b['id'] for b in snapshot['boards']] == ['board-2']

    boards.takeout_start('board-1')
    assert 'board.update' not in event_names(client.get_received('/ws'))
    boards.takeout_start('board-2')
    assert 'board.update' in event_names(client.get_received('/ws'))
    client.disconnect(namespace='/ws')


def test_disconnect_releases_subscriber(flask_app, sio_client):
    hub = flask_app.extensions['dartlive'].hub
    assert hub.subscriber_count == 1
    sio_client.disconnect(namespace='/ws')
    assert hub.subscriber_count == 0
    assert not hub.heartbeat_running
