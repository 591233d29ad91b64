import threading

import pytest

from dartlive.services.boards import (BoardManager, Configured, Unconfigured, mask_token,
                                      public_board)
from dartlive.services.errors import ValidationError
from dartlive.services.event_bus import EventBus


@pytest.fixture()
def bus_events():
    bus = EventBus()
    seen = []
    for topic in ('status.changed', 'throw.detected', 'takeout.started', 'takeout.finished'):
        bus.subscribe(topic, seen.append)
    return bus, seen


def test_upsert_defaults_ready_throw(bus_events):
    bus, seen = bus_events
    manager = BoardManager(bus)
    board = manager.upsert('board-1', 'Stage')
    assert (board.status, board.phase, board.name) == ('Ready', 'Throw', 'Stage')
    assert isinstance(board.credentials, Unconfigured)
    assert seen[-1].topic == 'status.changed'
    assert seen[-1].board_id == 'board-1'


def test_upsert_existing_keeps_state_and_renames(bus_events):
    bus, _ = bus_events
    manager = BoardManager(bus)
    manager.upsert('board-1', 'Stage')
    manager.takeout_start('board-1')
    board = manager.upsert('board-1', 'Main stage')
    assert board.name == 'Main stage'
    assert board.phase == 'Takeout'
    assert len(manager.list()) == 1


def test_throw_creates_unknown_board_lazily(bus_events):
    bus, seen = bus_events
    manager = BoardManager(bus)
    board = manager.apply_throw('board-7', {'sector': 'T20', 'detectionTime': '2026-01-01T10:00:00Z'})
    assert board.name == 'Board board-7'
    assert board.last_throw == {'sector': 'T20', 'detectionTime': '2026-01-01T10:00:00Z',
                                'at': '2026-01-01T10:00:00Z'}
    assert board.last_update == '2026-01-01T10:00:00Z'
    assert [e.topic for e in seen] == ['status.changed', 'throw.detected']
    assert seen[-1].sector == 'T20'


def test_throw_without_detection_time_uses_server_time(bus_events):
    bus, _ = bus_events
    manager = BoardManager(bus)
    board = manager.apply_throw('board-1', {'sector': 'S5'})
    assert board.last_throw['at']
    assert board.last_throw['at'] == board.last_update


def test_throw_forces_ready(bus_events):
    bus, _ = bus_events
    manager = BoardManager(bus)
    manager.set_status('board-1', 'Calibrating')
    board = manager.apply_throw('board-1', {'sector': 'S5'})
    assert (board.status, board.phase) == ('Ready', 'Throw')


def test_takeout_cycle(bus_events):
    bus, seen = bus_events
    manager = BoardManager(bus)
    manager.upsert('board-1', 'Stage')
    assert manager.takeout_start('board-1').phase == 'Takeout'
    assert manager.takeout_finish('board-1', True).phase == 'Throw'
    assert seen[-2].topic == 'takeout.started'
    assert seen[-1].topic == 'takeout.finished'
    assert seen[-1].false_takeout is True


def test_non_ready_status_clears_phase(bus_events):
    bus, seen = bus_events
    manager = BoardManager(bus)
    board = manager.set_status('board-1', 'Offline')
    assert board.phase is None
    assert seen[-1].status == 'Offline'
    assert seen[-1].phase is None
    board = manager.set_status('board-1', 'Ready')
    assert board.phase == 'Throw'


def test_unknown_status_rejected(bus_events):
    bus, _ = bus_events
    with pytest.raises(ValidationError):
        BoardManager(bus).set_status('board-1', 'Sleeping')


def test_credentials_are_masked(bus_events):
    bus, _ = bus_events
    manager = BoardManager(bus)
    board = manager.configure('board-1', 'SER-123', 'abcdefghijkl')
    assert board.credentials == Configured(serial_number='SER-123', token_ref='abcdefghijkl')
    view = public_board(board)
    assert view['credentials'] == {'serial_number': 'SER-123', 'access_token_masked': 'abcd…kl',
                                   'configured': True}
    assert 'abcdefghijkl' not in str(view)
    board = manager.clear_credentials('board-1')
    assert public_board(board)['credentials']['configured'] is False


def test_configure_requires_both_parts(bus_events):
    bus, _ = bus_events
    with pytest.raises(ValidationError):
        BoardManager(bus).configure('board-1', 'SER-1', '')


def test_mask_token():
    assert mask_token(None) is None
    assert mask_token('abc') == '•••'
    assert mask_token('abcdefg') == 'abcd…fg'


def test_load_restores_boards_offline(bus_events):
    bus, _ = bus_events
    manager = BoardManager(bus)
    manager.load([{'id': 'board-2', 'name': 'Side', 'serial_number': 'S', 'access_token_ref': 'tok-123456'}])
    board = manager.get('board-2')
    assert (board.status, board.phase) == ('Offline', None)
    assert isinstance(board.credentials, Configured)


def test_upsert_is_persisted(services, boards):
    boards.upsert('board-5', 'Practice')
    boards.configure('board-5', 'SER-5', 'token-5555')
    rows = services.repository.list_boards()
    assert rows == [{'id': 'board-5', 'name': 'Practice', 'serial_number': 'SER-5',
                     'access_token_ref': 'token-5555', 'updated_at': rows[0]['updated_at']}]


def test_lazily_created_board_is_announced_outside_the_lock(bus_events):
    bus, _ = bus_events
    manager = BoardManager(bus)
    lock_free = []

    def record_lock_state(event):
        result = []

        def attempt():
            acquired = manager._lock.acquire(blocking=False)
            if acquired:
                manager._lock.release()
            result.append(acquired)

        worker = threading.Thread(target=attempt)
        worker.start()
        worker.join()
        lock_free.append((event.topic, result[0]))

    for topic in ('status.changed', 'throw.detected', 'takeout.started'):
        bus.subscribe(topic, record_lock_state)
    manager.apply_throw('board-8', {'sector': 'S1'})
    manager.takeout_start('board-9')
    assert lock_free == [('status.changed', True), ('throw.detected', True),
                         ('status.changed', True), ('takeout.started', True)]
