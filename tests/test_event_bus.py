from dartlive.services.event_bus import EventBus, MatchUpdate, TakeoutStarted


def test_handlers_run_in_subscription_order():
    bus = EventBus()
    calls = []
    bus.subscribe('takeout.started', lambda e: calls.append(('first', e.board_id)))
    bus.subscribe('takeout.started', lambda e: calls.append(('second', e.board_id)))
    bus.publish(TakeoutStarted(board_id='board-1', time='now'))
    assert calls == [('first', 'board-1'), ('second', 'board-1')]


def test_failing_handler_does_not_stop_others(caplog):
    bus = EventBus()
    calls = []

    def broken(event):
        raise RuntimeError('boom')

    bus.subscribe('match.update', broken)
    bus.subscribe('match.update', calls.append)
    event = MatchUpdate(match_id='m1', state={})
    bus.publish(event)
    assert calls == [event]
    assert 'boom' in caplog.text


def test_unsubscribe():
    bus = EventBus()
    calls = []
    bus.subscribe('match.update', calls.append)
    bus.unsubscribe('match.update', calls.append)
    bus.publish(MatchUpdate(match_id='m1', state={}))
    assert calls == []


def test_topics_are_isolated():
    bus = EventBus()
    calls = []
    bus.subscribe('takeout.finished', calls.append)
    bus.publish(TakeoutStarted(board_id='board-1', time='now'))
    assert calls == []
