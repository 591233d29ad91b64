"""Live fan-out of board and match state to connected subscribers.

A subscriber gets one ``boards.snapshot`` and one ``matches.snapshot`` when
it connects, then incremental ``board.update`` / ``match.update`` events.
Nothing is buffered for disconnected subscribers; reconnecting yields a
fresh snapshot.
"""

import json
import logging
import queue
import threading
from typing import Dict, Optional

from .boards import public_board
from .event_bus import BOARD_TOPICS, MATCH_UPDATE

KEEPALIVE = 'keepalive'


def _start_thread(target):
    thread = threading.Thread(target=target, name='fanout-heartbeat', daemon=True)
    thread.start()
    return thread


def format_sse(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class Subscriber:
    """Base subscriber. Transports override ``send``."""

    def send(self, event: str, data) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class QueueSubscriber(Subscriber):
    """Buffers SSE frames for a streaming HTTP response."""

    _CLOSED = object()

    def __init__(self, maxsize: int = 0):
        self.queue = queue.Queue(maxsize=maxsize)

    def send(self, event, data):
        self.queue.put_nowait(format_sse(event, data))

    def close(self):
        self.queue.put_nowait(self._CLOSED)

    def frames(self, timeout: Optional[float] = None):
        while True:
            try:
                item = self.queue.get(timeout=timeout)
            except queue.Empty:
                return
            if item is self._CLOSED:
                return
            yield item

    def drain(self):
        """Everything queued so far, without blocking."""
        items = []
        while True:
            try:
                item = self.queue.get_nowait()
            except queue.Empty:
                return items
            if item is not self._CLOSED:
                items.append(item)


class FanoutHub:
    def __init__(self, bus, boards, engine, heartbeat_interval: float = 25.0, logger=None,
                 start_task=None):
        self.bus = bus
        self.boards = boards
        self.engine = engine
        self.heartbeat_interval = heartbeat_interval
        self.logger = logger or logging.getLogger(__name__)
        # Callable that runs a function in the background, e.g. socketio.start_background_task
        self.start_task = start_task or _start_thread
        self._subscribers: Dict[Subscriber, Optional[str]] = {}
        self._lock = threading.Lock()
        self._heartbeat_stop: Optional[threading.Event] = None

    def start(self) -> None:
        for topic in BOARD_TOPICS:
            self.bus.subscribe(topic, self.on_board_event)
        self.bus.subscribe(MATCH_UPDATE, self.on_match_update)

    def shutdown(self) -> None:
        for topic in BOARD_TOPICS:
            self.bus.unsubscribe(topic, self.on_board_event)
        self.bus.unsubscribe(MATCH_UPDATE, self.on_match_update)
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
            self._stop_heartbeat()
        for sub in subscribers:
            sub.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def heartbeat_running(self) -> bool:
        return self._heartbeat_stop is not None

    def connect(self, subscriber: Subscriber, board_filter: Optional[str] = None) -> Subscriber:
        board_filter = board_filter or None
        # Registered before the snapshots so no update published meanwhile is missed
        with self._lock:
            self._subscribers[subscriber] = board_filter
            if self._heartbeat_stop is None:
                self._start_heartbeat()
        try:
            boards = [public_board(b) for b in self.boards.list()
                      if not board_filter or b.id == board_filter]
            subscriber.send('boards.snapshot', {'boards': boards})
            subscriber.send('matches.snapshot', {'matches': self.engine.list_active_states()})
        except Exception:
            self.disconnect(subscriber)
            raise
        self.logger.info(f"[fanout] subscriber connected filter={board_filter} total={self.subscriber_count}")
        return subscriber

    def disconnect(self, subscriber: Subscriber) -> None:
        with self._lock:
            if self._subscribers.pop(subscriber, False) is False:
                return
            if not self._subscribers:
                self._stop_heartbeat()
        self.logger.info(f"[fanout] subscriber disconnected total={self.subscriber_count}")

    def on_board_event(self, event) -> None:
        board_id = str(event.board_id)
        payload = public_board(self.boards.get(board_id))
        if payload is None:
            return
        self._broadcast('board.update', payload, board_id=board_id)

    def on_match_update(self, event) -> None:
        self._broadcast('match.update', event.state)

    def ping(self) -> None:
        self._broadcast('ping', KEEPALIVE)

    def _broadcast(self, event: str, data, board_id: Optional[str] = None) -> None:
        with self._lock:
            targets = list(self._subscribers.items())
        for sub, board_filter in targets:
            if board_id is not None and board_filter and board_filter != board_id:
                continue
            try:
                sub.send(event, data)
            except Exception:
                self.logger.warning(f"[fanout] dropping subscriber after failed {event} send", exc_info=True)
                self.disconnect(sub)

    def _start_heartbeat(self) -> None:
        stop = threading.Event()
        self._heartbeat_stop = stop

        def _runner():
            while not stop.wait(self.heartbeat_interval):
                self.ping()

        self.start_task(_runner)

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_stop is not None:
            self._heartbeat_stop.set()
            self._heartbeat_stop = None
