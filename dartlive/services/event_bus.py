"""In-process publish/subscribe channel between board, engine and fan-out."""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

STATUS_CHANGED = 'status.changed'
THROW_DETECTED = 'throw.detected'
TAKEOUT_STARTED = 'takeout.started'
TAKEOUT_FINISHED = 'takeout.finished'
MATCH_UPDATE = 'match.update'

BOARD_TOPICS = (STATUS_CHANGED, THROW_DETECTED, TAKEOUT_STARTED, TAKEOUT_FINISHED)


@dataclass(frozen=True)
class StatusChanged:
    board_id: str
    status: str
    phase: Optional[str]
    topic = STATUS_CHANGED


@dataclass(frozen=True)
class ThrowDetected:
    board_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    topic = THROW_DETECTED

    @property
    def sector(self) -> str:
        return str(self.payload.get('sector') or 'None')


@dataclass(frozen=True)
class TakeoutStarted:
    board_id: str
    time: str
    topic = TAKEOUT_STARTED


@dataclass(frozen=True)
class TakeoutFinished:
    board_id: str
    time: str
    false_takeout: bool = False
    topic = TAKEOUT_FINISHED


@dataclass(frozen=True)
class MatchUpdate:
    match_id: str
    state: Dict[str, Any]
    topic = MATCH_UPDATE


Handler = Callable[[Any], None]


class EventBus:
    """Synchronous dispatcher. A failing handler is logged and skipped."""

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            self._handlers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers.get(topic, []):
                self._handlers[topic].remove(handler)

    def publish(self, event) -> None:
        with self._lock:
            handlers = list(self._handlers.get(event.topic, []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                self.logger.exception(f"[bus] handler {getattr(handler, '__qualname__', handler)} failed on {event.topic}")
