"""Darts domain services: scoring, leg runtime, boards, match engine, fan-out.

This package holds the core logic that HTTP routes and socket handlers call
into, keeping transport concerns separated from match mechanics. The
services are built once by ``create_app`` and reached through
``get_services()``.
"""

from dataclasses import dataclass

from flask import current_app

from .boards import BoardManager
from .engine import MatchEngine
from .event_bus import EventBus
from .fanout import FanoutHub
from .repository import SqlRepository


@dataclass
class Services:
    bus: EventBus
    repository: SqlRepository
    boards: BoardManager
    engine: MatchEngine
    hub: FanoutHub

    def shutdown(self):
        self.hub.shutdown()
        self.engine.shutdown()


def get_services() -> Services:
    return current_app.extensions['dartlive']
