"""Persistence for boards, matches, legs and the visit log.

Every call runs in its own app context and commits on the way out, so the
engine can be driven from request handlers, Socket.IO handlers or
background tasks alike. Rows are handed back as plain dicts.
"""

import json
from contextlib import contextmanager
from typing import List, Optional

from dartlive import db
from dartlive.models import Board, Leg, Match, Visit
from .errors import NotFound
from .leg_runtime import PLAYERS, LegRuntime, PlayerTally
from .scoring import describe_dart

_TALLY_COLUMNS = {
    'remaining': 'remaining',
    'points': 'points',
    'darts': 'darts',
    'first_nine_points': 'first_nine_points',
    'checkout_attempts': 'co_attempts',
    'checkout_hits': 'co_hits',
    'visits': 'visits',
}


def runtime_columns(rt: LegRuntime) -> dict:
    columns = {
        'current_player': rt.current,
        'darts_in_visit': rt.darts_in_visit,
        'visit_attempt': rt.visit_attempt,
        'visit_darts': json.dumps(rt.visit_darts),
        'visit_start_remaining': rt.visit_start_remaining,
        'visit_first_nine': rt.visit_first_nine,
    }
    for player in PLAYERS:
        tally = rt.players[player]
        for attr, column in _TALLY_COLUMNS.items():
            columns[f'{column}_{player.lower()}'] = getattr(tally, attr)
    return columns


def runtime_from_leg(leg: dict, start_score: int) -> LegRuntime:
    """Rebuild a runtime from a stored leg snapshot, visit in flight included."""
    players = {}
    for player in PLAYERS:
        values = {}
        for attr, column in _TALLY_COLUMNS.items():
            value = leg.get(f'{column}_{player.lower()}')
            if value is None:
                value = start_score if attr == 'remaining' else 0
            values[attr] = value
        players[player] = PlayerTally(**values)
    return LegRuntime(
        current=leg.get('current_player') or 'A',
        players=players,
        darts_in_visit=leg.get('darts_in_visit') or 0,
        visit_attempt=bool(leg.get('visit_attempt')),
        visit_darts=list(leg.get('visit_darts') or []),
        visit_start_remaining=leg.get('visit_start_remaining'),
        visit_first_nine=leg.get('visit_first_nine') or 0,
    )


class SqlRepository:
    def __init__(self, app=None):
        self.app = app

    @contextmanager
    def _session(self):
        with self.app.app_context():
            try:
                yield db.session
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise

    # ---- boards ----

    def save_board(self, board_id: str, name: str, serial_number=None, access_token_ref=None) -> dict:
        with self._session() as session:
            board = session.get(Board, board_id)
            if board is None:
                board = Board(id=board_id, name=name)
                session.add(board)
            board.name = name
            board.serial_number = serial_number
            board.access_token_ref = access_token_ref
            session.flush()
            return board.to_dict()

    def list_boards(self) -> List[dict]:
        with self._session():
            return [b.to_dict() for b in Board.query.order_by(Board.id).all()]

    # ---- matches ----

    def create_match(self, **fields) -> dict:
        with self._session() as session:
            match = Match(**fields)
            session.add(match)
            session.flush()
            return match.to_dict()

    def get_match(self, match_id: str) -> Optional[dict]:
        with self._session() as session:
            match = session.get(Match, match_id)
            return match.to_dict() if match else None

    def update_match(self, match_id: str, **fields) -> dict:
        with self._session() as session:
            match = session.get(Match, match_id)
            if match is None:
                raise NotFound(f'Match {match_id} not found')
            for key, value in fields.items():
                setattr(match, key, value)
            session.flush()
            return match.to_dict()

    def find_active_match_for_board(self, board_id: str, exclude_id: Optional[str] = None) -> Optional[dict]:
        with self._session():
            query = Match.query.filter(Match.board_id == board_id, Match.status != 'Finished')
            if exclude_id:
                query = query.filter(Match.id != exclude_id)
            match = query.first()
            return match.to_dict() if match else None

    def list_unfinished_matches(self) -> List[dict]:
        with self._session():
            rows = Match.query.filter(Match.status != 'Finished').order_by(Match.created_at).all()
            return [m.to_dict() for m in rows]

    # ---- legs ----

    def count_legs(self, match_id: str) -> int:
        with self._session():
            return Leg.query.filter_by(match_id=match_id).count()

    def latest_leg(self, match_id: str) -> Optional[dict]:
        with self._session():
            leg = Leg.query.filter_by(match_id=match_id).order_by(Leg.number.desc()).first()
            return leg.to_dict() if leg else None

    def open_leg(self, match_id: str, number: int, first_player: str, runtime: LegRuntime, now: float,
                 **match_fields):
        """Insert an InProgress leg and flip the match to Running in one commit."""
        with self._session() as session:
            match = session.get(Match, match_id)
            if match is None:
                raise NotFound(f'Match {match_id} not found')
            leg = Leg(match_id=match_id, number=number, status='InProgress', first_player=first_player,
                      started_at=now, updated_at=now, **runtime_columns(runtime))
            session.add(leg)
            for key, value in match_fields.items():
                setattr(match, key, value)
            match.status = 'Running'
            match.updated_at = now
            session.flush()
            return leg.to_dict(), match.to_dict()

    def record_throw(self, leg_id: str, runtime: LegRuntime, now: float, visit=None) -> dict:
        """Store the runtime snapshot and, when a visit just ended, its log row."""
        with self._session() as session:
            leg = session.get(Leg, leg_id)
            if leg is None:
                raise NotFound(f'Leg {leg_id} not found')
            for key, value in runtime_columns(runtime).items():
                setattr(leg, key, value)
            leg.updated_at = now
            if visit is not None:
                session.add(Visit(
                    match_id=leg.match_id,
                    leg_id=leg.id,
                    leg_number=leg.number,
                    player=visit.player,
                    darts=json.dumps([describe_dart(s) for s in visit.darts]),
                    score_before=visit.score_before,
                    score_after=visit.score_after,
                    bust=visit.bust,
                    checkout=visit.checkout,
                    created_at=now,
                ))
            session.flush()
            return leg.to_dict()

    def close_leg(self, leg_id: str, winner: str, now: float, **match_fields) -> dict:
        """Finish the leg and apply the resulting match changes together."""
        with self._session() as session:
            leg = session.get(Leg, leg_id)
            if leg is None:
                raise NotFound(f'Leg {leg_id} not found')
            leg.status = 'Finished'
            leg.winner = winner
            leg.finished_at = now
            leg.updated_at = now
            match = session.get(Match, leg.match_id)
            for key, value in match_fields.items():
                setattr(match, key, value)
            match.updated_at = now
            session.flush()
            return match.to_dict()

    # ---- visits ----

    def list_visits(self, match_id: str, limit: int = 50) -> List[dict]:
        with self._session():
            rows = (Visit.query.filter_by(match_id=match_id)
                    .order_by(Visit.id.desc()).limit(limit).all())
            return [v.to_dict() for v in rows]
