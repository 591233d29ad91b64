"""Board lifecycle tracking.

Each physical board has a lifecycle ``status`` and, while Ready, a
throw/takeout ``phase``. Device events mutate the board and are re-published
on the event bus so the match engine and live subscribers can react.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import ValidationError
from .event_bus import StatusChanged, TakeoutFinished, TakeoutStarted, ThrowDetected

STATUS_OFFLINE = 'Offline'
STATUS_UPDATING = 'Updating'
STATUS_INITIALIZING = 'Initializing'
STATUS_CALIBRATING = 'Calibrating'
STATUS_READY = 'Ready'
STATUS_ERROR = 'Error'
BOARD_STATUSES = (STATUS_OFFLINE, STATUS_UPDATING, STATUS_INITIALIZING,
                  STATUS_CALIBRATING, STATUS_READY, STATUS_ERROR)

PHASE_THROW = 'Throw'
PHASE_TAKEOUT = 'Takeout'


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Unconfigured:
    configured = False


@dataclass(frozen=True)
class Configured:
    serial_number: str
    token_ref: str
    configured = True


BoardCredentials = Union[Unconfigured, Configured]


def make_credentials(serial_number=None, token_ref=None) -> BoardCredentials:
    if serial_number and token_ref:
        return Configured(serial_number=serial_number, token_ref=token_ref)
    return Unconfigured()


def mask_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    if len(token) <= 6:
        return '•' * len(token)
    return f'{token[:4]}…{token[-2:]}'


@dataclass
class BoardState:
    id: str
    name: str
    status: str = STATUS_READY
    phase: Optional[str] = PHASE_THROW
    last_throw: Optional[Dict[str, Any]] = None
    last_update: str = field(default_factory=utc_now)
    credentials: BoardCredentials = field(default_factory=Unconfigured)


def public_board(board: Optional[BoardState]) -> Optional[dict]:
    """Board view safe to hand to clients: the token is only shown masked."""
    if board is None:
        return None
    creds = board.credentials
    if isinstance(creds, Configured):
        credentials = {
            'serial_number': creds.serial_number,
            'access_token_masked': mask_token(creds.token_ref),
            'configured': True,
        }
    else:
        credentials = {'serial_number': None, 'access_token_masked': None, 'configured': False}
    return {
        'id': board.id,
        'name': board.name,
        'status': board.status,
        'phase': board.phase,
        'last_throw': dict(board.last_throw) if board.last_throw else None,
        'last_update': board.last_update,
        'credentials': credentials,
    }


class BoardManager:
    def __init__(self, bus, repository=None, logger=None):
        self.bus = bus
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)
        self._boards: Dict[str, BoardState] = {}
        self._lock = threading.RLock()

    def list(self) -> List[BoardState]:
        with self._lock:
            return list(self._boards.values())

    def get(self, board_id: str) -> Optional[BoardState]:
        return self._boards.get(board_id)

    def load(self, rows) -> None:
        """Restore stored boards. The device has not reported yet, so they start Offline."""
        with self._lock:
            for row in rows:
                board = self._boards.get(row['id'])
                if board is None:
                    board = BoardState(id=row['id'], name=row.get('name') or row['id'],
                                       status=STATUS_OFFLINE, phase=None)
                    self._boards[board.id] = board
                board.credentials = make_credentials(row.get('serial_number'), row.get('access_token_ref'))

    def upsert(self, board_id: str, name: Optional[str] = None) -> BoardState:
        with self._lock:
            board, _ = self._ensure(board_id, name)
            if name:
                board.name = name
            board.last_update = utc_now()
            self._save(board)
        self._announce(board)
        return board

    def set_status(self, board_id: str, status: str) -> BoardState:
        if status not in BOARD_STATUSES:
            raise ValidationError(f'Unknown board status {status!r}')
        with self._lock:
            board, _ = self._ensure(board_id)
            board.status = status
            if status != STATUS_READY:
                board.phase = None
            elif board.phase is None:
                board.phase = PHASE_THROW
            board.last_update = utc_now()
        self._announce(board)
        return board

    def configure(self, board_id: str, serial_number: Optional[str], access_token: Optional[str]) -> BoardState:
        serial_number = (serial_number or '').strip()
        access_token = (access_token or '').strip()
        if not serial_number or not access_token:
            raise ValidationError('serial_number and access_token are both required')
        with self._lock:
            board, created = self._ensure(board_id)
            board.credentials = Configured(serial_number=serial_number, token_ref=access_token)
            board.last_update = utc_now()
            self._save(board)
        if created:
            self._announce(board)
        return board

    def clear_credentials(self, board_id: str) -> BoardState:
        with self._lock:
            board, created = self._ensure(board_id)
            board.credentials = Unconfigured()
            board.last_update = utc_now()
            self._save(board)
        if created:
            self._announce(board)
        return board

    def apply_throw(self, board_id: str, payload: Dict[str, Any]) -> BoardState:
        payload = dict(payload or {})
        with self._lock:
            board, created = self._ensure(board_id)
            board.status = STATUS_READY
            board.phase = PHASE_THROW
            at = payload.get('detectionTime') or utc_now()
            board.last_throw = dict(payload, at=at)
            board.last_update = at
        if created:
            self._announce(board)
        self.bus.publish(ThrowDetected(board_id=board.id, payload=payload))
        return board

    def takeout_start(self, board_id: str) -> BoardState:
        with self._lock:
            board, created = self._ensure(board_id)
            board.phase = PHASE_TAKEOUT
            board.last_update = utc_now()
        if created:
            self._announce(board)
        self.bus.publish(TakeoutStarted(board_id=board.id, time=board.last_update))
        return board

    def takeout_finish(self, board_id: str, false_takeout: bool = False) -> BoardState:
        with self._lock:
            board, created = self._ensure(board_id)
            board.phase = PHASE_THROW
            board.last_update = utc_now()
        if created:
            self._announce(board)
        self.bus.publish(TakeoutFinished(board_id=board.id, time=board.last_update,
                                         false_takeout=bool(false_takeout)))
        return board

    def _ensure(self, board_id: str, name: Optional[str] = None) -> Tuple[BoardState, bool]:
        """Return the board and whether it was just created. Caller holds the lock and announces."""
        board = self._boards.get(board_id)
        if board is not None:
            return board, False
        board = BoardState(id=board_id, name=name or f'Board {board_id}')
        self._boards[board_id] = board
        self._save(board)
        self.logger.info(f"[board] registered {board_id}")
        return board, True

    def _announce(self, board: BoardState) -> None:
        self.bus.publish(StatusChanged(board_id=board.id, status=board.status, phase=board.phase))

    def _save(self, board: BoardState) -> None:
        if self.repository is None:
            return
        creds = board.credentials
        self.repository.save_board(
            board.id,
            name=board.name,
            serial_number=creds.serial_number if isinstance(creds, Configured) else None,
            access_token_ref=creds.token_ref if isinstance(creds, Configured) else None,
        )
