"""Match orchestration.

The engine maps boards to matches, owns the live leg runtimes and turns
``throw.detected`` / ``takeout.finished`` events into scored, persisted and
broadcast match state. All work against one match happens under that
match's lock, held across the persistence write, so darts for the same leg
are applied strictly one after another.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import Conflict, NotFound, ValidationError
from .event_bus import TAKEOUT_FINISHED, THROW_DETECTED, MatchUpdate
from .leg_runtime import (PLAYERS, LegRuntime, apply_throw, checkout_percentage, end_visit,
                          first_nine_average, other_player, three_dart_average)
from .repository import runtime_from_leg
from .scoring import LEGS_MODES, MAX_CHECKOUT, OUT_MODES, wins_needed

STATUS_IDLE = 'Idle'
STATUS_RUNNING = 'Running'
STATUS_PAUSED = 'Paused'
STATUS_FINISHED = 'Finished'

_CARRIED_FIELDS = ('legs_won_a', 'legs_won_b', 'highest_finish_a', 'highest_finish_b')


@dataclass
class LiveMatch:
    match: dict
    leg_id: Optional[str] = None
    leg_number: Optional[int] = None
    runtime: Optional[LegRuntime] = None
    updated_at: Optional[float] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def id(self) -> str:
        return self.match['id']

    @property
    def status(self) -> str:
        return self.match['status']


class MatchEngine:
    def __init__(self, repository, bus, logger=None, default_start_score=501,
                 checkout_limit=MAX_CHECKOUT):
        self.repository = repository
        self.bus = bus
        self.logger = logger or logging.getLogger(__name__)
        self.default_start_score = default_start_score
        self.checkout_limit = checkout_limit
        self._live: Dict[str, LiveMatch] = {}
        self._by_board: Dict[str, str] = {}
        self._lock = threading.RLock()

    def start(self, load_on_boot: bool = True) -> None:
        self.bus.subscribe(THROW_DETECTED, self.on_throw_detected)
        self.bus.subscribe(TAKEOUT_FINISHED, self.on_takeout_finished)
        if load_on_boot:
            self.load_from_db_on_boot()

    def shutdown(self) -> None:
        self.bus.unsubscribe(THROW_DETECTED, self.on_throw_detected)
        self.bus.unsubscribe(TAKEOUT_FINISHED, self.on_takeout_finished)

    # ---- public operations ----

    def create_match(self, player_a, player_b, board_id=None, start_score=None,
                     out_mode='DOUBLE', legs_mode='BEST_OF', legs_target=3) -> dict:
        player_a = (player_a or '').strip()
        player_b = (player_b or '').strip()
        if not player_a or not player_b:
            raise ValidationError('player_a and player_b are required')
        try:
            start_score = int(start_score) if start_score is not None else self.default_start_score
            legs_target = int(legs_target) if legs_target is not None else 3
        except (TypeError, ValueError):
            raise ValidationError('start_score and legs_target must be integers')
        if start_score < 2:
            raise ValidationError('start_score must be at least 2')
        if legs_target < 1:
            raise ValidationError('legs_target must be at least 1')
        out_mode = (out_mode or 'DOUBLE').upper()
        legs_mode = (legs_mode or 'BEST_OF').upper()
        if out_mode not in OUT_MODES:
            raise ValidationError(f'out_mode must be one of {", ".join(OUT_MODES)}')
        if legs_mode not in LEGS_MODES:
            raise ValidationError(f'legs_mode must be one of {", ".join(LEGS_MODES)}')
        board_id = str(board_id) if board_id else None

        with self._lock:
            if board_id:
                self._check_board_free(board_id)
            now = time.time()
            row = self.repository.create_match(
                player_a=player_a, player_b=player_b, board_id=board_id,
                start_score=start_score, status=STATUS_IDLE, out_mode=out_mode,
                legs_mode=legs_mode, legs_target=legs_target,
                created_at=now, updated_at=now,
            )
            live = LiveMatch(match=row, updated_at=now)
            self._live[live.id] = live
            if board_id:
                self._by_board[board_id] = live.id
        self.logger.info(f"[match] created {live.id} {player_a} vs {player_b} board={board_id}")
        self._emit_update(live)
        return self.build_state(live)

    def assign_board(self, match_id: str, board_id: Optional[str]) -> dict:
        board_id = str(board_id) if board_id else None
        with self._lock:
            live = self._require(match_id)
            if board_id:
                self._check_board_free(board_id, exclude_id=match_id)
            with live.lock:
                now = time.time()
                live.match = self.repository.update_match(match_id, board_id=board_id, updated_at=now)
                live.updated_at = now
            for bid, mid in list(self._by_board.items()):
                if mid == match_id:
                    del self._by_board[bid]
            if board_id:
                self._by_board[board_id] = match_id
        self.logger.info(f"[match] {match_id} assigned to board={board_id}")
        self._emit_update(live)
        return self.build_state(live)

    def start_leg(self, match_id: str, first_player: Optional[str] = None) -> dict:
        if first_player is not None and first_player not in PLAYERS:
            raise ValidationError('first_player must be A or B')
        live = self._require(match_id)
        with live.lock:
            if live.status == STATUS_FINISHED:
                raise Conflict(f'Match {match_id} is finished')
            if live.leg_id:
                raise Conflict(f'Match {match_id} already has leg {live.leg_number} in progress')
            self._open_leg(live, first_player or 'A')
        self._emit_update(live)
        return self.build_state(live)

    def pause_match(self, match_id: str) -> dict:
        live = self._require(match_id)
        with live.lock:
            if live.status == STATUS_FINISHED:
                raise Conflict(f'Match {match_id} is finished')
            self._set_status(live, STATUS_PAUSED)
        self._emit_update(live)
        return self.build_state(live)

    def resume_match(self, match_id: str) -> dict:
        live = self._require(match_id)
        with live.lock:
            if live.status != STATUS_PAUSED:
                raise Conflict(f'Match {match_id} is not paused')
            self._set_status(live, STATUS_RUNNING if live.leg_id else STATUS_IDLE)
        self._emit_update(live)
        return self.build_state(live)

    def get_state(self, match_id: str) -> dict:
        return self.build_state(self._require(match_id))

    def list_active_states(self) -> List[dict]:
        with self._lock:
            lives = list(self._live.values())
        return [self.build_state(live) for live in lives]

    def list_visits(self, match_id: str, limit: int = 50) -> List[dict]:
        self._require(match_id)
        return self.repository.list_visits(match_id, limit=limit)

    def match_for_board(self, board_id: str) -> Optional[str]:
        return self._by_board.get(board_id)

    def load_from_db_on_boot(self) -> int:
        """Rebuild live state for every unfinished match, runtimes included."""
        count = 0
        with self._lock:
            for row in self.repository.list_unfinished_matches():
                leg = self.repository.latest_leg(row['id'])
                live = LiveMatch(match=row, updated_at=row.get('updated_at'))
                if leg:
                    live.runtime = runtime_from_leg(leg, row['start_score'])
                    live.updated_at = max(filter(None, [row.get('updated_at'), leg.get('updated_at')]), default=None)
                    if leg['status'] == 'InProgress':
                        live.leg_id = leg['id']
                        live.leg_number = leg['number']
                previous = self._live.get(live.id)
                if previous is not None:
                    live.lock = previous.lock
                self._live[live.id] = live
                if row.get('board_id'):
                    self._by_board[row['board_id']] = live.id
                count += 1
        self.logger.info(f"[boot] restored {count} unfinished match(es)")
        return count

    # ---- event handlers ----

    def on_throw_detected(self, event) -> None:
        live = self._live_for_board(event.board_id)
        if live is None:
            return
        with live.lock:
            if live.status == STATUS_IDLE and not live.leg_id:
                self._open_leg(live, 'A')
            if live.status != STATUS_RUNNING or not live.leg_id:
                self.logger.debug(f"[throw] board={event.board_id} ignored, match {live.id} is {live.status}")
                return
            self._score_dart(live, event.sector)
        self._emit_update(live)

    def on_takeout_finished(self, event) -> None:
        if event.false_takeout:
            return
        live = self._live_for_board(event.board_id)
        if live is None:
            return
        with live.lock:
            if live.status != STATUS_RUNNING or not live.leg_id or live.runtime is None:
                return
            if not 0 < live.runtime.darts_in_visit < 3:
                return
            result = end_visit(live.runtime)
            live.runtime = result.runtime
            now = time.time()
            live.updated_at = now
            self.repository.record_throw(live.leg_id, live.runtime, now, visit=result.visit)
            self.logger.info(f"[takeout] match={live.id} visit ended early, turn -> {live.runtime.current}")
        self._emit_update(live)

    # ---- internals ----

    def _score_dart(self, live: LiveMatch, sector: str) -> None:
        result = apply_throw(live.runtime, sector, live.match['out_mode'], self.checkout_limit)
        live.runtime = result.runtime
        now = time.time()
        live.updated_at = now
        try:
            self.repository.record_throw(live.leg_id, live.runtime, now, visit=result.visit)
        finally:
            # A won leg closes even when the snapshot write failed
            if result.bust:
                self.logger.info(f"[throw] match={live.id} leg={live.leg_number} {sector} bust")
            if result.leg_winner:
                self._finish_leg(live, result.leg_winner, result.visit.score_before, now)

    def _finish_leg(self, live: LiveMatch, winner: str, finish: int, now: float) -> None:
        match = live.match
        key = winner.lower()
        legs_won = match[f'legs_won_{key}'] + 1
        fields = {
            f'legs_won_{key}': legs_won,
            f'highest_finish_{key}': max(match[f'highest_finish_{key}'], finish),
        }
        needed = wins_needed(match['legs_mode'], match['legs_target'])
        if legs_won >= needed:
            fields['status'] = STATUS_FINISHED
            fields['winner'] = winner
        leg_id, leg_number = live.leg_id, live.leg_number
        live.match = dict(match, updated_at=now, **fields)
        live.leg_id = None
        live.leg_number = None
        live.match = self.repository.close_leg(leg_id, winner, now, **fields)
        self.logger.info(f"[leg] match={live.id} leg {leg_number} won by {winner} "
                         f"({live.match['legs_won_a']}-{live.match['legs_won_b']})")
        if live.status == STATUS_FINISHED:
            self.logger.info(f"[match] {live.id} finished, winner {winner}")
            return
        self._open_leg(live, other_player(winner))

    def _open_leg(self, live: LiveMatch, first_player: str) -> None:
        number = self.repository.count_legs(live.id) + 1
        runtime = LegRuntime.start(live.match['start_score'], first_player)
        now = time.time()
        # Leg tallies are re-sent so an earlier failed close_leg cannot roll them back
        carried = {key: live.match[key] for key in _CARRIED_FIELDS}
        leg, live.match = self.repository.open_leg(live.id, number, first_player, runtime, now, **carried)
        live.leg_id = leg['id']
        live.leg_number = leg['number']
        live.runtime = runtime
        live.updated_at = now
        self.logger.info(f"[leg] match={live.id} leg {number} started, {first_player} throws first")

    def _set_status(self, live: LiveMatch, status: str) -> None:
        now = time.time()
        live.match = self.repository.update_match(live.id, status=status, updated_at=now)
        live.updated_at = now

    def _check_board_free(self, board_id: str, exclude_id: Optional[str] = None) -> None:
        mapped = self._by_board.get(board_id)
        if mapped and mapped != exclude_id:
            other = self._live.get(mapped)
            if other is not None and other.status != STATUS_FINISHED:
                raise Conflict(f'Board {board_id} already has an active match')
        if self.repository.find_active_match_for_board(board_id, exclude_id=exclude_id):
            raise Conflict(f'Board {board_id} already has an active match')

    def _require(self, match_id: str) -> LiveMatch:
        with self._lock:
            live = self._live.get(match_id)
            if live is not None:
                return live
            row = self.repository.get_match(match_id)
            if row is None:
                raise NotFound(f'Match {match_id} not found')
            live = LiveMatch(match=row, updated_at=row.get('updated_at'))
            leg = self.repository.latest_leg(match_id)
            if leg:
                live.runtime = runtime_from_leg(leg, row['start_score'])
                if leg['status'] == 'InProgress':
                    live.leg_id = leg['id']
                    live.leg_number = leg['number']
            self._live[match_id] = live
            return live

    def _live_for_board(self, board_id: str) -> Optional[LiveMatch]:
        with self._lock:
            match_id = self._by_board.get(str(board_id))
            return self._live.get(match_id) if match_id else None

    def build_state(self, live: LiveMatch) -> dict:
        m = live.match
        state = {
            'id': m['id'],
            'board_id': m['board_id'],
            'player_a': m['player_a'],
            'player_b': m['player_b'],
            'start_score': m['start_score'],
            'status': m['status'],
            'out_mode': m['out_mode'],
            'legs_mode': m['legs_mode'],
            'legs_target': m['legs_target'],
            'wins_needed': wins_needed(m['legs_mode'], m['legs_target']),
            'legs_won': {'A': m['legs_won_a'], 'B': m['legs_won_b']},
            'winner': m.get('winner'),
            'current_leg_id': live.leg_id,
            'current_leg_number': live.leg_number,
            'updated_at': live.updated_at,
            'stats': None,
        }
        rt = live.runtime
        if rt is not None:
            players = {}
            for player in PLAYERS:
                tally = rt.players[player]
                players[player] = {
                    'name': m[f'player_{player.lower()}'],
                    'remaining': tally.remaining,
                    'points': tally.points,
                    'darts': tally.darts,
                    'visits': tally.visits,
                    'average': three_dart_average(tally.points, tally.darts),
                    'first_nine_average': first_nine_average(tally),
                    'checkout_attempts': tally.checkout_attempts,
                    'checkout_hits': tally.checkout_hits,
                    'checkout_pct': checkout_percentage(tally),
                    'highest_finish': m[f'highest_finish_{player.lower()}'],
                }
            state['stats'] = {
                'current_player': rt.current,
                'darts_in_visit': rt.darts_in_visit,
                'visit_darts': list(rt.visit_darts),
                'players': players,
            }
        return state

    def _emit_update(self, live: LiveMatch) -> None:
        self.bus.publish(MatchUpdate(match_id=live.id, state=self.build_state(live)))
