"""Live progress of a single leg, advanced one dart at a time."""

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .scoring import MAX_CHECKOUT, OUT_DOUBLE, points_of, will_bust

PLAYERS = ('A', 'B')


def other_player(player: str) -> str:
    return 'B' if player == 'A' else 'A'


@dataclass
class PlayerTally:
    remaining: int
    points: int = 0
    darts: int = 0
    first_nine_points: int = 0
    checkout_attempts: int = 0
    checkout_hits: int = 0
    visits: int = 0


@dataclass
class VisitRecord:
    """A finished visit, ready to be appended to the visit log."""
    player: str
    darts: List[str]
    score_before: int
    score_after: int
    bust: bool = False
    checkout: bool = False

    def to_dict(self):
        return {
            'player': self.player,
            'darts': list(self.darts),
            'score_before': self.score_before,
            'score_after': self.score_after,
            'bust': self.bust,
            'checkout': self.checkout,
        }


@dataclass
class LegRuntime:
    current: str
    players: Dict[str, PlayerTally]
    darts_in_visit: int = 0
    visit_attempt: bool = False
    visit_darts: List[str] = field(default_factory=list)
    visit_start_remaining: Optional[int] = None
    visit_first_nine: int = 0

    @classmethod
    def start(cls, start_score: int, first_player: str = 'A') -> 'LegRuntime':
        return cls(
            current=first_player,
            players={p: PlayerTally(remaining=start_score) for p in PLAYERS},
        )

    def tally(self, player: Optional[str] = None) -> PlayerTally:
        return self.players[player or self.current]

    def copy(self) -> 'LegRuntime':
        return copy.deepcopy(self)

    def _close_visit(self, bust=False, checkout=False, switch=True) -> VisitRecord:
        player = self.current
        tally = self.players[player]
        before = self.visit_start_remaining if self.visit_start_remaining is not None else tally.remaining
        visit = VisitRecord(
            player=player,
            darts=list(self.visit_darts),
            score_before=before,
            score_after=tally.remaining,
            bust=bust,
            checkout=checkout,
        )
        tally.visits += 1
        self.darts_in_visit = 0
        self.visit_attempt = False
        self.visit_darts = []
        self.visit_start_remaining = None
        self.visit_first_nine = 0
        if switch:
            self.current = other_player(player)
        return visit


@dataclass
class ThrowResult:
    runtime: LegRuntime
    bust: bool = False
    leg_winner: Optional[str] = None
    visit: Optional[VisitRecord] = None


def apply_throw(runtime: LegRuntime, sector, out_mode: str = OUT_DOUBLE,
                checkout_limit: int = MAX_CHECKOUT) -> ThrowResult:
    """Score one dart for the player on turn.

    Returns a new runtime; the one passed in is left untouched. A bust voids
    the whole visit: remaining goes back to the score the visit started on
    and the visit's points are taken off the running totals.
    """
    rt = runtime.copy()
    player = rt.current
    tally = rt.players[player]

    if rt.darts_in_visit == 0:
        rt.visit_darts = []
        rt.visit_start_remaining = tally.remaining
        rt.visit_first_nine = 0
        if tally.remaining <= checkout_limit:
            rt.visit_attempt = True
            tally.checkout_attempts += 1

    sector = str(sector or 'None').strip()
    points = points_of(sector)
    tally.darts += 1
    rt.visit_darts.append(sector)

    if will_bust(tally.remaining, sector, out_mode):
        tally.points -= rt.visit_start_remaining - tally.remaining
        tally.first_nine_points -= rt.visit_first_nine
        tally.remaining = rt.visit_start_remaining
        visit = rt._close_visit(bust=True)
        return ThrowResult(rt, bust=True, visit=visit)

    tally.remaining -= points
    tally.points += points
    if tally.darts <= 9:
        tally.first_nine_points += points
        rt.visit_first_nine += points
    rt.darts_in_visit += 1

    if tally.remaining == 0:
        if rt.visit_attempt:
            tally.checkout_hits += 1
        # Leg over: the turn stays with the winner, the next leg gets a fresh runtime
        visit = rt._close_visit(checkout=True, switch=False)
        return ThrowResult(rt, leg_winner=player, visit=visit)

    if rt.darts_in_visit >= 3:
        visit = rt._close_visit()
        return ThrowResult(rt, visit=visit)

    return ThrowResult(rt)


def end_visit(runtime: LegRuntime) -> ThrowResult:
    """Close the visit in flight without scoring and pass the turn."""
    rt = runtime.copy()
    if rt.darts_in_visit == 0:
        return ThrowResult(rt)
    visit = rt._close_visit()
    return ThrowResult(rt, visit=visit)


def three_dart_average(points: int, darts: int) -> float:
    if darts <= 0:
        return 0.0
    return round(points / darts * 3, 2)


def first_nine_average(tally: PlayerTally) -> float:
    return three_dart_average(tally.first_nine_points, min(tally.darts, 9))


def checkout_percentage(tally: PlayerTally) -> float:
    if not tally.checkout_attempts:
        return 0.0
    return round(tally.checkout_hits / tally.checkout_attempts * 100, 1)
