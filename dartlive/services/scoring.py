"""Scoring rules for x01 darts.

Sector tokens follow the board telemetry format: ``S<n>``/``s<n>`` for
singles, ``D<n>`` doubles, ``T<n>`` trebles (n in 1..20), ``25`` for the
outer bull, ``50``/``Bull`` for the inner bull and ``None`` for a miss.
Anything unrecognised scores zero rather than raising.
"""

import re
from typing import List

from .errors import ValidationError

OUT_DOUBLE = 'DOUBLE'
OUT_SINGLE = 'SINGLE'
OUT_MODES = (OUT_DOUBLE, OUT_SINGLE)

LEGS_BEST_OF = 'BEST_OF'
LEGS_RACE_TO = 'RACE_TO'
LEGS_MODES = (LEGS_BEST_OF, LEGS_RACE_TO)

# Highest score that can still be finished in one visit
MAX_CHECKOUT = 170

_SECTOR_RE = re.compile(r'^([SsDT])(\d{1,2})$')
_MULTIPLIERS = {'S': 1, 's': 1, 'D': 2, 'T': 3}
_MULTIPLIER_NAMES = {1: 'single', 2: 'double', 3: 'treble'}
_INNER_BULL = ('50', 'Bull')


def _split(sector):
    """Return (multiplier, value) for a ring sector, or None."""
    m = _SECTOR_RE.match(sector)
    if not m:
        return None
    value = int(m.group(2))
    if value < 1 or value > 20:
        return None
    return _MULTIPLIERS[m.group(1)], value


def points_of(sector) -> int:
    if not sector:
        return 0
    s = str(sector).strip()
    if s in _INNER_BULL:
        return 50
    if s == '25':
        return 25
    parsed = _split(s)
    if not parsed:
        return 0
    multiplier, value = parsed
    return multiplier * value


def is_double(sector) -> bool:
    if not sector:
        return False
    s = str(sector).strip()
    if s in _INNER_BULL:
        return True
    parsed = _split(s)
    return bool(parsed) and parsed[0] == 2


def will_bust(remaining: int, sector, out_mode: str = OUT_DOUBLE) -> bool:
    after = remaining - points_of(sector)
    if after < 0:
        return True
    if out_mode == OUT_DOUBLE:
        if after == 1:
            return True
        if after == 0 and not is_double(sector):
            return True
    return False


def describe_dart(sector) -> dict:
    """Break a sector token into the multiplier/value form stored on visits."""
    s = str(sector or 'None').strip()
    points = points_of(s)
    if s in _INNER_BULL:
        multiplier, value = 'inner_bull', 50
    elif s == '25':
        multiplier, value = 'outer_bull', 25
    else:
        parsed = _split(s)
        if parsed:
            multiplier, value = _MULTIPLIER_NAMES[parsed[0]], parsed[1]
        else:
            multiplier, value = 'miss', 0
    return {'sector': s, 'multiplier': multiplier, 'value': value, 'points': points}


def all_sectors() -> List[str]:
    """Every distinct sector the board can report: 60 ring beds, both bulls and a miss."""
    tokens = [f'{prefix}{n}' for prefix in ('S', 'D', 'T') for n in range(1, 21)]
    tokens.extend(['25', '50', 'None'])
    return tokens


def wins_needed(legs_mode: str, legs_target: int) -> int:
    target = int(legs_target)
    if target < 1:
        raise ValidationError('legs_target must be at least 1')
    if (legs_mode or LEGS_BEST_OF).upper() == LEGS_RACE_TO:
        return target
    return target // 2 + 1
