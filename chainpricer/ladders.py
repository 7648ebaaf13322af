"""
Strike and expiry ladders quoted on a generated chain.

Both ladders are deterministic functions of their inputs so that two
requests for the same ticker on the same day see the same grid.
"""

import math
from datetime import date, datetime
from typing import Optional, Sequence, Tuple, Union

from loguru import logger

from . import config
from .exceptions import InvalidInput


def round_half_up(x: float) -> int:
    """Round to nearest integer with halves going up (102.5/5 -> 21)."""
    return int(math.floor(x + 0.5))


def build_strike_ladder(
    spot: float,
    step: float = None,
    count: int = None,
) -> Tuple[float, ...]:
    """
    Strikes around spot, highest first.

    The centre is spot rounded to the nearest ``step``. For an even
    ``count`` the extra strike goes above the centre, so spot=101,
    step=5, count=10 gives 125, 120, ..., 85, 80.

    Strikes that would be zero or negative (low-priced underlyings)
    are left out of the ladder.
    """
    if step is None:
        step = config.STRIKE_STEP
    if count is None:
        count = config.STRIKE_COUNT
    if not math.isfinite(spot) or spot <= 0:
        raise InvalidInput("spot", f"spot must be positive, got {spot}")
    if not math.isfinite(step) or step <= 0:
        raise InvalidInput("step", f"step must be positive, got {step}")
    if count < 1:
        raise InvalidInput("count", f"count must be >= 1, got {count}")

    base = round_half_up(spot / step) * step
    offsets = range(-((count - 1) // 2), count // 2 + 1)
    strikes = [base + i * step for i in offsets]

    positive = [k for k in strikes if k > 0]
    if len(positive) < len(strikes):
        logger.debug(f"Dropped {len(strikes) - len(positive)} non-positive strikes (spot={spot})")

    return tuple(sorted(positive, reverse=True))


def _parse_target(target: Union[date, str, None]) -> Optional[date]:
    if isinstance(target, datetime):
        return target.date()
    if target is None or isinstance(target, date):
        return target
    try:
        return date.fromisoformat(str(target).strip()[:10])
    except ValueError:
        logger.warning(f"Could not parse target expiry date {target!r}, ignoring")
        return None


def build_expiry_ladder(
    target_date: Union[date, str, None] = None,
    today: Optional[date] = None,
    base: Sequence[int] = None,
) -> Tuple[int, ...]:
    """
    Days-to-expiry ladder, ascending.

    A ``target_date`` strictly after ``today`` takes the place of the
    0-day slot as its actual day count. Anything else (today, the past,
    unparseable text) leaves the default ladder unchanged.

    Parameters
    ----------
    target_date : date or ISO "YYYY-MM-DD" string, optional
    today : reference date (default: date.today())
    base : default ladder (default: config.DEFAULT_EXPIRIES)
    """
    if base is None:
        base = config.DEFAULT_EXPIRIES
    if today is None:
        today = date.today()

    ladder = sorted(set(int(d) for d in base))
    if any(d < 0 for d in ladder):
        raise InvalidInput("base", f"expiry days must be >= 0, got {ladder}")

    target = _parse_target(target_date)
    if target is None:
        return tuple(ladder)

    if target <= today:
        logger.warning(f"Requested expiry {target} is not in the future, ignoring")
        return tuple(ladder)

    days = (target - today).days
    ladder = [d for d in ladder if d != 0]
    ladder.append(days)
    return tuple(sorted(set(ladder)))
