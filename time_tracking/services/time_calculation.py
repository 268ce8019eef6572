"""Duration, rounding and billing arithmetic. Pure functions, no I/O."""
import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from time_tracking.models.time_settings import DEFAULT_ROUNDING_INTERVAL_MINUTES, RoundingMethod

Number = Union[int, float, Decimal]

_CENTS = Decimal("0.01")


def to_utc(dt: datetime) -> datetime:
    """Timezone-normalize a datetime. Naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def calc_duration(start: datetime, end: datetime) -> int:
    """Whole minutes between start and end; seconds are truncated, never negative."""
    seconds = (to_utc(end) - to_utc(start)).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


def round_duration(
    minutes: int,
    method: Union[RoundingMethod, str],
    interval: int = DEFAULT_ROUNDING_INTERVAL_MINUTES,
) -> int:
    method = RoundingMethod(method)
    if method is RoundingMethod.NONE or interval is None or interval <= 0:
        return minutes

    if method is RoundingMethod.UP:
        return math.ceil(minutes / interval) * interval
    if method is RoundingMethod.DOWN:
        return math.floor(minutes / interval) * interval

    # Halves go up (7.5 -> 8), unlike Python's round().
    steps = (Decimal(minutes) / Decimal(interval)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(steps) * interval


def total_amount(minutes: int, hourly_rate: Number) -> Decimal:
    amount = Decimal(minutes) / Decimal(60) * Decimal(str(hourly_rate))
    return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)


def effective_hourly_rate(*rates: Optional[Number]) -> Optional[Decimal]:
    """First rate that is set, in priority order (entry, then company default)."""
    for rate in rates:
        if rate is not None:
            return Decimal(str(rate))
    return None


def format_duration(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


def format_duration_human(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"
