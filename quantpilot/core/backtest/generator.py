"""Synthetic OHLC price series generation."""

from __future__ import annotations

import math
import random
from datetime import UTC, date, datetime, timedelta

from quantpilot.core.backtest.types import DataDuration, DateRange, MarketBar
from quantpilot.core.utils.errors import BacktestError

BARS_PER_DAY = 6
BAR_INTERVAL = timedelta(hours=4)
VOLATILITY = 0.008
WICK_FRACTION = 0.3
DEFAULT_START_PRICE = 1.1


def parse_range_timestamp(value: str) -> datetime:
    """
    Parse an ISO date or datetime string into an aware UTC datetime.

    A bare date anchors at 00:00 UTC; naive datetimes are treated as UTC.
    """
    text = value.strip()
    try:
        if len(text) == 10:
            parsed_date = date.fromisoformat(text)
            return datetime(parsed_date.year, parsed_date.month, parsed_date.day, tzinfo=UTC)
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise BacktestError(f"Invalid date in date range: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def coerce_duration(duration: DataDuration | str | None) -> DataDuration:
    """Resolve a duration label, defaulting to one month."""
    if duration is None:
        return DataDuration.ONE_MONTH
    try:
        return DataDuration(duration)
    except ValueError as exc:
        valid = ", ".join(item.value for item in DataDuration)
        raise BacktestError(f"Unknown duration {duration!r}. Expected one of: {valid}") from exc


def resolve_day_count(
    duration: DataDuration | str | None,
    date_range: DateRange | None = None,
) -> int:
    """
    Resolve how many calendar days the synthetic series covers.

    An explicit range with both ends wins over the named bucket. The distance
    is taken as an absolute value and rounded up to whole days; the result is
    clamped to at least one day so an empty or inverted range still yields bars.
    """
    if date_range is not None and date_range.start and date_range.end:
        start = parse_range_timestamp(date_range.start)
        end = parse_range_timestamp(date_range.end)
        span_days = abs((end - start).total_seconds()) / timedelta(days=1).total_seconds()
        days = math.ceil(span_days)
    else:
        days = coerce_duration(duration).days
    return max(1, days)


def resolve_anchor(days: int, date_range: DateRange | None, now: datetime) -> datetime:
    """Return the first bar timestamp: the explicit start, else ``now - days``."""
    if date_range is not None and date_range.start:
        return parse_range_timestamp(date_range.start)
    return now - timedelta(days=days)


def generate_price_series(
    rng: random.Random,
    duration: DataDuration | str | None = DataDuration.ONE_MONTH,
    date_range: DateRange | None = None,
    start_price: float = DEFAULT_START_PRICE,
    now: datetime | None = None,
) -> list[MarketBar]:
    """
    Generate a random-walk series of 4-hour bars.

    Each bar opens at the previous close and moves by a uniform perturbation
    of +/-0.4% (a 0.8% band). Wicks extend beyond the body by up to 30% of the
    same band, so ``high >= max(open, close)`` and ``low <= min(open, close)``
    hold by construction.

    Args:
        rng: Random source; the only source of nondeterminism.
        duration: Named lookback bucket, used when no full date range is given.
        date_range: Optional explicit range of ISO date strings.
        start_price: Open of the first bar.
        now: Reference time for relative anchoring. Defaults to current UTC time.

    Returns:
        ``days * 6`` bars in strictly increasing time order.
    """
    days = resolve_day_count(duration, date_range)
    anchor = resolve_anchor(days, date_range, now or datetime.now(tz=UTC))

    bars: list[MarketBar] = []
    current_price = float(start_price)
    for index in range(days * BARS_PER_DAY):
        volatility = abs(current_price) * VOLATILITY
        change = (rng.random() - 0.5) * volatility

        open_price = current_price
        close_price = current_price + change
        high = max(open_price, close_price) + rng.random() * volatility * WICK_FRACTION
        low = min(open_price, close_price) - rng.random() * volatility * WICK_FRACTION

        bars.append(
            MarketBar(
                timestamp=anchor + index * BAR_INTERVAL,
                open=open_price,
                high=high,
                low=low,
                close=close_price,
            )
        )
        current_price = close_price
    return bars
