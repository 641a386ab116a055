"""Unit tests for synthetic price series generation."""

from __future__ import annotations

import random
import unittest
from datetime import UTC, datetime, timedelta

from quantpilot.core.backtest.generator import (
    BARS_PER_DAY,
    generate_price_series,
    parse_range_timestamp,
    resolve_day_count,
)
from quantpilot.core.backtest.types import DataDuration, DateRange
from quantpilot.core.utils.errors import BacktestError
from quantpilot.tests.helpers import FIXED_NOW


class TestGenerator(unittest.TestCase):
    """Validate bar counts, anchoring and OHLC consistency."""

    def test_one_month_yields_180_bars(self) -> None:
        bars = generate_price_series(random.Random(1), DataDuration.ONE_MONTH, now=FIXED_NOW)
        self.assertEqual(len(bars), 180)
        self.assertEqual(bars[0].timestamp, FIXED_NOW - timedelta(days=30))
        self.assertAlmostEqual(bars[0].open, 1.1)

    def test_named_durations_scale_bar_count(self) -> None:
        for duration, days in [
            (DataDuration.THREE_MONTHS, 90),
            (DataDuration.ONE_YEAR, 365),
            (DataDuration.ALL, 1825),
        ]:
            with self.subTest(duration=duration):
                self.assertEqual(resolve_day_count(duration), days)

    def test_ten_day_range_yields_60_bars_from_midnight(self) -> None:
        date_range = DateRange(start="2024-01-01", end="2024-01-11")
        bars = generate_price_series(random.Random(3), date_range=date_range, now=FIXED_NOW)
        start = datetime(2024, 1, 1, tzinfo=UTC)
        self.assertEqual(len(bars), 60)
        self.assertEqual(bars[0].timestamp, start)
        self.assertEqual(bars[-1].timestamp, start + 59 * timedelta(hours=4))

    def test_degenerate_ranges_clamp_to_one_day(self) -> None:
        same_day = DateRange(start="2024-01-05", end="2024-01-05")
        inverted = DateRange(start="2024-01-11", end="2024-01-01")
        self.assertEqual(resolve_day_count(None, same_day), 1)
        self.assertEqual(resolve_day_count(None, inverted), 10)

    def test_partial_range_uses_duration_anchored_at_start(self) -> None:
        date_range = DateRange(start="2024-02-01")
        bars = generate_price_series(
            random.Random(4), DataDuration.ONE_MONTH, date_range=date_range, now=FIXED_NOW
        )
        self.assertEqual(len(bars), 30 * BARS_PER_DAY)
        self.assertEqual(bars[0].timestamp, datetime(2024, 2, 1, tzinfo=UTC))

    def test_bars_are_consistent_and_continuous(self) -> None:
        bars = generate_price_series(random.Random(5), DataDuration.THREE_MONTHS, now=FIXED_NOW)
        for previous, bar in zip(bars, bars[1:]):
            self.assertEqual(bar.open, previous.close)
            self.assertLess(previous.timestamp, bar.timestamp)
        for bar in bars:
            self.assertGreaterEqual(bar.high, max(bar.open, bar.close))
            self.assertLessEqual(bar.low, min(bar.open, bar.close))

    def test_close_moves_within_volatility_band(self) -> None:
        bars = generate_price_series(random.Random(6), now=FIXED_NOW)
        for bar in bars:
            self.assertLessEqual(abs(bar.close - bar.open), bar.open * 0.004 + 1e-12)

    def test_same_seed_same_series(self) -> None:
        first = generate_price_series(random.Random(9), now=FIXED_NOW)
        second = generate_price_series(random.Random(9), now=FIXED_NOW)
        self.assertEqual(first, second)

    def test_invalid_inputs_raise_backtest_error(self) -> None:
        with self.assertRaises(BacktestError):
            resolve_day_count("2W")
        with self.assertRaises(BacktestError):
            parse_range_timestamp("not-a-date")

    def test_naive_datetime_treated_as_utc(self) -> None:
        parsed = parse_range_timestamp("2024-01-01T06:30:00")
        self.assertEqual(parsed, datetime(2024, 1, 1, 6, 30, tzinfo=UTC))


if __name__ == "__main__":
    unittest.main()
