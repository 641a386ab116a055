"""Unit tests for backtest statistics."""

from __future__ import annotations

import math
import unittest

from quantpilot.core.backtest.metrics import (
    PLACEHOLDER_MAX_DRAWDOWN_PCT,
    PLACEHOLDER_SHARPE_RATIO,
    calculate_profit_factor,
    calculate_stats,
    calculate_total_return,
    calculate_win_rate,
    summarize_trades,
)
from quantpilot.tests.helpers import make_trade


class TestMetrics(unittest.TestCase):
    """Validate ratios and their zero-denominator fallbacks."""

    def test_no_trades_yields_zero_ratios(self) -> None:
        stats = calculate_stats([], 10_000.0, 10_000.0)
        self.assertEqual(stats.total_trades, 0)
        self.assertEqual(stats.win_rate, 0.0)
        self.assertEqual(stats.profit_factor, 0.0)
        self.assertEqual(stats.total_return, 0.0)

    def test_single_win_returns_two_percent(self) -> None:
        stats = calculate_stats([make_trade(0, 200.0)], 10_000.0, 10_200.0)
        self.assertEqual(stats.total_trades, 1)
        self.assertEqual(stats.win_rate, 100.0)
        self.assertAlmostEqual(stats.total_return, 2.0)
        self.assertEqual(stats.profit_factor, 0.0)
        self.assertEqual(stats.end_equity, 10_200.0)

    def test_mixed_trades(self) -> None:
        trades = [make_trade(0, 200.0), make_trade(1, -100.0), make_trade(2, 150.0)]
        self.assertAlmostEqual(calculate_win_rate(trades), 200.0 / 3.0)
        self.assertAlmostEqual(calculate_profit_factor(trades), 3.5)

    def test_placeholders_are_constant(self) -> None:
        trades = [make_trade(0, -100.0), make_trade(1, -99.0)]
        stats = calculate_stats(trades, 10_000.0, 9_801.0)
        self.assertEqual(stats.max_drawdown, PLACEHOLDER_MAX_DRAWDOWN_PCT)
        self.assertEqual(stats.sharpe_ratio, PLACEHOLDER_SHARPE_RATIO)
        self.assertAlmostEqual(stats.total_return, -1.99)

    def test_zero_start_equity_has_zero_return(self) -> None:
        self.assertEqual(calculate_total_return(0.0, 500.0), 0.0)

    def test_stats_are_finite(self) -> None:
        stats = calculate_stats([make_trade(0, 10.0)], 10_000.0, 10_010.0)
        for value in (stats.win_rate, stats.profit_factor, stats.total_return):
            self.assertTrue(math.isfinite(value))


class TestSummarizeTrades(unittest.TestCase):
    def test_breakdown(self) -> None:
        trades = [make_trade(0, 200.0), make_trade(1, -100.0), make_trade(2, 0.0)]
        summary = summarize_trades(trades, 10_000.0, 10_100.0)
        self.assertEqual(summary.wins, 1)
        self.assertEqual(summary.losses, 2)
        self.assertAlmostEqual(summary.net_profit, 100.0)
        self.assertAlmostEqual(summary.average_loss, -50.0)
        self.assertEqual(summary.largest_win, 200.0)
        self.assertEqual(summary.largest_loss, -100.0)
        self.assertAlmostEqual(summary.win_loss_ratio, 0.5)

    def test_only_wins_has_no_ratio(self) -> None:
        summary = summarize_trades([make_trade(0, 50.0)], 10_000.0, 10_050.0)
        self.assertIsNone(summary.win_loss_ratio)

    def test_empty(self) -> None:
        summary = summarize_trades([], 10_000.0, 10_000.0)
        self.assertEqual(summary.wins, 0)
        self.assertEqual(summary.win_loss_ratio, 0.0)
        self.assertEqual(summary.largest_win, 0.0)


if __name__ == "__main__":
    unittest.main()
