"""Unit tests for bar-by-bar trade simulation."""

from __future__ import annotations

import random
import unittest

from quantpilot.core.backtest.simulator import (
    calculate_trade_pnl,
    simulate_trades,
    win_rate_bias,
)
from quantpilot.core.backtest.types import StrategyConfig, TradeSide
from quantpilot.tests.helpers import ScriptedRandom, make_bars

# trade roll, outcome roll, reward draw (-> 2.0), side draw, three candle draws
WINNING_BUY_BAR = [0.9, 0.1, 0.5, 0.3, 0.2, 0.4, 0.6]
LOSING_SELL_BAR = [0.9, 0.5, 0.0, 0.7, 0.0, 0.0, 0.0]
QUIET_BAR = [0.5, 0.0, 0.0, 0.0]


class TestWinRateBias(unittest.TestCase):
    def test_default_bias_without_keywords(self) -> None:
        self.assertEqual(win_rate_bias(StrategyConfig()), 0.45)
        config = StrategyConfig(entry_rules=("MACD crosses above signal",))
        self.assertEqual(win_rate_bias(config), 0.45)

    def test_keyword_match_is_case_insensitive_substring(self) -> None:
        for rule in ["RSI(14) < 30", "Strong uptrend on H4", "rsi divergence"]:
            with self.subTest(rule=rule):
                config = StrategyConfig(entry_rules=("Volume spike", rule))
                self.assertEqual(win_rate_bias(config), 0.55)

    def test_exit_rules_do_not_bias(self) -> None:
        config = StrategyConfig(exit_rules=("RSI > 70",))
        self.assertEqual(win_rate_bias(config), 0.45)


class TestSimulateTrades(unittest.TestCase):
    """Validate PnL sizing, equity compounding and trade bookkeeping."""

    def test_single_forced_win_adds_two_percent(self) -> None:
        bars = make_bars([1.1])
        outcome = simulate_trades(bars, StrategyConfig(), ScriptedRandom(WINNING_BUY_BAR, [1]))

        self.assertEqual(len(outcome.trades), 1)
        trade = outcome.trades[0]
        self.assertAlmostEqual(trade.pnl, 200.0)
        self.assertAlmostEqual(trade.pnl_percent, 2.0)
        self.assertEqual(trade.side, TradeSide.BUY)
        self.assertEqual(trade.id, "trade-0")
        self.assertAlmostEqual(trade.exit_price, trade.entry_price + 0.005)
        self.assertEqual(trade.exit_index, 0)
        self.assertAlmostEqual(outcome.ending_equity, 10_200.0)

        point = outcome.equity_curve[0]
        self.assertAlmostEqual(point.equity, 10_200.0)
        self.assertAlmostEqual(point.open, 10_190.0)
        self.assertAlmostEqual(point.high, 10_220.0)
        self.assertAlmostEqual(point.low, 10_160.0)
        self.assertEqual(point.close, point.equity)

    def test_loss_risks_one_percent_of_equity(self) -> None:
        bars = make_bars([1.1, 1.2])
        outcome = simulate_trades(bars, StrategyConfig(), ScriptedRandom(LOSING_SELL_BAR, [1]))
        trade = outcome.trades[0]
        self.assertAlmostEqual(trade.pnl, -100.0)
        self.assertEqual(trade.side, TradeSide.SELL)
        self.assertAlmostEqual(trade.exit_price, trade.entry_price - 0.002)
        self.assertEqual(trade.exit_time, bars[1].timestamp)
        self.assertAlmostEqual(outcome.ending_equity, 9_900.0)

    def test_risk_compounds_on_running_equity(self) -> None:
        bars = make_bars([1.1, 1.1, 1.1])
        rng = ScriptedRandom(WINNING_BUY_BAR + WINNING_BUY_BAR, [1, 1])
        outcome = simulate_trades(bars, StrategyConfig(), rng)
        self.assertEqual([t.id for t in outcome.trades], ["trade-0", "trade-1"])
        self.assertAlmostEqual(outcome.trades[1].pnl, 204.0)
        self.assertAlmostEqual(outcome.ending_equity, 10_404.0)
        self.assertEqual([p.equity for p in outcome.equity_curve][-1], outcome.ending_equity)

    def test_exit_index_clamps_to_last_bar(self) -> None:
        bars = make_bars([1.1, 1.1, 1.1])
        rng = ScriptedRandom(QUIET_BAR + WINNING_BUY_BAR, [5])
        outcome = simulate_trades(bars, StrategyConfig(), rng)
        trade = outcome.trades[0]
        self.assertEqual(trade.entry_index, 1)
        self.assertEqual(trade.exit_index, 2)
        self.assertEqual(trade.exit_time, bars[-1].timestamp)

    def test_keyword_bias_turns_marginal_roll_into_win(self) -> None:
        bars = make_bars([1.1])
        marginal = [0.9, 0.5, 0.5, 0.3, 0.0, 0.0, 0.0]
        plain = simulate_trades(bars, StrategyConfig(), ScriptedRandom(marginal, [1]))
        biased = simulate_trades(
            bars,
            StrategyConfig(entry_rules=("RSI(14) < 30",)),
            ScriptedRandom(marginal, [1]),
        )
        self.assertLess(plain.trades[0].pnl, 0.0)
        self.assertGreater(biased.trades[0].pnl, 0.0)

    def test_no_trade_bar_keeps_equity(self) -> None:
        outcome = simulate_trades(make_bars([1.1]), StrategyConfig(), ScriptedRandom(QUIET_BAR))
        self.assertEqual(outcome.trades, [])
        self.assertEqual(len(outcome.equity_curve), 1)
        self.assertEqual(outcome.ending_equity, 10_000.0)

    def test_empty_series_yields_empty_outcome(self) -> None:
        outcome = simulate_trades([], StrategyConfig(), random.Random(1))
        self.assertEqual(outcome.trades, [])
        self.assertEqual(outcome.equity_curve, [])
        self.assertEqual(outcome.ending_equity, 10_000.0)

    def test_initial_capital_from_config(self) -> None:
        config = StrategyConfig(initial_capital=5_000.0)
        outcome = simulate_trades(make_bars([1.1]), config, ScriptedRandom(WINNING_BUY_BAR, [1]))
        self.assertAlmostEqual(outcome.trades[0].pnl, 100.0)
        self.assertAlmostEqual(outcome.trades[0].pnl_percent, 2.0)

    def test_zero_capital_falls_back_to_default(self) -> None:
        config = StrategyConfig(initial_capital=0)
        outcome = simulate_trades(make_bars([1.1]), config, ScriptedRandom(QUIET_BAR))
        self.assertEqual(outcome.starting_equity, 10_000.0)

    def test_equity_curve_matches_bars(self) -> None:
        bars = make_bars([1.1 + 0.001 * i for i in range(50)])
        outcome = simulate_trades(bars, StrategyConfig(), random.Random(11))
        self.assertEqual(len(outcome.equity_curve), len(bars))
        for bar, point in zip(bars, outcome.equity_curve):
            self.assertEqual(point.timestamp, bar.timestamp)
            self.assertLessEqual(point.low, min(point.open, point.close))
            self.assertGreaterEqual(point.high, point.close)


class TestCalculateTradePnl(unittest.TestCase):
    def test_win_and_loss_sizing(self) -> None:
        self.assertAlmostEqual(calculate_trade_pnl(10_000.0, True, 2.0), 200.0)
        self.assertAlmostEqual(calculate_trade_pnl(10_000.0, False, 2.0), -100.0)
        self.assertAlmostEqual(calculate_trade_pnl(8_000.0, True, 1.5, risk_fraction=0.02), 240.0)


if __name__ == "__main__":
    unittest.main()
