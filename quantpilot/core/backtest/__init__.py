"""Backtest engine exports."""

from quantpilot.core.backtest.engine import run_backtest, run_backtest_async
from quantpilot.core.backtest.generator import generate_price_series, resolve_day_count
from quantpilot.core.backtest.metrics import calculate_stats, summarize_trades
from quantpilot.core.backtest.simulator import simulate_trades, win_rate_bias
from quantpilot.core.backtest.types import BacktestResult, BacktestStats, StrategyConfig

__all__ = [
    "BacktestResult",
    "BacktestStats",
    "StrategyConfig",
    "calculate_stats",
    "generate_price_series",
    "resolve_day_count",
    "run_backtest",
    "run_backtest_async",
    "simulate_trades",
    "summarize_trades",
    "win_rate_bias",
]
