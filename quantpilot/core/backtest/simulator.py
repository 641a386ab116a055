"""Bar-by-bar trade simulation over a synthetic price series."""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass

from quantpilot.core.backtest.types import EquityPoint, MarketBar, StrategyConfig, Trade, TradeSide

BIASED_KEYWORDS: tuple[str, ...] = ("rsi", "trend")
DEFAULT_WIN_BIAS = 0.45
KEYWORD_WIN_BIAS = 0.55
# A trade opens when the per-bar roll exceeds this (15% of bars).
TRADE_ROLL_THRESHOLD = 0.85
RISK_FRACTION = 0.01
MIN_REWARD_RATIO = 1.5
MAX_REWARD_RATIO = 2.5
MAX_EXIT_OFFSET_BARS = 5
# Placeholder fill model: exits are drawn a fixed distance from the entry.
WIN_EXIT_OFFSET = 0.0050
LOSS_EXIT_OFFSET = -0.0020
EQUITY_CANDLE_SPREAD = 50.0


@dataclass(frozen=True)
class SimulationOutcome:
    """Trades and equity points produced by one simulation walk."""

    trades: list[Trade]
    equity_curve: list[EquityPoint]
    starting_equity: float
    ending_equity: float


def win_rate_bias(config: StrategyConfig) -> float:
    """Return the win probability implied by the entry rules' wording."""
    for rule in config.entry_rules:
        lowered = rule.lower()
        if any(keyword in lowered for keyword in BIASED_KEYWORDS):
            return KEYWORD_WIN_BIAS
    return DEFAULT_WIN_BIAS


def calculate_trade_pnl(
    equity: float,
    is_win: bool,
    reward_ratio: float,
    risk_fraction: float = RISK_FRACTION,
) -> float:
    """
    Size a trade against current equity.

    Risk compounds: it is a fraction of the running balance, not of the
    initial capital.
    """
    risk_amount = equity * risk_fraction
    return risk_amount * reward_ratio if is_win else -risk_amount


def _equity_point(bar: MarketBar, equity: float, rng: random.Random) -> EquityPoint:
    """Build one equity point with a synthetic candle around the balance."""
    candle_open = equity - rng.random() * EQUITY_CANDLE_SPREAD
    candle_high = equity + rng.random() * EQUITY_CANDLE_SPREAD
    candle_low = min(candle_open, equity) - rng.random() * EQUITY_CANDLE_SPREAD
    return EquityPoint(
        timestamp=bar.timestamp,
        equity=equity,
        open=candle_open,
        high=candle_high,
        low=candle_low,
        close=equity,
    )


def simulate_trades(
    bars: Sequence[MarketBar],
    config: StrategyConfig,
    rng: random.Random,
    initial_equity: float | None = None,
) -> SimulationOutcome:
    """
    Walk ``bars`` once, opening at most one trade per bar.

    A trade opens with 15% probability. Its outcome is drawn against
    :func:`win_rate_bias`, its PnL is applied to equity on the entry bar and
    its exit timestamp is taken from a bar 1-5 bars later, clamped to the last
    bar. One equity point is emitted per bar after that bar's PnL.

    Args:
        bars: Time-ordered market bars. An empty sequence yields empty output.
        config: Strategy configuration.
        rng: Random source; draws happen in a fixed order per bar.
        initial_equity: Starting balance. Defaults to the config's starting capital.

    Returns:
        Simulation outcome with trades, equity curve and balances.
    """
    starting_equity = (
        float(initial_equity) if initial_equity is not None else config.starting_capital
    )
    bias = win_rate_bias(config)
    last_index = len(bars) - 1

    equity = starting_equity
    trades: list[Trade] = []
    equity_curve: list[EquityPoint] = []

    for index, bar in enumerate(bars):
        if rng.random() > TRADE_ROLL_THRESHOLD:
            is_win = rng.random() < bias
            reward_ratio = rng.uniform(MIN_REWARD_RATIO, MAX_REWARD_RATIO)
            exit_index = min(last_index, index + rng.randint(1, MAX_EXIT_OFFSET_BARS))
            side = TradeSide.BUY if rng.random() < 0.5 else TradeSide.SELL

            pnl = calculate_trade_pnl(equity, is_win, reward_ratio)
            equity += pnl
            trades.append(
                Trade(
                    id=f"trade-{index}",
                    entry_time=bar.timestamp,
                    exit_time=bars[exit_index].timestamp,
                    side=side,
                    entry_price=bar.open,
                    exit_price=bar.open + (WIN_EXIT_OFFSET if is_win else LOSS_EXIT_OFFSET),
                    pnl=pnl,
                    pnl_percent=pnl / starting_equity * 100.0 if starting_equity else 0.0,
                    entry_index=index,
                    exit_index=exit_index,
                )
            )

        equity_curve.append(_equity_point(bar, equity, rng))

    return SimulationOutcome(
        trades=trades,
        equity_curve=equity_curve,
        starting_equity=starting_equity,
        ending_equity=equity,
    )
