"""Backtest statistics calculations."""

from __future__ import annotations

from collections.abc import Sequence

from quantpilot.core.backtest.types import BacktestStats, Trade, TradeSummary

# Known limitation: drawdown and Sharpe are not derived from the equity curve.
PLACEHOLDER_MAX_DRAWDOWN_PCT = 12.5
PLACEHOLDER_SHARPE_RATIO = 1.2


def calculate_win_rate(trades: Sequence[Trade]) -> float:
    """Percentage of trades with positive PnL; 0.0 for no trades."""
    if not trades:
        return 0.0
    wins = sum(1 for trade in trades if trade.pnl > 0)
    return wins / len(trades) * 100.0


def calculate_profit_factor(trades: Sequence[Trade]) -> float:
    """
    Gross profit over absolute gross loss.

    Returns 0.0 when there are no losing trades (including no trades at all).
    """
    gross_profit = sum(trade.pnl for trade in trades if trade.pnl > 0)
    gross_loss = sum(trade.pnl for trade in trades if trade.pnl < 0)
    if gross_loss == 0:
        return 0.0
    return abs(gross_profit / gross_loss)


def calculate_total_return(starting_equity: float, ending_equity: float) -> float:
    """Percent change from starting to ending equity; 0.0 for a zero start."""
    if starting_equity == 0:
        return 0.0
    return (ending_equity - starting_equity) / starting_equity * 100.0


def calculate_stats(
    trades: Sequence[Trade],
    starting_equity: float,
    ending_equity: float,
) -> BacktestStats:
    """
    Reduce a trade list and balances into summary statistics.

    Args:
        trades: Closed trades.
        starting_equity: Initial balance.
        ending_equity: Balance after the last bar.

    Returns:
        Statistics with every ratio finite.
    """
    return BacktestStats(
        total_trades=len(trades),
        win_rate=calculate_win_rate(trades),
        profit_factor=calculate_profit_factor(trades),
        max_drawdown=PLACEHOLDER_MAX_DRAWDOWN_PCT,
        total_return=calculate_total_return(starting_equity, ending_equity),
        sharpe_ratio=PLACEHOLDER_SHARPE_RATIO,
        start_equity=float(starting_equity),
        end_equity=float(ending_equity),
    )


def summarize_trades(trades: Sequence[Trade], start_equity: float, end_equity: float) -> TradeSummary:
    """
    Break trades down into wins and losses.

    Trades with zero PnL count as losses here, matching the results view.
    ``win_loss_ratio`` is ``None`` when there are wins but no losses.
    """
    winners = [trade.pnl for trade in trades if trade.pnl > 0]
    losers = [trade.pnl for trade in trades if trade.pnl <= 0]
    gross_profit = sum(winners)
    gross_loss = sum(losers)
    pnls = [trade.pnl for trade in trades]

    if losers:
        win_loss_ratio: float | None = len(winners) / len(losers)
    elif winners:
        win_loss_ratio = None
    else:
        win_loss_ratio = 0.0

    return TradeSummary(
        wins=len(winners),
        losses=len(losers),
        net_profit=float(end_equity - start_equity),
        gross_profit=float(gross_profit),
        gross_loss=float(gross_loss),
        average_win=gross_profit / len(winners) if winners else 0.0,
        average_loss=gross_loss / len(losers) if losers else 0.0,
        largest_win=max(pnls, default=0.0),
        largest_loss=min(pnls, default=0.0),
        win_loss_ratio=win_loss_ratio,
    )
