"""Serialization of backtest results for downloads and API payloads."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Sequence
from typing import Any

import pandas as pd

from quantpilot.core.backtest.metrics import summarize_trades
from quantpilot.core.backtest.types import (
    AIReport,
    BacktestResult,
    BacktestStats,
    EquityPoint,
    MarketBar,
    StrategyConfig,
    Trade,
)

CODE_EXTENSIONS: dict[str, str] = {"mt5": "mq5", "pinescript": "pine", "python": "py"}


def trade_to_dict(trade: Trade) -> dict[str, Any]:
    return {
        "id": trade.id,
        "entry_time": trade.entry_time.isoformat(),
        "exit_time": trade.exit_time.isoformat(),
        "side": trade.side.value,
        "entry_price": trade.entry_price,
        "exit_price": trade.exit_price,
        "pnl": trade.pnl,
        "pnl_percent": trade.pnl_percent,
    }


def equity_point_to_dict(point: EquityPoint) -> dict[str, Any]:
    return {
        "timestamp": point.timestamp.isoformat(),
        "date": point.date,
        "equity": point.equity,
        "open": point.open,
        "high": point.high,
        "low": point.low,
        "close": point.close,
    }


def bar_to_dict(bar: MarketBar) -> dict[str, Any]:
    return {
        "timestamp": bar.timestamp.isoformat(),
        "date": bar.date,
        "open": bar.open,
        "high": bar.high,
        "low": bar.low,
        "close": bar.close,
    }


def stats_to_dict(stats: BacktestStats) -> dict[str, Any]:
    return dataclasses.asdict(stats)


def report_to_dict(report: AIReport | None) -> dict[str, Any] | None:
    return None if report is None else dataclasses.asdict(report)


def result_to_dict(result: BacktestResult, include_series: bool = True) -> dict[str, Any]:
    """
    Convert a result to a JSON-safe mapping.

    Args:
        result: Backtest result.
        include_series: Whether to include bars, trades and the equity curve.

    Returns:
        Mapping with ISO timestamps and enum values as strings.
    """
    payload: dict[str, Any] = {
        "id": result.id,
        "strategy_id": result.strategy_id,
        "status": result.status,
        "data_source": result.data_source.value,
        "duration": None if result.duration is None else result.duration.value,
        "date_range": (
            None if result.date_range is None else dataclasses.asdict(result.date_range)
        ),
        "custom_file_name": result.custom_file_name,
        "run_date": result.run_date.isoformat(),
        "stats": stats_to_dict(result.stats),
        "summary": dataclasses.asdict(
            summarize_trades(result.trades, result.stats.start_equity, result.stats.end_equity)
        ),
        "report": report_to_dict(result.report),
    }
    if include_series:
        payload["market_data"] = [bar_to_dict(bar) for bar in result.market_data]
        payload["trades"] = [trade_to_dict(trade) for trade in result.trades]
        payload["equity_curve"] = [equity_point_to_dict(point) for point in result.equity_curve]
    return payload


def trades_frame(trades: Sequence[Trade]) -> pd.DataFrame:
    """Return trades as a dataframe, one row per trade."""
    columns = [
        "id",
        "entry_time",
        "exit_time",
        "side",
        "entry_price",
        "exit_price",
        "pnl",
        "pnl_percent",
    ]
    return pd.DataFrame([trade_to_dict(trade) for trade in trades], columns=columns)


def equity_frame(equity_curve: Sequence[EquityPoint]) -> pd.DataFrame:
    """Return the equity curve indexed by UTC timestamp."""
    frame = pd.DataFrame(
        {
            "equity": [point.equity for point in equity_curve],
            "open": [point.open for point in equity_curve],
            "high": [point.high for point in equity_curve],
            "low": [point.low for point in equity_curve],
            "close": [point.close for point in equity_curve],
        },
        index=pd.DatetimeIndex([point.timestamp for point in equity_curve], name="timestamp"),
        dtype=float,
    )
    return frame


def market_frame(bars: Sequence[MarketBar]) -> pd.DataFrame:
    """Return market bars as an OHLC dataframe indexed by UTC timestamp."""
    return pd.DataFrame(
        {
            "open": [bar.open for bar in bars],
            "high": [bar.high for bar in bars],
            "low": [bar.low for bar in bars],
            "close": [bar.close for bar in bars],
        },
        index=pd.DatetimeIndex([bar.timestamp for bar in bars], name="timestamp"),
        dtype=float,
    )


def frame_to_csv(frame: pd.DataFrame, include_index: bool = False) -> str:
    """Render a dataframe as CSV text; an empty frame still carries its header row."""
    return frame.to_csv(index=include_index)


def build_full_report(
    result: BacktestResult,
    config: StrategyConfig | None,
    report: AIReport | None = None,
) -> dict[str, Any]:
    """Assemble the downloadable full report payload."""
    return {
        "strategyConfig": None if config is None else config.model_dump(mode="json", by_alias=True),
        "backtestStats": stats_to_dict(result.stats),
        "aiReport": report_to_dict(report or result.report),
        "trades": [trade_to_dict(trade) for trade in result.trades],
        "equityCurve": [equity_point_to_dict(point) for point in result.equity_curve],
    }


def dump_full_report(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2) + "\n"


def code_filename(backtest_id: str, language: str) -> str:
    """Download file name for generated bot code."""
    return f"bot_strategy_{backtest_id}.{CODE_EXTENSIONS.get(language, 'txt')}"


def report_filename(backtest_id: str) -> str:
    return f"full_report_{backtest_id}.json"
