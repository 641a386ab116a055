"""Plotting utilities for backtest chart artifacts."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from quantpilot.core.backtest.types import BacktestResult, ChartMode
from quantpilot.core.utils.errors import ArtifactError

_LINE_COLOR = "#0f3d3e"
_UP_COLOR = "#16a34a"
_DOWN_COLOR = "#dc2626"


def get_matplotlib_pyplot() -> Any:
    """
    Import and return ``matplotlib.pyplot`` with a writable config directory
    and the non-interactive Agg backend.
    """
    if "MPLCONFIGDIR" not in os.environ:
        mpl_config_dir = Path("/tmp/quantpilot-mplconfig")
        mpl_config_dir.mkdir(parents=True, exist_ok=True)
        os.environ["MPLCONFIGDIR"] = str(mpl_config_dir)

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    return plt


def _draw_candles(
    axis: Any,
    x_values: Sequence[int],
    opens: Sequence[float],
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
) -> None:
    """Draw wick lines and body bars for OHLC series."""
    colors = [_UP_COLOR if c >= o else _DOWN_COLOR for o, c in zip(opens, closes, strict=True)]
    axis.vlines(x_values, lows, highs, colors=colors, linewidth=0.6)
    bottoms = [min(o, c) for o, c in zip(opens, closes, strict=True)]
    heights = [max(abs(c - o), 1e-12) for o, c in zip(opens, closes, strict=True)]
    axis.bar(x_values, heights, bottom=bottoms, color=colors, width=0.7)


def _save(plt: Any, figure: Any, output_dir: Path, filename: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    plot_path = output_dir / filename
    figure.tight_layout()
    figure.savefig(plot_path, dpi=150)
    plt.close(figure)
    return plot_path


def save_equity_curve_plot(
    result: BacktestResult,
    output_dir: Path,
    mode: ChartMode = ChartMode.AREA,
    filename: str = "equity_curve.png",
) -> Path:
    """
    Save the equity curve as a line, area or candlestick chart.

    Args:
        result: Backtest result.
        output_dir: Artifact directory.
        mode: Render mode.
        filename: Output image filename.

    Returns:
        Saved plot path.
    """
    plt = get_matplotlib_pyplot()
    points = result.equity_curve
    try:
        figure, axis = plt.subplots(figsize=(10, 4))
        if mode is ChartMode.CANDLESTICK and points:
            _draw_candles(
                axis,
                list(range(len(points))),
                [p.open if p.open is not None else p.equity for p in points],
                [p.high if p.high is not None else p.equity for p in points],
                [p.low if p.low is not None else p.equity for p in points],
                [p.equity for p in points],
            )
            axis.set_xlabel("Bar")
        else:
            times = [p.timestamp for p in points]
            values = [p.equity for p in points]
            axis.plot(times, values, linewidth=1.2, color=_LINE_COLOR)
            if mode is ChartMode.AREA and points:
                axis.fill_between(times, values, min(values), alpha=0.25, color=_LINE_COLOR)
            axis.set_xlabel("Date")
        axis.set_title("Equity Curve")
        axis.set_ylabel("Equity")
        axis.grid(alpha=0.25, linestyle="--", linewidth=0.7)
        return _save(plt, figure, output_dir, filename)
    except Exception as exc:
        raise ArtifactError(
            f"Failed to save equity curve plot to {output_dir / filename}: {exc}"
        ) from exc


def save_price_chart(
    result: BacktestResult,
    output_dir: Path,
    mode: ChartMode = ChartMode.CANDLESTICK,
    filename: str = "price_chart.png",
) -> Path:
    """Save the synthetic price series with trade entry markers."""
    if mode is ChartMode.AREA:
        raise ArtifactError("Price charts support line or candlestick mode only.")
    plt = get_matplotlib_pyplot()
    bars = result.market_data
    try:
        figure, axis = plt.subplots(figsize=(10, 4))
        x_values = list(range(len(bars)))
        if mode is ChartMode.CANDLESTICK:
            _draw_candles(
                axis,
                x_values,
                [b.open for b in bars],
                [b.high for b in bars],
                [b.low for b in bars],
                [b.close for b in bars],
            )
        else:
            axis.plot(x_values, [b.close for b in bars], linewidth=1.0, color=_LINE_COLOR)
        for trade in result.trades:
            marker = "^" if trade.side.value == "BUY" else "v"
            color = _UP_COLOR if trade.side.value == "BUY" else _DOWN_COLOR
            axis.scatter([trade.entry_index], [trade.entry_price], marker=marker, color=color, s=18)
        axis.set_title("Price")
        axis.set_xlabel("Bar")
        axis.set_ylabel("Price")
        axis.grid(alpha=0.25, linestyle="--", linewidth=0.7)
        return _save(plt, figure, output_dir, filename)
    except Exception as exc:
        raise ArtifactError(f"Failed to save price chart to {output_dir / filename}: {exc}") from exc
