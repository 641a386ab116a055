"""Test helpers for deterministic simulation cases."""

from __future__ import annotations

import random
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from quantpilot.core.backtest.types import MarketBar, Trade, TradeSide

FIXED_NOW = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


class ScriptedRandom(random.Random):
    """
    Random source replaying scripted draws.

    ``random()`` (and therefore ``uniform()``) pops from ``values``;
    ``randint()`` pops from ``ints``. Exhausted scripts return 0.0 and the
    lower bound, which never opens a trade.
    """

    def __init__(self, values: Sequence[float] = (), ints: Sequence[int] = ()) -> None:
        super().__init__(0)
        self._values = list(values)
        self._ints = list(ints)

    def random(self) -> float:
        return self._values.pop(0) if self._values else 0.0

    def randint(self, a: int, b: int) -> int:
        if not self._ints:
            return a
        value = self._ints.pop(0)
        if not a <= value <= b:
            raise AssertionError(f"Scripted randint {value} outside [{a}, {b}].")
        return value


def make_bars(close_values: Sequence[float], start: datetime = FIXED_NOW) -> list[MarketBar]:
    """Build 4-hour bars that open at the previous close."""
    bars: list[MarketBar] = []
    previous = close_values[0] if close_values else 1.0
    for index, close in enumerate(close_values):
        bars.append(
            MarketBar(
                timestamp=start + index * timedelta(hours=4),
                open=previous,
                high=max(previous, close) + 0.001,
                low=min(previous, close) - 0.001,
                close=close,
            )
        )
        previous = close
    return bars


def make_trade(index: int, pnl: float, starting_equity: float = 10_000.0) -> Trade:
    """Build a trade with ``pnl`` entered at bar ``index``."""
    entry_time = FIXED_NOW + index * timedelta(hours=4)
    return Trade(
        id=f"trade-{index}",
        entry_time=entry_time,
        exit_time=entry_time + timedelta(hours=4),
        side=TradeSide.BUY,
        entry_price=1.1,
        exit_price=1.105 if pnl > 0 else 1.098,
        pnl=pnl,
        pnl_percent=pnl / starting_equity * 100.0,
        entry_index=index,
        exit_index=index + 1,
    )
