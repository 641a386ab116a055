"""Data structures for simulated backtests."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_INITIAL_CAPITAL = 10_000.0

BacktestStatus = Literal["pending", "running", "completed", "failed"]
ReportGrade = Literal["A", "B", "C", "D", "F"]


class DataSource(str, Enum):
    """Market data source label echoed on results."""

    YAHOO_FINANCE = "Yahoo Finance"
    DUKASCOPY = "Dukascopy"
    BINANCE = "Binance"
    CUSTOM_UPLOAD = "Custom Upload"


class DataDuration(str, Enum):
    """Named lookback bucket."""

    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    THREE_YEARS = "3Y"
    ALL = "ALL"

    @property
    def days(self) -> int:
        return _DURATION_DAYS[self]


_DURATION_DAYS: dict[DataDuration, int] = {
    DataDuration.ONE_MONTH: 30,
    DataDuration.THREE_MONTHS: 90,
    DataDuration.SIX_MONTHS: 180,
    DataDuration.ONE_YEAR: 365,
    DataDuration.THREE_YEARS: 365 * 3,
    DataDuration.ALL: 365 * 5,
}


class TradeSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class BacktestStage(str, Enum):
    """Progress stages reported while a backtest is assembled."""

    VALIDATING = "validating"
    FETCHING_DATA = "fetching_data"
    CALCULATING_INDICATORS = "calculating_indicators"
    SIMULATING = "simulating"
    CALCULATING_STATS = "calculating_stats"
    COMPLETE = "complete"


class ChartMode(str, Enum):
    """Render mode for equity and price charts."""

    LINE = "line"
    AREA = "area"
    CANDLESTICK = "candlestick"


class StrategyConfig(BaseModel):
    """
    Structured strategy description.

    Field names accept both snake_case and the camelCase keys produced by the
    generative-text service (``entryRules``, ``stopLoss`` ...).
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    asset: str = "EURUSD"
    timeframe: str = "H1"
    entry_rules: tuple[str, ...] = ()
    exit_rules: tuple[str, ...] = ()
    stop_loss: str = "50 pips"
    take_profit: str = "100 pips"
    risk_per_trade: str = "1%"
    initial_capital: float | None = Field(default=None, ge=0)

    @property
    def starting_capital(self) -> float:
        """Initial capital, falling back to the default when unset or zero."""
        return float(self.initial_capital or DEFAULT_INITIAL_CAPITAL)


@dataclass(frozen=True)
class DateRange:
    """Explicit start/end pair as ISO date strings."""

    start: str
    end: str | None = None


@dataclass(frozen=True)
class MarketBar:
    """One synthetic OHLC bar."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float

    @property
    def date(self) -> str:
        return self.timestamp.date().isoformat()


@dataclass(frozen=True)
class Trade:
    """One closed simulated trade."""

    id: str
    entry_time: datetime
    exit_time: datetime
    side: TradeSide
    entry_price: float
    exit_price: float
    pnl: float
    pnl_percent: float
    entry_index: int
    exit_index: int


@dataclass(frozen=True)
class EquityPoint:
    """Account balance after one bar, with optional synthetic candle values."""

    timestamp: datetime
    equity: float
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None

    @property
    def date(self) -> str:
        return self.timestamp.date().isoformat()


@dataclass(frozen=True)
class BacktestStats:
    """Summary statistics for one run."""

    total_trades: int
    win_rate: float
    profit_factor: float
    max_drawdown: float
    total_return: float
    sharpe_ratio: float
    start_equity: float
    end_equity: float


@dataclass(frozen=True)
class TradeSummary:
    """Win/loss breakdown shown beside the headline statistics."""

    wins: int
    losses: int
    net_profit: float
    gross_profit: float
    gross_loss: float
    average_win: float
    average_loss: float
    largest_win: float
    largest_loss: float
    win_loss_ratio: float | None


@dataclass(frozen=True)
class AIReport:
    """Narrative verdict produced by the generative-text service."""

    narrative: str
    suggestions: str
    grade: ReportGrade
    concise_summary: str


@dataclass(frozen=True)
class BacktestResult:
    """Container for one simulated backtest run."""

    id: str
    strategy_id: str
    status: BacktestStatus
    data_source: DataSource
    duration: DataDuration | None
    date_range: DateRange | None
    custom_file_name: str | None
    market_data: tuple[MarketBar, ...]
    trades: tuple[Trade, ...]
    equity_curve: tuple[EquityPoint, ...]
    stats: BacktestStats
    run_date: datetime
    report: AIReport | None = None

    def with_report(self, report: AIReport) -> BacktestResult:
        """Return a copy paired with ``report``."""
        return dataclasses.replace(self, report=report)
