"""Simulated backtest engine: series generation, trade walk and result assembly."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import UTC, datetime

from quantpilot.core.backtest.generator import (
    DEFAULT_START_PRICE,
    coerce_duration,
    generate_price_series,
)
from quantpilot.core.backtest.metrics import calculate_stats
from quantpilot.core.backtest.simulator import simulate_trades
from quantpilot.core.backtest.types import (
    BacktestResult,
    BacktestStage,
    DataDuration,
    DataSource,
    DateRange,
    StrategyConfig,
)
from quantpilot.core.utils.errors import BacktestError
from quantpilot.core.utils.logging import get_logger

DEFAULT_DELAY_SECONDS = 2.0
ProgressCallback = Callable[[BacktestStage], None]
_LOGGER_NAME = "quantpilot.core.backtest.engine"


def _emit_progress(callback: ProgressCallback | None, stage: BacktestStage) -> None:
    """Emit optional progress stages."""
    if callback is not None:
        callback(stage)


def _resolve_rng(rng: random.Random | None, seed: int | None) -> random.Random:
    if rng is not None and seed is not None:
        raise BacktestError("Pass either rng or seed, not both.")
    if rng is not None:
        return rng
    return random.Random(seed)


def _coerce_data_source(data_source: DataSource | str) -> DataSource:
    try:
        return DataSource(data_source)
    except ValueError as exc:
        valid = ", ".join(item.value for item in DataSource)
        raise BacktestError(
            f"Unknown data source {data_source!r}. Expected one of: {valid}"
        ) from exc


def run_backtest(
    strategy_id: str,
    config: StrategyConfig,
    data_source: DataSource | str = DataSource.YAHOO_FINANCE,
    duration: DataDuration | str | None = DataDuration.ONE_MONTH,
    custom_file_name: str | None = None,
    date_range: DateRange | None = None,
    rng: random.Random | None = None,
    seed: int | None = None,
    start_price: float = DEFAULT_START_PRICE,
    now: datetime | None = None,
    progress_callback: ProgressCallback | None = None,
) -> BacktestResult:
    """
    Run one simulated backtest and assemble its result.

    The run is pure given its inputs and random source: the same ``seed`` (or
    an identically seeded ``rng``) and the same ``now`` produce equal results.

    Args:
        strategy_id: Identifier of the strategy being tested.
        config: Strategy configuration.
        data_source: Data source label echoed on the result.
        duration: Named lookback bucket, ignored when ``date_range`` has both ends.
        custom_file_name: Uploaded file name echoed on the result.
        date_range: Optional explicit ISO date range.
        rng: Random source shared by the generator and the simulator.
        seed: Seed for a fresh random source when ``rng`` is omitted.
        start_price: Opening price of the synthetic series.
        now: Run timestamp; also anchors relative series. Defaults to current UTC time.
        progress_callback: Optional receiver for :class:`BacktestStage` updates.

    Returns:
        Completed backtest result.
    """
    logger = get_logger(_LOGGER_NAME)
    _emit_progress(progress_callback, BacktestStage.VALIDATING)
    resolved_source = _coerce_data_source(data_source)
    resolved_duration = None if duration is None else coerce_duration(duration)
    random_source = _resolve_rng(rng, seed)
    run_date = now or datetime.now(tz=UTC)

    _emit_progress(progress_callback, BacktestStage.FETCHING_DATA)
    bars = generate_price_series(
        rng=random_source,
        duration=resolved_duration,
        date_range=date_range,
        start_price=start_price,
        now=run_date,
    )
    logger.info(
        "Generated %d synthetic bars for %s (%s)",
        len(bars),
        config.asset,
        resolved_source.value,
    )

    _emit_progress(progress_callback, BacktestStage.CALCULATING_INDICATORS)
    _emit_progress(progress_callback, BacktestStage.SIMULATING)
    outcome = simulate_trades(bars, config, random_source)

    _emit_progress(progress_callback, BacktestStage.CALCULATING_STATS)
    stats = calculate_stats(outcome.trades, outcome.starting_equity, outcome.ending_equity)
    logger.info(
        "Backtest for strategy %s finished: trades=%d total_return=%.2f%%",
        strategy_id,
        stats.total_trades,
        stats.total_return,
    )

    result = BacktestResult(
        id=f"bk-{int(run_date.timestamp() * 1000)}",
        strategy_id=strategy_id,
        status="completed",
        data_source=resolved_source,
        duration=resolved_duration,
        date_range=date_range,
        custom_file_name=custom_file_name,
        market_data=tuple(bars),
        trades=tuple(outcome.trades),
        equity_curve=tuple(outcome.equity_curve),
        stats=stats,
        run_date=run_date,
    )
    _emit_progress(progress_callback, BacktestStage.COMPLETE)
    return result


async def run_backtest_async(
    strategy_id: str,
    config: StrategyConfig,
    data_source: DataSource | str = DataSource.YAHOO_FINANCE,
    duration: DataDuration | str | None = DataDuration.ONE_MONTH,
    custom_file_name: str | None = None,
    date_range: DateRange | None = None,
    rng: random.Random | None = None,
    seed: int | None = None,
    start_price: float = DEFAULT_START_PRICE,
    now: datetime | None = None,
    progress_callback: ProgressCallback | None = None,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
) -> BacktestResult:
    """
    Suspend for ``delay_seconds`` to emulate a remote backend, then run.

    There is no cancellation point after the delay; see :func:`run_backtest`
    for the arguments.
    """
    if delay_seconds > 0:
        await asyncio.sleep(delay_seconds)
    return run_backtest(
        strategy_id=strategy_id,
        config=config,
        data_source=data_source,
        duration=duration,
        custom_file_name=custom_file_name,
        date_range=date_range,
        rng=rng,
        seed=seed,
        start_price=start_price,
        now=now,
        progress_callback=progress_callback,
    )
