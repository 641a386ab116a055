"""In-memory strategy and backtest workspace for one session."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock
from typing import Literal

from quantpilot.core.ai.client import ChatMessage, ChatResponse, CodeLanguage, GenerativeClient
from quantpilot.core.backtest.engine import ProgressCallback, run_backtest_async
from quantpilot.core.backtest.export import code_filename
from quantpilot.core.backtest.types import (
    BacktestResult,
    DataDuration,
    DataSource,
    DateRange,
    StrategyConfig,
)
from quantpilot.core.config import EngineConfig
from quantpilot.core.utils.errors import NotFoundError
from quantpilot.core.utils.logging import get_logger

StrategyStatus = Literal["Active", "Draft", "Archived"]
AD_HOC_STRATEGY_ID = "temp-strategy-id"
ANONYMOUS_USER_ID = "anonymous"
_LOGGER_NAME = "quantpilot.core.services.workspace"


@dataclass(frozen=True)
class Strategy:
    """A saved strategy and its parsed configuration."""

    id: str
    user_id: str
    name: str
    description: str
    parsed_config: StrategyConfig
    created_at: datetime
    status: StrategyStatus = "Draft"


@dataclass(frozen=True)
class GeneratedCode:
    """Generated bot source with its download file name."""

    backtest_id: str | None
    language: CodeLanguage
    code: str
    filename: str


class Workspace:
    """
    Strategies and backtest results held for the lifetime of one session.

    Results are values: attaching a report stores a new result in place of
    the old one. Methods are safe to call from background worker threads.
    """

    def __init__(
        self,
        ai_client: GenerativeClient,
        engine: EngineConfig | None = None,
        user_id: str = ANONYMOUS_USER_ID,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ai_client = ai_client
        self._engine = engine or EngineConfig()
        self.user_id = user_id
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._lock = Lock()
        self._strategies: dict[str, Strategy] = {}
        self._backtests: dict[str, BacktestResult] = {}
        self._backtest_configs: dict[str, StrategyConfig] = {}
        self._strategy_counter = 0

    @property
    def ai_client(self) -> GenerativeClient:
        return self._ai_client

    def create_strategy(
        self,
        name: str,
        config: StrategyConfig,
        description: str = "",
        status: StrategyStatus = "Draft",
    ) -> Strategy:
        """Save a strategy from an already structured configuration."""
        with self._lock:
            self._strategy_counter += 1
            strategy = Strategy(
                id=f"strategy_{self._strategy_counter:04d}",
                user_id=self.user_id,
                name=name.strip() or f"{config.asset} {config.timeframe}",
                description=description,
                parsed_config=config,
                created_at=self._clock(),
                status=status,
            )
            self._strategies[strategy.id] = strategy
        get_logger(_LOGGER_NAME).info("Created strategy %s (%s)", strategy.id, strategy.name)
        return strategy

    def create_strategy_from_text(self, description: str, name: str = "") -> Strategy:
        """Parse ``description`` with the AI client and save the result."""
        config = self._ai_client.parse_strategy(description)
        return self.create_strategy(name=name, config=config, description=description)

    def chat(self, history: list[ChatMessage], message: str) -> ChatResponse:
        return self._ai_client.continue_chat(history, message)

    def get_strategy(self, strategy_id: str) -> Strategy:
        with self._lock:
            strategy = self._strategies.get(strategy_id)
        if strategy is None:
            raise NotFoundError(f"Strategy '{strategy_id}' not found.")
        return strategy

    def list_strategies(self) -> list[Strategy]:
        with self._lock:
            return sorted(
                self._strategies.values(), key=lambda s: (s.created_at, s.id), reverse=True
            )

    def _resolve_config(
        self, strategy_id: str | None, config: StrategyConfig | None
    ) -> tuple[str, StrategyConfig]:
        if config is not None:
            return strategy_id or AD_HOC_STRATEGY_ID, config
        if strategy_id is None:
            return AD_HOC_STRATEGY_ID, StrategyConfig()
        return strategy_id, self.get_strategy(strategy_id).parsed_config

    async def run_backtest(
        self,
        strategy_id: str | None = None,
        config: StrategyConfig | None = None,
        data_source: DataSource | str = DataSource.YAHOO_FINANCE,
        duration: DataDuration | str | None = DataDuration.ONE_MONTH,
        custom_file_name: str | None = None,
        date_range: DateRange | None = None,
        seed: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BacktestResult:
        """
        Run a backtest for a saved strategy or an ad-hoc configuration.

        An explicit ``config`` wins over the saved strategy's configuration.
        Without either, the default configuration is simulated.
        """
        resolved_id, resolved_config = self._resolve_config(strategy_id, config)
        result = await run_backtest_async(
            strategy_id=resolved_id,
            config=resolved_config,
            data_source=data_source,
            duration=duration,
            custom_file_name=custom_file_name,
            date_range=date_range,
            seed=seed if seed is not None else self._engine.seed,
            start_price=self._engine.start_price,
            now=self._clock(),
            progress_callback=progress_callback,
            delay_seconds=self._engine.simulated_delay_seconds,
        )
        with self._lock:
            if result.id in self._backtests:
                suffix = sum(1 for key in self._backtests if key.startswith(result.id)) + 1
                result = dataclasses.replace(result, id=f"{result.id}-{suffix}")
            self._backtests[result.id] = result
            self._backtest_configs[result.id] = resolved_config
        return result

    def get_backtest(self, backtest_id: str) -> BacktestResult:
        with self._lock:
            result = self._backtests.get(backtest_id)
        if result is None:
            raise NotFoundError(f"Backtest '{backtest_id}' not found.")
        return result

    def get_backtest_config(self, backtest_id: str) -> StrategyConfig:
        self.get_backtest(backtest_id)
        with self._lock:
            return self._backtest_configs[backtest_id]

    def list_backtests(self, strategy_id: str | None = None) -> list[BacktestResult]:
        with self._lock:
            results = list(self._backtests.values())
        if strategy_id is not None:
            results = [result for result in results if result.strategy_id == strategy_id]
        return sorted(results, key=lambda r: (r.run_date, r.id), reverse=True)

    def generate_report(self, backtest_id: str) -> BacktestResult:
        """Ask the AI client for a verdict and store the paired result."""
        result = self.get_backtest(backtest_id)
        config = self.get_backtest_config(backtest_id)
        report = self._ai_client.generate_report(result.stats, config, result.trades)
        updated = result.with_report(report)
        with self._lock:
            self._backtests[backtest_id] = updated
        get_logger(_LOGGER_NAME).info("Report for %s graded %s", backtest_id, report.grade)
        return updated

    def generate_code(
        self,
        language: CodeLanguage,
        backtest_id: str | None = None,
        config: StrategyConfig | None = None,
    ) -> GeneratedCode:
        """Generate bot code for a stored backtest's strategy or a given config."""
        if config is None:
            if backtest_id is None:
                raise ValueError("Provide backtest_id or config.")
            config = self.get_backtest_config(backtest_id)
        code = self._ai_client.generate_bot_code(config, language)
        return GeneratedCode(
            backtest_id=backtest_id,
            language=language,
            code=code,
            filename=code_filename(backtest_id or "draft", language),
        )


class WorkspaceRegistry:
    """One workspace per signed-in user, created on first use."""

    def __init__(self, factory: Callable[[str], Workspace]) -> None:
        self._factory = factory
        self._lock = Lock()
        self._workspaces: dict[str, Workspace] = {}

    def get(self, user_id: str = ANONYMOUS_USER_ID) -> Workspace:
        with self._lock:
            workspace = self._workspaces.get(user_id)
            if workspace is None:
                workspace = self._factory(user_id)
                self._workspaces[user_id] = workspace
            return workspace

    def discard(self, user_id: str) -> None:
        with self._lock:
            self._workspaces.pop(user_id, None)
