"""
Generative-text clients that turn prose into strategies, code and reports.

Two implementations are registered: ``openai`` talks to the OpenAI chat
completions API in JSON mode, ``mock`` answers deterministically without any
network access and is used by tests and offline demos.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from quantpilot.core.backtest.types import AIReport, BacktestStats, StrategyConfig, Trade
from quantpilot.core.utils.env import require_secret
from quantpilot.core.utils.errors import AIServiceError
from quantpilot.core.utils.logging import get_logger

CodeLanguage = Literal["python", "pinescript", "mt5"]
_LOGGER_NAME = "quantpilot.core.ai.client"

LANGUAGE_LABELS: dict[str, str] = {
    "mt5": "MQL5 (MetaTrader 5)",
    "pinescript": "Pine Script v5",
    "python": "Python (using backtrader)",
}
VALID_GRADES = ("A", "B", "C", "D", "F")

CLIENT_REGISTRY: dict[str, type[GenerativeClient]] = {}


@dataclass(frozen=True)
class ChatMessage:
    """One turn of the strategy-building conversation."""

    role: Literal["user", "ai"]
    content: str


@dataclass(frozen=True)
class ChatResponse:
    """Assistant reply, optionally carrying a parsed strategy."""

    message: str
    config: StrategyConfig | None = None
    should_execute: bool = False


def register_client(name: str, client_class: type[GenerativeClient]) -> None:
    """Register a client class under ``name``; the first registration wins."""
    if name in CLIENT_REGISTRY:
        return
    CLIENT_REGISTRY[name] = client_class


def get_client(name: str, **kwargs: Any) -> GenerativeClient:
    """
    Build a registered client.

    Args:
        name: Registry key.
        **kwargs: Constructor arguments for the client class.

    Raises:
        ValueError: If ``name`` is not registered.
    """
    if name not in CLIENT_REGISTRY:
        raise ValueError(
            f"AI client '{name}' is not registered. Available: {sorted(CLIENT_REGISTRY)}"
        )
    return CLIENT_REGISTRY[name](**kwargs)


def _check_language(language: str) -> None:
    if language not in LANGUAGE_LABELS:
        raise ValueError(
            f"Unsupported code language '{language}'. Expected one of: {sorted(LANGUAGE_LABELS)}"
        )


def _stats_payload(stats: BacktestStats) -> dict[str, Any]:
    return {
        "totalTrades": stats.total_trades,
        "winRate": round(stats.win_rate, 2),
        "profitFactor": round(stats.profit_factor, 2),
        "maxDrawdown": round(stats.max_drawdown, 2),
        "totalReturn": round(stats.total_return, 2),
        "sharpeRatio": round(stats.sharpe_ratio, 2),
        "startEquity": round(stats.start_equity, 2),
        "endEquity": round(stats.end_equity, 2),
    }


def _report_from_payload(payload: dict[str, Any]) -> AIReport:
    """Validate a report JSON object."""
    grade = str(payload.get("grade", "")).strip().upper()[:1]
    if grade not in VALID_GRADES:
        raise AIServiceError(f"Report grade must be one of {VALID_GRADES}, got {grade!r}.")
    suggestions = payload.get("suggestions", "")
    if isinstance(suggestions, list):
        suggestions = "\n".join(f"- {item}" for item in suggestions)
    return AIReport(
        narrative=str(payload.get("narrative", "")),
        suggestions=str(suggestions),
        grade=grade,  # type: ignore[arg-type]
        concise_summary=str(payload.get("conciseSummary", payload.get("concise_summary", ""))),
    )


class GenerativeClient(ABC):
    """Interface of the generative-text collaborator."""

    @abstractmethod
    def parse_strategy(self, description: str) -> StrategyConfig:
        """Extract a structured configuration from a free-text description."""

    @abstractmethod
    def continue_chat(self, history: Sequence[ChatMessage], message: str) -> ChatResponse:
        """Answer the next user message of a strategy conversation."""

    @abstractmethod
    def generate_bot_code(self, config: StrategyConfig, language: CodeLanguage) -> str:
        """Generate trading bot source code for ``language``."""

    @abstractmethod
    def generate_report(
        self,
        stats: BacktestStats,
        config: StrategyConfig,
        trades: Sequence[Trade] = (),
    ) -> AIReport:
        """Write a narrative verdict with suggestions and a letter grade."""


class OpenAIClient(GenerativeClient):
    """Client backed by the OpenAI chat completions API."""

    _SYSTEM_PROMPT = (
        "You are an expert algorithmic trading strategist and quantitative analyst. "
        "Answer precisely and only in the requested format."
    )

    _PARSE_PROMPT = (
        "Analyze the following trading strategy description and extract the structured "
        "configuration.\n\n"
        'Strategy Description: "{description}"\n\n'
        "If details such as timeframe or asset are missing, infer reasonable defaults "
        "(e.g. EURUSD, H1, 1% risk). Respond with a JSON object with the keys "
        "asset, timeframe, entryRules (list of strings), exitRules (list of strings), "
        "stopLoss, takeProfit and riskPerTrade."
    )

    _CHAT_PROMPT = (
        "You help a trader design a strategy through conversation.\n"
        "Conversation so far:\n{history}\n\n"
        "User: {message}\n\n"
        "Respond with a JSON object with the keys message (your reply), config "
        "(the strategy as asset/timeframe/entryRules/exitRules/stopLoss/takeProfit/"
        "riskPerTrade, or null if it is not yet clear) and shouldExecute (true only "
        "when the user asks to run a backtest)."
    )

    _CODE_PROMPT = (
        "Generate production-ready trading bot code for the following strategy "
        "configuration.\n\nLanguage: {language}\n\nConfiguration:\n{config_json}\n\n"
        "Include comments explaining the logic. Ensure standard error handling and "
        "proper syntax. Return only the code."
    )

    _REPORT_PROMPT = (
        "Analyze the backtest results for this strategy.\n\n"
        "Strategy: {config_json}\nStats: {stats_json}\nTrades: {trade_count} closed trades, "
        "net PnL {net_pnl:.2f}\n\n"
        "1. Write a professional executive summary narrative explaining the performance.\n"
        "2. Provide 3 specific optimization suggestions.\n"
        "3. Grade the strategy from A to F.\n"
        "Respond with a JSON object with the keys narrative, suggestions, grade and "
        "conciseSummary (one sentence)."
    )

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        api_key_env: str = "OPENAI_API_KEY",
        base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        """
        Initialize the client. The API key is resolved on first use.

        Args:
            model: Chat model name.
            api_key: Explicit API key; otherwise read from ``api_key_env``.
            api_key_env: Environment variable holding the key.
            base_url: Optional OpenAI-compatible endpoint.
            client: Pre-built ``OpenAI`` instance (dependency injection for tests).
        """
        self.model = model
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._base_url = base_url
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            api_key = require_secret(self._api_key_env, self._api_key)
            self._client = OpenAI(api_key=api_key, base_url=self._base_url)
        return self._client

    def _complete(self, prompt: str, json_mode: bool) -> str:
        """Send one prompt and return the raw message content."""
        client = self._get_client()
        request: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self._SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        try:
            response = client.chat.completions.create(**request)
        except OpenAIError as exc:
            raise AIServiceError(f"OpenAI request failed: {exc}") from exc
        content = response.choices[0].message.content
        if not content:
            raise AIServiceError("OpenAI returned an empty response.")
        return content

    def _complete_json(self, prompt: str) -> dict[str, Any]:
        content = self._complete(prompt, json_mode=True)
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            raise AIServiceError(f"Response is not valid JSON: {content[:200]}") from exc
        if not isinstance(payload, dict):
            raise AIServiceError("Response JSON root must be an object.")
        return payload

    @staticmethod
    def _config_from_payload(payload: Any) -> StrategyConfig:
        try:
            return StrategyConfig.model_validate(payload)
        except ValidationError as exc:
            raise AIServiceError(f"Response is not a valid strategy config: {exc}") from exc

    def parse_strategy(self, description: str) -> StrategyConfig:
        payload = self._complete_json(self._PARSE_PROMPT.format(description=description))
        return self._config_from_payload(payload)

    def continue_chat(self, history: Sequence[ChatMessage], message: str) -> ChatResponse:
        transcript = "\n".join(
            f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.content}" for turn in history
        )
        payload = self._complete_json(
            self._CHAT_PROMPT.format(history=transcript or "(empty)", message=message)
        )
        raw_config = payload.get("config")
        return ChatResponse(
            message=str(payload.get("message", "")),
            config=None if not raw_config else self._config_from_payload(raw_config),
            should_execute=bool(payload.get("shouldExecute", False)),
        )

    def generate_bot_code(self, config: StrategyConfig, language: CodeLanguage) -> str:
        _check_language(language)
        prompt = self._CODE_PROMPT.format(
            language=LANGUAGE_LABELS[language],
            config_json=config.model_dump_json(by_alias=True, indent=2),
        )
        return self._complete(prompt, json_mode=False)

    def generate_report(
        self,
        stats: BacktestStats,
        config: StrategyConfig,
        trades: Sequence[Trade] = (),
    ) -> AIReport:
        prompt = self._REPORT_PROMPT.format(
            config_json=config.model_dump_json(by_alias=True),
            stats_json=json.dumps(_stats_payload(stats)),
            trade_count=len(trades),
            net_pnl=sum(trade.pnl for trade in trades),
        )
        return _report_from_payload(self._complete_json(prompt))


_ASSET_PATTERN = re.compile(r"\b([A-Z]{6}|BTC(?:USDT?)?|ETH(?:USDT?)?|XAUUSD|SPX|NAS100)\b")
_TIMEFRAME_PATTERN = re.compile(r"\b([MHDW]\d{1,2})\b", re.IGNORECASE)
_STOP_PATTERN = re.compile(r"stop(?:\s+loss)?\s*(?:of|at)?\s*(\d+(?:\.\d+)?\s*(?:pips?|%))", re.I)
_TARGET_PATTERN = re.compile(r"(?:target|take\s+profit)\s*(?:of|at)?\s*(\d+(?:\.\d+)?\s*(?:pips?|%))", re.I)
_RISK_PATTERN = re.compile(r"risk\s*(?:of)?\s*(\d+(?:\.\d+)?\s*%)", re.I)
_ENTRY_WORDS = ("buy", "long", "enter", "entry")
_EXIT_WORDS = ("sell", "short", "exit", "close", "hold until")
_RUN_WORDS = ("run", "backtest", "test it", "execute")


@dataclass
class MockClient(GenerativeClient):
    """
    Deterministic offline client.

    Parsing uses keyword and pattern matching, code is rendered from a fixed
    template and the report grade follows from total return and profit factor.
    ``calls`` records operation names for assertions.
    """

    calls: list[str] = field(default_factory=list)

    def parse_strategy(self, description: str) -> StrategyConfig:
        self.calls.append("parse_strategy")
        sentences = [part.strip() for part in re.split(r"[.;\n]", description) if part.strip()]
        entry_rules = [s for s in sentences if any(w in s.lower() for w in _ENTRY_WORDS)]
        exit_rules = [
            s
            for s in sentences
            if s not in entry_rules and any(w in s.lower() for w in _EXIT_WORDS)
        ]

        asset_match = _ASSET_PATTERN.search(description)
        timeframe_match = _TIMEFRAME_PATTERN.search(description)
        stop_match = _STOP_PATTERN.search(description)
        target_match = _TARGET_PATTERN.search(description)
        risk_match = _RISK_PATTERN.search(description)
        return StrategyConfig(
            asset=asset_match.group(1) if asset_match else "EURUSD",
            timeframe=timeframe_match.group(1).upper() if timeframe_match else "H1",
            entry_rules=tuple(entry_rules or sentences[:1]),
            exit_rules=tuple(exit_rules),
            stop_loss=stop_match.group(1) if stop_match else "50 pips",
            take_profit=target_match.group(1) if target_match else "100 pips",
            risk_per_trade=risk_match.group(1).replace(" ", "") if risk_match else "1%",
        )

    def continue_chat(self, history: Sequence[ChatMessage], message: str) -> ChatResponse:
        self.calls.append("continue_chat")
        lowered = message.lower()
        should_execute = any(word in lowered for word in _RUN_WORDS)
        if not any(word in lowered for word in _ENTRY_WORDS):
            previous = [turn.content for turn in history if turn.role == "user"]
            if should_execute and previous:
                config = self.parse_strategy(" ".join(previous))
                return ChatResponse("Running the backtest now.", config, True)
            return ChatResponse(
                "Describe when to enter and exit, for example 'Buy when RSI(14) < 30'."
            )
        config = self.parse_strategy(message)
        reply = (
            f"I parsed a {config.timeframe} strategy on {config.asset} with "
            f"{len(config.entry_rules)} entry and {len(config.exit_rules)} exit rule(s)."
        )
        return ChatResponse(reply, config, should_execute)

    def generate_bot_code(self, config: StrategyConfig, language: CodeLanguage) -> str:
        self.calls.append("generate_bot_code")
        _check_language(language)
        comment = "#" if language == "python" else "//"
        lines = [
            f"{comment} {LANGUAGE_LABELS[language]} bot for {config.asset} on {config.timeframe}",
            *(f"{comment} entry: {rule}" for rule in config.entry_rules),
            *(f"{comment} exit: {rule}" for rule in config.exit_rules),
            f"{comment} stop loss: {config.stop_loss}, take profit: {config.take_profit}",
            f"{comment} risk per trade: {config.risk_per_trade}",
        ]
        return "\n".join(lines) + "\n"

    def generate_report(
        self,
        stats: BacktestStats,
        config: StrategyConfig,
        trades: Sequence[Trade] = (),
    ) -> AIReport:
        self.calls.append("generate_report")
        grade = grade_from_stats(stats)
        direction = "gained" if stats.total_return >= 0 else "lost"
        narrative = (
            f"The {config.asset} {config.timeframe} strategy {direction} "
            f"{abs(stats.total_return):.2f}% over {stats.total_trades} trades with a "
            f"{stats.win_rate:.1f}% win rate and a profit factor of {stats.profit_factor:.2f}."
        )
        suggestions = "\n".join(
            [
                "- Add a higher-timeframe trend filter to avoid counter-trend entries.",
                "- Tighten the stop loss after price moves one risk unit in favour.",
                "- Skip entries during low-volatility sessions.",
            ]
        )
        return AIReport(
            narrative=narrative,
            suggestions=suggestions,
            grade=grade,
            concise_summary=f"Grade {grade}: {stats.total_return:+.2f}% return.",
        )


def grade_from_stats(stats: BacktestStats) -> Literal["A", "B", "C", "D", "F"]:
    """Letter grade from total return and profit factor."""
    if stats.total_return >= 10 and stats.profit_factor >= 1.5:
        return "A"
    if stats.total_return >= 5:
        return "B"
    if stats.total_return >= 0:
        return "C"
    if stats.total_return >= -5:
        return "D"
    return "F"


def create_client(name: str, model: str, api_key_env: str, base_url: str | None) -> GenerativeClient:
    """Build a client from configuration values."""
    logger = get_logger(_LOGGER_NAME)
    logger.info("Using AI client '%s'", name)
    if name == "openai":
        return get_client(name, model=model, api_key_env=api_key_env, base_url=base_url)
    return get_client(name)


register_client("openai", OpenAIClient)
register_client("mock", MockClient)
