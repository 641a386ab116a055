"""Strategy templates and input auto-suggestion."""

from __future__ import annotations

from dataclasses import dataclass

TEMPLATE_PREFIX = "Template: "
MAX_SUGGESTIONS = 5
MAX_TEMPLATE_SUGGESTIONS = 2

COMMON_INDICATORS: tuple[str, ...] = (
    "RSI",
    "MACD",
    "EMA",
    "SMA",
    "Bollinger Bands",
    "Stochastic",
    "ATR",
    "VWAP",
    "Ichimoku",
    "Volume",
    "Supertrend",
    "Parabolic SAR",
    "ADX",
    "CCI",
    "Williams %R",
)


@dataclass(frozen=True)
class StrategyTemplate:
    category: str
    name: str
    description: str


STRATEGY_TEMPLATES: tuple[StrategyTemplate, ...] = (
    StrategyTemplate(
        "Scalping",
        "1-Min Stochastic Scalp",
        "Buy when Stoch < 20, Sell > 80 on M1. Target 5 pips, Stop 3 pips.",
    ),
    StrategyTemplate(
        "Scalping",
        "Bollinger Band Squeeze",
        "Trade breakout when volatility expands. Buy if price closes above upper band.",
    ),
    StrategyTemplate(
        "Scalping",
        "VWAP Reversion",
        "Fade moves far from VWAP on M5. Buy when price hits VWAP - 2SD.",
    ),
    StrategyTemplate(
        "Day Trading",
        "Gap and Go",
        "Trade morning gap continuation. Buy if price breaks opening range high.",
    ),
    StrategyTemplate(
        "Day Trading",
        "RSI Trend Following",
        "Buy on RSI > 50 pullback in uptrend. Filter with 200 EMA.",
    ),
    StrategyTemplate(
        "Day Trading",
        "MACD Cross",
        "Classic trend following on H1. Buy when MACD line crosses signal line upward.",
    ),
    StrategyTemplate(
        "Swing Trading",
        "Golden Cross",
        "Buy when SMA 50 crosses above SMA 200. Hold until death cross.",
    ),
    StrategyTemplate(
        "Swing Trading",
        "3-Bar Play",
        "Momentum continuation pattern. Buy above high of resting bar.",
    ),
    StrategyTemplate(
        "Swing Trading",
        "Support/Resistance Bounce",
        "Trade retests of key levels. Buy at support with bullish engulfing.",
    ),
)


def templates_by_category() -> dict[str, list[StrategyTemplate]]:
    grouped: dict[str, list[StrategyTemplate]] = {}
    for template in STRATEGY_TEMPLATES:
        grouped.setdefault(template.category, []).append(template)
    return grouped


def find_template(name: str) -> StrategyTemplate | None:
    return next((t for t in STRATEGY_TEMPLATES if t.name == name), None)


def suggest(text: str) -> list[str]:
    """
    Suggest completions for partially typed strategy text.

    Indicator names matching the last word (two or more characters) come
    first, followed by up to two templates whose name or description contains
    the whole input (more than three characters).
    """
    suggestions: list[str] = []
    last_word = text.split(" ")[-1].lower()
    if len(last_word) >= 2:
        suggestions.extend(
            indicator
            for indicator in COMMON_INDICATORS
            if last_word in indicator.lower() and indicator.lower() != last_word
        )

    if len(text) > 3:
        lowered = text.lower()
        matches = [
            f"{TEMPLATE_PREFIX}{t.name}"
            for t in STRATEGY_TEMPLATES
            if lowered in t.name.lower() or lowered in t.description.lower()
        ]
        suggestions.extend(matches[:MAX_TEMPLATE_SUGGESTIONS])

    return suggestions[:MAX_SUGGESTIONS]


def apply_suggestion(text: str, suggestion: str) -> str:
    """Expand a template suggestion, or replace the last word with an indicator."""
    if suggestion.startswith(TEMPLATE_PREFIX):
        template = find_template(suggestion.removeprefix(TEMPLATE_PREFIX))
        return template.description if template is not None else text
    words = text.split(" ")
    words[-1] = suggestion
    return " ".join(words) + " "
