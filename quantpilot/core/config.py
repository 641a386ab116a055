"""Configuration models and YAML loading."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from quantpilot.core.backtest.generator import DEFAULT_START_PRICE
from quantpilot.core.backtest.types import (
    ChartMode,
    DataDuration,
    DataSource,
    DateRange,
    StrategyConfig,
)
from quantpilot.core.utils.errors import ConfigLoadError


class EngineConfig(BaseModel):
    """Simulation engine settings."""

    start_price: float = DEFAULT_START_PRICE
    simulated_delay_seconds: float = 2.0
    seed: int | None = None

    @model_validator(mode="after")
    def validate_engine(self) -> EngineConfig:
        """Validate simulation constraints."""
        if self.start_price <= 0:
            raise ValueError("engine.start_price must be > 0.")
        if self.simulated_delay_seconds < 0:
            raise ValueError("engine.simulated_delay_seconds must be >= 0.")
        return self


class AIConfig(BaseModel):
    """Generative-text service settings."""

    client: str = "openai"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str | None = None

    @model_validator(mode="after")
    def validate_ai(self) -> AIConfig:
        """Ensure client and model identifiers are present."""
        if not self.client.strip():
            raise ValueError("ai.client must be non-empty.")
        if not self.model.strip():
            raise ValueError("ai.model must be non-empty.")
        return self


class AuthConfig(BaseModel):
    """Identity provider settings; empty values select the simulated provider."""

    provider: Literal["auto", "supabase", "local"] = "auto"
    url_env: str = "SUPABASE_URL"
    key_env: str = "SUPABASE_ANON_KEY"
    timeout_seconds: float = 10.0


class OutputConfig(BaseModel):
    """Artifact settings for CLI runs."""

    artifacts_dir: Path = Path("artifacts")
    chart_mode: ChartMode = ChartMode.AREA
    save_plots: bool = True


class AppConfig(BaseModel):
    """Top-level application configuration."""

    engine: EngineConfig = Field(default_factory=EngineConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


class RunSettings(BaseModel):
    """Data-source and horizon parameters for one backtest run."""

    data_source: DataSource = DataSource.YAHOO_FINANCE
    duration: DataDuration | None = DataDuration.ONE_MONTH
    start: date | None = None
    end: date | None = None
    custom_file_name: str | None = None
    seed: int | None = None

    @model_validator(mode="after")
    def validate_range(self) -> RunSettings:
        """An end date needs a start date."""
        if self.end and not self.start:
            raise ValueError("run.end requires run.start.")
        return self

    @property
    def date_range(self) -> DateRange | None:
        if not self.start:
            return None
        end = None if self.end is None else self.end.isoformat()
        return DateRange(start=self.start.isoformat(), end=end)


class RunFile(BaseModel):
    """Backtest run file: one strategy plus run settings and app config."""

    strategy_id: str = "cli-strategy"
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    run: RunSettings = Field(default_factory=RunSettings)
    app: AppConfig = Field(default_factory=AppConfig)


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    """Resolve a YAML file and return its root mapping."""
    resolved_path = path.expanduser().resolve()
    if not resolved_path.exists():
        raise ConfigLoadError(f"Config file not found: {resolved_path}")
    if not resolved_path.is_file():
        raise ConfigLoadError(f"Config path is not a file: {resolved_path}")
    try:
        with resolved_path.open("r", encoding="utf-8") as handle:
            raw_config: Any = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigLoadError(f"Failed to read config file {resolved_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in config file {resolved_path}: {exc}") from exc
    if not isinstance(raw_config, dict):
        raise ConfigLoadError("YAML root must be a mapping/object.")
    return raw_config


def _resolve_output(config: AppConfig, base_dir: Path) -> AppConfig:
    """Resolve relative artifact paths against ``base_dir``."""
    artifacts_dir = config.output.artifacts_dir.expanduser()
    if not artifacts_dir.is_absolute():
        artifacts_dir = (base_dir / artifacts_dir).resolve()
    updated_output = config.output.model_copy(update={"artifacts_dir": artifacts_dir})
    return config.model_copy(update={"output": updated_output})


def load_config(path: Path) -> AppConfig:
    """
    Load and validate application config from YAML.

    Relative paths are resolved from the YAML file parent directory.
    """
    raw_config = _read_yaml_mapping(path)
    try:
        config = AppConfig.model_validate(raw_config)
    except Exception as exc:
        raise ConfigLoadError(f"Config validation failed: {exc}") from exc
    return _resolve_output(config, path.expanduser().resolve().parent)


def load_run_file(path: Path) -> RunFile:
    """
    Load a backtest run file.

    Example::

        strategy:
          asset: EURUSD
          entryRules: ["RSI(14) < 30"]
        run:
          duration: 3M
          seed: 7
    """
    raw_config = _read_yaml_mapping(path)
    try:
        run_file = RunFile.model_validate(raw_config)
    except Exception as exc:
        raise ConfigLoadError(f"Run file validation failed: {exc}") from exc
    resolved_app = _resolve_output(run_file.app, path.expanduser().resolve().parent)
    return run_file.model_copy(update={"app": resolved_app})


def dump_strategy_to_yaml(config: StrategyConfig) -> str:
    """Serialize a strategy config as a run-file YAML document."""
    payload = {"strategy": config.model_dump(mode="json", by_alias=True, exclude_none=True)}
    return yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)
