"""QuantPilot command-line interface."""

from __future__ import annotations

from pathlib import Path

import typer

from quantpilot.core.ai.client import GenerativeClient, create_client
from quantpilot.core.backtest.engine import run_backtest
from quantpilot.core.backtest.export import (
    build_full_report,
    code_filename,
    dump_full_report,
    equity_frame,
    frame_to_csv,
    report_filename,
    trades_frame,
)
from quantpilot.core.backtest.types import BacktestResult, ChartMode
from quantpilot.core.config import AppConfig, dump_strategy_to_yaml, load_config, load_run_file
from quantpilot.core.strategy.templates import STRATEGY_TEMPLATES, suggest
from quantpilot.core.utils.env import load_dotenv
from quantpilot.core.utils.errors import exit_code_for_exception
from quantpilot.core.utils.logging import configure_logging, get_logger
from quantpilot.core.utils.plotting import save_equity_curve_plot, save_price_chart

app = typer.Typer(help="QuantPilot CLI", no_args_is_help=True)

RUN_CONFIG_OPTION = typer.Option(
    ...,
    "--config",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="Path to YAML run file (strategy, run settings, app config).",
)
APP_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="Optional YAML app config selecting the AI client.",
)
CLIENT_OPTION = typer.Option(None, "--client", help="AI client name override (openai, mock).")
SEED_OPTION = typer.Option(None, "--seed", help="Seed overriding run.seed and engine.seed.")
OUTPUT_DIR_OPTION = typer.Option(
    None,
    "--output-dir",
    file_okay=False,
    dir_okay=True,
    resolve_path=True,
    help="Artifact directory (default: <artifacts_dir>/<backtest id>).",
)
CHART_MODE_OPTION = typer.Option(None, "--chart-mode", help="Equity chart style.")
TEXT_OPTION = typer.Option(..., "--text", help="Plain-language strategy description.")
LANGUAGE_OPTION = typer.Option("mt5", "--language", help="Target language: python, pinescript, mt5.")
CODE_OUTPUT_OPTION = typer.Option(
    None,
    "--output",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="Write generated code to this file instead of stdout.",
)


@app.callback()
def callback() -> None:
    """QuantPilot CLI commands."""


def _handle_cli_exception(logger_name: str, context: str, exc: Exception) -> None:
    """Log diagnostics and exit with the error's typed code."""
    get_logger(logger_name).exception("%s failed: %s", context, exc)
    raise typer.Exit(code=exit_code_for_exception(exc)) from None


def _client_for(app_config: AppConfig, client_name: str | None) -> GenerativeClient:
    ai = app_config.ai
    return create_client(
        client_name or ai.client,
        model=ai.model,
        api_key_env=ai.api_key_env,
        base_url=ai.base_url,
    )


def _print_stats(result: BacktestResult) -> None:
    stats = result.stats
    typer.echo(f"backtest_id={result.id}")
    typer.echo(f"total_trades={stats.total_trades}")
    typer.echo(f"win_rate={stats.win_rate:.2f}")
    typer.echo(f"profit_factor={stats.profit_factor:.2f}")
    typer.echo(f"total_return={stats.total_return:.2f}")
    typer.echo(f"max_drawdown={stats.max_drawdown:.2f}")
    typer.echo(f"sharpe_ratio={stats.sharpe_ratio:.2f}")
    typer.echo(f"end_equity={stats.end_equity:.2f}")


def _write_text(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@app.command("backtest")
def backtest(
    config: Path = RUN_CONFIG_OPTION,
    seed: int | None = SEED_OPTION,
    output_dir: Path | None = OUTPUT_DIR_OPTION,
    chart_mode: ChartMode | None = CHART_MODE_OPTION,
) -> None:
    """
    Run one simulated backtest from a YAML run file and write its artifacts.

    Artifacts: ``trades.csv``, ``equity.csv``, the full JSON report and,
    when ``output.save_plots`` is set, equity and price charts.
    """
    load_dotenv(Path(".env"))
    configure_logging()
    logger_name = __name__

    try:
        run_file = load_run_file(config)
        app_config = run_file.app
        settings = run_file.run
        resolved_seed = next(
            (value for value in (seed, settings.seed, app_config.engine.seed) if value is not None),
            None,
        )
        result = run_backtest(
            strategy_id=run_file.strategy_id,
            config=run_file.strategy,
            data_source=settings.data_source,
            duration=settings.duration,
            custom_file_name=settings.custom_file_name,
            date_range=settings.date_range,
            seed=resolved_seed,
            start_price=app_config.engine.start_price,
        )
        run_dir = output_dir or app_config.output.artifacts_dir / result.id
        artifact_paths = [
            _write_text(run_dir / "trades.csv", frame_to_csv(trades_frame(result.trades))),
            _write_text(
                run_dir / "equity.csv",
                frame_to_csv(equity_frame(result.equity_curve), include_index=True),
            ),
            _write_text(
                run_dir / report_filename(result.id),
                dump_full_report(build_full_report(result, run_file.strategy)),
            ),
        ]
        if app_config.output.save_plots:
            mode = chart_mode or app_config.output.chart_mode
            artifact_paths.append(save_equity_curve_plot(result, run_dir, mode=mode))
            price_mode = ChartMode.CANDLESTICK if mode is ChartMode.AREA else mode
            artifact_paths.append(save_price_chart(result, run_dir, mode=price_mode))
    except Exception as exc:
        _handle_cli_exception(logger_name=logger_name, context="Backtest command", exc=exc)

    _print_stats(result)
    for path in artifact_paths:
        typer.echo(f"artifact={path}")


@app.command("parse")
def parse(
    text: str = TEXT_OPTION,
    config: Path | None = APP_CONFIG_OPTION,
    client: str | None = CLIENT_OPTION,
) -> None:
    """Parse a plain-language strategy and print it as a YAML run-file fragment."""
    load_dotenv(Path(".env"))
    configure_logging()
    try:
        app_config = AppConfig() if config is None else load_config(config)
        strategy = _client_for(app_config, client).parse_strategy(text)
    except Exception as exc:
        _handle_cli_exception(logger_name=__name__, context="Parse command", exc=exc)
    typer.echo(dump_strategy_to_yaml(strategy).rstrip())


@app.command("code")
def code(
    config: Path = RUN_CONFIG_OPTION,
    language: str = LANGUAGE_OPTION,
    output: Path | None = CODE_OUTPUT_OPTION,
    client: str | None = CLIENT_OPTION,
) -> None:
    """Generate trading-bot source for the run file's strategy."""
    load_dotenv(Path(".env"))
    configure_logging()
    try:
        run_file = load_run_file(config)
        source = _client_for(run_file.app, client).generate_bot_code(
            run_file.strategy, language
        )
        if output is not None:
            _write_text(output, source)
    except Exception as exc:
        _handle_cli_exception(logger_name=__name__, context="Code command", exc=exc)

    if output is None:
        typer.echo(source.rstrip())
    else:
        typer.echo(f"artifact={output}")
        typer.echo(f"suggested_filename={code_filename(run_file.strategy_id, language)}")


@app.command("templates")
def templates() -> None:
    """List the strategy template library grouped by category."""
    current_category = ""
    for template in STRATEGY_TEMPLATES:
        if template.category != current_category:
            current_category = template.category
            typer.echo(f"[{current_category}]")
        typer.echo(f"- {template.name}: {template.description}")


@app.command("suggest")
def suggest_command(text: str = TEXT_OPTION) -> None:
    """Print autocomplete suggestions for a partial strategy description."""
    suggestions = suggest(text)
    if not suggestions:
        typer.echo("-")
        return
    for suggestion in suggestions:
        typer.echo(suggestion)


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
