#!/usr/bin/env python3
"""
Equation Backtest CLI - run and validate strategies from the command line
"""
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from equation_backtest import (
    BacktestEngine,
    GrammarError,
    InvalidCandlesError,
    validate_equation,
)
from equation_backtest.variables import (
    DERIVED_VALUES,
    INDICATOR_FUNCTIONS,
    PRICE_FIELDS,
    function_signature,
)
from shared.config.settings import settings
from shared.utils.log_setup import setup_logging


app = typer.Typer(help="Equation Backtest CLI - backtest entry/exit equations on OHLCV data")
console = Console()

CANDLE_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


def load_candles(path: Path) -> List[Dict[str, Any]]:
    """
    Load candles from a CSV or JSON file

    JSON may be a list of candle objects or an object with a "candles" list.
    Column names are matched case-insensitively; volume defaults to 0.
    """
    if path.suffix.lower() == ".json":
        data = json.loads(path.read_text())
        if isinstance(data, dict):
            data = data.get("candles", [])
        frame = pd.DataFrame(data)
    else:
        frame = pd.read_csv(path)

    frame.columns = [str(c).strip().lower() for c in frame.columns]
    if "volume" not in frame.columns:
        frame["volume"] = 0

    missing = [c for c in CANDLE_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Candle file missing columns: {missing}")

    frame["date"] = pd.to_datetime(frame["date"]).dt.date
    frame["volume"] = frame["volume"].fillna(0).astype("int64")

    logger.debug(f"Loaded {len(frame)} candles from {path}")
    return frame[CANDLE_COLUMNS].to_dict(orient="records")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL")
):
    """Configure logging before any command runs"""
    setup_logging(log_level or settings.log_level, settings.log_file)


@app.command()
def info():
    """Display application info and the equation vocabulary"""
    console.print(Panel.fit(
        f"[bold blue]{settings.app_name}[/bold blue] v{settings.app_version}\n"
        f"Environment: {settings.environment}",
        title="System Information"
    ))

    table = Table(title="Equation Vocabulary")
    table.add_column("Name", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Description", style="green")

    for name in PRICE_FIELDS:
        table.add_row(name, "price", f"Bar {name.lower()}")
    for name, description in INDICATOR_FUNCTIONS.items():
        table.add_row(function_signature(name), "function", description)
    for name, description in DERIVED_VALUES.items():
        table.add_row(name, "derived", description)

    console.print(table)


@app.command()
def validate(
    equation: str = typer.Argument(..., help="Equation to validate, e.g. \"CLOSE > SMA(20)\"")
):
    """Validate an equation and show what it references"""
    report = validate_equation(equation)

    status = "[green]✓ Valid[/green]" if report.is_valid else "[red]✗ Invalid[/red]"
    lines = [status]
    if report.indicators:
        lines.append(f"Indicators: {', '.join(report.indicators)}")
    if report.variables:
        lines.append(f"Variables: {', '.join(report.variables)}")
    lines.extend(f"[red]Error:[/red] {escape(e)}" for e in report.errors)
    lines.extend(f"[yellow]Warning:[/yellow] {w}" for w in report.warnings)
    lines.extend(f"[cyan]Hint:[/cyan] {s}" for s in report.suggestions)

    console.print(Panel.fit("\n".join(lines), title=escape(equation)))

    if not report.is_valid:
        raise typer.Exit(code=1)


@app.command()
def run(
    candles_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV or JSON candle file"),
    entry: str = typer.Option(..., "--entry", "-e", help="Entry equation"),
    exit_logic: str = typer.Option(..., "--exit", "-x", help="Exit equation"),
    initial_capital: Optional[float] = typer.Option(None, help="Starting cash"),
    commission_pct: Optional[float] = typer.Option(None, help="Commission, % of notional"),
    slippage_bps: Optional[float] = typer.Option(None, help="Slippage in basis points"),
    max_position_pct: Optional[float] = typer.Option(None, help="Max % of cash per entry"),
    stop_loss_pct: Optional[float] = typer.Option(None, help="Stop-loss %"),
    take_profit_pct: Optional[float] = typer.Option(None, help="Take-profit %"),
    trailing_stop_pct: Optional[float] = typer.Option(None, help="Trailing stop %"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write result JSON here")
):
    """Backtest an entry/exit equation pair on a candle file"""
    try:
        params = settings.backtest.to_params(
            initial_capital=initial_capital,
            commission_pct=commission_pct,
            slippage_bps=slippage_bps,
            max_position_pct=max_position_pct,
            stop_loss_pct=stop_loss_pct,
            take_profit_pct=take_profit_pct,
            trailing_stop_pct=trailing_stop_pct,
        )
        candles = load_candles(candles_file)
        result = BacktestEngine(params).run(candles, entry, exit_logic)
    except GrammarError as e:
        console.print(f"[red]✗ Strategy rejected: {escape(str(e))}[/red]")
        raise typer.Exit(code=2)
    except (ValidationError, InvalidCandlesError, ValueError) as e:
        console.print(f"[red]✗ Invalid input: {escape(str(e))}[/red]")
        raise typer.Exit(code=3)

    m = result.metrics
    table = Table(title=f"Backtest: {candles_file.name}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Total Return", f"{m.total_return_pct:.2f}%")
    table.add_row("CAGR", f"{m.cagr_pct:.2f}%")
    table.add_row("Sharpe Ratio", f"{m.sharpe_ratio:.2f}")
    table.add_row("Max Drawdown", f"{m.max_drawdown_pct:.2f}%")
    table.add_row("Win Rate", f"{m.win_rate_pct:.2f}%")
    table.add_row("Trades", str(m.num_trades))
    table.add_row("Stop-Loss Hits", str(m.stop_loss_hits))
    table.add_row("Take-Profit Hits", str(m.take_profit_hits))
    table.add_row("Trailing-Stop Hits", str(m.trailing_stop_hits))
    if result.equity:
        table.add_row("Final Equity", f"{result.equity[-1]:,.2f}")
    console.print(table)

    skipped = result.diagnostics.skipped_entries_insufficient_funds
    if skipped:
        console.print(f"[yellow]⚠ {skipped} entry signal(s) skipped: insufficient funds[/yellow]")

    if output is not None:
        output.write_text(json.dumps(result.to_dict(), indent=2))
        console.print(f"[green]✓ Result written to {output}[/green]")


if __name__ == "__main__":
    app()
