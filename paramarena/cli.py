"""CLI entrypoint for paramarena."""
from __future__ import annotations

import json
import random
from pathlib import Path
from typing import List, Optional

import pandas as pd
import typer
from rich import print
from rich.console import Console
from rich.table import Table

from paramarena.config import AppConfig, configure_logging, load_app_config
from paramarena.data_access import DuckDBRatingStore, StorageError, create_schema, export_ratings
from paramarena.experiments import ExperimentComparison, ExperimentConfig, ExperimentEngine
from paramarena.experiments.engine import ExperimentStorageError
from paramarena.ratings.evolution import (
    EXPORT_FORMATS,
    EvolutionEngine,
    deploy_configuration,
    export_configuration,
    suggest_configurations,
)

app = typer.Typer(help="paramarena CLI")
console = Console()


def _load_config(config_path: Optional[str]) -> AppConfig:
    cfg = load_app_config(config_path)
    configure_logging(cfg.logging)
    return cfg


def _open_store(cfg: AppConfig, read_only: bool = False) -> DuckDBRatingStore:
    try:
        return DuckDBRatingStore(
            cfg.storage.duckdb_path,
            read_only=read_only,
            history_limit=cfg.storage.history_limit,
        )
    except StorageError as e:
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def init_db(config_path: Optional[str] = typer.Option(None, help="Path to application config")) -> None:
    """Create the ratings schema at the configured DuckDB path."""
    cfg = _load_config(config_path)
    create_schema(cfg.storage.duckdb_path)
    print(f"Created schema at {cfg.storage.duckdb_path}")


@app.command()
def run_experiment(
    experiment_path: Path = typer.Argument(..., help="Path to experiment YAML config"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
    output_file: Optional[Path] = typer.Option(None, help="Save the JSON report to file"),
    report_file: Optional[Path] = typer.Option(None, help="Save a text performance report to file"),
    top_n: Optional[int] = typer.Option(None, help="Show only the best N results"),
) -> None:
    """Run a parameter sweep from a YAML configuration file.

    Example:
        paramarena run-experiment experiments/model_sweep.yaml --report-file report.txt
    """
    if not experiment_path.exists():
        print(f"[red]Error:[/red] Config file not found: {experiment_path}")
        raise typer.Exit(1)

    cfg = _load_config(config_path)
    try:
        experiment_config = ExperimentConfig.from_yaml(experiment_path)
    except Exception as e:
        print(f"[red]Error loading experiment config:[/red] {e}")
        raise typer.Exit(1)

    print(f"[bold]Experiment:[/bold] {experiment_config.description}")
    print()

    store = _open_store(cfg)
    engine = ExperimentEngine(cfg, store)
    try:
        report = engine.run_config(experiment_config)
    except ExperimentStorageError as e:
        print(f"[red]Storage error:[/red] {e}")
        _display_table(ExperimentComparison.generate_leaderboard(e.report))
        raise typer.Exit(1)
    except Exception as e:
        print(f"[red]Error running experiment:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()

    print("[green]✓[/green] Experiment complete!")
    if report.evaluation_summary is not None:
        summary = report.evaluation_summary
        print(
            f"[cyan]{summary.total_comparisons} comparisons, "
            f"average confidence {summary.average_confidence:.3f}[/cyan]"
        )
    print()
    _display_table(ExperimentComparison.generate_leaderboard(report, top_n))

    if output_file:
        output_file.write_text(json.dumps(report.to_dict(), indent=2, default=str), encoding="utf-8")
        print(f"[cyan]Report saved to:[/cyan] {output_file}")
    if report_file:
        ExperimentComparison.create_performance_report(report, report_file, top_n)
        print(f"[cyan]Performance report saved to:[/cyan] {report_file}")


@app.command()
def leaderboard(
    parameter: Optional[str] = typer.Option(None, help="Show top values of this parameter"),
    top_n: int = typer.Option(10, help="Number of rows to show"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
) -> None:
    """Show the highest-rated combinations or parameter values.

    Example:
        paramarena leaderboard --parameter model --top-n 5
    """
    cfg = _load_config(config_path)
    store = _open_store(cfg, read_only=True)
    try:
        if parameter:
            rows = [
                {"value": r.parameter_value, **r.rating.to_dict()}
                for r in store.get_top_parameters_by_type(parameter, top_n)
            ]
        else:
            rows = [
                {"combination": json.dumps(r.combination, default=str), **r.rating.to_dict()}
                for r in store.get_top_combinations(top_n)
            ]
    except StorageError as e:
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()

    df = pd.DataFrame(rows)
    if not df.empty:
        df.insert(0, "rank", range(1, len(df) + 1))
    _display_table(df)


@app.command()
def history(
    limit: Optional[int] = typer.Option(None, help="Show only the newest N experiments"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
) -> None:
    """Show the experiment history log."""
    cfg = _load_config(config_path)
    store = _open_store(cfg, read_only=True)
    try:
        entries = store.get_history(limit)
    except StorageError as e:
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()

    df = pd.DataFrame(
        [
            {
                "timestamp": e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                "description": e.description,
                "combinations": e.result_summary.get("combinations"),
                "failures": e.result_summary.get("failures"),
                "evaluated": e.result_summary.get("evaluated"),
            }
            for e in entries
        ]
    )
    _display_table(df)


@app.command("export-ratings")
def export_ratings_command(
    format: str = typer.Option("json", help="Export format: json or csv"),
    output_file: Optional[Path] = typer.Option(None, help="Save export to file"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
) -> None:
    """Export all stored ratings."""
    cfg = _load_config(config_path)
    store = _open_store(cfg, read_only=True)
    try:
        text = export_ratings(store, format, output_file)
    except (StorageError, ValueError) as e:
        print(f"[red]Error exporting ratings:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()

    if output_file:
        print(f"[green]✓[/green] Ratings exported to: {output_file}")
    else:
        typer.echo(text)


@app.command()
def suggest_config(
    parameters: List[str] = typer.Argument(..., help="Parameter names to build the configuration from"),
    limit: int = typer.Option(5, help="Number of suggestions"),
    output_file: Optional[Path] = typer.Option(None, help="Write the best suggestion to file"),
    format: str = typer.Option("json", help=f"Output format: {', '.join(EXPORT_FORMATS)}"),
    include_metadata: bool = typer.Option(False, help="Add generation metadata to the exported file"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
) -> None:
    """Suggest configurations from the best-rated parameter values.

    Example:
        paramarena suggest-config model temperature --output-file best.yaml --format yaml
    """
    cfg = _load_config(config_path)
    store = _open_store(cfg, read_only=True)
    try:
        suggestions = suggest_configurations(
            store, parameters, limit=limit, initial_rating=cfg.elo.initial_rating
        )
    except StorageError as e:
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()

    if not suggestions:
        print("[yellow]No ratings stored for the requested parameters[/yellow]")
        raise typer.Exit(1)

    df = pd.DataFrame(
        [
            {"rank": idx, **s.combination, "score": round(s.score, 2), "confidence": round(s.confidence, 2)}
            for idx, s in enumerate(suggestions, 1)
        ]
    )
    _display_table(df)

    if output_file:
        try:
            export_configuration(suggestions[0].combination, output_file, format, include_metadata)
        except ValueError as e:
            print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        print(f"[green]✓[/green] Configuration saved to: {output_file}")


@app.command()
def evolve_config(
    parameters: List[str] = typer.Argument(..., help="Parameters the search may change"),
    seed: Optional[int] = typer.Option(None, help="Random seed for a reproducible search"),
    output_file: Optional[Path] = typer.Option(None, help="Write the best configuration to file"),
    format: str = typer.Option("json", help=f"Output format: {', '.join(EXPORT_FORMATS)}"),
    include_metadata: bool = typer.Option(False, help="Add generation metadata to the exported file"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
) -> None:
    """Evolve configurations from the best-rated combinations.

    Example:
        paramarena evolve-config model temperature --seed 42
    """
    cfg = _load_config(config_path)
    store = _open_store(cfg, read_only=True)
    try:
        population = [c.combination for c in store.get_top_combinations(cfg.evolution.population_size)]
        engine = EvolutionEngine(store, cfg.evolution, cfg.elo.initial_rating, random.Random(seed))
        result = engine.evolve_configurations(population, parameters)
    except (StorageError, ValueError) as e:
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()

    status = "converged" if result.convergence_reached else "stopped at generation limit"
    print(
        f"[cyan]{result.generations_run} generations, {status}, "
        f"average rating {result.average_rating:.1f}[/cyan]"
    )
    df = pd.DataFrame(
        [
            {"rank": idx, **c.combination, "score": round(c.score, 2), "confidence": round(c.confidence, 2)}
            for idx, c in enumerate(result.optimal_configurations, 1)
        ]
    )
    _display_table(df)

    if output_file:
        try:
            best = result.optimal_configurations[0].combination
            export_configuration(best, output_file, format, include_metadata)
        except ValueError as e:
            print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        print(f"[green]✓[/green] Configuration saved to: {output_file}")


def _parse_schema(entries: List[str]) -> dict:
    schema = {}
    for entry in entries:
        key, sep, type_name = entry.partition("=")
        if not sep or not key or not type_name:
            raise ValueError(f"Invalid schema entry '{entry}', expected KEY=TYPE")
        schema[key] = type_name
    return schema


@app.command()
def deploy_config(
    parameters: List[str] = typer.Argument(..., help="Parameter names to build the configuration from"),
    target: Path = typer.Option(..., help="Configuration file to write"),
    format: str = typer.Option("json", help=f"Output format: {', '.join(EXPORT_FORMATS)}"),
    backup_path: Optional[str] = typer.Option(
        None, help="Copy the existing file here first; {timestamp} is replaced"
    ),
    require: List[str] = typer.Option([], help="Required key and type, e.g. temperature=number"),
    include_metadata: bool = typer.Option(False, help="Add generation metadata to the deployed file"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
) -> None:
    """Deploy the best-rated configuration to a file, with backup and validation.

    Example:
        paramarena deploy-config model temperature --target app.json --backup-path app-{timestamp}.json
    """
    cfg = _load_config(config_path)
    store = _open_store(cfg, read_only=True)
    try:
        suggestions = suggest_configurations(store, parameters, limit=1, initial_rating=cfg.elo.initial_rating)
    except StorageError as e:
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()

    if not suggestions:
        print("[yellow]No ratings stored for the requested parameters[/yellow]")
        raise typer.Exit(1)

    try:
        deploy_configuration(
            suggestions[0].combination,
            target,
            format,
            backup_path=backup_path,
            validation_schema=_parse_schema(require),
            include_metadata=include_metadata,
        )
    except (OSError, ValueError) as e:
        print(f"[red]Error deploying configuration:[/red] {e}")
        raise typer.Exit(1)
    print(f"[green]✓[/green] Configuration deployed to: {target}")


@app.command()
def clear_ratings(
    yes: bool = typer.Option(False, "--yes", help="Confirm deletion of all ratings and history"),
    config_path: Optional[str] = typer.Option(None, help="Path to application config"),
) -> None:
    """Delete all ratings and experiment history."""
    if not yes:
        print("[yellow]Refusing to clear ratings without --yes[/yellow]")
        raise typer.Exit(1)
    cfg = _load_config(config_path)
    store = _open_store(cfg)
    try:
        store.clear()
    except StorageError as e:
        print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    finally:
        store.close()
    print("[green]✓[/green] Ratings cleared")


def _display_table(df: pd.DataFrame) -> None:
    """Helper to display a DataFrame as a rich table."""
    if df.empty:
        print("[yellow]No results to display[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")

    for col in df.columns:
        table.add_column(str(col))

    for _, row in df.iterrows():
        table.add_row(*[str(val) for val in row])

    console.print(table)


if __name__ == "__main__":
    app()
