"""Command-line interface for tsprune."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from tsprune.backends import create_store
from tsprune.base import ConfigurationError, PruneError, StorageConnectionError
from tsprune.config import PruneConfig, load_config
from tsprune.durations import format_duration, parse_duration
from tsprune.scheduler import PruneScheduler

app = typer.Typer(
    name="tsprune",
    help="Downsample and expire aged rows in RTG-style time-series tables",
    add_completion=False,
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _load(config_file: Path) -> PruneConfig:
    try:
        return load_config(config_file)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


ConfigArgument = Annotated[
    Path, typer.Argument(help="Path to the YAML or JSON configuration file")
]


@app.command(name="run")
def run_cmd(
    config_file: ConfigArgument,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Only print what would be changed"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log progress for every table"),
    ] = False,
    run_limit: Annotated[
        Optional[str],
        typer.Option("--run-limit", "-l", help="Wall-clock budget, e.g. 50m"),
    ] = None,
    database: Annotated[
        Optional[str],
        typer.Option("--database", "-d", help="SQLAlchemy database URL"),
    ] = None,
    seed: Annotated[
        Optional[int],
        typer.Option("--seed", help="Seed for table order and sampling"),
    ] = None,
    workers: Annotated[
        Optional[int],
        typer.Option("--workers", "-w", help="Tables processed concurrently"),
    ] = None,
) -> None:
    """Prune every eligible table once."""
    config = _load(config_file)
    try:
        config = config.with_overrides(
            dry_run=dry_run or None,
            verbose=verbose or None,
            run_limit=parse_duration(run_limit) if run_limit else None,
            database_url=database,
            seed=seed,
            workers=workers,
        )
        _configure_logging(config.verbose or config.dry_run)
        store = create_store(config)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    try:
        with store:
            result = PruneScheduler(store, config).run()
    except StorageConnectionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    summary = result.to_dict()
    prefix = "[dry run] " if result.dry_run else ""
    typer.echo(
        f"{prefix}Processed {summary['tables_processed']} tables, "
        f"skipped {summary['tables_skipped']}, "
        f"{summary['tables_remaining']} left for next run"
    )
    typer.echo(
        f"  Rows deleted: {summary['rows_deleted']:,}, "
        f"rows inserted: {summary['rows_inserted']:,}"
    )
    if result.dry_run:
        planned = sum(len(r.operations) for r in result.processed)
        typer.echo(f"  Operations planned: {planned}")

    for table_result in result.processed:
        if table_result.optimize_error:
            typer.echo(
                f"  Warning: {table_result.table} not optimized: "
                f"{table_result.optimize_error}",
                err=True,
            )

    if result.failed:
        for table_result in result.failed:
            typer.echo(f"  Failed: {table_result.table}: {table_result.error}", err=True)
        raise typer.Exit(1)


@app.command(name="rules")
def rules_cmd(
    config_file: ConfigArgument,
    table: Annotated[str, typer.Argument(help="Table name to resolve rules for")],
) -> None:
    """Show which rules apply to a table."""
    config = _load(config_file)

    resolved = config.rules.resolve(table)
    if not resolved:
        typer.echo(f"No rules apply to {table}")
        return

    typer.echo(f"Rules for {table} (oldest first):")
    for rule in resolved:
        typer.echo(f"  - {rule.description}")

    for conflict in config.rules.conflicts(table):
        typer.echo(f"Warning: {conflict}", err=True)


@app.command(name="status")
def status_cmd(
    config_file: ConfigArgument,
    database: Annotated[
        Optional[str],
        typer.Option("--database", "-d", help="SQLAlchemy database URL"),
    ] = None,
) -> None:
    """Show when each eligible table was last pruned."""
    config = _load(config_file).with_overrides(database_url=database)
    try:
        store = create_store(config)
        with store:
            scheduler = PruneScheduler(store, config)
            typer.echo(
                f"Reaggregate interval: {format_duration(config.reaggregate_interval)}"
            )
            for table in sorted(scheduler.eligible_tables()):
                last = scheduler.tracker.last_pruned(table)
                state = "needs pruning" if scheduler.needs_pruning(table) else "up to date"
                stamp = last.isoformat() if last else "never"
                typer.echo(f"  {table}: last pruned {stamp} ({state})")
    except PruneError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
