"""
DataSync CLI - Command Line Interface.

Commands:
    sync      Import one entity type from a source system
    status    Show checkpoints and registry statistics
    reset     Clear checkpoints to force a full resync
    resolve   Look up the target id of a source record
    adapters  List available source adapters
    config    Manage configuration
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import SecretStr, ValidationError
from rich.console import Console
from rich.table import Table

from datasync import __version__
from datasync.adapters import available_adapters, create_adapter
from datasync.config import AdapterCode, DuplicatePolicy, Settings, load_settings
from datasync.core.delta import DeltaStore
from datasync.core.engine import create_engine
from datasync.core.filters import FilterSet
from datasync.core.registry import IdentityRegistry
from datasync.exceptions import ConnectionFailed, DataSyncError
from datasync.storage.sqlite import open_store
from datasync.utils.display import (
    ProgressDisplay,
    print_adapters,
    print_delta_states,
    print_error,
    print_errors,
    print_info,
    print_success,
    print_summary,
    print_warning,
)
from datasync.utils.logger import setup_logging


# Create the Typer app
app = typer.Typer(
    name="datasync",
    help="Migrate and incrementally synchronize records from external systems.",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]datasync[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """DataSync - cross-system record migration with identity tracking."""
    pass


def _split(value: Optional[str]) -> list[str] | None:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


# =============================================================================
# SYNC Command
# =============================================================================
@app.command()
def sync(
    entity: str = typer.Argument(..., help="Entity type to sync (e.g. customer, order)."),
    source_system: str = typer.Argument(..., help="Identifier of the source system."),
    adapter: Optional[AdapterCode] = typer.Option(
        None,
        "--adapter",
        "-a",
        help="Source adapter (overrides config).",
    ),
    file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="CSV file to read (csv adapter).",
    ),
    delimiter: Optional[str] = typer.Option(
        None,
        "--delimiter",
        help="CSV field delimiter.",
    ),
    source_db: Optional[Path] = typer.Option(
        None,
        "--source-db",
        help="Source SQLite database (sqlite adapter).",
    ),
    url: Optional[str] = typer.Option(
        None,
        "--url",
        help="Base URL of the source API (http adapter).",
    ),
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        envvar="DATASYNC_ADAPTER__API_KEY",
        help="API key for the source API.",
    ),
    on_duplicate: Optional[DuplicatePolicy] = typer.Option(
        None,
        "--on-duplicate",
        help="What to do with records that already exist.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Validate and detect duplicates without importing.",
    ),
    skip_invalid: bool = typer.Option(
        False,
        "--skip-invalid",
        help="Record invalid records as skipped instead of failing them.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Treat warnings as validation errors.",
    ),
    progress_interval: Optional[int] = typer.Option(
        None,
        "--progress-interval",
        min=1,
        help="Report throughput every N records.",
    ),
    incremental: bool = typer.Option(
        False,
        "--incremental",
        "-i",
        help="Only read records above the last synced id.",
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Maximum records to read."),
    offset: int = typer.Option(0, "--offset", min=0, help="Records to skip."),
    date_from: Optional[str] = typer.Option(None, "--date-from", help="Created on or after (YYYY-MM-DD)."),
    date_to: Optional[str] = typer.Option(None, "--date-to", help="Created on or before (YYYY-MM-DD, inclusive)."),
    id_from: Optional[int] = typer.Option(None, "--id-from", min=0, help="Lowest source id."),
    id_to: Optional[int] = typer.Option(None, "--id-to", min=0, help="Highest source id."),
    entity_ids: Optional[str] = typer.Option(None, "--entity-ids", help="Comma-separated source ids."),
    natural_keys: Optional[str] = typer.Option(
        None,
        "--natural-keys",
        help="Comma-separated natural keys (e.g. order increment ids).",
    ),
    store: Optional[str] = typer.Option(None, "--store", help="Comma-separated store ids."),
    database: Optional[Path] = typer.Option(
        None,
        "--database",
        "-d",
        help="Target database (overrides config).",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file.",
        exists=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every record."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Minimal output."),
    fail_on_error: bool = typer.Option(
        False,
        "--fail-on-error",
        help="Exit with status 1 when any record failed.",
    ),
) -> None:
    """
    Import one entity type from a source system.

    Example:
        datasync sync customer legacy --file customers.csv --on-duplicate skip
    """
    try:
        settings = _build_settings(
            config_file=config_file,
            source_system=source_system,
            adapter=adapter,
            file=file,
            delimiter=delimiter,
            source_db=source_db,
            url=url,
            api_key=api_key,
            on_duplicate=on_duplicate,
            dry_run=dry_run,
            skip_invalid=skip_invalid,
            strict=strict,
            progress_interval=progress_interval,
            database=database,
        )
        filters = FilterSet(
            date_from=date_from,
            date_to=date_to,
            id_from=id_from,
            id_to=id_to,
            limit=limit,
            offset=offset,
            store_scope=_split(store),
            entity_ids=[int(i) for i in _split(entity_ids) or []] or None,
            natural_key_list=_split(natural_keys),
        )
    except (ValueError, ValidationError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    errors = settings.validate_source()
    if errors:
        for err in errors:
            print_error(err)
        print_info("Use --help for configuration options.")
        raise typer.Exit(1)

    setup_logging(
        settings.logging,
        level="DEBUG" if verbose else ("WARNING" if quiet else None),
    )

    if dry_run:
        print_warning("DRY RUN - No changes will be made")

    target = open_store(settings.storage.database_path)
    source = create_adapter(
        settings.adapter.code.value,
        {**settings.adapter.as_options(), "entities": list(settings.entities)},
    )

    delta = DeltaStore(target)
    if not incremental and delta.load_state(source_system, entity) is not None:
        if delta.has_config_changed(source_system, entity, filters):
            print_warning("Filters differ from the previous run of this entity type.")

    display = ProgressDisplay() if not (quiet or verbose) else None

    def on_progress(message: str) -> None:
        if display:
            display.on_message(message)
        elif verbose:
            console.print(f"  {message}", markup=False, highlight=False)

    engine = create_engine(settings, source, store=target, filters=filters, on_progress=on_progress)

    try:
        if display:
            display.start(entity, source_system, source.code, total=_safe_count(source, entity, filters))
        result = engine.sync(entity, incremental=incremental)
    except ConnectionFailed as e:
        if display:
            display.stop()
        print_error(e.message)
        if e.result is not None and not quiet:
            print_summary(e.result)
        raise typer.Exit(1)
    except DataSyncError as e:
        if display:
            display.stop()
        print_error(e.message)
        raise typer.Exit(1)
    finally:
        if display:
            display.stop()
        target.close()
        close = getattr(source, "close", None)
        if close:
            close()

    if not quiet:
        console.print()
        print_summary(result)
        print_errors(result)

    if result.has_errors and fail_on_error:
        raise typer.Exit(1)
    if result.is_success:
        print_success(result.summary())
    else:
        print_warning(result.summary())


def _safe_count(source: Any, entity: str, filters: FilterSet) -> int | None:
    """Record count for the progress bar; None when the source cannot tell."""
    try:
        total = source.count(entity, filters)
    except DataSyncError:
        return None
    if total is not None and filters.limit is not None:
        total = min(total, filters.limit)
    return total


# =============================================================================
# STATUS Command
# =============================================================================
@app.command()
def status(
    source_system: str = typer.Argument(..., help="Identifier of the source system."),
    database: Optional[Path] = typer.Option(None, "--database", "-d", help="Target database."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file.", exists=True),
) -> None:
    """Show checkpoints and registry statistics for a source system."""
    settings = _build_settings(config_file=config_file, database=database)
    with open_store(settings.storage.database_path) as target:
        states = DeltaStore(target).get_states_for_source(source_system)
        stats = IdentityRegistry(target).get_stats(source_system)

    if not states and not stats:
        print_info(f"Nothing synced from {source_system} yet.")
        raise typer.Exit(0)

    print_delta_states(source_system, states, stats)

    for entity_type, state in states.items():
        if state.last_error:
            console.print()
            print_warning(f"Last errors for {entity_type}:")
            for line in state.last_error.splitlines():
                print_error(f"  • {line}")


# =============================================================================
# RESET Command
# =============================================================================
@app.command()
def reset(
    source_system: str = typer.Argument(..., help="Identifier of the source system."),
    entity: Optional[str] = typer.Option(None, "--entity", "-e", help="Only this entity type."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    database: Optional[Path] = typer.Option(None, "--database", "-d", help="Target database."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file.", exists=True),
) -> None:
    """Clear checkpoints so the next incremental run starts from scratch."""
    scope = f"{source_system}:{entity}" if entity else source_system
    if not yes and not typer.confirm(f"Reset checkpoints for {scope}?"):
        raise typer.Exit(0)

    settings = _build_settings(config_file=config_file, database=database)
    with open_store(settings.storage.database_path) as target:
        removed = DeltaStore(target).reset(source_system, entity)

    print_success(f"Reset {removed} checkpoint(s) for {scope}")


# =============================================================================
# RESOLVE Command
# =============================================================================
@app.command()
def resolve(
    source_system: str = typer.Argument(..., help="Identifier of the source system."),
    entity: str = typer.Argument(..., help="Entity type."),
    source_id: int = typer.Argument(..., help="Source id."),
    database: Optional[Path] = typer.Option(None, "--database", "-d", help="Target database."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file.", exists=True),
) -> None:
    """Print the target id a source record was imported as."""
    settings = _build_settings(config_file=config_file, database=database)
    with open_store(settings.storage.database_path) as target:
        mapping = IdentityRegistry(target).get_mapping(source_system, entity, source_id)

    if mapping is None:
        print_error(f"{source_system}:{entity}:{source_id} is not mapped")
        raise typer.Exit(1)

    table = Table(title="Registry Mapping", border_style="cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Source", f"{mapping.source_system}:{mapping.entity_type}:{mapping.source_id}")
    table.add_row("Target ID", str(mapping.target_id))
    table.add_row("External Ref", mapping.external_ref or "[dim]none[/dim]")
    table.add_row("Synced At", mapping.synced_at)
    console.print(table)


# =============================================================================
# ADAPTERS Command
# =============================================================================
@app.command()
def adapters() -> None:
    """List available source adapters."""
    print_adapters(available_adapters())


# =============================================================================
# CONFIG Command
# =============================================================================
@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration.",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        help="Write a config file with the default settings.",
    ),
    output: Path = typer.Option(
        Path("datasync.toml"),
        "--output",
        "-o",
        help="Output path for config file.",
    ),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file.", exists=True),
) -> None:
    """Manage configuration."""
    if init:
        Settings().to_file(output)
        print_success(f"Generated config file: {output}")
        return

    if show:
        settings = _build_settings(config_file=config_file)
        table = Table(title="Current Configuration", border_style="cyan")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        table.add_row("Source System", settings.source_system or "[dim]not set[/dim]")
        table.add_row("Target Database", str(settings.storage.database_path))
        table.add_row("Adapter", settings.adapter.code.value)
        table.add_row("On Duplicate", settings.sync.on_duplicate.value)
        table.add_row("Progress Interval", f"{settings.sync.progress_interval} records")
        table.add_row("Entities", ", ".join(settings.entities) or "[dim]none[/dim]")
        table.add_row("Log Level", settings.logging.level)

        console.print(table)
        return

    console.print("Use --show to view config or --init to create config file.")


# =============================================================================
# Helper Functions
# =============================================================================
def _build_settings(
    config_file: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Build settings from config file and overrides."""
    settings = load_settings(config_file) if config_file else Settings()

    if overrides.get("source_system"):
        settings.source_system = overrides["source_system"].strip()
    if overrides.get("database"):
        settings.storage.database_path = Path(overrides["database"])
    if overrides.get("adapter"):
        settings.adapter.code = AdapterCode(overrides["adapter"])
    elif overrides.get("file"):
        settings.adapter.code = AdapterCode.CSV
    elif overrides.get("source_db"):
        settings.adapter.code = AdapterCode.SQLITE
    elif overrides.get("url"):
        settings.adapter.code = AdapterCode.HTTP
    if overrides.get("file"):
        settings.adapter.file_path = Path(overrides["file"])
    if overrides.get("delimiter"):
        settings.adapter.delimiter = overrides["delimiter"]
    if overrides.get("source_db"):
        settings.adapter.database_path = Path(overrides["source_db"])
    if overrides.get("url"):
        settings.adapter.base_url = overrides["url"]
    if overrides.get("api_key"):
        settings.adapter.api_key = SecretStr(overrides["api_key"])
    if overrides.get("on_duplicate"):
        settings.sync.on_duplicate = DuplicatePolicy(overrides["on_duplicate"])
    if overrides.get("progress_interval"):
        settings.sync.progress_interval = overrides["progress_interval"]
    for flag in ("dry_run", "skip_invalid", "strict"):
        if overrides.get(flag):
            setattr(settings.sync, flag, True)

    return settings


if __name__ == "__main__":
    app()
