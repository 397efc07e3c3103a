"""
Rich Terminal Display Components.

Provides console UI for:
- Live progress of a running sync
- Result summary tables
- Checkpoint and registry status
- Status messages
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from datasync.core.delta import DeltaState
    from datasync.core.result import SyncResult


console = Console()


class ProgressDisplay:
    """
    Rich terminal UI for a running sync.

    Each per-record message from the engine advances the counter;
    throughput messages only refresh the status line.

    Example:
        display = ProgressDisplay()
        display.start("customer", "legacy", "csv", total=1000)
        engine.on_progress = display.on_message
        ...
        display.stop()
    """

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        )
        self._live: Live | None = None
        self._task_id: Any = None
        self._stats: dict[str, Any] = {}

    def start(
        self,
        entity_type: str,
        source_system: str,
        adapter: str,
        total: int | None = None,
    ) -> None:
        """Start the progress display."""
        self._stats = {
            "entity_type": entity_type,
            "source_system": source_system,
            "adapter": adapter,
            "processed": 0,
            "errors": 0,
            "last_message": "",
            "started": time.time(),
        }

        self._task_id = self.progress.add_task(
            f"[cyan]{entity_type.upper()}",
            total=total,
        )

        self._live = Live(
            self._build_display(),
            console=console,
            refresh_per_second=4,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the progress display."""
        if self._live:
            self._live.stop()
            self._live = None

    def on_message(self, message: str) -> None:
        """Progress callback for the engine."""
        if not message.startswith("Progress:"):
            self._stats["processed"] = self._stats.get("processed", 0) + 1
            if message.startswith("ERROR:"):
                self._stats["errors"] = self._stats.get("errors", 0) + 1
            if self._task_id is not None:
                self.progress.update(self._task_id, completed=self._stats["processed"])
        self._stats["last_message"] = message

        if self._live:
            self._live.update(self._build_display())

    @property
    def rate(self) -> float:
        elapsed = time.time() - self._stats.get("started", time.time())
        return self._stats.get("processed", 0) / elapsed if elapsed > 0 else 0.0

    def _build_display(self) -> Panel:
        """Build the display panel."""
        title = f"[bold white]DataSync - {self._stats.get('entity_type', '')}[/bold white]"

        info_table = Table.grid(padding=(0, 2))
        info_table.add_column(style="dim")
        info_table.add_column()
        info_table.add_row("Source:", self._stats.get("source_system", ""))
        info_table.add_row("Adapter:", self._stats.get("adapter", ""))

        stats_table = Table.grid(padding=(0, 3))
        stats_table.add_column(justify="center")
        stats_table.add_column(justify="center")
        stats_table.add_column(justify="center")
        stats_table.add_row(
            f"[green]Records:[/green] {self._stats.get('processed', 0):,}",
            f"[red]Errors:[/red] {self._stats.get('errors', 0):,}",
            f"[yellow]Speed:[/yellow] {self.rate:,.1f}/s",
        )

        status_text = Text()
        last = self._stats.get("last_message", "")
        if last:
            status_text.append("Last: ", style="dim")
            status_text.append(last, style="red" if last.startswith("ERROR:") else "cyan")

        return Panel(
            Group(info_table, Text(), self.progress, Text(), stats_table, status_text),
            title=title,
            border_style="blue",
            padding=(1, 2),
        )

    def __enter__(self) -> "ProgressDisplay":
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


def print_summary(result: "SyncResult") -> None:
    """Print a summary table after a sync."""
    data = result.to_dict()
    title = "Dry Run Summary" if result.is_dry_run else "Sync Summary"
    table = Table(title=title, border_style="red" if result.has_errors else "green")

    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Entity", data["entity_type"])
    table.add_row("Source System", data["source_system"])
    table.add_row("Duration", format_duration(result.duration_seconds))
    table.add_row("Records", f"{data['total']:,}")
    if result.is_dry_run:
        table.add_row("Would Create", f"{data['would_create']:,}")
        table.add_row("Would Update", f"{data['would_update']:,}")
        table.add_row("Would Merge", f"{data['would_merge']:,}")
    else:
        table.add_row("Created", f"{data['created']:,}")
        table.add_row("Updated", f"{data['updated']:,}")
        table.add_row("Merged", f"{data['merged']:,}")
        table.add_row("Skipped", f"{data['skipped']:,}")
    table.add_row("Errors", f"{data['error_count']:,}")
    table.add_row("Average Speed", f"{data['records_per_second']:,.1f} rec/s")

    console.print(table)


def print_errors(result: "SyncResult", limit: int = 10) -> None:
    """Print the first `limit` errors of a result."""
    if not result.errors:
        return
    print_warning(f"{result.error_count} errors occurred:")
    for message in result.error_messages[:limit]:
        print_error(f"  • {message}")
    if result.error_count > limit:
        print_info(f"  ... and {result.error_count - limit} more")


def print_delta_states(
    source_system: str,
    states: dict[str, "DeltaState"],
    registry_stats: dict[str, int],
) -> None:
    """Print checkpoints and registry counts for a source system."""
    table = Table(title=f"Sync Status: {source_system}", border_style="blue")
    table.add_column("Entity", style="cyan")
    table.add_column("Adapter")
    table.add_column("Last Sync")
    table.add_column("Last ID", justify="right")
    table.add_column("Synced", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Mapped", justify="right")

    for entity_type in sorted(set(states) | set(registry_stats)):
        state = states.get(entity_type)
        errors = state.error_count if state else 0
        table.add_row(
            entity_type,
            state.adapter_code if state else "[dim]-[/dim]",
            state.last_sync_at if state else "[dim]never[/dim]",
            str(state.last_entity_id) if state and state.last_entity_id is not None else "-",
            f"{state.sync_count:,}" if state else "0",
            f"[red]{errors:,}[/red]" if errors else "0",
            f"{registry_stats.get(entity_type, 0):,}",
        )

    console.print(table)


def print_adapters(adapters: dict[str, str]) -> None:
    """Print available adapters."""
    table = Table(title="Available Adapters", border_style="cyan")
    table.add_column("Code", style="cyan")
    table.add_column("Label")
    for code, label in adapters.items():
        table.add_row(code, label)
    console.print(table)


def format_duration(seconds: float) -> str:
    """Format a duration as e.g. '2.5s', '3m 12s' or '1h 04m'."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    value = float(size)
    for unit in ["B", "KB", "MB", "GB"]:
        if abs(value) < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red bold]Error:[/red bold] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green bold]✓[/green bold] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow bold]⚠[/yellow bold] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
