"""Rich-based reporting utilities for the mlschema CLI."""

from __future__ import annotations

from typing import Any, Dict

from bson import json_util
from rich.console import Console
from rich.json import JSON
from rich.table import Table

console = Console()


def print_json(payload: Dict[str, Any]) -> None:
    """Print a JSON payload with syntax highlighting."""
    console.print(JSON(json_util.dumps(payload, indent=2)))


def print_version_table(histogram: Dict[str, Any]) -> None:
    """Print document counts per version as a Rich table."""
    versions = histogram.get("versions", {})
    current = histogram.get("schema_version", 0)

    if not versions:
        console.print("[dim]No documents found.[/dim]")
        return

    table = Table(
        title=f"{histogram.get('collection', '')} (current version {current})",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Version", justify="right", style="bold")
    table.add_column("Documents", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("State")

    total = histogram.get("total", 0) or 1
    for version, count in versions.items():
        if version < current:
            state = "[yellow]stale[/yellow]"
        elif version == current:
            state = "[green]current[/green]"
        else:
            state = "[red]ahead[/red]"
        table.add_row(str(version), str(count), f"{count / total:.1%}", state)

    console.print(table)
    console.print(
        f"[bold]Total:[/bold] {histogram.get('total', 0)}  "
        f"[yellow]Stale:[/yellow] {histogram.get('stale', 0)}  "
        f"[red]Ahead:[/red] {histogram.get('ahead', 0)}"
    )
